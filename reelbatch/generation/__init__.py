from .text import GenerationOptions, TextGenerator, build_text_tasks, options_from_dict

__all__ = [
    "GenerationOptions",
    "TextGenerator",
    "build_text_tasks",
    "options_from_dict",
]
