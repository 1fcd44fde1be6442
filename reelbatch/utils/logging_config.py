import logging
from pathlib import Path
from typing import Iterable, Optional

# HTTP client loggers that log every request/poll at INFO
NOISY_LOGGERS = ("httpx", "openai", "urllib3")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure logging for reelbatch runs and scripts.

    Parameters
    ----------
    level:
        Logging level name for reelbatch (e.g., "INFO", "DEBUG").
    log_file:
        Optional path to log output. When not provided, logs go to stderr.
    quiet:
        Third-party loggers held at WARNING so batch and poll progress stay
        readable. Ignored when ``level`` is DEBUG.
    """
    logging_level = getattr(logging, level.upper(), logging.INFO)
    log_kwargs = {
        "level": logging_level,
        "format": "%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        "datefmt": "%H:%M:%S",
    }

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        log_kwargs["filename"] = log_file

    logging.basicConfig(**log_kwargs)

    if logging_level > logging.DEBUG:
        for name in quiet:
            logging.getLogger(name).setLevel(logging.WARNING)
