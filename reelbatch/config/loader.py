from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml

from ..parallel.runner import ParallelRunnerConfig
from ..polling.poller import PollerConfig

# env var -> (section, field, cast)
ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "REELBATCH_RATE_LIMIT_RPM": ("runner", "rate_limit_rpm", int),
    "REELBATCH_SEQUENTIAL_COUNT": ("runner", "sequential_count", int),
    "REELBATCH_BATCH_SIZE": ("runner", "batch_size", int),
    "REELBATCH_TASK_TIMEOUT": ("runner", "task_timeout", float),
    "REELBATCH_POLL_INTERVAL": ("poller", "poll_interval", float),
    "REELBATCH_MAX_POLL_ATTEMPTS": ("poller", "max_attempts", int),
}


@dataclass
class Settings:
    runner: ParallelRunnerConfig = field(default_factory=ParallelRunnerConfig)
    poller: PollerConfig = field(default_factory=PollerConfig)
    extra: Dict[str, Any] = field(default_factory=dict)


def load_settings(
    path: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Load runner and poller settings from an optional YAML file, then apply
    REELBATCH_* environment overrides. Top-level keys other than ``runner``
    and ``poller`` are kept in ``extra``.
    """
    data: Dict[str, Any] = {}
    if path is not None:
        data = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config {path} must contain a mapping")

    sections: Dict[str, Dict[str, Any]] = {
        "runner": dict(data.get("runner") or {}),
        "poller": dict(data.get("poller") or {}),
    }

    env = os.environ if environ is None else environ
    for var, (section, key, cast) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw.strip() == "":
            continue
        try:
            sections[section][key] = cast(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {var}: {raw!r}") from exc

    return Settings(
        runner=_build(ParallelRunnerConfig, sections["runner"], "runner"),
        poller=_build(PollerConfig, sections["poller"], "poller"),
        extra={k: v for k, v in data.items() if k not in {"runner", "poller"}},
    )


def _build(cls: Any, values: Dict[str, Any], section: str) -> Any:
    unknown = set(values) - set(cls.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown {section} settings: {sorted(unknown)}")
    return cls(**values)
