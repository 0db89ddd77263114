"""Parse settings, optionally loaded from a YAML file."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseConfig:
    """Settings for one read of an NDE table.

    Attributes:
        strict: Abort on schema conflicts and unrecognized column types.
            When False the offending column is skipped and recorded in the
            parse summary instead.
        strict_values: Abort on undecodable values and on rows missing a
            value for some column. By default those fields are left out of
            their track and recorded in the parse summary.
        max_entries: Upper bound on the entries walked in one linked
            structure; a longer chain is treated as corrupt.
        workers: Number of threads used to decode column chains.
    """

    strict: bool = True
    strict_values: bool = False
    max_entries: int = 1_000_000
    workers: int = 1

    def __post_init__(self) -> None:
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {self.max_entries}")
        if self.workers < 1:
            raise ValueError(f"workers must be positive, got {self.workers}")

    @classmethod
    def from_yaml(cls, config_path: Path | str) -> ParseConfig:
        """Load settings from a YAML mapping; a missing file yields the defaults."""
        config_path = Path(config_path)
        if not config_path.exists():
            logger.debug("no config file at %s, using defaults", config_path)
            return cls()
        with open(config_path) as f:
            try:
                config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"{config_path}: {e}") from e
        if not isinstance(config_data, dict):
            raise ValueError(f"{config_path}: expected a mapping of settings")
        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_data: dict[str, Any]) -> ParseConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config_data) - known)
        if unknown:
            raise ValueError(f"unknown config keys: {', '.join(unknown)}")
        return cls(**config_data)

    def to_yaml(self, config_path: Path | str) -> None:
        with open(config_path, "w") as f:
            yaml.safe_dump(asdict(self), f, default_flow_style=False)

    def override(self, **changes: Any) -> ParseConfig:
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
