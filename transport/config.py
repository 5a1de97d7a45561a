"""
Run parameters.

A config file is either JSON / TOML or plain ``key value`` lines::

    # 40 pions in a periodic 10 fm box
    dt            0.1
    end_time      20
    box_length    10
    species       211:20,-211:20
    seed          42

Blank lines and lines starting with ``#`` are skipped. Unknown keys are
reported with a warning and ignored.
"""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def parse_species(value) -> Dict[int, int]:
    """``"211:20,-211:20"`` or ``{"211": 20}`` -> ``{211: 20, -211: 20}``."""
    if isinstance(value, dict):
        return {int(k): int(v) for k, v in value.items()}
    counts: Dict[int, int] = {}
    for item in str(value).split(","):
        item = item.strip()
        if not item:
            continue
        pdg, _, n = item.partition(":")
        if not n:
            raise ValueError(f"Species entry '{item}' must look like pdg:count")
        counts[int(pdg)] = counts.get(int(pdg), 0) + int(n)
    return counts


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


@dataclass
class TransportConfig:
    # time stepping (fm)
    dt: float = 0.1
    end_time: float = 10.0
    start_time: float = 0.0

    # geometry; box_length <= 0 means no box
    box_length: float = 10.0
    periodic: bool = True

    # cross sections (mb)
    maximum_cross_section: float = 200.0
    elastic_cross_section: float = 10.0
    resonance_cross_section: float = 40.0
    string_cross_section: float = 25.0
    string_threshold: float = 4.0  # GeV

    # string fragmentation
    string_formation_time: float = 1.0
    leading_suppression: float = 0.7

    # initial state
    species: Dict[int, int] = field(default_factory=lambda: {211: 20, -211: 20})
    temperature: float = 0.15  # GeV

    seed: Optional[int] = None
    history_path: Optional[str] = None

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "TransportConfig":
        """Build a config from loosely typed values (strings are converted)."""
        known = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in values.items():
            if key not in known:
                logger.warning(f"Unknown config key '{key}' ignored")
                continue
            kwargs[key] = cls._convert(key, value)
        config = cls(**kwargs)
        config.validate()
        return config

    @staticmethod
    def _convert(key: str, value):
        if key == "species":
            return parse_species(value)
        if key == "periodic":
            return _parse_bool(value)
        if key in ("seed", "history_path"):
            if value is None or str(value).lower() == "none":
                return None
            return int(value) if key == "seed" else str(value)
        return float(value)

    @classmethod
    def from_file(cls, path) -> "TransportConfig":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"No config at {path}")
        suffix = path.suffix.lower()
        if suffix == ".json":
            values = json.loads(path.read_text(encoding="utf-8"))
        elif suffix in (".toml", ".tml"):
            values = tomllib.loads(path.read_text(encoding="utf-8"))
        else:
            values = read_key_value_file(path)
        logger.info(f"Read config {path} ({len(values)} entries)")
        return cls.from_dict(values)

    def validate(self) -> None:
        """Raise ValueError on inconsistent parameters."""
        if self.dt <= 0.0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        if self.end_time < self.start_time:
            raise ValueError(f"end_time {self.end_time} lies before start_time {self.start_time}")
        if self.maximum_cross_section <= 0.0:
            raise ValueError("maximum_cross_section must be positive")
        for name in ("elastic_cross_section", "resonance_cross_section", "string_cross_section"):
            if getattr(self, name) < 0.0:
                raise ValueError(f"{name} must not be negative")
        total = self.elastic_cross_section + self.resonance_cross_section + self.string_cross_section
        if total > self.maximum_cross_section:
            raise ValueError(f"Cross sections add up to {total} mb, above maximum_cross_section "
                             f"{self.maximum_cross_section} mb")
        if not 0.0 <= self.leading_suppression <= 1.0:
            raise ValueError("leading_suppression must lie in [0, 1]")
        if self.temperature <= 0.0:
            raise ValueError("temperature must be positive")
        if any(n < 0 for n in self.species.values()):
            raise ValueError("Particle counts must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def read_key_value_file(path) -> Dict[str, str]:
    """``key value`` pairs of a plain config file; later keys override earlier ones."""
    values: Dict[str, str] = {}
    with open(path, "r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            parts = stripped.split(None, 1)
            if len(parts) < 2:
                logger.warning(f"{path}:{lineno}: key '{parts[0]}' without value skipped")
                continue
            key, value = parts
            values[key] = value.split("#", 1)[0].strip()
    return values
