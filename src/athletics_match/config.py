"""athletics_match.config

YAML configuration for the matcher.

Only the knobs that are meant to be tuned per deployment live here; the
scoring weights and bonuses in event_matcher / race_matcher are calibrated
together and are not configurable.

Usage:
    from pathlib import Path
    from athletics_match.config import load_matching_config

    config = load_matching_config(Path("config/matching.yml"))
    config.similarity_threshold  # 0.75
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_PATH = Path("config/matching.yml")

ALLOWED_KEYS = frozenset({
    "similarity_threshold",
    "distance_tolerance_percent",
    "confidence_base",
    "rejected_match_limit",
    "retrieval_timeout_seconds",
})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class MatchingConfigValidationError(ValueError):
    """Raised when a matching configuration file fails validation."""


# ---------------------------------------------------------------------------
# MatchingConfig dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchingConfig:
    similarity_threshold: float = 0.75
    distance_tolerance_percent: float = 0.05
    confidence_base: float = 0.9
    rejected_match_limit: int = 3
    retrieval_timeout_seconds: float = 10.0
    yaml_hash: str | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "similarity_threshold": self.similarity_threshold,
            "distance_tolerance_percent": self.distance_tolerance_percent,
            "confidence_base": self.confidence_base,
            "rejected_match_limit": self.rejected_match_limit,
            "retrieval_timeout_seconds": self.retrieval_timeout_seconds,
            "yaml_hash": self.yaml_hash,
        }


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_matching_config(yaml_path: Path) -> MatchingConfig:
    """Load, validate, and return a MatchingConfig from a YAML file.

    Keys absent from the file keep their defaults.  An empty file yields the
    default configuration.

    Raises:
        MatchingConfigValidationError: If a key is unknown or a value invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if data is None:
        data = {}
    validate_matching_config(data)
    yaml_hash = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    defaults = MatchingConfig()
    return MatchingConfig(
        similarity_threshold=float(
            data.get("similarity_threshold", defaults.similarity_threshold)
        ),
        distance_tolerance_percent=float(
            data.get("distance_tolerance_percent", defaults.distance_tolerance_percent)
        ),
        confidence_base=float(data.get("confidence_base", defaults.confidence_base)),
        rejected_match_limit=int(
            data.get("rejected_match_limit", defaults.rejected_match_limit)
        ),
        retrieval_timeout_seconds=float(
            data.get("retrieval_timeout_seconds", defaults.retrieval_timeout_seconds)
        ),
        yaml_hash=yaml_hash,
    )


def _numeric(data: dict[str, Any], key: str) -> float | None:
    if key not in data:
        return None
    val = data[key]
    if isinstance(val, bool):
        raise MatchingConfigValidationError(f"'{key}' value '{val}' is not numeric.")
    try:
        return float(val)
    except (TypeError, ValueError):
        raise MatchingConfigValidationError(f"'{key}' value '{val}' is not numeric.")


def validate_matching_config(data: dict[str, Any]) -> None:
    """Raise MatchingConfigValidationError if data does not match the schema.

    Validates:
      - root is a mapping with no unknown keys
      - similarity_threshold in [0.3, 1.0]
      - distance_tolerance_percent in (0, 0.5]
      - confidence_base in [0, 1]
      - rejected_match_limit an integer >= 1
      - retrieval_timeout_seconds > 0
    """
    if not isinstance(data, dict):
        raise MatchingConfigValidationError("YAML root must be a mapping.")

    unknown = set(data.keys()) - ALLOWED_KEYS
    if unknown:
        raise MatchingConfigValidationError(f"Unknown configuration keys: {sorted(unknown)}")

    threshold = _numeric(data, "similarity_threshold")
    if threshold is not None and not (0.3 <= threshold <= 1.0):
        raise MatchingConfigValidationError(
            f"'similarity_threshold' value {threshold} must be in [0.3, 1.0]."
        )

    tolerance = _numeric(data, "distance_tolerance_percent")
    if tolerance is not None and not (0.0 < tolerance <= 0.5):
        raise MatchingConfigValidationError(
            f"'distance_tolerance_percent' value {tolerance} must be in (0, 0.5]."
        )

    base = _numeric(data, "confidence_base")
    if base is not None and not (0.0 <= base <= 1.0):
        raise MatchingConfigValidationError(
            f"'confidence_base' value {base} must be in [0.0, 1.0]."
        )

    if "rejected_match_limit" in data:
        limit = data["rejected_match_limit"]
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise MatchingConfigValidationError(
                f"'rejected_match_limit' value '{limit}' must be an integer."
            )
        if limit < 1:
            raise MatchingConfigValidationError(
                f"'rejected_match_limit' value {limit} must be >= 1."
            )

    timeout = _numeric(data, "retrieval_timeout_seconds")
    if timeout is not None and timeout <= 0:
        raise MatchingConfigValidationError(
            f"'retrieval_timeout_seconds' value {timeout} must be > 0."
        )
