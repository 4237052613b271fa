"""Configuration loading and built-in defaults."""

import copy
import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from reporank.errors import ConfigurationError
from reporank.models.config import EngineConfig

logger = logging.getLogger(__name__)

# Field classes drive freshness half-lives
FIELD_CLASSES = {
    "stars": "popularity",
    "forks": "popularity",
    "downloads": "popularity",
    "commit_frequency": "activity",
    "contributor_count": "activity",
    "release_frequency": "activity",
    "last_commit_at": "activity",
    "issue_response_hours": "community",
    "issue_resolution_rate": "community",
    "contributor_diversity": "community",
    "documentation_completeness": "quality",
    "test_signal": "quality",
    "security_signal": "quality",
    "license": "license",
}

HALF_LIFE_DAYS = {
    "activity": 30,
    "community": 60,
    "popularity": 90,
    "quality": 120,
    "license": 180,
}

REGISTRIES = ["registry-npm", "registry-pypi", "registry-crates"]

CONFLICT_POLICIES = {
    "stars": {"strategy": "highest_value", "source_priority": ["host", "trending"]},
    "forks": {"strategy": "highest_value", "source_priority": ["host"]},
    "downloads": {"strategy": "highest_value", "source_priority": REGISTRIES},
    "commit_frequency": {"strategy": "most_recent", "source_priority": ["host"]},
    "contributor_count": {"strategy": "highest_value", "source_priority": ["host"]},
    "release_frequency": {"strategy": "consensus", "source_priority": ["host", *REGISTRIES]},
    "issue_response_hours": {"strategy": "most_recent", "source_priority": ["host"]},
    "issue_resolution_rate": {"strategy": "weighted_average", "source_priority": ["host"]},
    "contributor_diversity": {"strategy": "most_recent", "source_priority": ["host"]},
    "documentation_completeness": {
        "strategy": "weighted_average",
        "source_priority": ["host", *REGISTRIES],
    },
    "test_signal": {"strategy": "most_recent", "source_priority": ["host"]},
    "security_signal": {"strategy": "most_recent", "source_priority": ["host"]},
    "license": {"strategy": "consensus", "source_priority": ["host", *REGISTRIES]},
}

SOURCE_RELIABILITY = {
    "host": 1.0,
    "registry-npm": 0.9,
    "registry-pypi": 0.9,
    "registry-crates": 0.9,
    "trending": 0.5,
}

NORMALIZATION = {
    "stars": {"strategy": "min_max", "minimum": 0, "maximum": 50_000},
    "forks": {"strategy": "log_scale", "ceiling": 20_000},
    "downloads": {"strategy": "log_scale", "ceiling": 10_000_000},
    "fork_to_star_ratio": {"strategy": "min_max", "minimum": 0, "maximum": 1},
    "commit_frequency": {"strategy": "z_score"},  # commits per week, population-relative
    "contributor_count": {"strategy": "log_scale", "ceiling": 1_000},
    "release_frequency": {"strategy": "min_max", "minimum": 0, "maximum": 24},  # per year
    "issue_response_hours": {"strategy": "log_scale", "ceiling": 720, "invert": True},
    "issue_resolution_rate": {"strategy": "min_max", "minimum": 0, "maximum": 1},
    "contributor_diversity": {"strategy": "min_max", "minimum": 0, "maximum": 1},
    "documentation_completeness": {"strategy": "min_max", "minimum": 0, "maximum": 1},
    "test_signal": {"strategy": "min_max", "minimum": 0, "maximum": 1},
    "security_signal": {"strategy": "min_max", "minimum": 0, "maximum": 1},
}

WEIGHTS = {
    "popularity": {"stars": 0.5, "downloads": 0.3, "fork_to_star_ratio": 0.2},
    "activity": {"commit_frequency": 0.4, "contributor_count": 0.3, "release_frequency": 0.3},
    "community_health": {
        "issue_response_hours": 0.4,
        "issue_resolution_rate": 0.35,
        "contributor_diversity": 0.25,
    },
    "quality_score": {"documentation_completeness": 0.4, "test_signal": 0.3, "security_signal": 0.3},
    "overall": {"popularity": 0.25, "activity": 0.25, "community_health": 0.25, "quality_score": 0.25},
}

THRESHOLDS = {
    "must": [
        {"name": "min-stars", "metric": "stars", "kind": "min", "value": 100},
        {"name": "has-license", "metric": "license", "kind": "present"},
        {"name": "min-completeness", "metric": "completeness", "kind": "min", "value": 0.3},
    ],
    "quality": [
        {"name": "min-quality", "metric": "quality_score", "kind": "min", "value": 0.4},
        {"name": "min-activity", "metric": "activity", "kind": "min", "value": 0.3},
        {"name": "fresh-data", "metric": "freshness", "kind": "min", "value": 0.25},
    ],
}

DIVERSITY = {
    "scale_metric": "stars",
    "scale_thresholds": {"small": 0, "medium": 1_000, "large": 10_000},
    "buckets": [
        {"name": "large", "dimension": "scale", "match": "large", "quota": 4},
        {"name": "medium", "dimension": "scale", "match": "medium", "quota": 4},
        {"name": "small", "dimension": "scale", "match": "small", "quota": 2},
    ],
}

LIBRARY_FIELDS = ["stars", "downloads", "forks", "commit_frequency", "contributor_count", "license"]

CATEGORIES = {
    "rust-libraries": {"expected_fields": LIBRARY_FIELDS},
    "python-libraries": {"expected_fields": LIBRARY_FIELDS + ["documentation_completeness"]},
    "javascript-libraries": {"expected_fields": LIBRARY_FIELDS},
    "cli-tools": {
        "expected_fields": ["stars", "forks", "commit_frequency", "contributor_count", "license"],
        "thresholds": {"must": [{"name": "min-stars", "metric": "stars", "kind": "min", "value": 50}]},
    },
}

DEFAULT_CONFIG: dict[str, Any] = {
    "categories": CATEGORIES,
    "conflict_policies": CONFLICT_POLICIES,
    "default_policy": {
        "strategy": "most_recent",
        "source_priority": ["host", *REGISTRIES, "trending"],
    },
    "source_reliability": SOURCE_RELIABILITY,
    "normalization": NORMALIZATION,
    "weights": WEIGHTS,
    "thresholds": THRESHOLDS,
    "diversity": DIVERSITY,
    "ranking": "weighted_sum",
    "ranking_scope": "global",
    "field_classes": FIELD_CLASSES,
    "half_life_days": HALF_LIFE_DAYS,
    "default_half_life_days": 90,
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into base; nested dicts merge, everything else replaces."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def build_config(overrides: dict[str, Any] | None = None) -> EngineConfig:
    """Build a validated config from the defaults plus overrides.

    An ``inherit_defaults: false`` key in overrides skips the defaults.

    Raises:
        ConfigurationError: If the merged configuration is invalid.
    """
    overrides = dict(overrides or {})
    inherit = overrides.pop("inherit_defaults", True)
    data = copy.deepcopy(DEFAULT_CONFIG) if inherit else {}
    _deep_merge(data, copy.deepcopy(overrides))

    try:
        return EngineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def default_config() -> EngineConfig:
    """Return the built-in configuration."""
    return build_config()


def load_config(path: Path) -> EngineConfig:
    """Load configuration from a JSON or YAML file.

    Args:
        path: Config file; ``.yaml``/``.yml`` are parsed as YAML, anything else as JSON.

    Returns:
        Validated EngineConfig.

    Raises:
        ConfigurationError: If the file cannot be read, parsed or validated.
    """
    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Cannot read config {path}: {e}") from e

    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {path} must contain a mapping")

    config = build_config(data)
    logger.info(f"Loaded config from {path} ({len(config.categories)} categories)")
    return config
