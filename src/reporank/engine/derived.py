"""Metrics computed from other resolved fields."""

from collections.abc import Callable, Mapping
from typing import Any

from reporank.models.schemas import is_numeric


def fork_to_star_ratio(values: Mapping[str, Any]) -> float | None:
    """forks / stars, or None when either is missing or stars is zero."""
    stars = values.get("stars")
    forks = values.get("forks")
    if not is_numeric(stars) or not is_numeric(forks) or stars <= 0:
        return None
    return forks / stars


# name -> (input fields, function)
DERIVED_METRICS: dict[str, tuple[tuple[str, ...], Callable[[Mapping[str, Any]], float | None]]] = {
    "fork_to_star_ratio": (("stars", "forks"), fork_to_star_ratio),
}


def derive(values: Mapping[str, Any]) -> dict[str, float]:
    """Compute every derived metric whose inputs are present."""
    derived = {}
    for name, (_inputs, func) in DERIVED_METRICS.items():
        result = func(values)
        if result is not None:
            derived[name] = result
    return derived
