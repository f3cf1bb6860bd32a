"""Certification requirement table.

The required scores and weights MUST match the scores the web client shows
on the certification page. Weights across the table sum to 1.0.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from uwa.certification.schemas import Requirement

WEIGHT_TOLERANCE = 1e-9

CERTIFICATION_REQUIREMENTS: list[Requirement] = [
    Requirement(
        game_type="artifact_identification",
        required_score=80,
        weight=0.6,
        name="Artifact Identification",
        description="Demonstrate ability to identify and classify underwater artifacts",
    ),
    Requirement(
        game_type="excavation_simulation",
        required_score=75,
        weight=0.4,
        name="Excavation Techniques",
        description="Show proficiency in proper archaeological excavation methods",
    ),
]


def weight_table(requirements: Sequence[Requirement]) -> dict[str, float]:
    """Map game type -> weight."""
    return {req.game_type: req.weight for req in requirements}


def validate_weights(weights: dict[str, float]) -> None:
    """Raise ValueError unless the weights sum to 1.0 within floating tolerance."""
    total = math.fsum(weights.values())
    if not math.isclose(total, 1.0, abs_tol=WEIGHT_TOLERANCE):
        msg = f"Requirement weights must sum to 1.0, got {total}"
        raise ValueError(msg)


def requirement_name(requirements: Sequence[Requirement], game_type: str) -> str:
    for req in requirements:
        if req.game_type == game_type:
            return req.name
    return game_type


validate_weights(weight_table(CERTIFICATION_REQUIREMENTS))
