"""Composite scoring and band classification of image-level features."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Mapping

from histomorph.core.config import ThresholdBand, ThresholdBands, WeightTable
from histomorph.core.models import FeatureVector

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_ADJUSTMENT = 0.1


@dataclass(frozen=True)
class CompositeScore:
    """A weighted composite of named features.

    Attributes:
        name: Composite identifier.
        value: Weighted sum clipped to the score range.
        applied_weight: Sum of the weights of features that contributed.
        total_weight: Sum of all weights in the table.
        contributions: feature -> weight * value, for contributing features.
        skipped: Table features that were missing or undefined.
    """

    name: str
    value: float
    applied_weight: float
    total_weight: float
    contributions: Mapping[str, float] = field(default_factory=dict)
    skipped: tuple[str, ...] = ()

    @property
    def complete(self) -> bool:
        """Whether every feature in the table contributed."""
        return not self.skipped


@dataclass(frozen=True)
class Classification:
    """The band a score fell into and how confident the label is."""

    label: str
    confidence: float
    band: ThresholdBand


def score(
    features: FeatureVector | Mapping[str, float | None],
    table: WeightTable,
    name: str = "composite",
    renormalize: bool = False,
    floor: float = 0.0,
    ceiling: float = 1.0,
) -> CompositeScore:
    """Combine features into a weighted composite score.

    Args:
        features: Feature values; None marks a value as undefined.
        table: Feature weights.
        name: Composite identifier carried into the result.
        renormalize: Rescale by ``total_weight / applied_weight`` so missing
            features do not pull the score toward zero.
        floor: Lowest possible score.
        ceiling: Highest possible score.

    Returns:
        CompositeScore whose value lies in ``[floor, ceiling]``. With no
        contributing features the value is ``floor`` (clipped zero).

    Raises:
        ValueError: If a defined feature value is not finite.
    """
    contributions: dict[str, float] = {}
    skipped: list[str] = []
    applied = 0.0
    total = 0.0
    for feature, weight in table:
        value = features.get(feature)
        if value is None:
            skipped.append(feature)
            continue
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Feature {feature!r} has non-finite value {value}")
        contributions[feature] = weight * value
        applied += weight
        total += weight * value

    if renormalize and applied != 0 and contributions:
        total = total * table.total_weight / applied

    value = min(max(total, floor), ceiling)
    if skipped:
        logger.debug("Composite %s skipped undefined features: %s", name, ", ".join(skipped))
    return CompositeScore(
        name=name,
        value=value,
        applied_weight=applied,
        total_weight=table.total_weight,
        contributions=contributions,
        skipped=tuple(skipped),
    )


def classify(
    value: float,
    bands: ThresholdBands,
    confidence_adjustment: float = DEFAULT_CONFIDENCE_ADJUSTMENT,
) -> Classification:
    """Map a score to the first band (highest first) whose lower bound it meets.

    Confidence is the band's base confidence shifted by
    ``confidence_adjustment * (position - 0.5)``, where position is where the
    value sits inside the band (0 at its lower bound, 1 at its upper bound),
    clamped to [0, 1]. A zero-width band counts as position 0.5.

    Raises:
        ValueError: If the value is not finite or lies below every band.
    """
    if not math.isfinite(value):
        raise ValueError(f"Cannot classify non-finite score {value}")
    for band in bands:
        if value >= band.lower_bound:
            upper = bands.upper_bound(band)
            width = upper - band.lower_bound
            if width > 0:
                position = min(max((value - band.lower_bound) / width, 0.0), 1.0)
            else:
                position = 0.5
            confidence = band.base_confidence + confidence_adjustment * (position - 0.5)
            return Classification(
                label=band.label,
                confidence=min(max(confidence, 0.0), 1.0),
                band=band,
            )
    raise ValueError(
        f"Score {value} is below the lowest band ({bands.lowest.lower_bound})"
    )
