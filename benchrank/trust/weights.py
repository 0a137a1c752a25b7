"""
Signal weighting for prompt quality.

A reviewer's opinion counts in proportion to how much the platform trusted
that reviewer in the previous epoch. Trust therefore compounds across
epochs without any same-epoch circular dependency.

Key Formulas:
    w = |weight| × κ_source × T_prev(actor)
    Q = (Σ w·v + λ·0.5) / (Σ w + λ)

Where:
    κ_source = review_weight or quick_feedback_weight
    T_prev   = previous-epoch reviewer trust (neutral_trust if unknown)
    v        = 1 for a positive opinion, 0 for a negative one
    λ        = prior_strength (pseudo-count at the neutral 0.5)
"""

from typing import Mapping, Optional

from benchrank.config.params import TrustParams
from benchrank.core.signals import SignalSource

NEUTRAL_SCORE: float = 0.5


def source_weight(source: SignalSource, params: Optional[TrustParams] = None) -> float:
    """
    Relative weight of an opinion by where it came from.

    Raises:
        ValueError: For sources that carry no opinion
    """
    params = params or TrustParams()
    if source == SignalSource.REVIEW:
        return params.review_weight
    if source == SignalSource.QUICK_FEEDBACK:
        return params.quick_feedback_weight
    raise ValueError(f"{source.value} signals carry no opinion")


def previous_trust(
    actor_user_id: str,
    trust_scores: Optional[Mapping[str, float]],
    params: Optional[TrustParams] = None
) -> float:
    """Previous-epoch trust of an actor, bootstrapped to neutral."""
    params = params or TrustParams()
    if trust_scores and actor_user_id in trust_scores:
        value = trust_scores[actor_user_id]
        if value is not None:
            return float(value)
    return params.neutral_trust


def opinion_weight(
    strength: float,
    source: SignalSource,
    trust: float,
    params: Optional[TrustParams] = None
) -> float:
    """Effective weight w of one collapsed opinion."""
    return abs(strength) * source_weight(source, params) * trust


def smoothed_ratio(positive: float, total: float, prior_strength: float) -> float:
    """
    Share of positive mass, smoothed toward 0.5.

    Example:
        >>> smoothed_ratio(0.0, 0.0, 1.0)
        0.5
        >>> smoothed_ratio(3.0, 3.0, 1.0)
        0.875
    """
    denominator = total + prior_strength
    if denominator <= 0:
        return NEUTRAL_SCORE
    return (positive + prior_strength * NEUTRAL_SCORE) / denominator
