"""
Trust and quality scoring from review signals.
"""

from benchrank.trust.aggregator import Opinion, TrustAggregator, TrustComputation
from benchrank.trust.consensus import ConsensusTracker, ReviewerAgreement, majority_opinion
from benchrank.trust.weights import (
    opinion_weight,
    previous_trust,
    smoothed_ratio,
    source_weight,
)

__all__ = [
    "Opinion",
    "TrustAggregator",
    "TrustComputation",
    "ConsensusTracker",
    "ReviewerAgreement",
    "majority_opinion",
    "opinion_weight",
    "previous_trust",
    "smoothed_ratio",
    "source_weight",
]
