"""
Reviewer agreement with consensus.

Consensus on a prompt is the strict majority of all collapsed reviewer
opinions on it. A reviewer's trust is the share of their opinions that
agreed with consensus, smoothed toward neutral:

    Trust_R = (agreed_R + λ·0.5) / (compared_R + λ)

A reviewer at 0.5 is indistinguishable from a newcomer; consistently
contrarian reviewers drift toward 0, consistently aligned ones toward 1.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from benchrank.trust.weights import smoothed_ratio


@dataclass
class ReviewerAgreement:
    """Agreement counters for a single reviewer."""
    reviewer_id: str
    agreed: int = 0        # Opinions matching consensus
    compared: int = 0      # Opinions on prompts that had a consensus

    def record(self, agrees: bool) -> None:
        self.compared += 1
        if agrees:
            self.agreed += 1

    def trust(self, prior_strength: float) -> float:
        return smoothed_ratio(self.agreed, self.compared, prior_strength)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reviewer_id": self.reviewer_id,
            "agreed": self.agreed,
            "compared": self.compared,
        }


def majority_opinion(opinions: Iterable[bool], min_reviewers: int = 2) -> Optional[bool]:
    """
    Strict majority of a set of opinions.

    Args:
        opinions: True for positive, False for negative
        min_reviewers: Fewer opinions than this yield no consensus

    Returns:
        True/False for a majority, None for a tie or too few opinions

    Example:
        >>> majority_opinion([True, True, False])
        True
        >>> majority_opinion([True, False]) is None
        True
    """
    values = list(opinions)
    if len(values) < min_reviewers:
        return None
    positive = sum(1 for v in values if v)
    negative = len(values) - positive
    if positive == negative:
        return None
    return positive > negative


class ConsensusTracker:
    """
    Accumulate per-reviewer agreement over many prompts.

    Example:
        >>> tracker = ConsensusTracker(min_reviewers=2)
        >>> tracker.record_prompt({"alice": True, "bob": True, "carol": False})
        >>> tracker.get("carol").agreed
        0
    """

    def __init__(self, min_reviewers: int = 2):
        self.min_reviewers = min_reviewers
        self._agreements: Dict[str, ReviewerAgreement] = {}
        self.prompts_with_consensus = 0

    def get(self, reviewer_id: str) -> ReviewerAgreement:
        if reviewer_id not in self._agreements:
            self._agreements[reviewer_id] = ReviewerAgreement(reviewer_id=reviewer_id)
        return self._agreements[reviewer_id]

    def record_prompt(self, opinions: Dict[str, bool]) -> Optional[bool]:
        """
        Record every reviewer's opinion on one prompt.

        Args:
            opinions: {reviewer_id: is_positive}

        Returns:
            The consensus, or None when there is none
        """
        consensus = majority_opinion(opinions.values(), self.min_reviewers)
        if consensus is None:
            return None
        self.prompts_with_consensus += 1
        for reviewer_id in sorted(opinions):
            self.get(reviewer_id).record(opinions[reviewer_id] == consensus)
        return consensus

    def agreements(self) -> Dict[str, ReviewerAgreement]:
        return {k: v for k, v in self._agreements.items() if v.compared > 0}
