"""
Trust and quality aggregation over review signals.

Four scores are produced per epoch, in a fixed order so that each layer
only reads layers computed before it:

    1. Prompt quality      (from reviewer opinions, weighted by prior trust)
    2. Benchmark quality   (mean of member prompt quality)
    3. Contributor score   (credit for authored/owned/co-authored entities)
    4. Reviewer trust      (agreement with per-prompt consensus)

Reviewer trust feeds the *next* epoch's prompt quality through
`previous_trust`, never the current one.

Malformed signals are skipped and counted. The caller decides whether the
skip ratio is acceptable.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

import numpy as np

from benchrank.config.params import TrustParams
from benchrank.core.epoch import RankingKind
from benchrank.core.errors import InputIntegrityError
from benchrank.core.scores import (
    BenchmarkQualityScore,
    ContributorScore,
    PromptQualityScore,
    ReviewerTrustScore,
    SubjectScore,
)
from benchrank.core.signals import EntityGraph, ReviewSignal, SignalSource, TargetKind
from benchrank.trust.consensus import ConsensusTracker
from benchrank.trust.weights import opinion_weight, previous_trust, smoothed_ratio

logger = logging.getLogger(__name__)

SignalInput = Union[ReviewSignal, Dict[str, Any]]

# Higher wins when a user holds several roles on one entity
_ROLE_AUTHOR = 2
_ROLE_COLLABORATOR = 1


@dataclass
class Opinion:
    """One collapsed opinion of an actor on a prompt."""
    actor_user_id: str
    prompt_id: str
    positive: bool
    strength: float
    source: SignalSource
    occurred_at: datetime
    signal_id: str

    def supersedes(self, other: 'Opinion') -> bool:
        """Whether this opinion replaces `other` for the same (actor, prompt)."""
        if self.source != other.source:
            return self.source == SignalSource.REVIEW
        return (self.occurred_at, self.signal_id) > (other.occurred_at, other.signal_id)


@dataclass
class TrustComputation:
    """
    Output of one aggregator pass.

    Attributes:
        epoch_id: Epoch the rows are tagged with
        prompt_quality: {prompt_id: PromptQualityScore}
        benchmark_quality: {prompt_set_id: BenchmarkQualityScore}
        contributors: {user_id: ContributorScore}
        reviewer_trust: {user_id: ReviewerTrustScore}
        total_signals: Signals read, duplicates included
        skipped: Malformed signals dropped
        duplicates: Repeated signal ids counted once
    """
    epoch_id: int
    prompt_quality: Dict[str, PromptQualityScore] = field(default_factory=dict)
    benchmark_quality: Dict[str, BenchmarkQualityScore] = field(default_factory=dict)
    contributors: Dict[str, ContributorScore] = field(default_factory=dict)
    reviewer_trust: Dict[str, ReviewerTrustScore] = field(default_factory=dict)
    total_signals: int = 0
    skipped: int = 0
    duplicates: int = 0
    skipped_ids: List[str] = field(default_factory=list)

    @property
    def skip_ratio(self) -> float:
        if self.total_signals == 0:
            return 0.0
        return self.skipped / self.total_signals

    def rows_by_kind(self) -> Dict[RankingKind, List[SubjectScore]]:
        """Rows per ranking kind, ordered by subject id."""
        tables = {
            RankingKind.PROMPT_QUALITY: self.prompt_quality,
            RankingKind.BENCHMARK_QUALITY: self.benchmark_quality,
            RankingKind.CONTRIBUTOR: self.contributors,
            RankingKind.REVIEWER_TRUST: self.reviewer_trust,
        }
        return {
            kind: [table[k] for k in sorted(table)]
            for kind, table in tables.items()
        }

    def trust_map(self) -> Dict[str, float]:
        return {k: v.score for k, v in self.reviewer_trust.items()}


class TrustAggregator:
    """
    Compute prompt quality, benchmark quality, contributor and reviewer
    trust scores from one consistent snapshot of review signals.

    Example:
        >>> aggregator = TrustAggregator()
        >>> result = aggregator.compute(7, signals, graph)
        >>> result.prompt_quality["p1"].score
        0.8333...
    """

    def __init__(self, params: Optional[TrustParams] = None):
        self.params = params or TrustParams()

    def compute(
        self,
        epoch_id: int,
        signals: Iterable[SignalInput],
        entity_graph: EntityGraph,
        previous_trust_scores: Optional[Mapping[str, float]] = None
    ) -> TrustComputation:
        """
        Run the four aggregation steps.

        Args:
            epoch_id: Epoch to tag the output rows with
            signals: Every eligible signal (dicts or ReviewSignal)
            entity_graph: Authorship and membership snapshot
            previous_trust_scores: {user_id: trust} from the last published
                epoch; reviewers absent from it start at neutral trust

        Returns:
            TrustComputation; never raises for malformed signals
        """
        result = TrustComputation(epoch_id=epoch_id)
        parsed = self._parse_signals(signals, entity_graph, result)

        opinions = self._collapse_opinions(parsed, entity_graph)
        coauthors = self._coauthors(parsed)
        comments = self._comment_counts(parsed)

        self._prompt_quality(result, opinions, entity_graph, previous_trust_scores)
        self._benchmark_quality(result, entity_graph)
        self._contributors(result, entity_graph, coauthors, comments)
        aligned = self._reviewer_trust(result, opinions, entity_graph)

        for user_id, count in aligned.items():
            if user_id in result.contributors:
                result.contributors[user_id].details["aligned_review_count"] = count

        logger.info(
            f"Trust epoch {epoch_id}: {result.total_signals} signals "
            f"({result.skipped} skipped, {result.duplicates} duplicate), "
            f"{len(result.prompt_quality)} prompts, "
            f"{len(result.benchmark_quality)} benchmarks, "
            f"{len(result.contributors)} contributors, "
            f"{len(result.reviewer_trust)} reviewers"
        )
        return result

    # =========================================================================
    # Input
    # =========================================================================

    def _parse_signals(
        self,
        signals: Iterable[SignalInput],
        graph: EntityGraph,
        result: TrustComputation
    ) -> List[Tuple[ReviewSignal, Optional[str]]]:
        """Validate signals; returns (signal, resolved prompt id) pairs."""
        parsed: List[Tuple[ReviewSignal, Optional[str]]] = []
        seen: Set[str] = set()

        for raw in signals:
            result.total_signals += 1
            try:
                signal = raw if isinstance(raw, ReviewSignal) else ReviewSignal.from_dict(raw)
                prompt_id = self._resolve_prompt(signal, graph)
            except InputIntegrityError as e:
                result.skipped += 1
                if e.record_id:
                    result.skipped_ids.append(e.record_id)
                logger.warning(f"Skipping signal: {e}")
                continue

            if signal.signal_id in seen:
                result.duplicates += 1
                continue
            seen.add(signal.signal_id)
            parsed.append((signal, prompt_id))

        return parsed

    @staticmethod
    def _resolve_prompt(signal: ReviewSignal, graph: EntityGraph) -> Optional[str]:
        if signal.target_kind == TargetKind.PROMPT:
            return signal.target_entity_id
        if signal.target_kind == TargetKind.RESPONSE:
            prompt_id = graph.prompt_for_response(signal.target_entity_id)
            if prompt_id is None:
                raise InputIntegrityError(
                    f"response {signal.target_entity_id!r} has no known prompt",
                    signal.signal_id,
                )
            return prompt_id
        return None

    def _collapse_opinions(
        self,
        parsed: List[Tuple[ReviewSignal, Optional[str]]],
        graph: EntityGraph
    ) -> Dict[str, Dict[str, Opinion]]:
        """One opinion per (actor, prompt): {prompt_id: {actor: Opinion}}."""
        collapsed: Dict[str, Dict[str, Opinion]] = defaultdict(dict)

        for signal, prompt_id in parsed:
            if not signal.is_opinion or prompt_id is None:
                continue
            if graph.prompt_authors.get(prompt_id) == signal.actor_user_id:
                continue

            opinion = Opinion(
                actor_user_id=signal.actor_user_id,
                prompt_id=prompt_id,
                positive=signal.is_positive,
                strength=abs(signal.weight),
                source=signal.source_kind,
                occurred_at=signal.occurred_at,
                signal_id=signal.signal_id,
            )
            current = collapsed[prompt_id].get(signal.actor_user_id)
            if current is None or opinion.supersedes(current):
                collapsed[prompt_id][signal.actor_user_id] = opinion

        return collapsed

    @staticmethod
    def _coauthors(parsed: List[Tuple[ReviewSignal, Optional[str]]]) -> Dict[str, Set[str]]:
        coauthors: Dict[str, Set[str]] = defaultdict(set)
        for signal, _ in parsed:
            if signal.source_kind == SignalSource.COAUTHORSHIP:
                coauthors[signal.target_entity_id].add(signal.actor_user_id)
        return coauthors

    @staticmethod
    def _comment_counts(parsed: List[Tuple[ReviewSignal, Optional[str]]]) -> Dict[str, int]:
        counts: Dict[str, int] = defaultdict(int)
        for signal, _ in parsed:
            if signal.source_kind == SignalSource.COMMENT:
                counts[signal.actor_user_id] += 1
        return counts

    # =========================================================================
    # Scores
    # =========================================================================

    def _prompt_quality(
        self,
        result: TrustComputation,
        opinions: Dict[str, Dict[str, Opinion]],
        graph: EntityGraph,
        trust_scores: Optional[Mapping[str, float]]
    ) -> None:
        p = self.params
        for prompt_id in sorted(opinions):
            by_actor = opinions[prompt_id]
            if not by_actor:
                continue

            positive_mass = 0.0
            total_mass = 0.0
            positive = 0
            for actor in sorted(by_actor):
                opinion = by_actor[actor]
                trust = previous_trust(actor, trust_scores, p)
                w = opinion_weight(opinion.strength, opinion.source, trust, p)
                total_mass += w
                if opinion.positive:
                    positive_mass += w
                    positive += 1

            result.prompt_quality[prompt_id] = PromptQualityScore(
                epoch_id=result.epoch_id,
                subject_id=prompt_id,
                score=smoothed_ratio(positive_mass, total_mass, p.prior_strength),
                sample_size=len(by_actor),
                details={
                    "positive_count": positive,
                    "negative_count": len(by_actor) - positive,
                    "weighted_total": total_mass,
                    "author_id": graph.prompt_authors.get(prompt_id),
                },
            )

    def _benchmark_quality(self, result: TrustComputation, graph: EntityGraph) -> None:
        for set_id in sorted(graph.all_benchmarks()):
            members = graph.benchmark_prompts.get(set_id, set())
            scores = [
                result.prompt_quality[pid].score
                for pid in sorted(members)
                if pid in result.prompt_quality
            ]
            if not scores:
                continue

            score = None
            if len(scores) >= self.params.min_benchmark_prompts:
                score = float(np.mean(scores))

            result.benchmark_quality[set_id] = BenchmarkQualityScore(
                epoch_id=result.epoch_id,
                subject_id=set_id,
                score=score,
                sample_size=len(scores),
                details={
                    "prompt_count": len(members),
                    "scored_prompt_count": len(scores),
                },
            )

    def _contributors(
        self,
        result: TrustComputation,
        graph: EntityGraph,
        coauthors: Dict[str, Set[str]],
        comments: Dict[str, int]
    ) -> None:
        p = self.params
        role_weight = {_ROLE_AUTHOR: p.author_weight, _ROLE_COLLABORATOR: p.collaborator_weight}

        # {user: {("prompt"|"benchmark", entity_id): role}}
        roles: Dict[str, Dict[Tuple[str, str], int]] = defaultdict(dict)

        def grant(user_id: Optional[str], entity: Tuple[str, str], role: int) -> None:
            if not user_id:
                return
            if roles[user_id].get(entity, 0) < role:
                roles[user_id][entity] = role

        for prompt_id, author_id in graph.prompt_authors.items():
            grant(author_id, ("prompt", prompt_id), _ROLE_AUTHOR)
        for set_id in graph.all_benchmarks():
            grant(graph.benchmark_owners.get(set_id), ("benchmark", set_id), _ROLE_AUTHOR)
            for user_id in graph.benchmark_collaborators.get(set_id, set()):
                grant(user_id, ("benchmark", set_id), _ROLE_COLLABORATOR)
        for set_id, users in coauthors.items():
            for user_id in users:
                grant(user_id, ("benchmark", set_id), _ROLE_COLLABORATOR)

        for user_id in sorted(set(roles) | set(comments)):
            total = 0.0
            prompt_count = 0
            benchmark_count = 0

            for (entity_kind, entity_id), role in sorted(roles.get(user_id, {}).items()):
                if entity_kind == "prompt":
                    row = result.prompt_quality.get(entity_id)
                else:
                    row = result.benchmark_quality.get(entity_id)
                if row is None or row.score is None:
                    continue
                total += role_weight[role] * row.score
                if entity_kind == "prompt":
                    prompt_count += 1
                else:
                    benchmark_count += 1

            comment_count = comments.get(user_id, 0)
            total += p.comment_weight * comment_count
            sample_size = prompt_count + benchmark_count + comment_count
            if sample_size == 0:
                continue

            result.contributors[user_id] = ContributorScore(
                epoch_id=result.epoch_id,
                subject_id=user_id,
                score=total,
                sample_size=sample_size,
                details={
                    "prompt_count": prompt_count,
                    "benchmark_count": benchmark_count,
                    "comment_count": comment_count,
                    "aligned_review_count": 0,
                },
            )

    def _reviewer_trust(
        self,
        result: TrustComputation,
        opinions: Dict[str, Dict[str, Opinion]],
        graph: EntityGraph
    ) -> Dict[str, int]:
        """Fill reviewer trust rows; returns {user: agreed count}."""
        tracker = ConsensusTracker(min_reviewers=self.params.min_consensus_reviewers)
        for prompt_id in sorted(opinions):
            tracker.record_prompt(
                {actor: op.positive for actor, op in opinions[prompt_id].items()}
            )

        aligned: Dict[str, int] = {}
        for user_id, agreement in sorted(tracker.agreements().items()):
            aligned[user_id] = agreement.agreed
            result.reviewer_trust[user_id] = ReviewerTrustScore(
                epoch_id=result.epoch_id,
                subject_id=user_id,
                score=agreement.trust(self.params.prior_strength),
                sample_size=agreement.compared,
                details={
                    "agreed_count": agreement.agreed,
                    "compared_count": agreement.compared,
                },
            )
        logger.debug(f"Consensus reached on {tracker.prompts_with_consensus} prompts")
        return aligned
