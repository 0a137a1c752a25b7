"""
ELO computation engine for pairwise model matches.

Ratings are recomputed from the full match history every epoch, never
applied as deltas on top of stored ratings. This keeps the output a pure
function of the input set and tolerates upstream corrections or deletions.

Key Formulas:
    E_A = 1 / (1 + 10^((R_B - R_A) / 400))     (expected score of A)
    R_A' = R_A + K × (S_A - E_A)               (S_A ∈ {1, 0.5, 0})
    R_B' = R_B + K × (S_B - E_B)               (E_B = 1 - E_A, S_B = 1 - S_A)

Replay order is total: (occurred_at, match_id). Two matches sharing a
timestamp are always applied in match_id order, so the same set of matches
produces byte-identical ratings regardless of the order it was read in.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

import numpy as np

from benchrank.config.params import EloParams
from benchrank.core.constants import ELO_SCALE
from benchrank.core.epoch import RankingKind
from benchrank.core.errors import InputIntegrityError
from benchrank.core.match import MatchOutcome, ModelMatch
from benchrank.core.scores import ModelRating

logger = logging.getLogger(__name__)

MatchInput = Union[ModelMatch, Dict[str, Any]]


def expected_score(rating: float, opponent_rating: float) -> float:
    """
    Logistic ELO expectation of `rating` against `opponent_rating`.

    Example:
        >>> expected_score(1500.0, 1500.0)
        0.5
    """
    return 1.0 / (1.0 + 10 ** ((opponent_rating - rating) / ELO_SCALE))


def actual_score(outcome: MatchOutcome, side: str) -> float:
    """
    Actual score of one side ("A" or "B") for a match outcome.

    Raises:
        ValueError: If side is not "A" or "B"
    """
    if side not in ("A", "B"):
        raise ValueError(f"Unknown side: {side}")
    if outcome == MatchOutcome.TIE:
        return 0.5
    a_won = outcome == MatchOutcome.A_WINS
    if side == "A":
        return 1.0 if a_won else 0.0
    return 0.0 if a_won else 1.0


def match_sort_key(match: ModelMatch) -> Tuple:
    """Total replay order for matches."""
    return match.sort_key


def update_pair(
    rating_a: float,
    rating_b: float,
    outcome: MatchOutcome,
    k_factor: float
) -> Tuple[float, float]:
    """
    Apply one match to a pair of ratings.

    Both expectations are taken from the pre-match ratings, so
    ΔR_A + ΔR_B = 0 up to floating-point rounding.

    Returns:
        (new_rating_a, new_rating_b)
    """
    e_a = expected_score(rating_a, rating_b)
    e_b = expected_score(rating_b, rating_a)
    new_a = rating_a + k_factor * (actual_score(outcome, "A") - e_a)
    new_b = rating_b + k_factor * (actual_score(outcome, "B") - e_b)
    return new_a, new_b


@dataclass
class _ModelState:
    model_slug: str
    rating: float
    match_count: int = 0
    win_count: int = 0
    loss_count: int = 0
    tie_count: int = 0


@dataclass
class EloComputation:
    """
    Output of one ELO engine pass.

    Attributes:
        epoch_id: Epoch the ratings are tagged with
        ratings: {model_slug: ModelRating} for every model with >= 1 match
        matches_processed: Number of matches replayed
        models_updated: Previously rated models whose row changed
        new_models_added: Models without a row in the previous epoch
    """
    epoch_id: int
    ratings: Dict[str, ModelRating] = field(default_factory=dict)
    matches_processed: int = 0
    models_updated: int = 0
    new_models_added: int = 0

    @property
    def kind(self) -> RankingKind:
        return RankingKind.MODEL_ELO

    def rows(self) -> List[ModelRating]:
        """Ratings ordered by model slug."""
        return [self.ratings[slug] for slug in sorted(self.ratings)]


class EloEngine:
    """
    Deterministic full-history ELO computation.

    The engine is a single sequential pass: rating updates do not commute,
    so the replay is never parallelized.

    Example:
        >>> engine = EloEngine(EloParams(k_factor=32))
        >>> result = engine.compute(epoch_id=7, matches=matches)
        >>> result.ratings["gpt-4o"].elo_score
        1516.0
    """

    def __init__(self, params: Optional[EloParams] = None):
        """
        Initialize the engine.

        Args:
            params: K-factor and default rating (defaults from EloParams)
        """
        self.params = params or EloParams()

    @property
    def k_factor(self) -> float:
        return self.params.k_factor

    @property
    def default_rating(self) -> float:
        return self.params.default_rating

    def prepare_matches(
        self,
        matches: Iterable[MatchInput],
        known_models: Optional[Set[str]] = None
    ) -> List[ModelMatch]:
        """
        Parse, validate and order matches for replay.

        Raises:
            InputIntegrityError: On any malformed match, duplicate match id
                or model outside `known_models`
        """
        parsed: List[ModelMatch] = []
        seen_ids: Set[str] = set()

        for raw in matches:
            match = raw if isinstance(raw, ModelMatch) else ModelMatch.from_dict(raw)

            if match.match_id in seen_ids:
                raise InputIntegrityError("duplicate match id", match.match_id)
            seen_ids.add(match.match_id)

            if known_models is not None:
                for slug in match.models:
                    if slug not in known_models:
                        raise InputIntegrityError(
                            f"unknown model reference {slug!r}", match.match_id
                        )
            parsed.append(match)

        parsed.sort(key=match_sort_key)
        return parsed

    def compute(
        self,
        epoch_id: int,
        matches: Iterable[MatchInput],
        previous_ratings: Optional[Mapping[str, ModelRating]] = None,
        known_models: Optional[Set[str]] = None
    ) -> EloComputation:
        """
        Recompute all model ratings from the full match history.

        Args:
            epoch_id: Epoch to tag the output rows with
            matches: Every eligible match, in any order
            previous_ratings: Currently published ratings; only used to
                report models_updated / new_models_added
            known_models: Model registry; a match outside it is fatal

        Returns:
            EloComputation with one ModelRating per model that played

        Raises:
            InputIntegrityError: If any match is malformed. No partial
                result is ever returned.
        """
        ordered = self.prepare_matches(matches, known_models)
        states: Dict[str, _ModelState] = {}

        for match in ordered:
            state_a = self._get_or_init(states, match.model_a)
            state_b = self._get_or_init(states, match.model_b)

            state_a.rating, state_b.rating = update_pair(
                state_a.rating, state_b.rating, match.outcome, self.k_factor
            )

            state_a.match_count += 1
            state_b.match_count += 1
            if match.outcome == MatchOutcome.TIE:
                state_a.tie_count += 1
                state_b.tie_count += 1
            elif match.outcome == MatchOutcome.A_WINS:
                state_a.win_count += 1
                state_b.loss_count += 1
            else:
                state_b.win_count += 1
                state_a.loss_count += 1

        result = EloComputation(epoch_id=epoch_id, matches_processed=len(ordered))
        for slug in sorted(states):
            state = states[slug]
            result.ratings[slug] = ModelRating(
                epoch_id=epoch_id,
                model_slug=slug,
                elo_score=state.rating,
                match_count=state.match_count,
                win_count=state.win_count,
                loss_count=state.loss_count,
                tie_count=state.tie_count,
            )

        previous = previous_ratings or {}
        for slug, rating in result.ratings.items():
            before = previous.get(slug)
            if before is None:
                result.new_models_added += 1
            elif (before.elo_score != rating.elo_score
                  or before.match_count != rating.match_count):
                result.models_updated += 1

        self._log_summary(result)
        return result

    def _get_or_init(self, states: Dict[str, _ModelState], slug: str) -> _ModelState:
        state = states.get(slug)
        if state is None:
            state = _ModelState(model_slug=slug, rating=self.default_rating)
            states[slug] = state
        return state

    def _log_summary(self, result: EloComputation) -> None:
        logger.info(
            f"ELO epoch {result.epoch_id}: {result.matches_processed} matches, "
            f"{len(result.ratings)} models ({result.new_models_added} new, "
            f"{result.models_updated} updated), K={self.k_factor}"
        )
        if result.ratings:
            scores = np.array([r.elo_score for r in result.ratings.values()])
            logger.debug(
                f"ELO distribution: min={scores.min():.1f}, "
                f"max={scores.max():.1f}, mean={scores.mean():.1f}"
            )
