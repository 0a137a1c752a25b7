"""
Derive pairwise matches from scored model responses.

Each (prompt, model) pair is reduced to its mean score; every two models
answering the same prompt then form one match. Equal means are dropped
unless ties are requested.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from itertools import combinations
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from benchrank.core.match import MatchOutcome, ModelMatch
from benchrank.core.signals import ScoredResponse

logger = logging.getLogger(__name__)

ResponseInput = Union[ScoredResponse, Dict[str, Any]]


@dataclass
class PromptModelScore:
    """Mean score of one model on one prompt."""
    prompt_id: str
    model_slug: str
    total: float = 0.0
    count: int = 0
    latest: Optional[datetime] = None

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    def add(self, response: ScoredResponse) -> None:
        self.total += response.score
        self.count += 1
        if self.latest is None or response.created_at > self.latest:
            self.latest = response.created_at


def parse_responses(responses: Iterable[ResponseInput]) -> List[ScoredResponse]:
    """
    Parse raw response documents.

    Raises:
        InputIntegrityError: If a response is malformed
    """
    return [
        r if isinstance(r, ScoredResponse) else ScoredResponse.from_dict(r)
        for r in responses
    ]


def aggregate_prompt_scores(
    responses: Iterable[ScoredResponse],
    eligible_prompts: Optional[Set[str]] = None
) -> Dict[str, Dict[str, PromptModelScore]]:
    """
    Group responses into {prompt_id: {model_slug: PromptModelScore}}.
    """
    grouped: Dict[str, Dict[str, PromptModelScore]] = defaultdict(dict)
    for response in responses:
        if eligible_prompts is not None and response.prompt_id not in eligible_prompts:
            continue
        per_model = grouped[response.prompt_id]
        entry = per_model.get(response.model_slug)
        if entry is None:
            entry = PromptModelScore(response.prompt_id, response.model_slug)
            per_model[response.model_slug] = entry
        entry.add(response)
    return grouped


def derive_matches(
    responses: Iterable[ResponseInput],
    eligible_prompts: Optional[Set[str]] = None,
    include_ties: bool = False
) -> List[ModelMatch]:
    """
    Pair models that answered the same prompt.

    Args:
        responses: Scored responses (documents or ScoredResponse)
        eligible_prompts: If given, only these prompts produce matches
        include_ties: Emit TIE for equal means instead of dropping them

    Returns:
        Matches ordered by (occurred_at, match_id)
    """
    grouped = aggregate_prompt_scores(parse_responses(responses), eligible_prompts)
    matches: List[ModelMatch] = []
    dropped_ties = 0

    for prompt_id in sorted(grouped):
        per_model = grouped[prompt_id]
        for slug_a, slug_b in combinations(sorted(per_model), 2):
            a, b = per_model[slug_a], per_model[slug_b]
            if a.mean > b.mean:
                outcome = MatchOutcome.A_WINS
            elif a.mean < b.mean:
                outcome = MatchOutcome.B_WINS
            elif include_ties:
                outcome = MatchOutcome.TIE
            else:
                dropped_ties += 1
                continue

            matches.append(ModelMatch(
                match_id=f"{prompt_id}:{slug_a}:{slug_b}",
                prompt_id=prompt_id,
                model_a=slug_a,
                model_b=slug_b,
                outcome=outcome,
                occurred_at=max(a.latest, b.latest),
                model_a_score=a.mean,
                model_b_score=b.mean,
            ))

    matches.sort(key=lambda m: m.sort_key)
    logger.info(
        f"Derived {len(matches)} matches from {len(grouped)} prompts"
        + (f" ({dropped_ties} ties dropped)" if dropped_ties else "")
    )
    return matches


def pair_key(match: ModelMatch) -> Tuple[str, str, str]:
    """(prompt_id, model_a, model_b) identity of a derived match."""
    return (match.prompt_id, match.model_a, match.model_b)
