"""
Model performance ranking.

A model's performance score is the mean over prompts of its mean response
score on each prompt, so prompts answered many times do not outweigh
prompts answered once.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List

import numpy as np

from benchrank.core.scores import ModelPerformanceScore
from benchrank.ranking.derivation import (
    ResponseInput,
    aggregate_prompt_scores,
    parse_responses,
)

logger = logging.getLogger(__name__)


def compute_model_performance(
    epoch_id: int,
    responses: Iterable[ResponseInput]
) -> Dict[str, ModelPerformanceScore]:
    """
    Compute one performance row per model.

    Args:
        epoch_id: Epoch to tag the rows with
        responses: Scored responses (documents or ScoredResponse)

    Returns:
        {model_slug: ModelPerformanceScore}

    Raises:
        InputIntegrityError: If a response is malformed
    """
    grouped = aggregate_prompt_scores(parse_responses(responses))

    per_model: Dict[str, List[float]] = defaultdict(list)
    for prompt_id in sorted(grouped):
        for slug, entry in grouped[prompt_id].items():
            per_model[slug].append(entry.mean)

    rows: Dict[str, ModelPerformanceScore] = {}
    for slug in sorted(per_model):
        means = per_model[slug]
        rows[slug] = ModelPerformanceScore(
            epoch_id=epoch_id,
            subject_id=slug,
            score=float(np.mean(means)),
            sample_size=len(means),
        )

    logger.info(f"Model performance epoch {epoch_id}: {len(rows)} models")
    return rows
