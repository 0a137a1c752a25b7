"""
Review signals and the entity graph they refer to.

Signals are the trust aggregator's raw input: reviews, quick feedback,
comments and co-authorship events. The entity graph answers the structural
questions (who authored a prompt, which prompts a benchmark holds).
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from benchrank.core.errors import InputIntegrityError
from benchrank.utils.timestamps import parse_timestamp, to_iso


class SignalSource(str, Enum):
    """Where a signal came from."""
    REVIEW = "REVIEW"
    QUICK_FEEDBACK = "QUICK_FEEDBACK"
    COMMENT = "COMMENT"
    COAUTHORSHIP = "COAUTHORSHIP"


class TargetKind(str, Enum):
    """Kind of entity a signal is about."""
    PROMPT = "PROMPT"
    PROMPT_SET = "PROMPT_SET"
    RESPONSE = "RESPONSE"


OPINION_SOURCES = (SignalSource.REVIEW, SignalSource.QUICK_FEEDBACK)


@dataclass(frozen=True)
class ReviewSignal:
    """
    A single reviewer/contributor event.

    For REVIEW and QUICK_FEEDBACK the sign of `weight` is the opinion
    (positive endorses, negative rejects) and its magnitude the strength.
    """
    signal_id: str
    source_kind: SignalSource
    actor_user_id: str
    target_kind: TargetKind
    target_entity_id: str
    weight: float
    occurred_at: datetime

    @property
    def is_opinion(self) -> bool:
        return self.source_kind in OPINION_SOURCES

    @property
    def is_positive(self) -> bool:
        return self.weight > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "source_kind": self.source_kind.value,
            "actor_user_id": self.actor_user_id,
            "target_kind": self.target_kind.value,
            "target_entity_id": self.target_entity_id,
            "weight": self.weight,
            "occurred_at": to_iso(self.occurred_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReviewSignal':
        """
        Parse and validate a stored signal.

        Raises:
            InputIntegrityError: If the signal is malformed
        """
        if not isinstance(data, Mapping):
            raise InputIntegrityError(f"signal record is a {type(data).__name__}, not a mapping")
        signal_id = data.get("signal_id")
        if signal_id is None or str(signal_id) == "":
            raise InputIntegrityError("missing signal id")
        signal_id = str(signal_id)

        try:
            source_kind = SignalSource(data.get("source_kind"))
        except ValueError:
            raise InputIntegrityError(
                f"unknown source kind {data.get('source_kind')!r}", signal_id
            )
        try:
            target_kind = TargetKind(data.get("target_kind"))
        except ValueError:
            raise InputIntegrityError(
                f"unknown target kind {data.get('target_kind')!r}", signal_id
            )

        actor = data.get("actor_user_id")
        target = data.get("target_entity_id")
        if not actor:
            raise InputIntegrityError("missing actor", signal_id)
        if target is None or str(target) == "":
            raise InputIntegrityError("missing target entity", signal_id)

        raw_weight = data.get("weight", 1.0)
        try:
            weight = float(raw_weight)
        except (TypeError, ValueError):
            raise InputIntegrityError(f"non-numeric weight {raw_weight!r}", signal_id)
        if not math.isfinite(weight):
            raise InputIntegrityError("non-finite weight", signal_id)

        if source_kind in OPINION_SOURCES:
            if weight == 0.0 or abs(weight) > 1.0:
                raise InputIntegrityError(
                    f"opinion weight {weight} outside [-1, 0) U (0, 1]", signal_id
                )
        if source_kind == SignalSource.COAUTHORSHIP and target_kind != TargetKind.PROMPT_SET:
            raise InputIntegrityError("co-authorship must target a prompt set", signal_id)

        try:
            occurred_at = parse_timestamp(data.get("occurred_at"))
        except ValueError as e:
            raise InputIntegrityError(f"bad occurrence time: {e}", signal_id)
        if occurred_at is None:
            raise InputIntegrityError("missing occurrence time", signal_id)

        return cls(
            signal_id=signal_id,
            source_kind=source_kind,
            actor_user_id=str(actor),
            target_kind=target_kind,
            target_entity_id=str(target),
            weight=weight,
            occurred_at=occurred_at,
        )


@dataclass
class EntityGraph:
    """
    Structural lookups over prompts, benchmarks (prompt sets) and responses.

    Attributes:
        prompt_authors: {prompt_id: user_id}
        benchmark_prompts: {benchmark_id: {prompt_id}}
        benchmark_owners: {benchmark_id: user_id}
        benchmark_collaborators: {benchmark_id: {user_id}}
        response_prompts: {response_id: prompt_id}
    """
    prompt_authors: Dict[str, str] = field(default_factory=dict)
    benchmark_prompts: Dict[str, Set[str]] = field(default_factory=dict)
    benchmark_owners: Dict[str, str] = field(default_factory=dict)
    benchmark_collaborators: Dict[str, Set[str]] = field(default_factory=dict)
    response_prompts: Dict[str, str] = field(default_factory=dict)

    def prompt_for_response(self, response_id: str) -> Optional[str]:
        return self.response_prompts.get(response_id)

    def benchmarks_for_prompt(self, prompt_id: str) -> List[str]:
        return sorted(
            benchmark_id
            for benchmark_id, prompts in self.benchmark_prompts.items()
            if prompt_id in prompts
        )

    def prompts_authored_by(self, user_id: str) -> List[str]:
        return sorted(p for p, author in self.prompt_authors.items() if author == user_id)

    def all_benchmarks(self) -> Set[str]:
        return (
            set(self.benchmark_prompts)
            | set(self.benchmark_owners)
            | set(self.benchmark_collaborators)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_authors": dict(self.prompt_authors),
            "benchmark_prompts": {k: sorted(v) for k, v in self.benchmark_prompts.items()},
            "benchmark_owners": dict(self.benchmark_owners),
            "benchmark_collaborators": {
                k: sorted(v) for k, v in self.benchmark_collaborators.items()
            },
            "response_prompts": dict(self.response_prompts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EntityGraph':
        return cls(
            prompt_authors=dict(data.get("prompt_authors", {})),
            benchmark_prompts={
                k: set(v) for k, v in data.get("benchmark_prompts", {}).items()
            },
            benchmark_owners=dict(data.get("benchmark_owners", {})),
            benchmark_collaborators={
                k: set(v) for k, v in data.get("benchmark_collaborators", {}).items()
            },
            response_prompts=dict(data.get("response_prompts", {})),
        )

    @classmethod
    def from_documents(
        cls,
        prompts: Iterable[Dict[str, Any]],
        prompt_sets: Iterable[Dict[str, Any]],
        responses: Iterable[Dict[str, Any]] = (),
    ) -> 'EntityGraph':
        """
        Build the graph from prompt, prompt-set and response documents.

        Prompt documents carry `prompt_id`, `author_id`; prompt-set documents
        carry `prompt_set_id`, `owner_id`, `collaborators`, `prompt_ids`;
        response documents carry `response_id`, `prompt_id`.
        """
        graph = cls()
        for doc in prompts:
            if doc.get("prompt_id") and doc.get("author_id"):
                graph.prompt_authors[str(doc["prompt_id"])] = str(doc["author_id"])

        members: Dict[str, Set[str]] = defaultdict(set)
        for doc in prompt_sets:
            set_id = doc.get("prompt_set_id")
            if set_id is None:
                continue
            set_id = str(set_id)
            members[set_id].update(str(p) for p in doc.get("prompt_ids", []))
            if doc.get("owner_id"):
                graph.benchmark_owners[set_id] = str(doc["owner_id"])
            collaborators = {str(u) for u in doc.get("collaborators", [])}
            if collaborators:
                graph.benchmark_collaborators[set_id] = collaborators
        graph.benchmark_prompts = dict(members)

        for doc in responses:
            if doc.get("response_id") and doc.get("prompt_id"):
                graph.response_prompts[str(doc["response_id"])] = str(doc["prompt_id"])
        return graph


@dataclass(frozen=True)
class ScoredResponse:
    """A model's response to a prompt together with one evaluation score."""
    response_id: str
    prompt_id: str
    model_slug: str
    score: float
    created_at: datetime

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScoredResponse':
        """
        Parse a stored scored response.

        Raises:
            InputIntegrityError: If a field is missing or the score is not a number
        """
        if not isinstance(data, Mapping):
            raise InputIntegrityError(f"response record is a {type(data).__name__}, not a mapping")
        response_id = str(data.get("response_id") or "")
        if not response_id:
            raise InputIntegrityError("missing response id")
        if not data.get("prompt_id") or not data.get("model_slug"):
            raise InputIntegrityError("missing prompt or model reference", response_id)
        try:
            score = float(data.get("score"))
        except (TypeError, ValueError):
            raise InputIntegrityError(f"non-numeric score {data.get('score')!r}", response_id)
        if not math.isfinite(score):
            raise InputIntegrityError("non-finite score", response_id)
        try:
            created_at = parse_timestamp(data.get("created_at"))
        except ValueError as e:
            raise InputIntegrityError(f"bad creation time: {e}", response_id)
        if created_at is None:
            raise InputIntegrityError("missing creation time", response_id)
        return cls(
            response_id=response_id,
            prompt_id=str(data["prompt_id"]),
            model_slug=str(data["model_slug"]),
            score=score,
            created_at=created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response_id": self.response_id,
            "prompt_id": self.prompt_id,
            "model_slug": self.model_slug,
            "score": self.score,
            "created_at": to_iso(self.created_at),
        }
