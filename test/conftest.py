"""
Shared fixtures and configuration for BenchRank tests.
"""

import pytest
from datetime import datetime, timedelta, timezone


BASE_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Record Factories
# =============================================================================

def make_match(match_id, model_a, model_b, outcome="A_WINS", minutes=0, prompt_id="p1", **extra):
    """Build a match document `minutes` after BASE_TIME."""
    doc = {
        "match_id": match_id,
        "prompt_id": prompt_id,
        "model_a": model_a,
        "model_b": model_b,
        "outcome": outcome,
        "occurred_at": BASE_TIME + timedelta(minutes=minutes),
        "is_shareable": True,
    }
    doc.update(extra)
    return doc


def make_signal(signal_id, actor, target, source="REVIEW", weight=1.0,
                target_kind="PROMPT", minutes=0, **extra):
    """Build a review signal document `minutes` after BASE_TIME."""
    doc = {
        "signal_id": signal_id,
        "source_kind": source,
        "actor_user_id": actor,
        "target_kind": target_kind,
        "target_entity_id": target,
        "weight": weight,
        "occurred_at": BASE_TIME + timedelta(minutes=minutes),
    }
    doc.update(extra)
    return doc


def make_response(response_id, prompt_id, model_slug, score, minutes=0):
    """Build a scored response document `minutes` after BASE_TIME."""
    return {
        "response_id": response_id,
        "prompt_id": prompt_id,
        "model_slug": model_slug,
        "score": score,
        "created_at": BASE_TIME + timedelta(minutes=minutes),
    }


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def base_time():
    return BASE_TIME


@pytest.fixture
def fixed_clock():
    """Clock that always returns one day after BASE_TIME."""
    now = BASE_TIME + timedelta(days=1)
    return lambda: now


@pytest.fixture
def xyz_matches():
    """X beats Y, Y beats Z, Z ties X."""
    return [
        make_match("m1", "X", "Y", "A_WINS", minutes=1),
        make_match("m2", "Y", "Z", "A_WINS", minutes=2),
        make_match("m3", "Z", "X", "TIE", minutes=3),
    ]


@pytest.fixture
def entity_graph():
    """Two authors, one benchmark of three prompts owned by alice with bob collaborating."""
    from benchrank.core.signals import EntityGraph
    return EntityGraph.from_documents(
        prompts=[
            {"prompt_id": "p1", "author_id": "alice"},
            {"prompt_id": "p2", "author_id": "alice"},
            {"prompt_id": "p3", "author_id": "dave"},
        ],
        prompt_sets=[
            {
                "prompt_set_id": "s1",
                "owner_id": "alice",
                "collaborators": ["bob"],
                "prompt_ids": ["p1", "p2", "p3"],
            },
        ],
        responses=[
            {"response_id": "r1", "prompt_id": "p1"},
        ],
    )


@pytest.fixture
def memory_store():
    """Empty in-memory store."""
    from benchrank.database.memory import InMemoryRankingStore
    return InMemoryRankingStore()


@pytest.fixture
def populated_store(memory_store, xyz_matches, entity_graph):
    """In-memory store with matches, prompts, a benchmark and some reviews."""
    for match in xyz_matches:
        memory_store.add_match(match)
    for slug in ("X", "Y", "Z"):
        memory_store.add_model(slug)

    memory_store.add_prompt({"prompt_id": "p1", "author_id": "alice"})
    memory_store.add_prompt({"prompt_id": "p2", "author_id": "alice"})
    memory_store.add_prompt({"prompt_id": "p3", "author_id": "dave"})
    memory_store.add_prompt_set({
        "prompt_set_id": "s1",
        "owner_id": "alice",
        "collaborators": ["bob"],
        "prompt_ids": ["p1", "p2", "p3"],
    })

    memory_store.add_signal(make_signal("g1", "bob", "p1", weight=1.0))
    memory_store.add_signal(make_signal("g2", "carol", "p1", weight=1.0))
    memory_store.add_signal(make_signal("g3", "erin", "p1", weight=-1.0))
    memory_store.add_signal(make_signal("g4", "bob", "p2", source="QUICK_FEEDBACK", weight=1.0))
    memory_store.add_signal(make_signal("g5", "carol", "p3", weight=-0.5))
    memory_store.add_signal(make_signal("g6", "erin", "p1", source="COMMENT", weight=1.0))

    memory_store.add_response(make_response("r1", "p1", "X", 0.9))
    memory_store.add_response(make_response("r2", "p1", "Y", 0.4))
    memory_store.add_response(make_response("r3", "p2", "X", 0.7))
    return memory_store


@pytest.fixture
def ranking_params():
    """Parameters with sequential computation and K=32."""
    from benchrank.config.params import ComputationParams, EloParams, RankingParams
    return RankingParams(
        elo=EloParams(k_factor=32.0),
        computation=ComputationParams(parallel=False),
    )
