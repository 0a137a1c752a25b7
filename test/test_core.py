"""
Unit tests for benchrank/core and benchrank/utils.

Tests:
- match.py: Match parsing and validation
- signals.py: Signal parsing and the entity graph
- epoch.py: Epoch lifecycle
- scores.py: Output rows
- timestamps.py / logger_config.py: Utilities
"""

import logging
import pytest
from datetime import datetime, timedelta, timezone

from conftest import BASE_TIME, make_match, make_signal


# =============================================================================
# Match Tests (CORE-001 to CORE-006)
# =============================================================================

class TestModelMatch:
    """Test match parsing."""

    def test_parse_valid(self):
        """CORE-001: A well-formed match parses."""
        from benchrank.core.match import MatchOutcome, ModelMatch

        match = ModelMatch.from_dict(make_match("m1", "X", "Y", "B_WINS"))
        assert match.outcome == MatchOutcome.B_WINS
        assert match.models == ("X", "Y")
        assert match.sort_key == (BASE_TIME, "m1")

    def test_string_timestamp(self):
        """CORE-002: ISO strings with a Z suffix are accepted."""
        from benchrank.core.match import ModelMatch

        match = ModelMatch.from_dict(make_match("m1", "X", "Y", occurred_at="2025-03-01T12:00:00Z"))
        assert match.occurred_at == BASE_TIME

    @pytest.mark.parametrize("override", [
        {"match_id": None},
        {"prompt_id": ""},
        {"model_b": None},
        {"model_b": "X"},
        {"outcome": "DRAW"},
        {"occurred_at": None},
        {"occurred_at": "last tuesday"},
    ])
    def test_malformed(self, override):
        """CORE-003: Malformed matches raise InputIntegrityError."""
        from benchrank.core.errors import InputIntegrityError
        from benchrank.core.match import ModelMatch

        doc = make_match("m1", "X", "Y")
        doc.update(override)
        with pytest.raises(InputIntegrityError):
            ModelMatch.from_dict(doc)

    def test_error_carries_record_id(self):
        """CORE-004: The offending record id is on the error."""
        from benchrank.core.errors import InputIntegrityError
        from benchrank.core.match import ModelMatch

        with pytest.raises(InputIntegrityError) as exc_info:
            ModelMatch.from_dict(make_match("m9", "X", "X"))
        assert exc_info.value.record_id == "m9"
        assert "m9" in str(exc_info.value)

    @pytest.mark.parametrize("record", [None, "m1", ["m1", "X", "Y"]])
    def test_non_mapping_record(self, record):
        """CORE-005: A record that is not a mapping raises InputIntegrityError."""
        from benchrank.core.errors import InputIntegrityError
        from benchrank.core.match import ModelMatch

        with pytest.raises(InputIntegrityError):
            ModelMatch.from_dict(record)


# =============================================================================
# Signal Tests (CORE-010 to CORE-016)
# =============================================================================

class TestReviewSignal:
    """Test signal parsing."""

    def test_parse_review(self):
        """CORE-010: A review parses as a negative opinion."""
        from benchrank.core.signals import ReviewSignal, SignalSource

        signal = ReviewSignal.from_dict(make_signal("s1", "bob", "p1", weight=-0.5))
        assert signal.source_kind == SignalSource.REVIEW
        assert signal.is_opinion is True
        assert signal.is_positive is False

    def test_comment_is_not_opinion(self):
        """CORE-011: Comments carry no opinion."""
        from benchrank.core.signals import ReviewSignal

        signal = ReviewSignal.from_dict(make_signal("s1", "bob", "p1", source="COMMENT", weight=0.0))
        assert signal.is_opinion is False

    @pytest.mark.parametrize("override", [
        {"signal_id": ""},
        {"source_kind": "LIKE"},
        {"target_kind": "MODEL"},
        {"actor_user_id": None},
        {"target_entity_id": ""},
        {"weight": "heavy"},
        {"weight": float("nan")},
        {"weight": 0.0},
        {"weight": -1.5},
        {"occurred_at": None},
    ])
    def test_malformed(self, override):
        """CORE-012: Malformed signals raise InputIntegrityError."""
        from benchrank.core.errors import InputIntegrityError
        from benchrank.core.signals import ReviewSignal

        doc = make_signal("s1", "bob", "p1")
        doc.update(override)
        with pytest.raises(InputIntegrityError):
            ReviewSignal.from_dict(doc)

    def test_coauthorship_needs_prompt_set(self):
        """CORE-013: Co-authorship only targets prompt sets."""
        from benchrank.core.errors import InputIntegrityError
        from benchrank.core.signals import ReviewSignal

        with pytest.raises(InputIntegrityError):
            ReviewSignal.from_dict(make_signal("s1", "bob", "p1", source="COAUTHORSHIP"))
        signal = ReviewSignal.from_dict(
            make_signal("s2", "bob", "s1", source="COAUTHORSHIP", target_kind="PROMPT_SET")
        )
        assert signal.target_entity_id == "s1"

    @pytest.mark.parametrize("record", [None, "s1", 42])
    def test_non_mapping_record(self, record):
        """CORE-016: Signal and response records must be mappings."""
        from benchrank.core.errors import InputIntegrityError
        from benchrank.core.signals import ReviewSignal, ScoredResponse

        with pytest.raises(InputIntegrityError):
            ReviewSignal.from_dict(record)
        with pytest.raises(InputIntegrityError):
            ScoredResponse.from_dict(record)


class TestEntityGraph:
    """Test structural lookups."""

    def test_lookups(self, entity_graph):
        """CORE-014: Authors, memberships and responses resolve."""
        assert entity_graph.prompts_authored_by("alice") == ["p1", "p2"]
        assert entity_graph.benchmarks_for_prompt("p3") == ["s1"]
        assert entity_graph.prompt_for_response("r1") == "p1"
        assert entity_graph.prompt_for_response("r404") is None
        assert entity_graph.all_benchmarks() == {"s1"}

    def test_dict_roundtrip(self, entity_graph):
        """CORE-015: Graph survives serialization."""
        from benchrank.core.signals import EntityGraph

        restored = EntityGraph.from_dict(entity_graph.to_dict())
        assert restored.benchmark_collaborators == {"s1": {"bob"}}
        assert restored.benchmark_prompts == entity_graph.benchmark_prompts


# =============================================================================
# Epoch Tests (CORE-020 to CORE-024)
# =============================================================================

class TestComputationEpoch:
    """Test the epoch lifecycle."""

    def _epoch(self):
        from benchrank.core.epoch import ComputationEpoch
        return ComputationEpoch(epoch_id=7, started_at=BASE_TIME, read_horizon=BASE_TIME)

    def test_starts_running(self):
        """CORE-020: New epochs are RUNNING and not terminal."""
        from benchrank.core.epoch import EpochStatus

        epoch = self._epoch()
        assert epoch.status == EpochStatus.RUNNING
        assert epoch.is_terminal is False

    def test_succeeded(self):
        """CORE-021: RUNNING -> SUCCEEDED records counters."""
        from benchrank.core.epoch import EpochStatus

        epoch = self._epoch()
        epoch.mark_succeeded(BASE_TIME, 5.0, matches_processed=3, models_updated=1, new_models_added=2)
        assert epoch.status == EpochStatus.SUCCEEDED
        assert epoch.matches_processed == 3
        assert epoch.is_terminal is True

    def test_terminal_is_final(self):
        """CORE-022: Terminal epochs cannot transition again."""
        from benchrank.core.errors import EpochStateError

        epoch = self._epoch()
        epoch.mark_failed(BASE_TIME, 1.0, "boom")
        with pytest.raises(EpochStateError):
            epoch.mark_succeeded(BASE_TIME, 1.0, 0, 0, 0)
        with pytest.raises(EpochStateError):
            epoch.mark_failed(BASE_TIME, 1.0, "again")

    def test_dict_roundtrip(self):
        """CORE-023: Epochs serialize with ISO timestamps."""
        from benchrank.core.epoch import ComputationEpoch

        epoch = self._epoch()
        epoch.published_kinds = ["model_elo"]
        data = epoch.to_dict()
        assert data["started_at"] == "2025-03-01T12:00:00Z"
        assert ComputationEpoch.from_dict(data).published_kinds == ["model_elo"]

    def test_lock_age(self):
        """CORE-024: Lock age in seconds."""
        from benchrank.core.epoch import RunLockInfo

        lock = RunLockInfo("worker", BASE_TIME)
        assert lock.age_seconds(BASE_TIME + timedelta(minutes=2)) == 120.0


# =============================================================================
# Output Row Tests (CORE-030 to CORE-032)
# =============================================================================

class TestOutputRows:
    """Test typed output rows."""

    def test_model_rating_document(self):
        """CORE-030: Ratings expose the uniform row fields."""
        from benchrank.core.scores import ModelRating

        rating = ModelRating(1, "X", 1516.0, match_count=2, win_count=1, tie_count=1)
        data = rating.to_dict()
        assert data["kind"] == "model_elo"
        assert data["subject_id"] == "X"
        assert data["sample_size"] == 2
        assert data["details"]["tie_count"] == 1

    def test_row_from_dict(self):
        """CORE-031: Stored documents rebuild the right row type."""
        from benchrank.core.epoch import RankingKind
        from benchrank.core.scores import BenchmarkQualityScore, row_from_dict

        row = row_from_dict(RankingKind.BENCHMARK_QUALITY, {
            "epoch_id": 2, "subject_id": "s1", "score": None, "sample_size": 2,
        })
        assert isinstance(row, BenchmarkQualityScore)
        assert row.score is None

    def test_store_normalization(self):
        """CORE-032: Typed rows and dicts normalize to the same document."""
        from benchrank.core.epoch import RankingKind
        from benchrank.core.scores import ModelRating
        from benchrank.database.base import row_to_document

        rating = ModelRating(1, "X", 1500.0, match_count=1)
        assert row_to_document(rating, RankingKind.MODEL_ELO) == row_to_document(
            rating.to_dict(), RankingKind.MODEL_ELO
        )


# =============================================================================
# Utility Tests (CORE-040 to CORE-045)
# =============================================================================

class TestUtilities:
    """Test timestamp and logging helpers."""

    def test_naive_is_utc(self):
        """CORE-040: Naive datetimes are read as UTC."""
        from benchrank.utils.timestamps import parse_timestamp

        parsed = parse_timestamp(datetime(2025, 3, 1, 12, 0, 0))
        assert parsed == BASE_TIME
        assert parsed.tzinfo is not None

    def test_offset_normalized(self):
        """CORE-041: Offsets are converted to UTC."""
        from benchrank.utils.timestamps import parse_timestamp, to_iso

        parsed = parse_timestamp("2025-03-01T14:00:00+02:00")
        assert to_iso(parsed) == "2025-03-01T12:00:00Z"

    def test_unsupported_value(self):
        """CORE-042: Non-timestamps are rejected."""
        from benchrank.utils.timestamps import parse_timestamp

        with pytest.raises(ValueError):
            parse_timestamp(12345)

    def test_setup_logging(self):
        """CORE-043: setup_logging configures the package logger."""
        from benchrank.utils.logger_config import get_logger, setup_logging

        logger = setup_logging("DEBUG")
        assert logger.name == "benchrank"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert get_logger("computation").name == "benchrank.computation"
        setup_logging("INFO")

    def test_log_context(self):
        """CORE-044: LogContext restores the previous level."""
        from benchrank.utils.logger_config import LogContext, get_logger

        logger = get_logger("ranking")
        logger.setLevel(logging.WARNING)
        with LogContext("DEBUG", "ranking"):
            assert logger.level == logging.DEBUG
        assert logger.level == logging.WARNING

    def test_sources_compile_cleanly(self):
        """CORE-045: Package modules compile without syntax warnings."""
        import warnings
        from pathlib import Path

        import benchrank

        root = Path(benchrank.__file__).parent
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            for path in sorted(root.rglob("*.py")):
                compile(path.read_text(encoding="utf-8"), str(path), "exec")
