"""
Unit tests for benchrank/trust/ modules.

Tests:
- weights.py: Opinion weighting and smoothing
- consensus.py: Majority opinion and reviewer agreement
- aggregator.py: Prompt/benchmark quality, contributor and reviewer trust
"""

import pytest

from conftest import make_signal


def run(signals, graph, previous_trust=None, **params):
    from benchrank.config.params import TrustParams
    from benchrank.trust.aggregator import TrustAggregator
    return TrustAggregator(TrustParams(**params)).compute(7, signals, graph, previous_trust)


# =============================================================================
# Weights (TRUST-001 to TRUST-004)
# =============================================================================

class TestWeights:
    """Test signal weighting helpers."""

    def test_smoothed_ratio_neutral_without_data(self):
        """TRUST-001: No mass gives the neutral 0.5."""
        from benchrank.trust.weights import smoothed_ratio
        assert smoothed_ratio(0.0, 0.0, 1.0) == 0.5
        assert smoothed_ratio(0.0, 0.0, 0.0) == 0.5

    def test_smoothed_ratio(self):
        """TRUST-002: Prior pulls toward 0.5."""
        from benchrank.trust.weights import smoothed_ratio
        assert smoothed_ratio(3.0, 3.0, 1.0) == pytest.approx(0.875)
        assert smoothed_ratio(0.0, 3.0, 1.0) == pytest.approx(0.125)

    def test_source_weight(self):
        """TRUST-003: Reviews outweigh quick feedback; comments carry no opinion."""
        from benchrank.core.signals import SignalSource
        from benchrank.trust.weights import source_weight

        assert source_weight(SignalSource.REVIEW) > source_weight(SignalSource.QUICK_FEEDBACK)
        with pytest.raises(ValueError):
            source_weight(SignalSource.COMMENT)

    def test_previous_trust_bootstrap(self):
        """TRUST-004: Unknown actors start at neutral trust."""
        from benchrank.trust.weights import previous_trust

        assert previous_trust("new", None) == 0.5
        assert previous_trust("new", {"other": 0.9}) == 0.5
        assert previous_trust("old", {"old": 0.9}) == 0.9


# =============================================================================
# Consensus (TRUST-010 to TRUST-013)
# =============================================================================

class TestConsensus:
    """Test majority opinion and agreement tracking."""

    def test_majority(self):
        """TRUST-010: Strict majority decides."""
        from benchrank.trust.consensus import majority_opinion

        assert majority_opinion([True, True, False]) is True
        assert majority_opinion([False, False, True]) is False

    def test_tie_has_no_consensus(self):
        """TRUST-011: Ties give no consensus."""
        from benchrank.trust.consensus import majority_opinion
        assert majority_opinion([True, False]) is None

    def test_too_few_reviewers(self):
        """TRUST-012: A single opinion is not a consensus."""
        from benchrank.trust.consensus import majority_opinion
        assert majority_opinion([True], min_reviewers=2) is None

    def test_tracker_counts_agreement(self):
        """TRUST-013: Agreement is counted per reviewer."""
        from benchrank.trust.consensus import ConsensusTracker

        tracker = ConsensusTracker(min_reviewers=2)
        tracker.record_prompt({"a": True, "b": True, "c": False})
        tracker.record_prompt({"a": False, "c": True})  # tie, ignored

        agreements = tracker.agreements()
        assert (agreements["a"].agreed, agreements["a"].compared) == (1, 1)
        assert (agreements["c"].agreed, agreements["c"].compared) == (0, 1)
        assert tracker.prompts_with_consensus == 1


# =============================================================================
# Prompt Quality (TRUST-020 to TRUST-029)
# =============================================================================

class TestPromptQuality:
    """Test prompt quality scores."""

    def test_single_positive_review(self, entity_graph):
        """TRUST-020: One neutral-trust review gives 2/3."""
        result = run([make_signal("s1", "bob", "p1", weight=1.0)], entity_graph)

        row = result.prompt_quality["p1"]
        assert row.score == pytest.approx(2.0 / 3.0)
        assert row.sample_size == 1
        assert row.details["positive_count"] == 1
        assert row.epoch_id == 7

    def test_quick_feedback_weighs_less(self, entity_graph):
        """TRUST-021: Quick feedback at half weight gives 0.6."""
        result = run(
            [make_signal("s1", "bob", "p1", source="QUICK_FEEDBACK", weight=1.0)],
            entity_graph,
        )
        assert result.prompt_quality["p1"].score == pytest.approx(0.6)

    def test_previous_trust_scales_weight(self, entity_graph):
        """TRUST-022: Fully trusted reviewers count double a newcomer."""
        signals = [make_signal("s1", "bob", "p1", weight=1.0)]
        result = run(signals, entity_graph, previous_trust={"bob": 1.0})
        assert result.prompt_quality["p1"].score == pytest.approx(0.75)

    def test_review_supersedes_quick_feedback(self, entity_graph):
        """TRUST-023: A review beats a newer quick feedback by the same actor."""
        signals = [
            make_signal("s1", "bob", "p1", source="REVIEW", weight=1.0, minutes=1),
            make_signal("s2", "bob", "p1", source="QUICK_FEEDBACK", weight=-1.0, minutes=5),
        ]
        row = run(signals, entity_graph).prompt_quality["p1"]
        assert row.sample_size == 1
        assert row.details["positive_count"] == 1

    def test_latest_review_wins(self, entity_graph):
        """TRUST-024: Only an actor's latest review counts."""
        signals = [
            make_signal("s1", "bob", "p1", weight=-1.0, minutes=1),
            make_signal("s2", "bob", "p1", weight=1.0, minutes=2),
        ]
        row = run(signals, entity_graph).prompt_quality["p1"]
        assert row.sample_size == 1
        assert row.score == pytest.approx(2.0 / 3.0)

    def test_self_review_ignored(self, entity_graph):
        """TRUST-025: Authors reviewing their own prompt are ignored."""
        result = run([make_signal("s1", "alice", "p1", weight=1.0)], entity_graph)
        assert "p1" not in result.prompt_quality
        assert result.skipped == 0

    def test_response_target_maps_to_prompt(self, entity_graph):
        """TRUST-026: Opinions on a response count toward its prompt."""
        signals = [make_signal("s1", "bob", "r1", target_kind="RESPONSE", weight=-1.0)]
        row = run(signals, entity_graph).prompt_quality["p1"]
        assert row.details["negative_count"] == 1
        assert row.score == pytest.approx(0.5 / 1.5)

    def test_unknown_response_is_skipped(self, entity_graph):
        """TRUST-027: A response with no known prompt is skipped."""
        signals = [make_signal("s1", "bob", "r404", target_kind="RESPONSE")]
        result = run(signals, entity_graph)
        assert result.skipped == 1
        assert result.skipped_ids == ["s1"]
        assert result.prompt_quality == {}

    def test_no_signals_no_rows(self, entity_graph):
        """TRUST-028: No signals means no rows, not zero scores."""
        result = run([], entity_graph)
        assert result.prompt_quality == {}
        assert result.benchmark_quality == {}
        assert result.contributors == {}
        assert result.reviewer_trust == {}
        assert result.skip_ratio == 0.0

    def test_duplicate_signal_counted_once(self, entity_graph):
        """TRUST-029: A repeated signal id is counted once."""
        signal = make_signal("s1", "bob", "p1", weight=1.0)
        result = run([signal, dict(signal)], entity_graph)
        assert result.duplicates == 1
        assert result.skipped == 0
        assert result.prompt_quality["p1"].sample_size == 1


# =============================================================================
# Malformed Signals (TRUST-030 to TRUST-033)
# =============================================================================

class TestMalformedSignals:
    """Test skip-and-count handling of bad signals."""

    def test_two_malformed_out_of_hundred(self, entity_graph):
        """TRUST-030: 2 bad signals of 100 are skipped and reported."""
        signals = [
            make_signal(f"c{i}", f"user{i % 5}", "p1", source="COMMENT")
            for i in range(98)
        ]
        signals.append(make_signal("bad1", "", "p1"))
        signals.append(make_signal("bad2", "bob", "p1", weight=2.0))

        result = run(signals, entity_graph)
        assert result.total_signals == 100
        assert result.skipped == 2
        assert result.skip_ratio == pytest.approx(0.02)

    @pytest.mark.parametrize("overrides", [
        {"source_kind": "LIKE"},
        {"target_kind": "USER"},
        {"weight": "lots"},
        {"weight": 0.0},
        {"occurred_at": None},
        {"occurred_at": "yesterday"},
        {"source_kind": "COAUTHORSHIP"},
    ])
    def test_invalid_signal_skipped(self, entity_graph, overrides):
        """TRUST-031: Each validity rule skips the signal."""
        signal = make_signal("s1", "bob", "p1")
        signal.update(overrides)
        result = run([signal], entity_graph)
        assert result.skipped == 1

    def test_skipping_does_not_raise(self, entity_graph):
        """TRUST-032: Good signals still score when others are bad."""
        signals = [make_signal("bad", "bob", "p1", weight=5.0), make_signal("ok", "bob", "p2")]
        result = run(signals, entity_graph)
        assert result.skipped == 1
        assert "p2" in result.prompt_quality

    def test_non_mapping_records_skipped(self, entity_graph):
        """TRUST-033: Records that are not mappings are skipped, not fatal."""
        signals = [None, "s1", make_signal("ok", "bob", "p2")]
        result = run(signals, entity_graph)
        assert result.total_signals == 3
        assert result.skipped == 2
        assert result.skipped_ids == []
        assert "p2" in result.prompt_quality


# =============================================================================
# Benchmark and Contributor Scores (TRUST-040 to TRUST-046)
# =============================================================================

@pytest.fixture
def scored_signals():
    """bob reviews every prompt positively, carol agrees on p1."""
    return [
        make_signal("v1", "bob", "p1", weight=1.0),
        make_signal("v2", "bob", "p2", weight=1.0),
        make_signal("v3", "bob", "p3", weight=1.0),
        make_signal("v4", "carol", "p1", weight=1.0),
    ]


class TestBenchmarkQuality:
    """Test benchmark quality scores."""

    def test_mean_of_member_prompts(self, entity_graph, scored_signals):
        """TRUST-040: Score is the mean of member prompt scores."""
        result = run(scored_signals, entity_graph)
        row = result.benchmark_quality["s1"]
        assert row.score == pytest.approx((0.75 + 2.0 / 3.0 + 2.0 / 3.0) / 3)
        assert row.sample_size == 3
        assert row.details["prompt_count"] == 3

    def test_below_floor_is_unavailable(self, entity_graph, scored_signals):
        """TRUST-041: Fewer scored prompts than the floor gives score None."""
        result = run(scored_signals[:2], entity_graph)
        row = result.benchmark_quality["s1"]
        assert row.score is None
        assert row.sample_size == 2

    def test_no_scored_prompts_no_row(self, entity_graph):
        """TRUST-042: A benchmark without scored prompts has no row."""
        result = run([], entity_graph)
        assert "s1" not in result.benchmark_quality


class TestContributors:
    """Test contributor scores."""

    def test_author_owner_and_collaborator_credit(self, entity_graph, scored_signals):
        """TRUST-043: Authors, owners and collaborators are credited by role."""
        result = run(scored_signals, entity_graph)
        s1 = (0.75 + 2.0 / 3.0 + 2.0 / 3.0) / 3

        alice = result.contributors["alice"]
        assert alice.score == pytest.approx(0.75 + 2.0 / 3.0 + s1)
        assert alice.details["prompt_count"] == 2
        assert alice.details["benchmark_count"] == 1

        assert result.contributors["dave"].score == pytest.approx(2.0 / 3.0)
        assert result.contributors["bob"].score == pytest.approx(0.5 * s1)
        assert "carol" not in result.contributors

    def test_comments_count(self, entity_graph):
        """TRUST-044: Comments add a small fixed credit."""
        signals = [
            make_signal("c1", "carol", "p1", source="COMMENT"),
            make_signal("c2", "carol", "s1", source="COMMENT", target_kind="PROMPT_SET"),
        ]
        row = run(signals, entity_graph).contributors["carol"]
        assert row.score == pytest.approx(0.2)
        assert row.details["comment_count"] == 2

    def test_coauthorship_signal_grants_collaborator_role(self, entity_graph, scored_signals):
        """TRUST-045: Co-authorship signals credit the collaborator role."""
        signals = scored_signals + [
            make_signal("co1", "frank", "s1", source="COAUTHORSHIP", target_kind="PROMPT_SET"),
        ]
        result = run(signals, entity_graph)
        assert result.contributors["frank"].score == pytest.approx(
            0.5 * result.benchmark_quality["s1"].score
        )

    def test_highest_role_only(self, entity_graph, scored_signals):
        """TRUST-046: An owner who also co-authored is credited once, as author."""
        signals = scored_signals + [
            make_signal("co1", "alice", "s1", source="COAUTHORSHIP", target_kind="PROMPT_SET"),
        ]
        with_signal = run(signals, entity_graph).contributors["alice"].score
        without = run(scored_signals, entity_graph).contributors["alice"].score
        assert with_signal == pytest.approx(without)


# =============================================================================
# Reviewer Trust (TRUST-050 to TRUST-053)
# =============================================================================

class TestReviewerTrust:
    """Test reviewer trust scores."""

    def test_agreement_with_consensus(self, entity_graph):
        """TRUST-050: Aligned reviewers rise, contrarians fall."""
        signals = [
            make_signal("v1", "bob", "p1", weight=1.0),
            make_signal("v2", "carol", "p1", weight=1.0),
            make_signal("v3", "erin", "p1", weight=-1.0),
        ]
        result = run(signals, entity_graph)

        assert result.reviewer_trust["bob"].score == pytest.approx(0.75)
        assert result.reviewer_trust["erin"].score == pytest.approx(0.25)
        assert result.reviewer_trust["erin"].sample_size == 1

    def test_split_prompt_gives_no_rows(self, entity_graph):
        """TRUST-051: A tied prompt produces no trust rows."""
        signals = [
            make_signal("v1", "bob", "p1", weight=1.0),
            make_signal("v2", "erin", "p1", weight=-1.0),
        ]
        assert run(signals, entity_graph).reviewer_trust == {}

    def test_single_reviewer_gives_no_rows(self, entity_graph):
        """TRUST-052: One opinion is not enough for a consensus."""
        result = run([make_signal("v1", "bob", "p1")], entity_graph)
        assert result.reviewer_trust == {}

    def test_aligned_review_count_on_contributor(self, entity_graph, scored_signals):
        """TRUST-053: Contributor rows report aligned reviews."""
        result = run(scored_signals, entity_graph)
        assert result.contributors["bob"].details["aligned_review_count"] == 1
        assert result.trust_map()["bob"] == pytest.approx(0.75)

    def test_rows_by_kind(self, entity_graph, scored_signals):
        """TRUST-054: Rows are grouped by ranking kind and ordered by subject."""
        from benchrank.core.epoch import RankingKind

        rows = run(scored_signals, entity_graph).rows_by_kind()
        assert [r.subject_id for r in rows[RankingKind.PROMPT_QUALITY]] == ["p1", "p2", "p3"]
        assert set(rows) == {
            RankingKind.PROMPT_QUALITY,
            RankingKind.BENCHMARK_QUALITY,
            RankingKind.CONTRIBUTOR,
            RankingKind.REVIEWER_TRUST,
        }
