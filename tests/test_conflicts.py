"""
Tests for conflict detection, risk aggregation and resolution suggestions.
"""

import numpy as np
import pytest

from compatibility_engine.conflicts import (
    ConflictConfig,
    ConflictDetector,
    predict_group_success,
    suggest_resolutions,
)
from compatibility_engine.profiles import Participant

pytestmark = pytest.mark.unit


@pytest.fixture
def detector():
    return ConflictDetector()


class TestPairRules:
    """Test the individual rule sets."""

    @pytest.mark.parametrize("energy_a,energy_b,severity", [
        (50, 85, "minor"),
        (50, 95, "major"),
        (35, 100, "critical"),
    ])
    def test_energy_severity_scales(self, detector, make_participant, energy_a, energy_b, severity):
        """Test energy severity grows with the difference."""
        a = make_participant("a", energy_level=energy_a)
        b = make_participant("b", energy_level=energy_b)
        found = [c for c in detector.pair_conflicts(a, b) if c.category == "energy"]
        assert [c.severity for c in found] == [severity]

    def test_no_conflict_for_similar_profiles(self, detector, make_participant):
        """Test near-identical participants raise nothing."""
        assert detector.pair_conflicts(make_participant("a"), make_participant("b", energy_level=60)) == []

    def test_strong_leaders_conflict(self, detector, make_participant):
        """Test two strong leaders conflict regardless of distance."""
        major = detector.pair_conflicts(
            make_participant("a", leadership_style=80),
            make_participant("b", leadership_style=80),
        )
        critical = detector.pair_conflicts(
            make_participant("a", leadership_style=95),
            make_participant("b", leadership_style=90),
        )
        assert [c.severity for c in major if c.category == "leadership"] == ["major"]
        assert [c.severity for c in critical if c.category == "leadership"] == ["critical"]

    @pytest.mark.parametrize("age_a,age_b,severity", [
        (20, 40, None),      # average 30, threshold 25
        (20, 38, "minor"),   # average 29, threshold 15
        (18, 41, "major"),   # average 29.5, gap 23 > 22.5
    ])
    def test_age_threshold_depends_on_average(self, detector, make_participant, age_a, age_b, severity):
        """Test age gaps are judged relative to the pair's average age."""
        found = [c for c in detector.pair_conflicts(make_participant("a", age=age_a),
                                                    make_participant("b", age=age_b))
                 if c.category == "age"]
        if severity is None:
            assert found == []
        else:
            assert [c.severity for c in found] == [severity]

    def test_defaulted_dimensions_never_conflict(self, detector):
        """Test a missing value on either side suppresses that rule."""
        a = Participant.create("a", {"energy_level": 100, "leadership_style": 95})
        b = Participant.create("b", {"social_preference": 10})
        assert detector.pair_conflicts(a, b) == []

    def test_communication_is_minor(self, detector, make_participant):
        """Test communication clashes are always minor."""
        found = detector.pair_conflicts(
            make_participant("a", communication_style=10),
            make_participant("b", communication_style=90),
        )
        assert [(c.category, c.severity) for c in found] == [("communication", "minor")]


class TestDetect:
    """Test group-level reports."""

    def test_leader_triple_is_risky(self, detector, make_participant):
        """Test two strong leaders in a group of three raise risk above one half."""
        group = [
            make_participant("p1", leadership_style=90),
            make_participant("p2", leadership_style=85),
            make_participant("p3", leadership_style=15),
        ]
        report = detector.detect(group)
        assert len(report.conflicts["leadership"]) == 1
        assert report.conflicts["leadership"][0].participants == ("p1", "p2")
        assert report.overall_risk > 0.5
        assert report.overall_risk == pytest.approx(0.6)
        assert report.risk_level == "medium"
        assert report.participant_count == 3

    def test_empty_group_has_no_risk(self, detector):
        """Test an empty group yields a zero-risk report."""
        report = detector.detect([])
        assert report.total_conflicts == 0
        assert report.overall_risk == 0.0
        assert report.risk_level == "low"

    def test_risk_bounded(self, detector, make_participant):
        """Test many critical findings keep risk within [0, 1]."""
        group = [
            make_participant(f"p{i}", energy_level=0 if i % 2 else 100,
                             risk_tolerance=0 if i % 2 else 100,
                             leadership_style=99)
            for i in range(8)
        ]
        report = detector.detect(group)
        assert 0.0 <= report.overall_risk <= 1.0
        assert report.risk_level == "critical"

    def test_include_minor_filter(self, detector, make_participant):
        """Test minor findings can be excluded."""
        group = [make_participant("a", energy_level=50), make_participant("b", energy_level=85)]
        assert detector.detect(group).total_conflicts == 1
        assert detector.detect(group, include_minor=False).total_conflicts == 0

    def test_detection_does_not_mutate(self, detector, pool):
        """Test profiles are unchanged by detection."""
        before = [p.to_dict() for p in pool]
        detector.detect(pool)
        assert [p.to_dict() for p in pool] == before

    def test_penalty_matrix(self, detector, make_participant):
        """Test the penalty matrix is symmetric with the severity weight per pair."""
        group = [
            make_participant("a", leadership_style=80),
            make_participant("b", leadership_style=80),
            make_participant("c"),
        ]
        matrix = detector.pair_penalty_matrix(group)
        np.testing.assert_allclose(matrix, matrix.T)
        np.testing.assert_allclose(np.diag(matrix), 0.0)
        assert matrix[0, 1] == pytest.approx(0.6)
        assert matrix[0, 2] == 0.0

    def test_report_serializable(self, detector, make_participant):
        """Test the report converts to plain dictionaries."""
        report = detector.detect([make_participant("a", leadership_style=95),
                                  make_participant("b", leadership_style=95)])
        d = report.to_dict()
        assert d["total_conflicts"] == 1
        assert d["conflicts"]["leadership"][0]["participants"] == ["a", "b"]
        assert report.summary()["risk_level"] == "critical"


class TestSuggestions:
    """Test resolution suggestions and success prediction."""

    def test_one_suggestion_per_category(self, detector, make_participant):
        """Test suggestions cover each category present exactly once."""
        report = detector.detect([
            make_participant("a", leadership_style=80, energy_level=10),
            make_participant("b", leadership_style=80, energy_level=90),
        ])
        types = [s["type"] for s in suggest_resolutions(report)]
        assert sorted(types) == ["energy", "leadership"]

    def test_success_prediction(self, detector, make_participant):
        """Test success score arithmetic and labels."""
        report = detector.detect([
            make_participant("a", leadership_style=80),
            make_participant("b", leadership_style=80),
        ])
        small = predict_group_success(3, report)
        assert small["success_score"] == 77
        assert small["prediction"] == "good"
        assert predict_group_success(6, report)["prediction"] == "excellent"


class TestConflictConfig:
    """Test conflict configuration."""

    def test_from_config(self, config):
        """Test thresholds are read from the main configuration."""
        conflict_config = ConflictConfig.from_config(config)
        assert conflict_config.severity_weights["critical"] == 0.85

    def test_invalid_weight_rejected(self):
        """Test severity weights must lie in [0, 1)."""
        with pytest.raises(ValueError):
            ConflictDetector(ConflictConfig(severity_weights={"minor": 1.5}))
