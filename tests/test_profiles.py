"""
Tests for the trait profile normalization boundary.
"""

import math

import pytest

from compatibility_engine.profiles import Participant, TraitProfile, normalize_profile, TRAIT_DIMENSIONS

pytestmark = pytest.mark.unit


class TestNormalizeProfile:
    """Test raw trait mappings become canonical profiles."""

    def test_complete_profile_kept(self):
        """Test valid values pass through unchanged."""
        raw = {dim: 40 for dim in TRAIT_DIMENSIONS}
        profile = normalize_profile(raw)
        assert all(profile[dim] == 40.0 for dim in TRAIT_DIMENSIONS)
        assert profile.defaulted == frozenset()
        assert profile.confidence == 1.0

    def test_values_clamped(self):
        """Test out-of-range values are clamped to the scale."""
        profile = normalize_profile({"energy_level": 150, "risk_tolerance": -5, "age": 200})
        assert profile["energy_level"] == 100.0
        assert profile["risk_tolerance"] == 0.0
        assert profile["age"] == 120.0

    def test_missing_values_defaulted(self):
        """Test missing dimensions get neutral defaults and lower confidence."""
        profile = normalize_profile({"energy_level": 70})
        assert profile["social_preference"] == 50.0
        assert profile["age"] == 30.0
        assert "energy_level" not in profile.defaulted
        assert len(profile.defaulted) == len(TRAIT_DIMENSIONS) - 1
        assert profile.confidence == pytest.approx(1 / len(TRAIT_DIMENSIONS))

    @pytest.mark.parametrize("bad", [None, "abc", "", float("nan"), float("inf"), True, [1, 2], {"x": 1}])
    def test_invalid_values_defaulted(self, bad):
        """Test non-numeric values never raise and are defaulted."""
        profile = normalize_profile({"energy_level": bad})
        assert profile["energy_level"] == 50.0
        assert profile.is_defaulted("energy_level")

    def test_numeric_strings_parsed(self):
        """Test numeric strings are accepted."""
        profile = normalize_profile({"energy_level": " 42.5 ", "age": "27"})
        assert profile["energy_level"] == 42.5
        assert profile["age"] == 27.0
        assert not profile.is_defaulted("energy_level")

    def test_camel_case_aliases(self):
        """Test camelCase dimension names are accepted."""
        profile = normalize_profile({"energyLevel": 80, "leadershipStyle": 10})
        assert profile["energy_level"] == 80.0
        assert profile["leadership_style"] == 10.0

    @pytest.mark.parametrize("raw", [None, {}, [1, 2, 3], "not a mapping"])
    def test_non_mapping_input(self, raw):
        """Test unusable input yields a fully defaulted profile."""
        profile = normalize_profile(raw)
        assert profile.confidence == 0.0
        assert set(profile.values) == set(TRAIT_DIMENSIONS)

    def test_profile_passthrough(self):
        """Test an already normalized profile is returned as is."""
        profile = normalize_profile({"energy_level": 10})
        assert normalize_profile(profile) is profile

    def test_vector_in_unit_range(self):
        """Test the clustering vector is scaled to [0, 1]."""
        vector = normalize_profile({"energy_level": 100, "age": 120}).to_vector()
        assert len(vector) == len(TRAIT_DIMENSIONS)
        assert vector.min() >= 0.0 and vector.max() <= 1.0
        assert not any(math.isnan(v) for v in vector)


class TestParticipant:
    """Test participant construction from records."""

    def test_from_dict_nested_traits(self):
        """Test records with a nested traits mapping."""
        p = Participant.from_dict({"id": 7, "traits": {"energy_level": 90}})
        assert p.id == "7"
        assert p.profile["energy_level"] == 90.0

    def test_from_dict_flat_record(self):
        """Test flat records with alternative id keys."""
        p = Participant.from_dict({"user_id": "u1", "social_preference": 20})
        assert p.id == "u1"
        assert p.profile["social_preference"] == 20.0

    def test_from_dict_without_id(self):
        """Test records without id are rejected."""
        with pytest.raises(ValueError):
            Participant.from_dict({"energy_level": 10})

    def test_to_dict(self):
        """Test serialization keeps every dimension."""
        d = Participant.create("a", {"energy_level": 10}).to_dict()
        assert d["id"] == "a"
        assert set(d["traits"]) == set(TRAIT_DIMENSIONS)
        assert isinstance(Participant.create("a").profile, TraitProfile)
