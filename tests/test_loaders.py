"""
Tests for participant data loading.
"""

import json

import pandas as pd
import pytest

from compatibility_engine.data_loading import (
    create_synthetic_participants,
    load_participant_table,
    load_participants,
    participants_to_frame,
)
from compatibility_engine.profiles import TRAIT_DIMENSIONS

pytestmark = pytest.mark.unit


class TestLoadParticipants:
    """Test CSV, TSV and JSON loading."""

    def test_csv_with_gaps(self, tmp_path):
        """Test empty cells become defaulted traits."""
        path = tmp_path / "participants.csv"
        path.write_text(
            "id,energy_level,social_preference,age\n"
            "a,80,20,25\n"
            "b,,40,31\n"
        )
        participants = load_participants(str(path))
        assert [p.id for p in participants] == ["a", "b"]
        assert participants[0].profile["energy_level"] == 80.0
        assert participants[1].profile.is_defaulted("energy_level")
        assert participants[1].profile["energy_level"] == 50.0

    def test_tsv(self, tmp_path):
        """Test the tab delimiter is picked from the suffix."""
        path = tmp_path / "participants.tsv"
        path.write_text("participant_id\tenergy_level\n1\t10\n2\t90\n")
        participants = load_participants(str(path))
        assert [p.id for p in participants] == ["1", "2"]
        assert participants[1].profile["energy_level"] == 90.0

    def test_json_nested_traits(self, tmp_path):
        """Test JSON records with nested traits and camelCase keys."""
        path = tmp_path / "participants.json"
        path.write_text(json.dumps({"participants": [
            {"id": "x", "traits": {"energyLevel": 70, "age": 40}},
            {"id": "y", "traits": {"riskTolerance": 10}},
        ]}))
        participants = load_participants(str(path))
        assert participants[0].profile["energy_level"] == 70.0
        assert participants[1].profile["risk_tolerance"] == 10.0

    def test_duplicate_ids(self, tmp_path):
        """Test duplicate ids are rejected."""
        path = tmp_path / "dup.csv"
        path.write_text("id,energy_level\na,1\na,2\n")
        with pytest.raises(ValueError):
            load_participants(str(path))

    def test_missing_id_column(self, tmp_path):
        """Test a table without an id column is rejected."""
        path = tmp_path / "noid.csv"
        path.write_text("name,energy_level\nann,1\n")
        with pytest.raises(ValueError):
            load_participant_table(str(path))

    def test_missing_file(self, tmp_path):
        """Test missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_participants(str(tmp_path / "missing.csv"))
        with pytest.raises(FileNotFoundError):
            load_participants(str(tmp_path / "missing.json"))


class TestSyntheticParticipants:
    """Test synthetic data generation."""

    def test_reproducible(self):
        """Test the same seed gives the same participants."""
        first = create_synthetic_participants(10, random_seed=5)
        second = create_synthetic_participants(10, random_seed=5)
        assert [p.to_dict() for p in first] == [p.to_dict() for p in second]
        assert first[0].id == "p001"

    def test_values_in_range(self):
        """Test every synthetic value is valid and not defaulted."""
        for p in create_synthetic_participants(30, random_seed=1):
            assert p.profile.confidence == 1.0
            assert 18 <= p.profile["age"] <= 70
            assert all(0 <= p.profile[d] <= 100 for d in TRAIT_DIMENSIONS if d != "age")

    def test_to_frame(self):
        """Test flattening into a DataFrame."""
        df = participants_to_frame(create_synthetic_participants(4))
        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == ["id"] + TRAIT_DIMENSIONS + ["confidence"]
        assert len(df) == 4
