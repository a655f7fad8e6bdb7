"""
Tests for the command-line runner.
"""

import json

import pytest

from compatibility_engine.run import main, run


@pytest.mark.integration
class TestRunner:
    """Test each CLI mode on synthetic data."""

    def test_partition_mode_writes_output(self, config_path, tmp_path):
        """Test partition mode succeeds and writes JSON."""
        output = tmp_path / "out" / "groups.json"
        code = main(["--config", str(config_path), "--mode", "partition",
                     "--n-synthetic", "12", "--group-size", "6", "--output", str(output)])
        assert code == 0
        data = json.loads(output.read_text())
        assert data["success"]
        assert [g["size"] for g in data["result"]["groups"]] == [6, 6]

    def test_conflicts_mode(self, config_path):
        """Test conflicts mode returns a report with resolutions."""
        result = run(str(config_path), mode="conflicts", n_synthetic=8)
        assert result["success"]
        assert {"report", "resolutions", "success_prediction"} <= set(result["result"])

    def test_pairs_mode_uses_queue(self, config_path):
        """Test pairs mode runs a bulk job to completion."""
        result = run(str(config_path), mode="pairs", n_synthetic=6, wait_timeout=30.0)
        assert result["success"]
        assert result["job"]["state"] == "completed"
        assert len(result["result"]["scores"]) == 15

    def test_compare_mode(self, config_path):
        """Test compare mode runs every strategy through the queue."""
        result = run(str(config_path), mode="compare", n_synthetic=12,
                     target_group_size=6, wait_timeout=60.0)
        assert result["success"]
        comparison = result["result"]["comparison"]
        assert set(result["result"]["results"]) == {"centroid", "hierarchical", "hybrid"}
        assert comparison["best_algorithm"] in result["result"]["results"]
        assert len(comparison["agreement"]) == 3

    def test_missing_participants_file_falls_back(self, config_path, tmp_path):
        """Test a missing participant file falls back to synthetic data."""
        result = run(str(config_path), mode="partition",
                     participants_path=str(tmp_path / "missing.csv"), n_synthetic=7)
        assert result["success"]
        assert sum(g["size"] for g in result["result"]["groups"]) == 7

    def test_bad_config_path(self, tmp_path):
        """Test a missing config file makes main return 1."""
        assert main(["--config", str(tmp_path / "missing.yaml")]) == 1
