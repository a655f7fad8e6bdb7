"""
Smoke test for the compatibility engine.

This script validates that:
1. The configuration loads and validates
2. Scoring is bounded and symmetric on synthetic participants
3. Partitioning covers every participant exactly once
4. A batch job runs through the queue and is then served from cache

Usage:
    python scripts/smoke_test.py
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import logging
import numpy as np

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def run_smoke_test():
    """Run smoke tests on the engine."""

    logger.info("=" * 60)
    logger.info("SMOKE TEST: Compatibility Engine")
    logger.info("=" * 60)

    # Import modules
    from compatibility_engine.configs import load_config, validate_config
    from compatibility_engine.data_loading import create_synthetic_participants
    from compatibility_engine.engine import create_engine_from_config
    from compatibility_engine.providers import InMemoryProfileProvider

    # Load config
    config_path = project_root / "configs" / "config.yaml"
    logger.info(f"Loading config from {config_path}")
    config = load_config(str(config_path))

    results = {"config": {}, "scoring": {}, "partition": {}, "jobs": {}}

    issues = validate_config(config)
    if issues:
        logger.error(f"  CONFIG ISSUES: {issues}")
        results["config"]["status"] = "FAILED - config issues"
    else:
        results["config"]["status"] = "PASSED"

    participants = create_synthetic_participants(30, random_seed=config["global"]["random_seed"])
    provider = InMemoryProfileProvider.from_participants(participants)
    engine = create_engine_from_config(provider=provider, config=config)

    # =========================================================================
    # Test scoring
    # =========================================================================
    logger.info("\n" + "=" * 60)
    logger.info("TEST 1: Scoring")
    logger.info("=" * 60)

    try:
        matrix = engine.scorer.score_matrix(participants)
        logger.info(f"  Score range: [{matrix.min():.2f}, {matrix.max():.2f}]")
        assert np.allclose(matrix, matrix.T), "matrix not symmetric"
        assert matrix.min() >= 0 and matrix.max() <= 100, "scores out of range"
        self_score = engine.compute_compatibility(participants[0], participants[0]).overall_score
        assert self_score > 90, f"self compatibility too low: {self_score}"
        results["scoring"]["status"] = "PASSED"
    except Exception as e:
        logger.error(f"  SCORING TEST FAILED: {e}")
        results["scoring"]["status"] = f"FAILED - {e}"

    # =========================================================================
    # Test partitioning
    # =========================================================================
    logger.info("\n" + "=" * 60)
    logger.info("TEST 2: Partitioning")
    logger.info("=" * 60)

    try:
        result = engine.partition(participants)
        sizes = [g.size for g in result.groups]
        members = sorted(pid for g in result.groups for pid in g.participant_ids)
        logger.info(f"  Groups: {len(sizes)} sizes={sizes} via {result.algorithm_used}")
        assert members == sorted(p.id for p in participants), "partition incomplete"
        assert max(sizes) - min(sizes) <= 1, "groups not balanced"
        results["partition"]["status"] = "PASSED"
    except Exception as e:
        logger.error(f"  PARTITION TEST FAILED: {e}")
        results["partition"]["status"] = f"FAILED - {e}"

    # =========================================================================
    # Test job queue + cache
    # =========================================================================
    logger.info("\n" + "=" * 60)
    logger.info("TEST 3: Batch job and cache")
    logger.info("=" * 60)

    try:
        ids = [p.id for p in participants]
        with engine:
            receipt = engine.submit_batch_job(ids, include_matrix=True)
            status = engine.wait_for_job(receipt.job_id, timeout=120)
        logger.info(f"  Job state: {status.state}")
        assert status.state == "completed", status.error
        assert len(status.result["scores"]) == len(ids) * (len(ids) - 1) // 2

        cached = engine.compute_all_pairs(ids, include_matrix=True)
        logger.info(f"  Second run from cache: {cached.from_cache}")
        assert cached.from_cache
        results["jobs"]["status"] = "PASSED"
    except Exception as e:
        logger.error(f"  JOB TEST FAILED: {e}")
        results["jobs"]["status"] = f"FAILED - {e}"

    # =========================================================================
    # Summary
    # =========================================================================
    logger.info("\n" + "=" * 60)
    logger.info("SMOKE TEST SUMMARY")
    logger.info("=" * 60)

    all_passed = True
    for name, result in results.items():
        status = result.get("status", "UNKNOWN")
        logger.info(f"  {name.upper()}: {status}")
        if status != "PASSED":
            all_passed = False

    if all_passed:
        logger.info("\n  ALL TESTS PASSED")
        return 0
    else:
        logger.error("\n  SOME TESTS FAILED")
        return 1


if __name__ == "__main__":
    sys.exit(run_smoke_test())
