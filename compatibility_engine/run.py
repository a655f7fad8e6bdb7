"""
Command-line runner for the compatibility engine.

Usage:
    python -m compatibility_engine.run --config configs/config.yaml --mode partition

Modes:
1. partition  - split participants into balanced travel groups
2. conflicts  - conflict report (with resolutions) for the whole pool
3. pairs      - all-pairs compatibility through the job queue
4. compare    - run every partition strategy side by side through the job queue

Without --participants, synthetic participants are generated from the seed.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, Any, List, Optional
import json

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

MODES = ["partition", "conflicts", "pairs", "compare"]


def setup_logging(log_level: str) -> None:
    """Configure logging level from config."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.getLogger().setLevel(level)


def run(
    config_path: str,
    mode: str = "partition",
    participants_path: Optional[str] = None,
    seed: Optional[int] = None,
    n_synthetic: int = 24,
    target_group_size: Optional[int] = None,
    algorithm: Optional[str] = None,
    wait_timeout: float = 600.0
) -> Dict[str, Any]:
    """
    Run one engine operation end to end.

    Args:
        config_path: Path to the configuration YAML file
        mode: One of MODES
        participants_path: CSV/TSV/JSON participant file (synthetic data if None)
        seed: Seed override for synthetic data and partitioning
        n_synthetic: Number of synthetic participants
        target_group_size: Group size override
        algorithm: Partition strategy override
        wait_timeout: Seconds to wait for queued jobs

    Returns:
        Dictionary with success flag and the mode's result
    """
    # Import modules here so that logging is configured first
    from .configs import load_config
    from .conflicts import predict_group_success, suggest_resolutions
    from .data_loading import load_participants, create_synthetic_participants
    from .engine import create_engine_from_config
    from .providers import InMemoryProfileProvider, InMemoryResultStore

    config = load_config(config_path)
    setup_logging(config.get("global", {}).get("log_level", "INFO"))
    seed = seed if seed is not None else config.get("global", {}).get("random_seed", 42)

    logger.info("=" * 60)
    logger.info(f"COMPATIBILITY ENGINE - {mode.upper()}")
    logger.info("=" * 60)

    if participants_path:
        try:
            participants = load_participants(participants_path)
        except FileNotFoundError as e:
            logger.error(f"Participant data not found: {e}")
            logger.info("Creating synthetic participants for demonstration...")
            participants = create_synthetic_participants(n_synthetic, seed)
    else:
        participants = create_synthetic_participants(n_synthetic, seed)

    provider = InMemoryProfileProvider.from_participants(participants)
    store = InMemoryResultStore()
    engine = create_engine_from_config(provider=provider, result_store=store, config=config)
    ids = [p.id for p in participants]

    if mode == "partition":
        result = engine.partition(participants, target_group_size=target_group_size,
                                  algorithm=algorithm, seed=seed)
        for group in result.groups:
            logger.info(f"{group.group_id}: {group.size} members, "
                        f"avg compatibility {group.average_compatibility:.1f}, "
                        f"risk {group.conflict_summary.get('risk_level')}")
        return {"success": True, "mode": mode, "result": result.to_dict()}

    if mode == "conflicts":
        report = engine.detect_conflicts(participants)
        logger.info(f"{report.total_conflicts} conflicts, overall risk {report.overall_risk:.2f} "
                    f"({report.risk_level})")
        return {
            "success": True,
            "mode": mode,
            "result": {
                "report": report.to_dict(),
                "resolutions": suggest_resolutions(report),
                "success_prediction": predict_group_success(len(participants), report),
            },
        }

    with engine:
        if mode == "pairs":
            receipt = engine.submit_batch_job(ids, include_matrix=True)
        else:
            receipt = engine.submit_algorithm_comparison_job(
                ids, target_group_size=target_group_size, seed=seed)
        logger.info(f"Submitted job {receipt.job_id} (queue position {receipt.queue_position})")
        status = engine.wait_for_job(receipt.job_id, timeout=wait_timeout)

    logger.info(f"Job {status.job_id} finished with state {status.state}")
    return {
        "success": status.state == "completed",
        "mode": mode,
        "job": status.to_dict(),
        "result": status.result,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the engine CLI."""
    parser = argparse.ArgumentParser(
        description="Run the traveler group compatibility engine"
    )
    parser.add_argument(
        "--config",
        type=str,
        default="configs/config.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="partition",
        help="Operation to run"
    )
    parser.add_argument(
        "--participants",
        type=str,
        default=None,
        help="Participant CSV/TSV/JSON file (synthetic data if omitted)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed (overrides config)"
    )
    parser.add_argument(
        "--n-synthetic",
        type=int,
        default=24,
        help="Number of synthetic participants"
    )
    parser.add_argument(
        "--group-size",
        type=int,
        default=None,
        help="Target group size (overrides config)"
    )
    parser.add_argument(
        "--algorithm",
        choices=["centroid", "hierarchical", "hybrid"],
        default=None,
        help="Partition strategy (overrides config)"
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write the result as JSON to this file"
    )

    args = parser.parse_args(argv)

    try:
        result = run(
            args.config,
            mode=args.mode,
            participants_path=args.participants,
            seed=args.seed,
            n_synthetic=args.n_synthetic,
            target_group_size=args.group_size,
            algorithm=args.algorithm,
        )
        if args.output:
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, "w") as f:
                json.dump(result, f, indent=2, default=str)
            logger.info(f"Wrote result to {output_path}")

        if result["success"]:
            logger.info("Run completed successfully!")
            return 0
        else:
            logger.error("Run failed!")
            return 1
    except Exception as e:
        logger.exception(f"Run failed with error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
