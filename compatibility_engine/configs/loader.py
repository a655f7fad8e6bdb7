"""
Configuration loading and validation.

The engine reads a single YAML file (``configs/config.yaml``) with one
section per component. ``validate_config`` never raises; it collects
human-readable issues so the CLI and scripts can report all of them at once.
"""

import logging
from pathlib import Path
from typing import Dict, Any, List

import yaml

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ["global", "scoring", "conflicts", "partitioning", "batch", "cache", "jobs"]
KNOWN_ALGORITHMS = ["centroid", "hierarchical", "hybrid"]
KNOWN_CACHE_BACKENDS = ["memory", "joblib"]


def load_config(filepath: str) -> Dict[str, Any]:
    """
    Read the engine configuration.

    Args:
        filepath: YAML file path

    Returns:
        Parsed configuration mapping

    Raises:
        FileNotFoundError: If the file is missing
        ValueError: If the file holds no document
    """
    config_file = Path(filepath)
    if not config_file.is_file():
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    logger.info(f"Reading engine configuration: {config_file}")
    config = yaml.safe_load(config_file.read_text())
    if not config:
        raise ValueError(f"Configuration file is empty: {filepath}")
    return config


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Collect configuration problems.

    Args:
        config: Parsed configuration

    Returns:
        Issue messages, empty when the config is usable
    """
    issues = []

    for section in REQUIRED_SECTIONS:
        if section not in config:
            issues.append(f"Missing required section: {section}")

    # Scoring weights must sum to 1
    weights = get_config_value(config, "scoring.weights")
    if isinstance(weights, dict) and weights:
        total = sum(weights.values())
        if abs(total - 1.0) > 0.01:
            issues.append(f"Scoring weights don't sum to 1: {total}")
        negative = [k for k, v in weights.items() if v < 0]
        if negative:
            issues.append(f"Scoring weights must be non-negative: {negative}")

    target = get_config_value(config, "partitioning.target_group_size", 6)
    if not isinstance(target, int) or target < 2:
        issues.append(f"partitioning.target_group_size must be an integer >= 2, got {target}")

    algorithm = get_config_value(config, "partitioning.algorithm", "hybrid")
    if algorithm not in KNOWN_ALGORITHMS:
        issues.append(f"Unknown partitioning algorithm: {algorithm}")

    backend = get_config_value(config, "cache.backend", "memory")
    if backend not in KNOWN_CACHE_BACKENDS:
        issues.append(f"Unknown cache backend: {backend}")
    if backend == "joblib" and not get_config_value(config, "cache.directory"):
        issues.append("cache.directory is required for the joblib backend")

    workers = get_config_value(config, "jobs.worker_pool_size", 3)
    if not isinstance(workers, int) or workers < 1:
        issues.append(f"jobs.worker_pool_size must be a positive integer, got {workers}")

    concurrency = get_config_value(config, "batch.max_concurrency", 10)
    if not isinstance(concurrency, int) or concurrency < 1:
        issues.append(f"batch.max_concurrency must be a positive integer, got {concurrency}")

    # Seeded runs must be reproducible
    if isinstance(config.get("global"), dict) and "random_seed" not in config["global"]:
        issues.append("Missing global.random_seed")

    return issues


def get_config_value(config: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Look up ``"section.key.subkey"`` in a nested config, or return ``default``.

    Keys may contain dashes (``"jobs.timeout_ms.bulk-compatibility"``).
    """
    node: Any = config
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return node
