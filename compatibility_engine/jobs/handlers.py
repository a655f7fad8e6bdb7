"""
Handlers for the four job types.

Each handler receives the Job and a progress reporter and returns a
JSON-serializable result. Validation errors raised here are final; any other
exception is retried by the queue.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from ..batch.orchestrator import BatchOptions, BatchOrchestrator, BatchProgress
from ..conflicts.detector import ConflictDetector, predict_group_success, suggest_resolutions
from ..errors import ComputationError, ValidationError
from ..evaluation.metrics import compare_partitions, summarize_partition
from ..partitioning.models import ALGORITHMS, PartitionOptions
from ..partitioning.partitioner import GroupPartitioner
from .models import Job, JobType
from .queue import JobHandler, ProgressReporter

logger = logging.getLogger(__name__)


def _participant_ids(job: Job) -> List[str]:
    ids = job.payload.get("participant_ids")
    if not ids:
        raise ValidationError(f"Job {job.id} has no participant_ids")
    return [str(pid) for pid in ids]


def _partition_options(payload: Dict[str, Any], algorithm: Optional[str] = None) -> PartitionOptions:
    return PartitionOptions(
        target_group_size=payload.get("target_group_size"),
        algorithm=algorithm or payload.get("algorithm"),
        avoid_conflicts=payload.get("avoid_conflicts"),
        seed=payload.get("seed"),
    )


def build_handlers(
    orchestrator: BatchOrchestrator,
    partitioner: GroupPartitioner,
    detector: ConflictDetector
) -> Dict[str, JobHandler]:
    """
    Create the handler table for a JobQueue.

    Args:
        orchestrator: Batch orchestrator (also fetches profiles)
        partitioner: Group partitioner
        detector: Conflict detector for group reports

    Returns:
        Mapping of job type value to handler
    """

    def bulk_compatibility(job: Job, report: ProgressReporter) -> Dict[str, Any]:
        payload = job.payload
        options = BatchOptions(
            algorithm_id=payload.get("algorithm_id", "trait-weighted"),
            include_matrix=payload.get("include_matrix", False),
            cache_results=payload.get("cache_results", True),
            force_recalculation=payload.get("force_recalculation", False),
        )

        def on_progress(progress: BatchProgress) -> None:
            report(progress.to_dict())

        result = orchestrator.compute_all_pairs(_participant_ids(job), options, on_progress)
        return result.to_dict()

    def group_analysis(job: Job, report: ProgressReporter) -> Dict[str, Any]:
        payload = job.payload
        participants = orchestrator.fetch_participants(_participant_ids(job))
        report({"percentage": 10.0, "phase": "profiles-loaded"})

        result = partitioner.partition(participants, _partition_options(payload))
        groups = []
        by_id = {p.id: p for p in participants}
        for group in result.groups:
            entry = group.to_dict()
            members = [by_id[pid] for pid in group.participant_ids]
            if payload.get("include_conflicts", True):
                conflict_report = detector.detect(members)
                entry["conflicts"] = conflict_report.to_dict()
                entry["resolutions"] = suggest_resolutions(conflict_report)
                entry["success_prediction"] = predict_group_success(group.size, conflict_report)
            dynamics = partitioner.scorer.score_group(members).dynamics
            entry["dynamics"] = dynamics.to_dict() if dynamics is not None else None
            groups.append(entry)

        return {
            "groups": groups,
            "algorithm_requested": result.algorithm_requested,
            "algorithm_used": result.algorithm_used,
            "fallbacks": result.fallbacks,
            "objective": result.objective,
            "participant_count": len(participants),
            "group_count": len(groups),
        }

    def algorithm_comparison(job: Job, report: ProgressReporter) -> Dict[str, Any]:
        payload = job.payload
        algorithms = payload.get("algorithms") or list(ALGORITHMS)
        unknown = [a for a in algorithms if a not in ALGORITHMS]
        if unknown:
            raise ValidationError(f"Unknown algorithms: {unknown}")

        participants = orchestrator.fetch_participants(_participant_ids(job))
        results: Dict[str, Any] = {}
        partitions = {}
        for index, algorithm in enumerate(algorithms):
            start = time.time()
            try:
                partition = partitioner.partition(participants, _partition_options(payload, algorithm))
            except ComputationError as e:
                logger.warning(f"Algorithm {algorithm} failed in comparison: {e}")
                results[algorithm] = {
                    "success": False,
                    "error": str(e),
                    "processing_time": round(time.time() - start, 4),
                }
            else:
                partitions[algorithm] = partition
                metrics = summarize_partition(partition).to_dict()
                metrics["processing_time"] = round(time.time() - start, 4)
                results[algorithm] = {
                    "success": True,
                    "groups": [g.to_dict() for g in partition.groups],
                    "metrics": metrics,
                }
            report({
                "percentage": round(100.0 * (index + 1) / len(algorithms), 2),
                "current_algorithm": algorithm,
            })

        agreement = {}
        names = list(partitions)
        for i in range(len(names)):
            for j in range(i + 1, len(names)):
                agreement[f"{names[i]}~{names[j]}"] = round(
                    compare_partitions(partitions[names[i]], partitions[names[j]]), 4)

        best = max(partitions, key=lambda a: partitions[a].objective) if partitions else None
        return {
            "results": results,
            "comparison": {"best_algorithm": best, "agreement": agreement},
            "algorithms": algorithms,
            "participant_count": len(participants),
        }

    def cache_warm(job: Job, report: ProgressReporter) -> Dict[str, Any]:
        ids = _participant_ids(job)
        result = orchestrator.warm_pair_cache(ids, batch_size=job.payload.get("batch_size", 20))
        report({"percentage": 100.0, "phase": "warmed"})
        return result

    return {
        JobType.BULK_COMPATIBILITY.value: bulk_compatibility,
        JobType.GROUP_ANALYSIS.value: group_analysis,
        JobType.ALGORITHM_COMPARISON.value: algorithm_comparison,
        JobType.CACHE_WARM.value: cache_warm,
    }
