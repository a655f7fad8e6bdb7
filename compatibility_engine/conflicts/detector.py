"""
Interpersonal conflict detection for candidate travel groups.

For every unordered pair of participants, independent rule sets flag
conflicts with a severity of minor, major or critical:

- Energy: large |energy_a - energy_b|, severity scales with magnitude
- Social: large |social_a - social_b|, severity scales with magnitude
- Leadership: both above the strong-leader threshold (co-leadership risk),
  regardless of numeric distance
- Risk: large |risk_a - risk_b|
- Age, experience, communication: secondary signals with lower severities

Dimensions that were defaulted during normalization carry no evidence and
never raise a conflict.

Overall Risk Formula:
    overall_risk = 1 - prod(1 - w_severity) over all findings
    (w_minor=0.2, w_major=0.6, w_critical=0.85), bounded to [0, 1]

Detection is a pure read: nothing is mutated.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..profiles.schema import Participant

logger = logging.getLogger(__name__)

SEVERITIES = ["minor", "major", "critical"]
PRIMARY_CATEGORIES = ["energy", "social", "leadership", "risk"]
SECONDARY_CATEGORIES = ["age", "experience", "communication"]
CATEGORIES = PRIMARY_CATEGORIES + SECONDARY_CATEGORIES


@dataclass
class ConflictConfig:
    """
    Thresholds for conflict detection.

    Attributes:
        energy_thresholds: |diff| above each value raises that severity
        social_thresholds: |diff| above each value raises that severity
        risk_thresholds: |diff| above each value raises that severity
        experience_thresholds: |diff| thresholds for experience gaps
        communication_threshold: |diff| above which communication styles clash
        strong_leader_threshold: Both above this -> major leadership conflict
        critical_leader_threshold: Both at or above this -> critical
        severity_weights: Weight of one finding per severity
        include_minor: Whether minor findings are reported
    """
    energy_thresholds: Dict[str, float] = field(
        default_factory=lambda: {"minor": 30, "major": 40, "critical": 60})
    social_thresholds: Dict[str, float] = field(
        default_factory=lambda: {"minor": 40, "major": 60, "critical": 80})
    risk_thresholds: Dict[str, float] = field(
        default_factory=lambda: {"minor": 35, "major": 50, "critical": 70})
    experience_thresholds: Dict[str, float] = field(
        default_factory=lambda: {"minor": 40, "major": 60})
    communication_threshold: float = 60.0
    strong_leader_threshold: float = 75.0
    critical_leader_threshold: float = 90.0
    severity_weights: Dict[str, float] = field(
        default_factory=lambda: {"minor": 0.2, "major": 0.6, "critical": 0.85})
    include_minor: bool = True

    def validate(self) -> None:
        """Validate configuration values."""
        for severity, weight in self.severity_weights.items():
            if severity not in SEVERITIES:
                raise ValueError(f"Unknown severity: {severity}")
            if not 0 <= weight < 1:
                raise ValueError(f"Severity weight must be in [0, 1), got {severity}={weight}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ConflictConfig":
        """Create from main config dictionary."""
        c = config.get("conflicts", {}) or {}
        defaults = cls()
        return cls(
            energy_thresholds=c.get("energy_thresholds", defaults.energy_thresholds),
            social_thresholds=c.get("social_thresholds", defaults.social_thresholds),
            risk_thresholds=c.get("risk_thresholds", defaults.risk_thresholds),
            experience_thresholds=c.get("experience_thresholds", defaults.experience_thresholds),
            communication_threshold=c.get("communication_threshold", defaults.communication_threshold),
            strong_leader_threshold=c.get("strong_leader_threshold", defaults.strong_leader_threshold),
            critical_leader_threshold=c.get("critical_leader_threshold", defaults.critical_leader_threshold),
            severity_weights=c.get("severity_weights", defaults.severity_weights),
            include_minor=c.get("include_minor", defaults.include_minor),
        )


@dataclass
class Conflict:
    """One flagged conflict between two participants."""
    category: str
    participants: Tuple[str, str]
    severity: str
    difference: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["participants"] = list(self.participants)
        return d


@dataclass
class ConflictReport:
    """
    Conflict report for a set of participants.

    Attributes:
        conflicts: Category name -> list of Conflict
        severity_breakdown: Count of findings per severity
        overall_risk: Aggregate risk in [0, 1]
        risk_level: low / medium / high / critical
        participant_count: Number of participants analysed
    """
    conflicts: Dict[str, List[Conflict]]
    severity_breakdown: Dict[str, int]
    overall_risk: float
    risk_level: str
    participant_count: int

    @property
    def total_conflicts(self) -> int:
        return sum(len(items) for items in self.conflicts.values())

    def all_conflicts(self) -> List[Conflict]:
        return [c for category in CATEGORIES for c in self.conflicts.get(category, [])]

    def summary(self) -> Dict[str, Any]:
        """Compact summary used on partitioned groups."""
        return {
            "total_conflicts": self.total_conflicts,
            "severity_breakdown": dict(self.severity_breakdown),
            "overall_risk": self.overall_risk,
            "risk_level": self.risk_level,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conflicts": {k: [c.to_dict() for c in v] for k, v in self.conflicts.items()},
            "severity_breakdown": dict(self.severity_breakdown),
            "overall_risk": self.overall_risk,
            "risk_level": self.risk_level,
            "participant_count": self.participant_count,
            "total_conflicts": self.total_conflicts,
        }


def _classify(difference: float, thresholds: Dict[str, float]) -> Optional[str]:
    """Return the highest severity whose threshold is exceeded."""
    found = None
    for severity in SEVERITIES:
        threshold = thresholds.get(severity)
        if threshold is not None and difference > threshold:
            found = severity
    return found


class ConflictDetector:
    """
    Detector of pairwise interpersonal conflict risks.

    Attributes:
        config: ConflictConfig with thresholds and severity weights
    """

    def __init__(self, config: Optional[ConflictConfig] = None):
        self.config = config or ConflictConfig()
        self.config.validate()

    def detect(
        self,
        participants: Sequence[Participant],
        include_minor: Optional[bool] = None
    ) -> ConflictReport:
        """
        Evaluate all rule sets for every unordered pair.

        Args:
            participants: Participants to analyse
            include_minor: Override config.include_minor

        Returns:
            ConflictReport
        """
        if include_minor is None:
            include_minor = self.config.include_minor

        conflicts: Dict[str, List[Conflict]] = {category: [] for category in CATEGORIES}
        for i in range(len(participants)):
            for j in range(i + 1, len(participants)):
                for conflict in self.pair_conflicts(participants[i], participants[j]):
                    if conflict.severity == "minor" and not include_minor:
                        continue
                    conflicts[conflict.category].append(conflict)

        breakdown = {severity: 0 for severity in SEVERITIES}
        for category in CATEGORIES:
            for conflict in conflicts[category]:
                breakdown[conflict.severity] += 1

        overall_risk = self._overall_risk(breakdown)
        report = ConflictReport(
            conflicts=conflicts,
            severity_breakdown=breakdown,
            overall_risk=overall_risk,
            risk_level=self._risk_level(breakdown),
            participant_count=len(participants),
        )
        logger.debug(f"Detected {report.total_conflicts} conflicts among "
                     f"{len(participants)} participants (risk={overall_risk:.3f})")
        return report

    def pair_conflicts(self, a: Participant, b: Participant) -> List[Conflict]:
        """
        Evaluate all rule sets for one pair.

        Args:
            a: First participant
            b: Second participant

        Returns:
            List of Conflict (possibly empty)
        """
        found = []
        pair = (a.id, b.id)
        pa, pb = a.profile, b.profile

        def usable(dim: str) -> bool:
            return not (pa.is_defaulted(dim) or pb.is_defaulted(dim))

        for category, dim, thresholds, label in [
            ("energy", "energy_level", self.config.energy_thresholds, "energy level mismatch"),
            ("social", "social_preference", self.config.social_thresholds, "introvert-extrovert mismatch"),
            ("risk", "risk_tolerance", self.config.risk_thresholds, "risk tolerance difference"),
            ("experience", "experience_level", self.config.experience_thresholds, "experience gap"),
        ]:
            if not usable(dim):
                continue
            difference = abs(pa[dim] - pb[dim])
            severity = _classify(difference, thresholds)
            if severity:
                found.append(Conflict(
                    category=category,
                    participants=pair,
                    severity=severity,
                    difference=round(difference, 2),
                    description=f"{label.capitalize()} ({difference:.0f} points)",
                ))

        if usable("leadership_style"):
            lead_a, lead_b = pa["leadership_style"], pb["leadership_style"]
            strong = self.config.strong_leader_threshold
            if lead_a > strong and lead_b > strong:
                critical = min(lead_a, lead_b) >= self.config.critical_leader_threshold
                found.append(Conflict(
                    category="leadership",
                    participants=pair,
                    severity="critical" if critical else "major",
                    difference=round(abs(lead_a - lead_b), 2),
                    description="Multiple strong leaders may compete for control",
                ))

        if usable("age"):
            age_a, age_b = pa["age"], pb["age"]
            gap = abs(age_a - age_b)
            average_age = (age_a + age_b) / 2
            threshold = 15 if average_age < 30 else 25 if average_age < 50 else 30
            if gap > threshold:
                found.append(Conflict(
                    category="age",
                    participants=pair,
                    severity="major" if gap > threshold * 1.5 else "minor",
                    difference=round(gap, 2),
                    description=f"Age gap of {gap:.0f} years",
                ))

        if usable("communication_style"):
            difference = abs(pa["communication_style"] - pb["communication_style"])
            if difference > self.config.communication_threshold:
                found.append(Conflict(
                    category="communication",
                    participants=pair,
                    severity="minor",
                    difference=round(difference, 2),
                    description="Significantly different communication styles",
                ))

        return found

    def pair_penalty(self, a: Participant, b: Participant) -> float:
        """Sum of severity weights of all findings for one pair."""
        weights = self.config.severity_weights
        return float(sum(weights.get(c.severity, 0.0) for c in self.pair_conflicts(a, b)))

    def pair_penalty_matrix(self, participants: Sequence[Participant]) -> np.ndarray:
        """
        Severity-weighted conflict matrix used by the partitioner.

        Args:
            participants: Participants to analyse

        Returns:
            Symmetric numpy array (n x n) with zero diagonal
        """
        n = len(participants)
        matrix = np.zeros((n, n))
        for i in range(n):
            for j in range(i + 1, n):
                penalty = self.pair_penalty(participants[i], participants[j])
                matrix[i, j] = penalty
                matrix[j, i] = penalty
        return matrix

    def _overall_risk(self, breakdown: Dict[str, int]) -> float:
        weights = self.config.severity_weights
        survival = 1.0
        for severity, count in breakdown.items():
            survival *= (1.0 - weights.get(severity, 0.0)) ** count
        return round(float(min(1.0, max(0.0, 1.0 - survival))), 4)

    @staticmethod
    def _risk_level(breakdown: Dict[str, int]) -> str:
        if breakdown["critical"] > 0:
            return "critical"
        if breakdown["major"] > 2:
            return "high"
        if breakdown["major"] > 0 or breakdown["minor"] > 3:
            return "medium"
        return "low"


_RESOLUTIONS = {
    "energy": ("high", "Energy Level Management",
               "Alternate high and low-intensity activities and schedule rest periods"),
    "social": ("medium", "Social Preference Balance",
               "Mix group activities with individual reflection time"),
    "risk": ("high", "Risk Level Accommodation",
             "Offer beginner, intermediate and advanced activity options"),
    "leadership": ("medium", "Leadership Structure",
                   "Assign separate leadership domains or rotate responsibilities"),
    "age": ("low", "Age-Aware Planning",
            "Consider age-appropriate activity modifications"),
    "experience": ("low", "Mentoring Pairs",
                   "Pair experienced with inexperienced travelers"),
    "communication": ("low", "Communication Awareness",
                      "Agree on how decisions are discussed before the trip"),
}


def suggest_resolutions(report: ConflictReport) -> List[Dict[str, Any]]:
    """
    Produce one resolution suggestion per conflict category present.

    Args:
        report: ConflictReport from ConflictDetector.detect

    Returns:
        List of suggestion dictionaries (type, priority, title, description)
    """
    suggestions = []
    for category in CATEGORIES:
        if report.conflicts.get(category):
            priority, title, description = _RESOLUTIONS[category]
            suggestions.append({
                "type": category,
                "priority": priority,
                "title": title,
                "description": description,
                "affected_pairs": [list(c.participants) for c in report.conflicts[category]],
            })
    return suggestions


def predict_group_success(group_size: int, report: ConflictReport) -> Dict[str, Any]:
    """
    Heuristic success prediction for a group.

    Starts from 85, subtracts 15/8/3 per critical/major/minor finding and adds
    3 for a group size between 4 and 8.

    Args:
        group_size: Number of participants in the group
        report: ConflictReport for the group

    Returns:
        Dictionary with success_score, prediction and confidence
    """
    breakdown = report.severity_breakdown
    score = 85
    score -= breakdown.get("critical", 0) * 15
    score -= breakdown.get("major", 0) * 8
    score -= breakdown.get("minor", 0) * 3
    if 4 <= group_size <= 8:
        score += 3
    score = max(0, min(100, score))

    if score >= 80:
        prediction = "excellent"
    elif score >= 70:
        prediction = "good"
    elif score >= 60:
        prediction = "fair"
    elif score >= 50:
        prediction = "challenging"
    else:
        prediction = "high_risk"

    return {
        "success_score": score,
        "prediction": prediction,
        "confidence": "high" if breakdown.get("critical", 0) == 0 else "medium",
    }
