"""
Data loading functions for participant profiles.

This module loads participant records from CSV/TSV or JSON files and can
generate reproducible synthetic participants for demonstrations.
No scoring is done here; every record goes through the profile
normalization boundary on its way in.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional

import numpy as np
import pandas as pd

from ..profiles.schema import Participant, TRAIT_DIMENSIONS

logger = logging.getLogger(__name__)

ID_COLUMNS = ["id", "participant_id", "user_id"]


def load_participant_table(filepath: str, delimiter: Optional[str] = None) -> pd.DataFrame:
    """
    Load a participant table from CSV/TSV.

    The table should contain:
    - One id column (id, participant_id or user_id)
    - One column per trait dimension (missing columns are defaulted later)
    - Each row represents one participant

    Args:
        filepath: Path to the data file
        delimiter: Field delimiter (default: tab for .tsv, comma otherwise)

    Returns:
        DataFrame with raw participant data

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is empty or has no id column
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Participant data file not found: {filepath}")

    if delimiter is None:
        delimiter = "\t" if path.suffix.lower() == ".tsv" else ","

    logger.info(f"Loading participants from {filepath} (delimiter: {repr(delimiter)})")
    df = pd.read_csv(filepath, sep=delimiter)

    if df.empty:
        raise ValueError(f"Participant data file is empty: {filepath}")

    if not any(c in df.columns for c in ID_COLUMNS):
        raise ValueError(f"Participant data has no id column (expected one of {ID_COLUMNS})")

    missing = validate_participant_columns(df)
    if missing:
        logger.warning(f"Trait columns missing, values will be defaulted: {missing}")

    logger.info(f"Loaded {len(df)} rows with {len(df.columns)} columns")
    return df


def validate_participant_columns(df: pd.DataFrame) -> List[str]:
    """
    Check which trait dimensions have no column in the DataFrame.

    camelCase column names count as present.

    Returns:
        List of missing dimension names (empty if all present)
    """
    present = {c.lower().replace("_", "") for c in df.columns}
    return [dim for dim in TRAIT_DIMENSIONS if dim.replace("_", "") not in present]


def load_participants(filepath: str, delimiter: Optional[str] = None) -> List[Participant]:
    """
    Load participants from a CSV/TSV or JSON file.

    JSON files hold a list of records, each with an id and either a nested
    "traits" mapping or flat trait keys.

    Args:
        filepath: Path to the data file
        delimiter: Field delimiter for CSV/TSV

    Returns:
        List of Participant

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If records lack ids or ids are duplicated
    """
    path = Path(filepath)
    if path.suffix.lower() == ".json":
        if not path.exists():
            raise FileNotFoundError(f"Participant data file not found: {filepath}")
        with open(path, "r") as f:
            records = json.load(f)
        if isinstance(records, dict):
            records = records.get("participants", [])
    else:
        df = load_participant_table(filepath, delimiter=delimiter)
        records = df.to_dict(orient="records")

    participants = [Participant.from_dict(record) for record in records]
    if not participants:
        raise ValueError(f"No participant records in {filepath}")

    ids = [p.id for p in participants]
    if len(set(ids)) != len(ids):
        duplicates = sorted({pid for pid in ids if ids.count(pid) > 1})
        raise ValueError(f"Duplicate participant ids: {duplicates[:10]}")

    defaulted = sum(1 for p in participants if p.profile.defaulted)
    if defaulted:
        logger.warning(f"{defaulted} participants have defaulted trait values")

    logger.info(f"Loaded {len(participants)} participants")
    return participants


def create_synthetic_participants(n: int = 24, random_seed: int = 42) -> List[Participant]:
    """
    Create synthetic participants for demonstration when real data is unavailable.

    Trait values are drawn around the scale midpoint and clipped to [0, 100];
    ages are drawn uniformly from 18 to 70.

    Args:
        n: Number of participants
        random_seed: Seed for reproducibility

    Returns:
        List of Participant
    """
    rng = np.random.RandomState(random_seed)
    participants = []
    for i in range(n):
        traits: Dict[str, Any] = {}
        for dim in TRAIT_DIMENSIONS:
            if dim == "age":
                traits[dim] = int(rng.randint(18, 71))
            else:
                traits[dim] = float(np.clip(rng.normal(50, 22), 0, 100).round(1))
        participants.append(Participant.create(f"p{i + 1:03d}", traits))
    logger.info(f"Created {n} synthetic participants (seed={random_seed})")
    return participants


def participants_to_frame(participants: List[Participant]) -> pd.DataFrame:
    """Flatten participants into a DataFrame (one row each, one column per dimension)."""
    rows = []
    for p in participants:
        row = {"id": p.id}
        row.update(p.profile.values)
        row["confidence"] = p.profile.confidence
        rows.append(row)
    return pd.DataFrame(rows, columns=["id"] + TRAIT_DIMENSIONS + ["confidence"])
