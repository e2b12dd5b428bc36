"""
data_loader.py — Read side of the CRM record stores.

The CRM hands the engine one JSON document:

    {"users": [...], "leads": [...], "meetings": [...], "contracts": [...]}

Records are parsed once into model objects and never mutated afterwards.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from sales_analytics.models import Contract, Lead, Meeting, User

logger = logging.getLogger(__name__)


@dataclass
class Dataset:
    users: list[User] = field(default_factory=list)
    leads: list[Lead] = field(default_factory=list)
    meetings: list[Meeting] = field(default_factory=list)
    contracts: list[Contract] = field(default_factory=list)

    def find_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == str(user_id)), None)


def dataset_from_records(payload: dict[str, Any]) -> Dataset:
    """Build a Dataset from the CRM's raw record lists.

    Args:
        payload: Dict with optional 'users', 'leads', 'meetings', 'contracts' lists.

    Returns:
        Parsed Dataset.
    """
    ds = Dataset(
        users=[User.from_record(r) for r in payload.get("users") or []],
        leads=[Lead.from_record(r) for r in payload.get("leads") or []],
        meetings=[Meeting.from_record(r) for r in payload.get("meetings") or []],
        contracts=[Contract.from_record(r) for r in payload.get("contracts") or []],
    )
    logger.debug(
        "Parsed dataset: %d users | %d leads | %d meetings | %d contracts",
        len(ds.users), len(ds.leads), len(ds.meetings), len(ds.contracts),
    )
    return ds


def load_dataset(path: str) -> Dataset:
    """Load the CRM record dump from disk.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid JSON.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(
            f"Dataset not found at {p}. Run --generate-data first."
        )
    try:
        with open(p, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Dataset at {p} is not valid JSON: {exc}") from exc

    ds = dataset_from_records(payload)
    logger.info(
        "Loaded %s: %d users, %d leads, %d meetings, %d contracts",
        p, len(ds.users), len(ds.leads), len(ds.meetings), len(ds.contracts),
    )
    return ds
