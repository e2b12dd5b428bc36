"""
models.py — Record types consumed by the analytics engine.

The CRM owns users, leads, meetings and contracts; this module only reads
them. Records arrive as camelCase dicts (the CRM's JSON payloads) and are
turned into frozen dataclasses with snake_case attributes.

Dates are kept raw and parsed lazily with `parse_date`, which never raises:
anything unparseable is simply "no date".
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Optional

import pandas as pd

logger = logging.getLogger(__name__)

NO_ACTIVITY = "No activity"
END_OF_DAY = time(23, 59, 59, 999000)

_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DAY_FIRST = re.compile(r"^(\d{2})/(\d{2})/(\d{4})")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Role(Enum):
    """Position of a user in the sales hierarchy."""
    ADMIN = "admin"
    SALES_ADMIN = "sales_admin"
    TEAM_LEADER = "team_leader"
    SALES_REP = "sales_rep"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Accept both stored values ('team_leader') and labels ('Team Leader')."""
        if isinstance(value, Role):
            return value
        key = re.sub(r"[\s\-]+", "_", str(value or "").strip().lower())
        return cls(key)


class LeadStatus(Enum):
    FRESH_LEAD = "fresh_lead"
    FOLLOW_UP = "follow_up"
    SCHEDULED_VISIT = "scheduled_visit"
    OPEN_DEAL = "open_deal"
    CLOSED_DEAL = "closed_deal"
    CANCELLATION = "cancellation"
    NO_ANSWER = "no_answer"
    VIP = "vip"
    NON_STOP = "non_stop"
    NOT_INTERESTED_NOW = "not_intersted_now"
    RESERVATION = "reservation"

    @classmethod
    def _missing_(cls, value):
        # The CRM stores both spellings of "not interested now"
        if value == "not_interested_now":
            return cls.NOT_INTERESTED_NOW
        return None


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def parse_date(value: Any) -> Optional[datetime]:
    """Parse a record date into a naive datetime.

    Handles ISO strings ('2024-03-15', '2024-03-15T10:00:00Z'), day-first
    strings ('15/03/2024'), and date/datetime objects. Placeholders such as
    'N/A' or '------' and anything else unparseable return None.

    Args:
        value: Raw date value from a record.

    Returns:
        Naive datetime, or None when the value carries no usable date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    match = _DAY_FIRST.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        try:
            return datetime(year, month, day)
        except ValueError:
            return None
    if not _ISO_PREFIX.match(text):
        return None

    ts = pd.to_datetime(text, errors="coerce")
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts.to_pydatetime()


def _to_float(value: Any) -> float:
    """Numeric field value; non-numeric, NaN and infinite values become 0.0."""
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(str(value).replace(",", "").strip())
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _ref_id(value: Any) -> Optional[str]:
    """Extract an id from either a nested record or a bare id."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        return _ref_id(value.get("id"))
    return str(value)


def _text(value: Any, default: str = "") -> str:
    return default if value is None else str(value)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class User:
    id: str
    name: str
    role: Role
    team_id: Optional[str] = None
    team_leader_id: Optional[str] = None
    email: str = ""

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> "User":
        return cls(
            id=str(rec["id"]),
            name=_text(rec.get("name")),
            role=Role.parse(rec.get("role")),
            team_id=_ref_id(rec.get("teamId")),
            team_leader_id=_ref_id(rec.get("teamLeaderId")),
            email=_text(rec.get("email")),
        )


@dataclass(frozen=True)
class Call:
    date: Any = None
    duration: str = ""
    outcome: str = ""
    notes: str = ""

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> "Call":
        return cls(
            date=rec.get("date"),
            duration=_text(rec.get("duration")),
            outcome=_text(rec.get("outcome")),
            notes=_text(rec.get("notes")),
        )


@dataclass(frozen=True)
class Visit:
    date: Any = None
    status: str = ""
    notes: str = ""

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> "Visit":
        return cls(
            date=rec.get("date"),
            status=_text(rec.get("status")),
            notes=_text(rec.get("notes")),
        )


@dataclass(frozen=True)
class Lead:
    """A prospect owned by one user, with its call and visit history."""
    id: str
    owner_id: Optional[str]
    status: Optional[LeadStatus]
    source: str = ""
    budget: float = 0.0
    created_at: Any = None
    last_call_date: Any = None
    last_visit_date: Any = None
    calls: tuple[Call, ...] = ()
    visits: tuple[Visit, ...] = ()
    name: str = ""
    contact: str = ""
    email: str = ""

    @property
    def status_label(self) -> str:
        return self.status.value if self.status else "unknown"

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> "Lead":
        owner = rec.get("owner")
        if owner is None:
            owner = rec.get("ownerId") or rec.get("assignedToId")

        raw_status = rec.get("status")
        try:
            status = LeadStatus(raw_status) if raw_status else None
        except ValueError:
            logger.warning("Lead %s has unknown status %r", rec.get("id"), raw_status)
            status = None

        return cls(
            id=str(rec["id"]),
            owner_id=_ref_id(owner),
            status=status,
            source=_text(rec.get("source")),
            budget=_to_float(rec.get("budget")),
            created_at=rec.get("createdAt"),
            last_call_date=rec.get("lastCallDate"),
            last_visit_date=rec.get("lastVisitDate"),
            calls=tuple(Call.from_record(c) for c in rec.get("calls") or []),
            visits=tuple(Visit.from_record(v) for v in rec.get("visits") or []),
            name=_text(rec.get("nameEn") or rec.get("nameAr") or rec.get("name"), "N/A"),
            contact=_text(rec.get("contact") or rec.get("phone")),
            email=_text(rec.get("email")),
        )


@dataclass(frozen=True)
class Meeting:
    assigned_to_id: Optional[str]
    date: Any = None
    status: str = ""
    client: str = ""
    title: str = ""
    time: str = ""
    duration: str = ""
    type: str = ""
    location: str = ""
    notes: str = ""

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> "Meeting":
        return cls(
            assigned_to_id=_ref_id(rec.get("assignedToId")),
            date=rec.get("date"),
            status=_text(rec.get("status")),
            client=_text(rec.get("client")),
            title=_text(rec.get("title")),
            time=_text(rec.get("time")),
            duration=_text(rec.get("duration")),
            type=_text(rec.get("type")),
            location=_text(rec.get("location")),
            notes=_text(rec.get("notes")),
        )


@dataclass(frozen=True)
class Contract:
    created_by_id: Optional[str]
    deal_value: float = 0.0
    contract_date: Any = None
    status: str = ""
    lead_name: str = ""
    property: str = ""
    notes: str = ""

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> "Contract":
        lead = rec.get("lead") if isinstance(rec.get("lead"), dict) else {}
        return cls(
            created_by_id=_ref_id(rec.get("createdById")),
            deal_value=_to_float(rec.get("dealValue")),
            contract_date=rec.get("contractDate"),
            status=_text(rec.get("status")),
            lead_name=_text(
                rec.get("leadName") or lead.get("nameEn") or lead.get("nameAr"), "N/A"
            ),
            property=_text(rec.get("property"), "N/A"),
            notes=_text(rec.get("notes")),
        )


# ---------------------------------------------------------------------------
# Date range
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DateRange:
    """Inclusive reporting window; a None bound is open on that side."""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @property
    def is_bounded(self) -> bool:
        return self.start_date is not None or self.end_date is not None

    def contains(self, moment: Optional[datetime]) -> bool:
        """True when `moment` lies inside the window.

        A missing date is only inside an unbounded window.
        """
        if moment is None:
            return not self.is_bounded
        if self.start_date is not None and moment < self.start_date:
            return False
        if self.end_date is not None and moment > self.end_date:
            return False
        return True

    def contains_raw(self, value: Any) -> bool:
        return self.contains(parse_date(value))

    def label(self) -> str:
        start = self.start_date.strftime("%Y-%m-%d") if self.start_date else "all"
        end = self.end_date.strftime("%Y-%m-%d") if self.end_date else "all"
        if start == "all" and end == "all":
            return "All time"
        return f"{start} to {end}"


ALL_TIME = DateRange()


@dataclass(frozen=True)
class NotTracked:
    """Marker for a metric with no backing data source.

    Exported as 'N/A' instead of a fabricated number.
    """
    reason: str = field(default="no data source")

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return "N/A"


NOT_TRACKED = NotTracked()
