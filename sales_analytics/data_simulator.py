"""
data_simulator.py — Synthetic CRM Dataset Generator.

Generates the JSON record dump the report engine reads, shaped like an
export from the CRM backend:

    users      — admin, sales admin, team leaders (one per team), sales reps,
                 plus one team leader with no linked team
    leads      — owned by reps and leaders, every lifecycle status and source,
                 with embedded call and visit histories
    meetings   — assigned to reps and leaders
    contracts  — created by reps and leaders, Signed / Pending / Cancelled

Dates are ISO strings, with a configurable share written as "N/A" or
"------" and some in day-first "DD/MM/YYYY" form, as in the live data.
"""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import numpy as np

from sales_analytics.config import load_config
from sales_analytics.models import LeadStatus, Role

logger = logging.getLogger(__name__)

SOURCES = ["Facebook", "Instagram", "Website", "Referral", "Walk-in", "Cold Call"]
CALL_OUTCOMES = ["Interested", "Call back", "No answer", "Not interested", "Booked visit"]
VISIT_STATUSES = ["Completed", "Scheduled", "Cancelled"]
MEETING_STATUSES = ["Completed", "Scheduled", "Cancelled"]
MEETING_TYPES = ["Site visit", "Office", "Online"]
CONTRACT_STATUSES = ["Signed", "Pending", "Cancelled"]
PROPERTIES = ["Palm Hills Villa", "New Cairo Apartment", "Sheikh Zayed Duplex",
              "North Coast Chalet", "Maadi Penthouse"]
FIRST_NAMES = ["Omar", "Sara", "Youssef", "Mona", "Karim", "Nour", "Ahmed",
               "Laila", "Hassan", "Dina", "Tarek", "Rana"]
LAST_NAMES = ["Hassan", "Adel", "Farouk", "Samir", "Mostafa", "Kamal", "Nabil"]
MALFORMED_DATES = ["N/A", "------"]

# Weighted towards active pipeline statuses
_STATUS_WEIGHTS = np.array([14, 14, 10, 10, 9, 7, 12, 5, 5, 7, 7], dtype=float)


def _person(rng: np.random.Generator) -> str:
    return f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}"


def _date_text(moment: datetime, rng: np.random.Generator, bad_rate: float) -> str:
    """Render a date the way the CRM stores it, occasionally malformed."""
    roll = rng.random()
    if roll < bad_rate:
        return str(rng.choice(MALFORMED_DATES))
    if roll < bad_rate * 2:
        return moment.strftime("%d/%m/%Y")
    return moment.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _past(now: datetime, rng: np.random.Generator, days: int) -> datetime:
    offset = timedelta(days=int(rng.integers(0, days)), minutes=int(rng.integers(0, 600)))
    return (now - offset).replace(second=0, microsecond=0)


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------

def _generate_users(sim: dict[str, Any], rng: np.random.Generator) -> list[dict]:
    users = [
        {"id": "u-admin", "name": "Admin User", "role": Role.ADMIN.value,
         "email": "admin@example.com"},
        {"id": "u-sales-admin", "name": "Sales Admin", "role": Role.SALES_ADMIN.value,
         "email": "sales.admin@example.com"},
    ]
    for t in range(1, sim["teams"] + 1):
        team_id = f"team-{t}"
        leader_id = f"u-tl-{t}"
        users.append({
            "id": leader_id, "name": _person(rng), "role": Role.TEAM_LEADER.value,
            "teamId": team_id, "email": f"leader{t}@example.com",
        })
        for r in range(1, sim["reps_per_team"] + 1):
            users.append({
                "id": f"u-rep-{t}-{r}", "name": _person(rng),
                "role": Role.SALES_REP.value, "teamId": team_id,
                "teamLeaderId": leader_id, "email": f"rep{t}{r}@example.com",
            })
    # Leader with no team link: report scope falls back to everyone
    users.append({
        "id": "u-tl-unlinked", "name": _person(rng),
        "role": Role.TEAM_LEADER.value, "email": "leader.unlinked@example.com",
    })
    return users


def _generate_leads(
    owners: list[dict],
    sim: dict[str, Any],
    rng: np.random.Generator,
    now: datetime,
) -> list[dict]:
    statuses = [s.value for s in LeadStatus]
    weights = _STATUS_WEIGHTS / _STATUS_WEIGHTS.sum()
    bad = sim["malformed_date_rate"]
    days = sim["days_history"]
    leads = []

    for owner in owners:
        for i in range(sim["leads_per_rep"]):
            created = _past(now, rng, days)
            status = str(rng.choice(statuses, p=weights))

            calls = []
            for _ in range(int(rng.integers(0, 5))):
                when = created + timedelta(days=int(rng.integers(0, 30)))
                calls.append({
                    "date": _date_text(min(when, now), rng, bad),
                    "duration": f"{int(rng.integers(1, 15))}:{int(rng.integers(0, 60)):02d}",
                    "outcome": str(rng.choice(CALL_OUTCOMES)),
                    "notes": "",
                })
            visits = []
            for _ in range(int(rng.integers(0, 3))):
                when = created + timedelta(days=int(rng.integers(1, 45)))
                visits.append({
                    "date": _date_text(min(when, now), rng, bad),
                    "status": str(rng.choice(VISIT_STATUSES)),
                    "notes": "",
                })

            name = _person(rng)
            leads.append({
                "id": f"lead-{owner['id']}-{i + 1}",
                "nameEn": name,
                "contact": f"+2010{int(rng.integers(10_000_000, 99_999_999))}",
                "email": f"{name.lower().replace(' ', '.')}@mail.com",
                "status": status,
                "source": str(rng.choice(SOURCES)),
                "budget": float(rng.integers(20, 400)) * 50_000,
                "owner": {"id": owner["id"], "name": owner["name"]},
                "createdAt": _date_text(created, rng, bad),
                "lastCallDate": calls[-1]["date"] if calls else None,
                "lastVisitDate": visits[-1]["date"] if visits else None,
                "calls": calls,
                "visits": visits,
            })
    return leads


def _generate_meetings(
    owners: list[dict],
    sim: dict[str, Any],
    rng: np.random.Generator,
    now: datetime,
) -> list[dict]:
    meetings = []
    for owner in owners:
        for i in range(sim["meetings_per_rep"]):
            when = _past(now, rng, sim["days_history"])
            meetings.append({
                "id": f"meeting-{owner['id']}-{i + 1}",
                "title": f"Meeting {i + 1}",
                "client": _person(rng),
                "date": _date_text(when, rng, sim["malformed_date_rate"]),
                "time": when.strftime("%H:%M"),
                "duration": f"{int(rng.choice([30, 45, 60, 90]))} min",
                "type": str(rng.choice(MEETING_TYPES)),
                "status": str(rng.choice(MEETING_STATUSES, p=[0.55, 0.35, 0.10])),
                "location": str(rng.choice(["Head office", "Site", ""])),
                "notes": "",
                "assignedToId": owner["id"],
                "assignedTo": owner["name"],
            })
    return meetings


def _generate_contracts(
    owners: list[dict],
    sim: dict[str, Any],
    rng: np.random.Generator,
    now: datetime,
) -> list[dict]:
    contracts = []
    for owner in owners:
        for i in range(sim["contracts_per_rep"]):
            when = _past(now, rng, sim["days_history"])
            contracts.append({
                "id": f"contract-{owner['id']}-{i + 1}",
                "leadName": _person(rng),
                "property": str(rng.choice(PROPERTIES)),
                "dealValue": round(abs(float(rng.normal(3_500_000, 1_200_000))), 2),
                "contractDate": _date_text(when, rng, sim["malformed_date_rate"]),
                "status": str(rng.choice(CONTRACT_STATUSES, p=[0.6, 0.3, 0.1])),
                "notes": "",
                "createdById": owner["id"],
                "createdBy": owner["name"],
            })
    return contracts


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate_dataset(cfg: dict[str, Any], now: Optional[datetime] = None) -> dict[str, list]:
    """Build a complete synthetic CRM dump.

    Args:
        cfg: Full configuration dictionary.
        now: Anchor for relative dates; defaults to the current time.

    Returns:
        Dict with 'users', 'leads', 'meetings' and 'contracts' record lists.
    """
    sim = cfg["data_simulation"]
    rng = np.random.default_rng(sim["seed"])
    now = now or datetime.now()

    users = _generate_users(sim, rng)
    sellers = [
        u for u in users
        if u["role"] in (Role.SALES_REP.value, Role.TEAM_LEADER.value)
    ]
    return {
        "users": users,
        "leads": _generate_leads(sellers, sim, rng, now),
        "meetings": _generate_meetings(sellers, sim, rng, now),
        "contracts": _generate_contracts(sellers, sim, rng, now),
    }


def generate_demo_dataset(config_path: str = "config.yaml") -> Path:
    """Generate the synthetic dataset and write it to `paths.data_file`.

    Args:
        config_path: Path to configuration YAML.

    Returns:
        Path of the written JSON file.
    """
    cfg = load_config(config_path)
    logger.info("Starting dataset generation (seed=%d)", cfg["data_simulation"]["seed"])

    payload = generate_dataset(cfg)
    path = Path(cfg["paths"]["data_file"])
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)

    for key, records in payload.items():
        logger.info("Written %s: %d rows -> %s", key, len(records), path)
    return path
