"""
conftest.py — Shared record builders and small datasets for the test suite.
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from sales_analytics.data_loader import Dataset, dataset_from_records
from sales_analytics.models import Contract, Lead, Meeting, User

NOW = datetime(2024, 3, 15, 10, 0, 0)


def user_record(uid, role="sales_rep", name=None, team_id=None, leader_id=None):
    rec = {"id": uid, "name": name or uid.title(), "role": role,
           "email": f"{uid}@example.com"}
    if team_id:
        rec["teamId"] = team_id
    if leader_id:
        rec["teamLeaderId"] = leader_id
    return rec


def lead_record(lid, owner, status="fresh_lead", created="2024-03-10",
                calls=(), visits=(), source="Website", **extra):
    rec = {
        "id": lid,
        "nameEn": f"Lead {lid}",
        "contact": "+201000000000",
        "status": status,
        "source": source,
        "budget": 1_000_000,
        "owner": {"id": owner},
        "createdAt": created,
        "calls": list(calls),
        "visits": list(visits),
    }
    rec.update(extra)
    return rec


def meeting_record(mid, assignee, date="2024-03-12", status="Completed", **extra):
    rec = {"id": mid, "title": f"Meeting {mid}", "client": "Client",
           "date": date, "status": status, "assignedToId": assignee}
    rec.update(extra)
    return rec


def contract_record(cid, creator, value=1000.0, date="2024-03-11", status="Signed"):
    return {"id": cid, "leadName": f"Lead for {cid}", "property": "Villa",
            "dealValue": value, "contractDate": date, "status": status,
            "createdById": creator}


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_user():
    def _make(uid, role="sales_rep", **kw):
        return User.from_record(user_record(uid, role, **kw))
    return _make


@pytest.fixture
def make_lead():
    def _make(lid, owner, **kw):
        return Lead.from_record(lead_record(lid, owner, **kw))
    return _make


@pytest.fixture
def make_meeting():
    def _make(mid, assignee, **kw):
        return Meeting.from_record(meeting_record(mid, assignee, **kw))
    return _make


@pytest.fixture
def make_contract():
    def _make(cid, creator, **kw):
        return Contract.from_record(contract_record(cid, creator, **kw))
    return _make


@pytest.fixture
def roster_records():
    """Admin, sales admin, two linked teams and one leader with no team."""
    return [
        user_record("admin", "admin"),
        user_record("sadmin", "sales_admin"),
        user_record("tl1", "team_leader", team_id="t1"),
        user_record("rep1", "sales_rep", team_id="t1", leader_id="tl1"),
        user_record("rep2", "sales_rep", team_id="t1", leader_id="tl1"),
        user_record("tl2", "team_leader", team_id="t2"),
        user_record("rep3", "sales_rep", team_id="t2", leader_id="tl2"),
        user_record("tl3", "team_leader"),
    ]


@pytest.fixture
def roster(roster_records):
    return [User.from_record(r) for r in roster_records]


@pytest.fixture
def two_rep_dataset() -> Dataset:
    """tl1 leads rep_a (4 leads, 2 closed) and rep_b (6 leads, 0 closed)."""
    leads = [lead_record(f"a{i}", "rep_a", status="closed_deal" if i < 2 else "fresh_lead")
             for i in range(4)]
    leads += [lead_record(f"b{i}", "rep_b") for i in range(6)]
    return dataset_from_records({
        "users": [
            user_record("admin", "admin"),
            user_record("tl1", "team_leader", team_id="t1"),
            user_record("rep_a", "sales_rep", team_id="t1", leader_id="tl1"),
            user_record("rep_b", "sales_rep", team_id="t1", leader_id="tl1"),
        ],
        "leads": leads,
        "meetings": [],
        "contracts": [],
    })


@pytest.fixture
def rich_dataset() -> Dataset:
    """Small team with calls, visits, meetings and contracts in March 2024."""
    calls = [
        {"date": "2024-03-11T09:00:00Z", "duration": "5:30", "outcome": "Interested"},
        {"date": "2024-03-12", "duration": "2:00", "outcome": "Call back"},
    ]
    visits = [
        {"date": "2024-03-13", "status": "Completed"},
        {"date": "2024-03-14", "status": "Scheduled"},
    ]
    return dataset_from_records({
        "users": [
            user_record("admin", "admin"),
            user_record("tl1", "team_leader", name="Team Lead One", team_id="t1"),
            user_record("rep1", "sales_rep", team_id="t1", leader_id="tl1"),
            user_record("rep2", "sales_rep", team_id="t1", leader_id="tl1"),
            user_record("solo", "sales_rep"),
        ],
        "leads": [
            lead_record("l1", "rep1", status="closed_deal", calls=calls, visits=visits,
                        lastCallDate="2024-03-12", lastVisitDate="2024-03-14"),
            lead_record("l2", "rep1", status="no_answer", source="Facebook",
                        calls=[{"date": "2024-03-13", "duration": "1:00",
                                "outcome": "No answer"}]),
            lead_record("l3", "rep2", status="open_deal", source="Referral"),
            lead_record("l4", "rep2", status="not_intersted_now", created="N/A"),
            lead_record("l5", "rep2", status="reservation", created="2023-01-01"),
        ],
        "meetings": [
            meeting_record("m1", "rep1"),
            meeting_record("m2", "rep1", status="Scheduled"),
            meeting_record("m3", "rep2", date="2024-01-05"),
        ],
        "contracts": [
            contract_record("c1", "rep1", value=2000.0),
            contract_record("c2", "rep2", value=1000.0, status="Pending"),
            contract_record("c3", "rep2", value=500.0, date="N/A"),
        ],
    })
