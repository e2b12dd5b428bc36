"""
test_data_simulator.py — Tests for the synthetic CRM dataset.
"""

import copy
import json
import sys
from datetime import datetime
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent))

from sales_analytics.config import DEFAULTS, load_config
from sales_analytics.data_loader import dataset_from_records, load_dataset
from sales_analytics.data_simulator import generate_dataset, generate_demo_dataset
from sales_analytics.models import LeadStatus, Role
from sales_analytics.reports import ReportRequest, ReportType, generate_report

NOW = datetime(2024, 3, 15, 10, 0)


@pytest.fixture
def cfg():
    return copy.deepcopy(DEFAULTS)


@pytest.fixture
def payload(cfg):
    return generate_dataset(cfg, now=NOW)


class TestGenerateDataset:
    """Tests for generate_dataset."""

    def test_roster_shape(self, cfg, payload):
        sim = cfg["data_simulation"]
        roles = [u["role"] for u in payload["users"]]
        assert roles.count(Role.ADMIN.value) == 1
        assert roles.count(Role.SALES_ADMIN.value) == 1
        assert roles.count(Role.TEAM_LEADER.value) == sim["teams"] + 1
        assert roles.count(Role.SALES_REP.value) == sim["teams"] * sim["reps_per_team"]

    def test_record_counts(self, cfg, payload):
        sim = cfg["data_simulation"]
        sellers = sim["teams"] * (sim["reps_per_team"] + 1) + 1
        assert len(payload["leads"]) == sellers * sim["leads_per_rep"]
        assert len(payload["meetings"]) == sellers * sim["meetings_per_rep"]
        assert len(payload["contracts"]) == sellers * sim["contracts_per_rep"]

    def test_deterministic(self, cfg):
        assert generate_dataset(cfg, now=NOW) == generate_dataset(cfg, now=NOW)

    def test_statuses_are_valid(self, payload):
        for lead in payload["leads"]:
            LeadStatus(lead["status"])

    def test_includes_malformed_dates(self, cfg):
        cfg["data_simulation"]["malformed_date_rate"] = 0.3
        data = generate_dataset(cfg, now=NOW)
        created = [lead["createdAt"] for lead in data["leads"]]
        assert any(d in ("N/A", "------") for d in created)

    def test_parses_into_dataset(self, payload):
        ds = dataset_from_records(payload)
        assert len(ds.users) == len(payload["users"])
        assert all(lead.owner_id is not None for lead in ds.leads)

    def test_reports_build_on_generated_data(self, payload):
        ds = dataset_from_records(payload)
        for report_type in ReportType:
            result = generate_report(ReportRequest("u-admin", report_type), ds, now=NOW)
            assert result.period


class TestGenerateDemoDataset:
    """Tests for generate_demo_dataset and its round trip through the loader."""

    def test_writes_json_to_configured_path(self, tmp_path, cfg):
        cfg["paths"]["data_file"] = str(tmp_path / "raw" / "crm.json")
        cfg["data_simulation"]["teams"] = 1
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump(cfg))

        path = generate_demo_dataset(str(config_path))
        assert path.exists()
        with open(path) as fh:
            assert set(json.load(fh)) == {"users", "leads", "meetings", "contracts"}
        # admin, sales admin, one team leader, the unlinked leader, plus reps
        assert len(load_dataset(str(path)).users) == 4 + cfg["data_simulation"]["reps_per_team"]


class TestLoading:
    """Tests for config and dataset loading errors."""

    def test_missing_dataset_hints_generate(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="--generate-data"):
            load_dataset(str(tmp_path / "missing.json"))

    def test_bad_json_raises_value_error(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        with pytest.raises(ValueError):
            load_dataset(str(bad))

    def test_missing_config_uses_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "nope.yaml")) == DEFAULTS

    def test_partial_config_merges_over_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("report:\n  currency: USD\n")
        cfg = load_config(str(path))
        assert cfg["report"]["currency"] == "USD"
        assert cfg["report"]["top_performers"] == 10
        assert cfg["paths"] == DEFAULTS["paths"]
