"""
config.py — YAML configuration with built-in defaults.

Values in config.yaml override DEFAULTS section by section, so a partial
file is valid.
"""

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, Any] = {
    "project": {"name": "Sales Performance Reports"},
    "paths": {
        "data_file": "data/raw/crm_records.json",
        "output_dir": "data/output",
        "log_dir": "logs",
    },
    "date_ranges": {"week_start": "monday"},
    "metrics": {"follow_ups": "not_tracked", "synthetic_seed": 7},
    "report": {
        "currency": "EGP",
        "recent_activity_limit": 50,
        "top_performers": 10,
        "brand": {"primary": "#1F3A5F", "secondary": "#4A6FA5", "light": "#DCE6F2"},
    },
    "data_simulation": {
        "seed": 42,
        "teams": 3,
        "reps_per_team": 4,
        "leads_per_rep": 25,
        "meetings_per_rep": 8,
        "contracts_per_rep": 4,
        "days_history": 240,
        "malformed_date_rate": 0.03,
    },
}


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str = "config.yaml") -> dict[str, Any]:
    """Load configuration, falling back to DEFAULTS when the file is absent.

    Args:
        config_path: Path to configuration YAML.

    Returns:
        Complete configuration dict.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning("Config %s not found; using built-in defaults", path)
        return copy.deepcopy(DEFAULTS)
    with open(path, "r") as fh:
        cfg = yaml.safe_load(fh) or {}
    return _merge(DEFAULTS, cfg)
