"""3-layer configuration system for Assay.

Loads and merges configuration from:
1. Default settings (built-in)
2. Project config (<data_dir>/config.yaml)
3. CLI parameters (override)
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = ".assay"

DEFAULT_CONFIG: dict = {
    "frameworks": {
        "directory": None,
    },
    "scoring": {
        "recompute_on_resolve": False,
    },
    "findings": {
        "reject_on_closed_reports": True,
    },
    "remediation": {
        "due_days": 30,
        "priority": "high",
        "title": "Remedial Action Required",
        "description": "Address finding identified in audit",
    },
    "notifications": {
        "reminder_days_before": 1,
    },
    "scheduling": {
        "default_duration_days": 7,
    },
    "reports": {
        "appendices": [
            "Appendix A: Audit Methodology",
            "Appendix B: Evidence Documentation",
            "Appendix C: Risk Assessment Matrix",
        ],
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = {}
    for key in base:
        result[key] = base[key]
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def load_project_config(data_dir: Path) -> dict:
    """Load project configuration from <data_dir>/config.yaml."""
    config_path = data_dir / "config.yaml"
    if not config_path.exists():
        return {}
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
        return yaml.safe_load(content) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable config %s: %s", config_path, e)
        return {}


def get_effective_config(
    data_dir: Optional[Path] = None,
    cli_overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved engine configuration."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if data_dir is not None:
        project_config = load_project_config(data_dir)
        if project_config:
            config = deep_merge(config, project_config)
        config["_data_dir"] = str(data_dir)

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    return config
