"""Project directory support: finds and loads .dataplane/ configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

PROJECT_DIR = ".dataplane"


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from start (default: cwd) looking for .dataplane/ directory."""
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        if (parent / PROJECT_DIR).is_dir():
            return parent
    return None


def config_path(project_root: Path) -> Path:
    return project_root / PROJECT_DIR / "config.yaml"


def load_project_config(project_root: Path | None = None) -> dict[str, Any]:
    """Load .dataplane/config.yaml if it exists; {} outside a project."""
    root = project_root or find_project_root()
    if root is None:
        return {}
    path = config_path(root)
    if path.exists():
        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping of settings")
        return data
    return {}
