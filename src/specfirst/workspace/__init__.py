"""Workspace layout, configuration and stage state."""

from specfirst.workspace.config import Config, load_config, resolve_active_protocol
from specfirst.workspace.paths import Workspace, detect_workspace, find_project_root
from specfirst.workspace.state import StageOutput, State, load_state, save_state

__all__ = [
    "Config",
    "StageOutput",
    "State",
    "Workspace",
    "detect_workspace",
    "find_project_root",
    "load_config",
    "load_state",
    "resolve_active_protocol",
    "save_state",
]
