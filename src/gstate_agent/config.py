"""YAML configuration loader for the gstate operator tool."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from netplugin_gstate.store import StateDriver, build_state_driver

STATE_DRIVERS = ("file", "memory")
DEFAULT_STATE_PATH = Path("/var/lib/netplugin/state")


@dataclass
class StateConfig:
    driver: str = "file"
    path: Path = DEFAULT_STATE_PATH

    def build_driver(self) -> StateDriver:
        return build_state_driver(self.driver, self.path)


@dataclass
class AgentConfig:
    state: StateConfig = field(default_factory=StateConfig)


def _parse_state(section: dict) -> StateConfig:
    driver = str(section.get("driver", "file"))
    if driver not in STATE_DRIVERS:
        raise ValueError(f"Unsupported state driver '{driver}'")
    return StateConfig(
        driver=driver,
        path=Path(section.get("path", DEFAULT_STATE_PATH)),
    )


def load_config(path: Path) -> AgentConfig:
    data = yaml.safe_load(path.read_text())
    if data is None:
        return AgentConfig()
    if not isinstance(data, dict):
        raise ValueError("Agent configuration must be a mapping")

    state_section = data.get("state") or {}
    if not isinstance(state_section, dict):
        raise ValueError("'state' section must be a mapping")

    return AgentConfig(state=_parse_state(state_section))
