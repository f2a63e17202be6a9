"""Tunables for the shortest-path switching app.

Frozen after construction so handlers never see the settings drift.
"""

from dataclasses import dataclass, fields


@dataclass(frozen=True)
class SwitchingConfig:
    # 0 keeps flows until the topology or the hosts change
    idle_timeout: int = 0
    hard_timeout: int = 0
    flow_priority: int = 1
    table_miss_priority: int = 0
    # host join/move/leave never changes the switch graph
    recompute_on_host_events: bool = False
    install_reverse_paths: bool = True

    @classmethod
    def from_mapping(cls, values):
        """Build a config from a plain dict, ignoring unknown keys."""
        kwargs = {}
        for field in fields(cls):
            if field.name not in values:
                continue
            value = values[field.name]
            if field.type in (bool, "bool") and isinstance(value, str):
                value = value.strip().lower() in ("1", "true", "yes", "on")
            elif field.type in (int, "int"):
                value = int(value)
            kwargs[field.name] = value
        return cls(**kwargs)
