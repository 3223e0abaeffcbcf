"""Business constants for the grievance engine, read from Flask config."""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Mapping


@dataclass(frozen=True)
class EngineSettings:
    complaint_deposit: int = 10
    vote_threshold: int = 5
    resolution_window_hours: int = 48
    late_penalty_percent: int = 20
    late_reputation_penalty: int = 10
    on_time_reward_points: int = 10
    student_starting_balance: int = 100
    vendor_starting_balance: int = 50
    silver_star_points: int = 50
    gold_star_points: int = 100
    default_admin_balance: int = 1000

    @property
    def resolution_window_ms(self) -> int:
        return self.resolution_window_hours * 60 * 60 * 1000

    @classmethod
    def from_config(cls, config: Mapping) -> "EngineSettings":
        values = {}
        for item in fields(cls):
            key = item.name.upper()
            if key in config and config[key] is not None:
                values[item.name] = int(config[key])
        return cls(**values)
