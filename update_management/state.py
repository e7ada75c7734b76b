# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from dataclasses import dataclass, field
from typing import TypeAlias

ScheduleIndex: TypeAlias = dict[str, set[str]]
"""mapping of casefolded software update configuration name to the schedules which trigger the patch runbook"""

ConfigurationRegistry: TypeAlias = dict[str, str]
"""mapping of software update configuration resource ID to configuration name"""

DisabledStatus: TypeAlias = dict[str, bool]
"""mapping of software update configuration resource ID to whether all of its schedules were disabled"""


@dataclass
class DeboardState:
    """Everything a single deboarding run discovers and changes"""

    schedules: ScheduleIndex = field(default_factory=dict)
    configurations: ConfigurationRegistry = field(default_factory=dict)
    disabled: DisabledStatus = field(default_factory=dict)
    solution_removed: bool = False
    disable_completed: bool = False

    @property
    def disabled_count(self) -> int:
        return sum(self.disabled.values())
