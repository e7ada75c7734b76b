# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from functools import partial
from logging import Logger
from typing import Any, Final

# project
from update_management.client.arm_client import ApiResult, ArmClient
from update_management.common import (
    ResourceIdentity,
    get_configuration_key,
    resource_name_key,
    job_schedules_endpoint,
    linked_workspace_endpoint,
    schedule_endpoint,
    software_update_configurations_endpoint,
    solution_endpoint,
    solutions_endpoint,
)
from update_management.state import ConfigurationRegistry, ScheduleIndex

DISABLE_SCHEDULE_PAYLOAD: Final = {"properties": {"isEnabled": False}}


def get_schedule_name(job_schedule: dict[str, Any]) -> str | None:
    schedule = (job_schedule.get("properties") or {}).get("schedule") or {}
    return schedule.get("name")


class UpdateManagementClient:
    """Update management operations scoped to a single automation account"""

    def __init__(self, log: Logger, arm_client: ArmClient, automation_account_id: str) -> None:
        self.log = log
        self.arm_client = arm_client
        self.automation_account_id = automation_account_id

    async def get_job_schedules(self) -> ScheduleIndex:
        """Map each casefolded software update configuration name to the schedules running the patch runbook"""
        job_schedules = await self.arm_client.fetch_all(partial(job_schedules_endpoint, self.automation_account_id))
        schedules: ScheduleIndex = {}
        for job_schedule in job_schedules:
            schedule_name = get_schedule_name(job_schedule)
            if not schedule_name:
                self.log.warning("Skipping job schedule without a schedule name: %s", job_schedule.get("id"))
                continue
            configuration_key = get_configuration_key(schedule_name)
            if configuration_key is None:
                self.log.warning(
                    "Schedule %s does not follow the <configuration>_<suffix> naming convention, skipping",
                    schedule_name,
                )
                continue
            schedules.setdefault(resource_name_key(configuration_key), set()).add(schedule_name)
        self.log.info(
            "Found %s patch schedules across %s software update configurations",
            sum(len(names) for names in schedules.values()),
            len(schedules),
        )
        return schedules

    async def get_software_update_configurations(self) -> ConfigurationRegistry:
        configurations = await self.arm_client.fetch_all(
            partial(software_update_configurations_endpoint, self.automation_account_id)
        )
        registry: ConfigurationRegistry = {}
        for configuration in configurations:
            configuration_id = configuration["id"]
            if configuration_id in registry:
                self.log.debug("Duplicate software update configuration %s, keeping the first", configuration_id)
                continue
            registry[configuration_id] = configuration["name"]
        self.log.info("Found %s software update configurations", len(registry))
        return registry

    async def disable_schedule(self, schedule_name: str) -> ApiResult:
        return await self.arm_client.invoke(
            schedule_endpoint(self.automation_account_id, schedule_name), "PATCH", DISABLE_SCHEDULE_PAYLOAD
        )

    async def get_linked_workspace(self) -> ApiResult:
        return await self.arm_client.invoke(linked_workspace_endpoint(self.automation_account_id), "GET")

    async def get_solutions(self, workspace: ResourceIdentity, workspace_id: str) -> ApiResult:
        return await self.arm_client.invoke(solutions_endpoint(workspace, workspace_id), "GET")

    async def delete_solution(self, solution_id: str) -> ApiResult:
        return await self.arm_client.invoke(solution_endpoint(solution_id), "DELETE")
