# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from typing import Any

# project
from update_management.client.arm_client import ArmClient
from update_management.client.update_management_client import UpdateManagementClient
from update_management.common import get_updates_solution_name, parse_arm_id, resource_name_key
from update_management.env import get_arm_settings
from update_management.state import DeboardState
from update_management.task import Task, task_main

DEBOARD_TASK_NAME = "deboard_task"


class DeboardError(Exception):
    """A step the rest of the run depends on could not be completed"""


class DeboardTask(Task):
    NAME = DEBOARD_TASK_NAME

    def __init__(self, automation_account_id: str, client_id: str) -> None:
        self.automation_account_id = automation_account_id
        self.automation_account = parse_arm_id(automation_account_id)
        super().__init__(
            client_id,
            tags=[
                f"subscription_id:{self.automation_account.subscription_id}",
                f"resource_group:{self.automation_account.resource_group}",
                f"automation_account:{self.automation_account.resource_name}",
            ],
        )
        self.arm_settings = get_arm_settings()
        self.state = DeboardState()

    async def run(self) -> None:
        self.log.info(
            "Deboarding automation account %s (subscription %s, resource group %s) from update management",
            self.automation_account.resource_name,
            self.automation_account.subscription_id,
            self.automation_account.resource_group,
        )
        async with ArmClient(
            self.log,
            self.credential,
            arm_endpoint=self.arm_settings.arm_endpoint,
            max_attempts=self.arm_settings.max_attempts,
            base_delay=self.arm_settings.base_delay,
        ) as arm_client:
            client = UpdateManagementClient(self.log, arm_client, self.automation_account_id)
            try:
                await self.discover(client)
                await self.disable_schedules(client)
                await self.remove_updates_solution(client)
            except Exception as e:
                self.log.exception("Failed to deboard %s from update management: %s", self.automation_account_id, e)

        if self.state.disable_completed:
            self.summarize()

    def outcome_metrics(self) -> dict[str, float]:
        return {
            "configurations_found": len(self.state.configurations),
            "configurations_disabled": self.state.disabled_count,
            "solution_removed": int(self.state.solution_removed),
        }

    async def discover(self, client: UpdateManagementClient) -> None:
        # every later stage reads what is found here, so any failure is fatal
        self.state.schedules = await client.get_job_schedules()
        self.state.configurations = await client.get_software_update_configurations()

    async def disable_schedules(self, client: UpdateManagementClient) -> None:
        for configuration_id, configuration_name in self.state.configurations.items():
            disabled = True
            try:
                schedule_names = self.state.schedules.get(resource_name_key(configuration_name), set())
                if not schedule_names:
                    self.log.info("No patch schedules found for software update configuration %s", configuration_name)
                for schedule_name in sorted(schedule_names):
                    disabled = await self.disable_schedule(client, configuration_name, schedule_name) and disabled
            finally:
                self.state.disabled[configuration_id] = disabled
        self.state.disable_completed = True

    async def disable_schedule(
        self, client: UpdateManagementClient, configuration_name: str, schedule_name: str
    ) -> bool:
        try:
            result = await client.disable_schedule(schedule_name)
        except Exception:
            self.log.exception(
                "Failed to disable schedule %s of software update configuration %s", schedule_name, configuration_name
            )
            return False
        if not result.succeeded:
            self.log.error(
                "Failed to disable schedule %s of software update configuration %s: %s %s",
                schedule_name,
                configuration_name,
                result.error_code,
                result.error_message,
            )
            return False
        self.log.info("Disabled schedule %s of software update configuration %s", schedule_name, configuration_name)
        return True

    async def remove_updates_solution(self, client: UpdateManagementClient) -> None:
        linked_workspace = await client.get_linked_workspace()
        if not linked_workspace.succeeded:
            raise DeboardError(
                f"Failed to get the linked workspace: {linked_workspace.error_code} {linked_workspace.error_message}"
            )
        workspace_id = get_field(linked_workspace.body, "id")
        if not isinstance(workspace_id, str) or not workspace_id:
            raise DeboardError(f"No linked workspace for automation account {self.automation_account.resource_name}")
        workspace = parse_arm_id(workspace_id)
        self.log.info("Found linked log analytics workspace %s", workspace_id)

        solutions = await client.get_solutions(workspace, workspace_id)
        if not solutions.succeeded:
            raise DeboardError(
                f"Failed to list solutions of workspace {workspace_id}: "
                f"{solutions.error_code} {solutions.error_message}"
            )
        if not isinstance(solutions.body, dict):
            raise DeboardError(f"No solutions listing returned for workspace {workspace_id}")

        solution_key = resource_name_key(get_updates_solution_name(workspace.resource_name))
        for solution in solutions.body.get("value") or []:
            if resource_name_key(get_field(solution, "name") or "") != solution_key:
                continue
            solution_id = solution["id"]
            try:
                result = await client.delete_solution(solution_id)
            except Exception:
                self.log.exception("Failed to delete solution %s", solution_id)
                continue
            if result.succeeded:
                self.log.info("Removed solution %s", solution_id)
                self.state.solution_removed = True
            else:
                self.log.error(
                    "Failed to delete solution %s: %s %s", solution_id, result.error_code, result.error_message
                )

    def summarize(self) -> None:
        print(f"{len(self.state.configurations)} software update configurations found.")
        print(f"{self.state.disabled_count} software update configurations disabled.")
        if self.state.solution_removed:
            print("Updates solution removed from the linked log analytics workspace.")
        else:
            print("Failed to remove the Updates solution from the linked log analytics workspace.")


def get_field(body: Any, name: str) -> Any:
    return body.get(name) if isinstance(body, dict) else None


async def main(automation_account_id: str, client_id: str) -> None:
    await task_main(DeboardTask, automation_account_id, client_id)
