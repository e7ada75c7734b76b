# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.
#
# This product includes software developed at Datadog (https://www.datadoghq.com/  Copyright 2025 Datadog, Inc.

# stdlib
from dataclasses import dataclass
from datetime import datetime
from typing import Final

# 3p
from azure.mgmt.core.tools import parse_resource_id

# API versions are pinned per resource type, mixing them breaks compatibility
AUTOMATION_API_VERSION: Final = "2022-08-08"
LINKED_WORKSPACE_API_VERSION: Final = "2020-01-13-preview"
SOLUTIONS_API_VERSION: Final = "2015-11-01-preview"
SOFTWARE_UPDATE_CONFIGURATIONS_API_VERSION: Final = "2019-06-01"

PATCH_RUNBOOK_NAME: Final = "Patch-MicrosoftOMSComputers"
UPDATES_SOLUTION_PREFIX: Final = "Updates"
SCHEDULE_NAME_SEPARATOR: Final = "_"

ARM_ID_MIN_SEGMENTS: Final = 9


class InvalidResourceIdError(Exception):
    def __init__(self, resource_id: str) -> None:
        super().__init__(f"Invalid Azure resource ID: '{resource_id}'")


@dataclass(frozen=True)
class ResourceIdentity:
    subscription_id: str
    resource_group: str
    resource_provider: str
    resource_type: str
    resource_name: str


@dataclass(frozen=True)
class Endpoint:
    """A resource manager path and the API version pinned to its resource type"""

    path: str
    api_version: str


def parse_arm_id(resource_id: str) -> ResourceIdentity:
    """Parse a resource ID of the form
    /subscriptions/{sub}/resourceGroups/{rg}/providers/{provider}/{type}/{name}

    Raises InvalidResourceIdError rather than returning a partial identity"""
    if len(resource_id.split("/")) < ARM_ID_MIN_SEGMENTS:
        raise InvalidResourceIdError(resource_id)
    parts = parse_resource_id(resource_id)
    try:
        return ResourceIdentity(
            subscription_id=parts["subscription"],
            resource_group=parts["resource_group"],
            resource_provider=parts["namespace"],
            resource_type=parts["type"],
            resource_name=parts["name"],
        )
    except KeyError:
        raise InvalidResourceIdError(resource_id) from None


def get_configuration_key(schedule_name: str) -> str | None:
    """Recover the software update configuration name from one of its schedule names.

    Schedules are named `<configuration name>_<suffix>`, where the configuration name may
    itself contain underscores. Returns None for names that don't follow the convention

    Example:
    >>> get_configuration_key("My_Config_1_abcdef")
    'My_Config_1'
    """
    key, separator, _ = schedule_name.rpartition(SCHEDULE_NAME_SEPARATOR)
    if not separator or not key:
        return None
    return key


def resource_name_key(name: str) -> str:
    """Resource names are case-insensitive, compare them through this key"""
    return name.casefold()


def get_updates_solution_name(workspace_name: str) -> str:
    return f"{UPDATES_SOLUTION_PREFIX}({workspace_name})"


def with_api_version(path: str, api_version: str) -> str:
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}api-version={api_version}"


# ===== Endpoints ===== #
def job_schedules_endpoint(automation_account_id: str, skip: int) -> Endpoint:
    return Endpoint(
        f"{automation_account_id}/JobSchedules?$filter=properties/runbook/name eq '{PATCH_RUNBOOK_NAME}'&$skip={skip}",
        AUTOMATION_API_VERSION,
    )


def schedule_endpoint(automation_account_id: str, schedule_name: str) -> Endpoint:
    return Endpoint(f"{automation_account_id}/Schedules/{schedule_name}", AUTOMATION_API_VERSION)


def software_update_configurations_endpoint(automation_account_id: str, skip: int) -> Endpoint:
    return Endpoint(
        f"{automation_account_id}/softwareUpdateConfigurations?$skip={skip}",
        SOFTWARE_UPDATE_CONFIGURATIONS_API_VERSION,
    )


def linked_workspace_endpoint(automation_account_id: str) -> Endpoint:
    return Endpoint(f"{automation_account_id}/linkedWorkspace", LINKED_WORKSPACE_API_VERSION)


def solutions_endpoint(workspace: ResourceIdentity, workspace_id: str) -> Endpoint:
    return Endpoint(
        f"/subscriptions/{workspace.subscription_id}/resourceGroups/{workspace.resource_group}"
        f"/providers/Microsoft.OperationsManagement/solutions"
        f"?$filter=properties/workspaceResourceId eq '{workspace_id}'",
        SOLUTIONS_API_VERSION,
    )


def solution_endpoint(solution_id: str) -> Endpoint:
    return Endpoint(solution_id, SOLUTIONS_API_VERSION)


def now() -> str:
    """Return the current time in ISO format"""
    return datetime.now().isoformat()
