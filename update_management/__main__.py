#!/usr/bin/env python
# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# usage: python -m update_management [-h] [-a AUTOMATION_ACCOUNT_RESOURCE_ID] [-c CLIENT_ID]
#
# Deboard an Azure Automation account from Update Management
#
# optional arguments:
#   -h, --help            show this help message and exit
#   -a AUTOMATION_ACCOUNT_RESOURCE_ID, --automation-account-resource-id AUTOMATION_ACCOUNT_RESOURCE_ID
#                         Resource ID of the automation account. Defaults to $AUTOMATION_ACCOUNT_RESOURCE_ID
#   -c CLIENT_ID, --client-id CLIENT_ID
#                         Client ID of the user managed identity. Defaults to $USER_MANAGED_IDENTITY_CLIENT_ID

# stdlib
import argparse
from asyncio import run
from collections.abc import Sequence

# project
from update_management.deboard_task import main
from update_management.env import (
    AUTOMATION_ACCOUNT_RESOURCE_ID_SETTING,
    USER_MANAGED_IDENTITY_CLIENT_ID_SETTING,
    get_config_option,
)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Deboard an Azure Automation account from Update Management")
    parser.add_argument(
        "-a",
        "--automation-account-resource-id",
        type=str,
        help=f"Resource ID of the automation account. Defaults to ${AUTOMATION_ACCOUNT_RESOURCE_ID_SETTING}",
    )
    parser.add_argument(
        "-c",
        "--client-id",
        type=str,
        help=f"Client ID of the user managed identity. Defaults to ${USER_MANAGED_IDENTITY_CLIENT_ID_SETTING}",
    )
    args = parser.parse_args(argv)

    if not args.automation_account_resource_id:
        args.automation_account_resource_id = get_config_option(AUTOMATION_ACCOUNT_RESOURCE_ID_SETTING)
    if not args.client_id:
        args.client_id = get_config_option(USER_MANAGED_IDENTITY_CLIENT_ID_SETTING)
    return args


def cli() -> None:
    args = parse_args()
    run(main(args.automation_account_resource_id, args.client_id))


if __name__ == "__main__":  # pragma: no cover
    cli()
