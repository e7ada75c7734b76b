# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import Callable
from dataclasses import dataclass
from logging import getLogger
from os import environ
from typing import TypeVar

# project
from update_management.client.arm_client import (
    DEFAULT_ARM_ENDPOINT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_BASE_DELAY_SECONDS,
)

T = TypeVar("T")

log = getLogger(__name__)


# Settings
AUTOMATION_ACCOUNT_RESOURCE_ID_SETTING = "AUTOMATION_ACCOUNT_RESOURCE_ID"
USER_MANAGED_IDENTITY_CLIENT_ID_SETTING = "USER_MANAGED_IDENTITY_CLIENT_ID"
ARM_ENDPOINT_SETTING = "ARM_ENDPOINT"
ARM_MAX_ATTEMPTS_SETTING = "ARM_MAX_ATTEMPTS"
ARM_RETRY_BASE_DELAY_SETTING = "ARM_RETRY_BASE_DELAY_SECONDS"
DD_API_KEY_SETTING = "DD_API_KEY"
DD_TELEMETRY_SETTING = "DD_TELEMETRY"
LOG_LEVEL_SETTING = "LOG_LEVEL"


class MissingConfigOptionError(Exception):
    def __init__(self, option: str) -> None:
        super().__init__(f"Missing required configuration option: {option}")


def get_config_option(name: str) -> str:
    """Read a required setting, blank values count as missing"""
    if option := environ.get(name, "").strip():
        return option
    raise MissingConfigOptionError(name)


def parse_config_option(name: str, parse: Callable[[str], T | None], default: T) -> T:
    """Parse an optional setting, falling back to the default when it is unset or invalid"""
    value = environ.get(name)
    if value is None:
        return default
    try:
        result = parse(value)
    except ValueError:
        result = None
    if result is None:
        log.error("Invalid value for configuration option %s: %r, using %r", name, value, default)
        return default
    return result


def positive_int(value: str) -> int | None:
    number = int(value)
    return number if number > 0 else None


def non_negative_float(value: str) -> float | None:
    number = float(value)
    return number if number >= 0 else None


def https_url(value: str) -> str | None:
    url = value.strip().rstrip("/")
    return url if url.startswith("https://") and len(url) > len("https://") else None


def is_truthy(setting_name: str) -> bool:
    return environ.get(setting_name, "").lower().strip() in {"t", "true", "1", "y", "yes"}


@dataclass(frozen=True)
class ArmSettings:
    """Where resource manager requests go and how hard they are retried"""

    arm_endpoint: str = DEFAULT_ARM_ENDPOINT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_RETRY_BASE_DELAY_SECONDS


def get_arm_settings() -> ArmSettings:
    return ArmSettings(
        arm_endpoint=parse_config_option(ARM_ENDPOINT_SETTING, https_url, DEFAULT_ARM_ENDPOINT),
        max_attempts=parse_config_option(ARM_MAX_ATTEMPTS_SETTING, positive_int, DEFAULT_MAX_ATTEMPTS),
        base_delay=parse_config_option(
            ARM_RETRY_BASE_DELAY_SETTING, non_negative_float, DEFAULT_RETRY_BASE_DELAY_SECONDS
        ),
    )
