# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from asyncio import sleep
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from enum import Enum
from json import JSONDecodeError, loads
from logging import Logger
from types import TracebackType
from typing import Any, Final, Literal, Self, TypeAlias

# 3p
from aiohttp import ClientSession
from azure.core.credentials_async import AsyncTokenCredential
from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt

# project
from update_management.common import Endpoint, with_api_version

DEFAULT_ARM_ENDPOINT: Final = "https://management.azure.com"
DEFAULT_MAX_ATTEMPTS: Final = 3
DEFAULT_RETRY_BASE_DELAY_SECONDS: Final = 5.0
ARM_PAGE_SIZE: Final = 100
RETRYABLE_STATUS_CODES: Final = frozenset({409, 429})
UNKNOWN: Final = "Unknown"

HttpMethod: TypeAlias = Literal["GET", "PATCH", "POST", "PUT", "DELETE"]
RawResponse: TypeAlias = tuple[int, Any]
"""HTTP status code and parsed JSON body"""


class ApiStatus(Enum):
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


@dataclass(frozen=True)
class ApiResult:
    status: ApiStatus
    body: Any = None
    error_code: str = ""
    error_message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is ApiStatus.SUCCEEDED


class EnumerationError(Exception):
    def __init__(self, endpoint: Endpoint, error_code: str, error_message: str) -> None:
        super().__init__(f"Failed to list {endpoint.path}: {error_code} {error_message}")
        self.endpoint = endpoint
        self.error_code = error_code
        self.error_message = error_message


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUS_CODES or status >= 500


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Seconds to wait after the given (1-indexed) failed attempt: 1, 3, 7, 15... times the base delay"""
    return (2**attempt - 1) * base_delay


def normalize_response(status: int, body: Any) -> ApiResult:
    """Turn an HTTP status and JSON body into an ApiResult, only a 200 counts as success"""
    if status == 200:
        return ApiResult(ApiStatus.SUCCEEDED, body)
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        error = {}
    return ApiResult(
        ApiStatus.FAILED,
        body,
        error_code=f"{status}/{error.get('code') or UNKNOWN}",
        error_message=error.get("message") or UNKNOWN,
    )


def parse_body(text: str) -> Any:
    if not text:
        return None
    try:
        return loads(text)
    except JSONDecodeError:
        return None


class ArmClient(AbstractAsyncContextManager["ArmClient"]):
    """Minimal resource manager REST client which retries transient failures with exponential backoff"""

    def __init__(
        self,
        log: Logger,
        credential: AsyncTokenCredential,
        *,
        arm_endpoint: str = DEFAULT_ARM_ENDPOINT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY_SECONDS,
    ) -> None:
        self.log = log
        self.credential = credential
        self.arm_endpoint = arm_endpoint.rstrip("/")
        self.token_scope = f"{self.arm_endpoint}/.default"
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.session: ClientSession | None = None

    async def __aenter__(self) -> Self:
        self.session = ClientSession()
        await self.session.__aenter__()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_value: BaseException | None, traceback: TracebackType | None
    ) -> None:
        await self.session.__aexit__(exc_type, exc_value, traceback)  # type: ignore

    async def _send(self, method: HttpMethod, url: str, payload: Any) -> RawResponse:
        token = await self.credential.get_token(self.token_scope)
        headers = {"Authorization": f"Bearer {token.token}", "Content-Type": "application/json"}
        async with self.session.request(method, url, headers=headers, json=payload) as response:  # type: ignore
            return response.status, parse_body(await response.text())

    async def invoke(self, endpoint: Endpoint, method: HttpMethod, payload: Any = None) -> ApiResult:
        """Issue a single request, retrying on 409, 429 and 5xx responses.

        Running out of attempts is reported as a failed result rather than raised,
        transport errors are not retried and propagate to the caller."""
        url = self.arm_endpoint + with_api_version(endpoint.path, endpoint.api_version)

        def log_attempt(state: RetryCallState) -> None:
            self.log.debug("%s %s (attempt %s/%s)", method, url, state.attempt_number, self.max_attempts)

        def log_retry(state: RetryCallState) -> None:
            status, _ = state.outcome.result()  # type: ignore
            self.log.warning(
                "%s %s returned %s on attempt %s/%s, retrying in %s seconds",
                method,
                url,
                status,
                state.attempt_number,
                self.max_attempts,
                state.upcoming_sleep,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=lambda state: backoff_delay(state.attempt_number, self.base_delay),
            retry=retry_if_result(lambda response: is_retryable_status(response[0])),
            before=log_attempt,
            before_sleep=log_retry,
            retry_error_callback=lambda state: state.outcome.result(),  # type: ignore
            sleep=sleep,
        )
        status, body = await retrying(self._send, method, url, payload)

        result = normalize_response(status, body)
        if result.succeeded:
            self.log.debug("%s %s succeeded", method, url)
        else:
            self.log.error("%s %s failed: %s %s", method, url, result.error_code, result.error_message)
        return result

    async def fetch_all(self, endpoint_for_skip: Callable[[int], Endpoint]) -> list[dict[str, Any]]:
        """Collect the `value` items of every page of a `$skip` paginated collection.

        Raises EnumerationError if any page can't be fetched"""
        items: list[dict[str, Any]] = []
        skip = 0
        while True:
            endpoint = endpoint_for_skip(skip)
            result = await self.invoke(endpoint, "GET")
            if not result.succeeded:
                raise EnumerationError(endpoint, result.error_code, result.error_message)
            body = result.body if isinstance(result.body, dict) else {}
            items.extend(body.get("value") or [])
            if not body.get("nextLink"):
                return items
            skip += ARM_PAGE_SIZE
