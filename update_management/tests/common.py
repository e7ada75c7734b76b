# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from json import dumps
from typing import Any
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock, Mock, call, patch

# project
from update_management.client.arm_client import ApiResult, ApiStatus


class AsyncTestCase(IsolatedAsyncioTestCase):
    def patch_path(self, path: str, **kwargs: Any) -> MagicMock | AsyncMock:
        p = patch(path, **kwargs)
        self.addCleanup(p.stop)
        return p.start()

    def assertCalledTimesWith(self, mock: AsyncMock, times: int, /, *args: Any, **kwargs: Any):
        self.assertEqual(mock.await_count, times)
        self.assertEqual([call(*args, **kwargs)] * times, mock.await_args_list)


class TaskTestCase(AsyncTestCase):
    TASK_NAME: str = NotImplemented

    def patch(self, obj: str, **kwargs: Any):
        return self.patch_path(f"update_management.{self.TASK_NAME}.{obj}", **kwargs)

    def setUp(self) -> None:
        self.credential_class = self.patch_path(
            "update_management.task.ManagedIdentityCredential", return_value=AsyncMockClient()
        )
        self.credential = self.credential_class.return_value
        self.datadog_api_client = self.patch_path(
            "update_management.task.AsyncApiClient", return_value=AsyncMockClient()
        )
        self.datadog_logs_api = self.patch_path("update_management.task.LogsApi", return_value=AsyncMock())
        self.datadog_metrics_api = self.patch_path("update_management.task.MetricsApi", return_value=AsyncMock())
        self.env: dict[str, str] = {}
        task_env_mock = self.patch_path("update_management.task.environ", create=True)
        task_env_mock.get.side_effect = lambda k, default=None: self.env.get(k, default)
        env_env_mock = self.patch_path("update_management.env.environ", create=True)
        env_env_mock.get.side_effect = lambda k, default=None: self.env.get(k, default)


def AsyncMockClient(**kwargs: Any) -> AsyncMock:
    """An AsyncMock with the context manager methods set up to use as a client"""
    m = AsyncMock(**kwargs)
    m.__aenter__.return_value = m
    m.__aexit__.return_value = None
    return m


def mock(**kwargs: Any) -> Mock:
    m = Mock()
    for k, v in kwargs.items():
        setattr(m, k, v)
    return m


def mock_response(status: int, body: Any = None) -> AsyncMock:
    """An aiohttp response to be returned from `session.request(...)`"""
    response = AsyncMockClient()
    response.status = status
    response.text.return_value = "" if body is None else dumps(body)
    return response


def succeeded(body: Any = None) -> ApiResult:
    return ApiResult(ApiStatus.SUCCEEDED, body)


def failed(error_code: str = "404/NotFound", error_message: str = "Not found") -> ApiResult:
    return ApiResult(ApiStatus.FAILED, None, error_code, error_message)


class UnexpectedException(Exception):
    """Testing for exceptions that we havent accounted for"""

    pass
