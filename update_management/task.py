# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from abc import abstractmethod
from asyncio import gather
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime
from logging import ERROR, Handler, LogRecord, basicConfig, getLogger
from os import environ
from time import time
from traceback import format_exception
from types import TracebackType
from typing import Self
from uuid import uuid4

# 3p
from azure.identity.aio import ManagedIdentityCredential
from datadog_api_client import AsyncApiClient, Configuration
from datadog_api_client.v2.api.logs_api import LogsApi
from datadog_api_client.v2.api.metrics_api import MetricsApi
from datadog_api_client.v2.model.http_log import HTTPLog
from datadog_api_client.v2.model.http_log_item import HTTPLogItem
from datadog_api_client.v2.model.metric_intake_type import MetricIntakeType
from datadog_api_client.v2.model.metric_payload import MetricPayload
from datadog_api_client.v2.model.metric_point import MetricPoint
from datadog_api_client.v2.model.metric_series import MetricSeries

# project
from update_management.common import now
from update_management.env import DD_API_KEY_SETTING, DD_TELEMETRY_SETTING, LOG_LEVEL_SETTING, is_truthy

SERVICE = "update_management"
METRIC_PREFIX = f"{SERVICE}."
LOG_LEVELS = {"ERROR", "WARN", "WARNING", "INFO", "DEBUG"}
DEFAULT_LOG_LEVEL = "INFO"

log = getLogger(__name__)

# silence azure logging except for errors
getLogger("azure").setLevel(ERROR)

IGNORED_LOG_EXTRAS = {"created", "relativeCreated", "thread", "args", "msg", "message"}

ExcInfo = tuple[type[BaseException], BaseException, TracebackType | None] | tuple[None, None, None] | None


def get_error_telemetry(exc_info: ExcInfo) -> dict[str, str]:
    telemetry = {}
    if not exc_info:
        return telemetry
    exc_type, exc, tb = exc_info
    if exc_type:
        telemetry["exception"] = exc_type.__name__
    if exc_type or exc or tb:
        telemetry["exc_info"] = "".join(format_exception(exc_type, value=exc, tb=tb, limit=20))
    return telemetry


class ListHandler(Handler):
    """Keeps a task's log records so they can be shipped to Datadog once it finishes"""

    def __init__(self, logs: list[LogRecord]):
        super().__init__()
        self.log_list = logs

    def emit(self, record: LogRecord) -> None:
        record.asctime = datetime.now(UTC).isoformat()
        self.log_list.append(record)


class Task(AbstractAsyncContextManager["Task"]):
    """A single run against Azure, authenticated as a user managed identity.

    When DD_TELEMETRY is truthy and DD_API_KEY is set, the run's logs, its runtime
    and whatever `outcome_metrics` reports are submitted to Datadog on exit."""

    NAME: str

    def __init__(self, client_id: str, tags: Iterable[str] = ()) -> None:
        self.credential = ManagedIdentityCredential(client_id=client_id)

        self.start_time = time()
        self.execution_id = str(uuid4())
        self.tags = [f"service:{SERVICE}", f"task:{self.NAME}", *tags]
        self.telemetry_enabled = bool(is_truthy(DD_TELEMETRY_SETTING) and environ.get(DD_API_KEY_SETTING))
        self.log = log.getChild(self.__class__.__name__)
        self._logs: list[LogRecord] = []
        self._datadog_client = AsyncApiClient(Configuration())
        self._logs_client = LogsApi(self._datadog_client)
        self._metrics_client = MetricsApi(self._datadog_client)
        if self.telemetry_enabled:
            log.info("Telemetry enabled for %s, tagged %s", self.NAME, ",".join(self.tags))
            self.log.addHandler(ListHandler(self._logs))

    @abstractmethod
    async def run(self) -> None: ...

    def outcome_metrics(self) -> dict[str, float]:
        """Gauges describing what the run accomplished, keyed by name without the prefix"""
        return {}

    async def __aenter__(self) -> Self:
        await gather(self.credential.__aenter__(), self._datadog_client.__aenter__())
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_value: BaseException | None, traceback: TracebackType | None
    ) -> None:
        await self.credential.__aexit__(exc_type, exc_value, traceback)
        try:
            await self.submit_telemetry()
        except Exception:
            log.exception("Failed to submit telemetry for %s", self.NAME)
        await self._datadog_client.__aexit__(exc_type, exc_value, traceback)

    def metric_series(self) -> list[MetricSeries]:
        metrics = {"runtime_seconds": time() - self.start_time, **self.outcome_metrics()}
        return [
            MetricSeries(
                metric=METRIC_PREFIX + name,
                type=MetricIntakeType.GAUGE,
                points=[MetricPoint(timestamp=int(self.start_time), value=float(value))],
                tags=self.tags,
            )
            for name, value in metrics.items()
        ]

    def log_items(self) -> list[HTTPLogItem]:
        return [
            HTTPLogItem(
                **{
                    **{k: str(v) for k, v in record.__dict__.items() if k.lower() not in IGNORED_LOG_EXTRAS},
                    **{
                        "message": record.getMessage(),
                        "ddsource": "azure",
                        "service": SERVICE,
                        "time": record.asctime,
                        "level": record.levelname,
                        "execution_id": self.execution_id,
                        "task": self.NAME,
                    },
                    **get_error_telemetry(record.exc_info),
                }
            )
            for record in self._logs
        ]

    async def submit_telemetry(self) -> None:
        if not self.telemetry_enabled:
            return
        submissions = [self._metrics_client.submit_metrics(MetricPayload(series=self.metric_series()))]
        if self._logs:
            items = self.log_items()
            self._logs.clear()
            submissions.append(self._logs_client.submit_log(HTTPLog(value=items), ddtags=",".join(self.tags)))
        await gather(*submissions)  # type: ignore


def configure_logging() -> str:
    """Apply LOG_LEVEL to the project loggers, returning the level used"""
    level = environ.get(LOG_LEVEL_SETTING, DEFAULT_LOG_LEVEL).strip().upper()
    if level not in LOG_LEVELS:
        level = DEFAULT_LOG_LEVEL
    basicConfig()
    log.setLevel(level)
    return level


async def task_main(task_class: type[Task], *args: str) -> None:
    level = configure_logging()
    log.info("Started %s at %s (log level %s)", task_class.NAME, now(), level)
    async with task_class(*args) as task:
        await task.run()
    log.info("%s finished at %s", task_class.NAME, now())
