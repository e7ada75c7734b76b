# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from unittest import TestCase

# project
from update_management.env import DD_API_KEY_SETTING, DD_TELEMETRY_SETTING, LOG_LEVEL_SETTING
from update_management.task import Task, configure_logging, get_error_telemetry, task_main
from update_management.tests.common import TaskTestCase

CLIENT_ID = "11111111-2222-3333-4444-555555555555"


class TestGetErrorTelemetry(TestCase):
    def test_no_exception(self):
        self.assertEqual(get_error_telemetry(None), {})
        self.assertEqual(get_error_telemetry((None, None, None)), {})

    def test_with_exception(self):
        try:
            raise KeyError("id")
        except KeyError as e:
            telemetry = get_error_telemetry((KeyError, e, e.__traceback__))
        self.assertEqual(telemetry["exception"], "KeyError")
        self.assertIn("KeyError: 'id'", telemetry["exc_info"])


class CountingTask(Task):
    NAME = "counting_task"

    def __init__(self, client_id: str, *, items: int = 0, log_message: str | None = None) -> None:
        super().__init__(client_id, tags=["automation_account:account1"])
        self.items = items
        self.log_message = log_message
        self.processed = 0

    async def run(self) -> None:
        self.processed = self.items
        if self.log_message:
            self.log.warning(self.log_message)

    def outcome_metrics(self) -> dict[str, float]:
        return {"items_processed": self.processed}


class TestTask(TaskTestCase):
    def enable_telemetry(self) -> None:
        self.env.update({DD_TELEMETRY_SETTING: "yes", DD_API_KEY_SETTING: "123"})

    async def run_task(self, **kwargs) -> CountingTask:
        async with CountingTask(CLIENT_ID, **kwargs) as task:
            await task.run()
        return task

    def submitted_metrics(self) -> dict[str, tuple[float, list[str]]]:
        payload = self.datadog_metrics_api.return_value.submit_metrics.await_args.args[0]
        return {s.metric: (s.points[0].value, s.tags) for s in payload.series}

    async def test_credential_for_user_managed_identity(self):
        task = await self.run_task()
        self.assertIs(task.credential, self.credential)
        self.credential_class.assert_called_once_with(client_id=CLIENT_ID)
        self.credential.__aenter__.assert_awaited_once_with()
        self.credential.__aexit__.assert_awaited_once_with(None, None, None)
        self.datadog_api_client.return_value.__aexit__.assert_awaited_once_with(None, None, None)

    async def test_tags_extend_service_tags(self):
        task = CountingTask(CLIENT_ID)
        self.assertEqual(task.tags, ["service:update_management", "task:counting_task", "automation_account:account1"])

    async def test_telemetry_requires_api_key(self):
        self.env.update({DD_TELEMETRY_SETTING: "true"})
        task = await self.run_task(items=2, log_message="skipped")

        self.assertFalse(task.telemetry_enabled)
        self.assertEqual(task._logs, [])
        self.datadog_metrics_api.return_value.submit_metrics.assert_not_awaited()
        self.datadog_logs_api.return_value.submit_log.assert_not_awaited()

    async def test_outcome_metrics_submitted_without_logs(self):
        self.enable_telemetry()
        task = await self.run_task(items=3)

        metrics = self.submitted_metrics()
        self.assertEqual(metrics["update_management.items_processed"], (3.0, task.tags))
        self.assertIn("update_management.runtime_seconds", metrics)
        self.datadog_logs_api.return_value.submit_log.assert_not_awaited()

    async def test_logs_submitted_with_tags(self):
        self.enable_telemetry()
        task = await self.run_task(log_message="schedule SUC1_abcdef not found")

        self.datadog_logs_api.return_value.submit_log.assert_awaited_once()
        logs, kwargs = self.datadog_logs_api.return_value.submit_log.await_args
        item = logs[0].value[0]
        self.assertEqual(item.message, "schedule SUC1_abcdef not found")
        self.assertEqual(item.level, "WARNING")
        self.assertEqual(item.task, "counting_task")
        self.assertEqual(kwargs["ddtags"], ",".join(task.tags))
        self.assertEqual(task._logs, [])

    async def test_telemetry_failure_is_logged(self):
        self.enable_telemetry()
        self.datadog_metrics_api.return_value.submit_metrics.side_effect = Exception("datadog is down")
        with self.assertLogs("update_management.task", "ERROR") as ctx:
            await self.run_task(items=1)

        self.assertIn("Failed to submit telemetry for counting_task", ctx.output[0])
        self.datadog_api_client.return_value.__aexit__.assert_awaited_once_with(None, None, None)

    def test_configure_logging_level(self):
        self.env.update({LOG_LEVEL_SETTING: " debug "})
        self.assertEqual(configure_logging(), "DEBUG")

    def test_configure_logging_invalid_level(self):
        self.env.update({LOG_LEVEL_SETTING: "verbose"})
        self.assertEqual(configure_logging(), "INFO")

    def test_configure_logging_default(self):
        self.assertEqual(configure_logging(), "INFO")

    async def test_task_main_runs_task(self):
        self.enable_telemetry()
        self.env.update({LOG_LEVEL_SETTING: "warning"})
        await task_main(CountingTask, CLIENT_ID)

        self.credential.__aexit__.assert_awaited_once()
        self.assertEqual(self.submitted_metrics()["update_management.items_processed"][0], 0.0)
