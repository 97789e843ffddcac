import json
import logging

from linxio_automation.core.config import Settings
from linxio_automation.core.errors import ActionFailedError, EntityNotFoundError
from linxio_automation.schemas.automation import AutomationJob
from linxio_automation.services.automation_types import ExecutionOutcome
from linxio_automation.services.job_consumer import AutomationJobConsumer, JobDisposition, run_job


class FakeClient:
    def __init__(self):
        self.published = []
        self.subscribed = []

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, json.loads(payload), qos))

    def subscribe(self, topic, qos=0):
        self.subscribed.append((topic, qos))


class FakeOrchestrator:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def execute(self, rule_id, trigger_type, trigger_payload, triggered_by=None, *, job_id=None, timeout_sec=None):
        self.calls.append((rule_id, trigger_type, trigger_payload, triggered_by, job_id))
        if self.error is not None:
            raise self.error
        return ExecutionOutcome(success=True, execution_time_ms=1)


def _consumer(orchestrator, **settings):
    cfg = Settings(mqtt_topic_prefix="acme", automation_job_max_attempts=3, **settings)
    client = FakeClient()
    return AutomationJobConsumer(orchestrator, cfg, client=client), client


def _message(**overrides):
    body = {
        "ruleId": "r-1",
        "triggerType": "TASK_CREATED",
        "triggerData": {"taskId": "t-1"},
        "triggeredById": "u-bob",
        "jobId": "job-1",
    }
    body.update(overrides)
    return json.dumps(body).encode("utf-8")


def test_job_round_trip_through_message():
    job = AutomationJob.model_validate(json.loads(_message(attempt=2)))
    assert job.rule_id == "r-1"
    assert job.attempt == 2
    assert job.to_message()["triggerType"] == "TASK_CREATED"
    assert job.to_message()["attempt"] == 2


def test_handle_payload_runs_the_job():
    orchestrator = FakeOrchestrator()
    consumer, client = _consumer(orchestrator)

    assert consumer.topic == "acme/automation/jobs"
    assert consumer.handle_payload(_message()) == JobDisposition.DONE
    rule_id, trigger_type, payload, triggered_by, job_id = orchestrator.calls[0]
    assert (rule_id, trigger_type.value, payload, triggered_by, job_id) == (
        "r-1",
        "TASK_CREATED",
        {"taskId": "t-1"},
        "u-bob",
        "job-1",
    )
    assert client.published == []


def test_retryable_failure_is_republished_with_next_attempt():
    consumer, client = _consumer(FakeOrchestrator(error=EntityNotFoundError("Task", "t-1")))

    assert consumer.handle_payload(_message()) == JobDisposition.RETRY
    topic, body, qos = client.published[0]
    assert topic == "acme/automation/jobs"
    assert body["attempt"] == 2
    assert body["jobId"] == "job-1"
    assert qos == 1


def test_retryable_failure_is_dropped_after_max_attempts(caplog):
    caplog.set_level(logging.ERROR)
    consumer, client = _consumer(FakeOrchestrator(error=ConnectionError("db down")))

    assert consumer.handle_payload(_message(attempt=3)) == JobDisposition.DROPPED
    assert client.published == []
    assert any("dropped after attempt 3" in rec.message for rec in caplog.records)


def test_non_retryable_failure_is_not_redelivered():
    consumer, client = _consumer(FakeOrchestrator(error=ActionFailedError("bad config", retryable=False)))

    assert consumer.handle_payload(_message()) == JobDisposition.DROPPED
    assert client.published == []


def test_invalid_payloads_are_rejected_without_running():
    orchestrator = FakeOrchestrator()
    consumer, client = _consumer(orchestrator)

    assert consumer.handle_payload(b"{not json") == JobDisposition.INVALID
    assert consumer.handle_payload(_message(triggerType="SOMETHING_ELSE")) == JobDisposition.INVALID
    assert consumer.handle_payload(json.dumps({"triggerType": "TASK_CREATED"})) == JobDisposition.INVALID
    assert consumer.handle_payload(b"\xff\xfe") == JobDisposition.INVALID
    assert orchestrator.calls == []
    assert client.published == []


def test_on_connect_subscribes_only_on_success():
    consumer, client = _consumer(FakeOrchestrator())

    consumer.on_connect(client, None, {}, 5)
    assert client.subscribed == []
    assert consumer.is_connected() is False

    consumer.on_connect(client, None, {}, 0)
    assert client.subscribed == [("acme/automation/jobs", 1)]
    assert consumer.is_connected() is True

    consumer.on_disconnect(client, None, {}, 7)
    assert consumer.is_connected() is False


def test_run_job_uses_retryable_attribute():
    logger = logging.getLogger("test_job_consumer")
    job = AutomationJob(rule_id="r-1", trigger_type="TASK_CREATED")
    assert run_job(FakeOrchestrator(), job, max_attempts=1, logger=logger) == JobDisposition.DONE
    assert run_job(FakeOrchestrator(error=TimeoutError()), job, max_attempts=2, logger=logger) == JobDisposition.RETRY
    assert run_job(FakeOrchestrator(error=TimeoutError()), job, max_attempts=1, logger=logger) == JobDisposition.DROPPED
