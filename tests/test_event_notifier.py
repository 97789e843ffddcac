import json

from linxio_automation.core.config import Settings
from linxio_automation.services.event_notifier import (
    NOTIFICATION,
    TASK_UPDATED,
    LogEventNotifier,
    MqttEventNotifier,
    build_event_notifier,
    event_envelope,
    event_topic,
    safe_emit,
)


class FakeClient:
    def __init__(self):
        self.published = []

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, json.loads(payload), qos))


def test_event_topic_routing():
    assert event_topic("linxio", TASK_UPDATED, {"projectId": "p-web"}) == "linxio/projects/p-web/events"
    assert event_topic("linxio", NOTIFICATION, {"userId": "u-bob"}) == "linxio/users/u-bob/notifications"
    assert event_topic("linxio", NOTIFICATION, {"projectId": "p-web"}) is None
    assert event_topic("linxio", TASK_UPDATED, {}) is None


def test_envelope_shape():
    envelope = event_envelope(TASK_UPDATED, {"taskId": "t-1"})
    assert envelope["event"] == "task:updated"
    assert envelope["data"] == {"taskId": "t-1"}
    assert envelope["timestamp_utc"].endswith("Z")


def test_mqtt_notifier_publishes_with_qos1():
    client = FakeClient()
    notifier = MqttEventNotifier(Settings(mqtt_topic_prefix="acme"), client=client)

    notifier.emit(TASK_UPDATED, {"projectId": "p-web", "taskId": "t-1"})
    notifier.emit(TASK_UPDATED, {"taskId": "t-orphan"})

    assert len(client.published) == 1
    topic, body, qos = client.published[0]
    assert topic == "acme/projects/p-web/events"
    assert body["data"]["taskId"] == "t-1"
    assert qos == 1


def test_safe_emit_swallows_failures(failing_notifier, caplog):
    safe_emit(failing_notifier, TASK_UPDATED, {"taskId": "t-1"})
    safe_emit(None, TASK_UPDATED, {"taskId": "t-1"})
    assert any("Event emit failed" in rec.message and "task_id=t-1" in rec.message for rec in caplog.records)


def test_build_event_notifier_defaults_to_log():
    assert isinstance(build_event_notifier(Settings(event_notifier="log")), LogEventNotifier)
