"""
Real-time event notifiers used by action handlers.

Handlers call ``emit`` after a successful mutation so connected clients can
refresh. Delivery is fire-and-forget: ``safe_emit`` logs and swallows any
notifier failure so it never fails the action that triggered it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

import paho.mqtt.client as mqtt

from ..core.config import Settings, settings as default_settings
from ..core.errors import guarded_call
from .stores import EventNotifier


logger = logging.getLogger("event_notifier")

TASK_CREATED = "task:created"
TASK_UPDATED = "task:updated"
TASK_STATUS_CHANGED = "task:status_changed"
TASK_ASSIGNED = "task:assigned"
COMMENT_ADDED = "comment:added"
NOTIFICATION = "notification"


def event_envelope(kind: str, payload: dict) -> dict:
    return {
        "schema_version": "1.0",
        "event": kind,
        "data": payload,
        "timestamp_utc": datetime.utcnow().isoformat() + "Z",
    }


def event_topic(prefix: str, kind: str, payload: dict) -> Optional[str]:
    if kind == NOTIFICATION:
        user_id = payload.get("userId")
        return f"{prefix}/users/{user_id}/notifications" if user_id else None
    project_id = payload.get("projectId")
    return f"{prefix}/projects/{project_id}/events" if project_id else None


class LogEventNotifier(EventNotifier):
    """Writes events to the log. Default for local development."""

    def emit(self, kind: str, payload: dict) -> None:
        logger.info("Event %s %s", kind, json.dumps(payload, default=str, sort_keys=True))


class MqttEventNotifier(EventNotifier):
    """Publishes events to per-project and per-user MQTT topics."""

    def __init__(self, cfg: Settings | None = None, client: Any = None) -> None:
        self.cfg = cfg or default_settings
        self.logger = logging.getLogger(self.__class__.__name__)
        self._owns_client = client is None
        self.client = client if client is not None else self._build_client()

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"linxio-automation-events-{id(self)}",
        )
        if self.cfg.mqtt_username:
            client.username_pw_set(self.cfg.mqtt_username, self.cfg.mqtt_password)
        client.reconnect_delay_set(min_delay=1, max_delay=10)
        return client

    def start(self) -> None:
        if not self._owns_client:
            return
        try:
            self.client.connect_async(self.cfg.mqtt_broker_host, self.cfg.mqtt_broker_port, keepalive=30)
            self.client.loop_start()
        except Exception as exc:
            self.logger.error(
                "MQTT connection failed for %s:%s (%s)",
                self.cfg.mqtt_broker_host,
                self.cfg.mqtt_broker_port,
                exc,
            )

    def stop(self) -> None:
        if not self._owns_client:
            return
        guarded_call("MQTT event notifier shutdown", self._shutdown, logger=self.logger)

    def _shutdown(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()

    def emit(self, kind: str, payload: dict) -> None:
        topic = event_topic(self.cfg.mqtt_topic_prefix, kind, payload)
        if topic is None:
            self.logger.warning("Dropping %s event without a routing id", kind)
            return
        body = json.dumps(event_envelope(kind, payload), default=str)
        self.client.publish(topic, body, qos=1)


def safe_emit(notifier: EventNotifier | None, kind: str, payload: dict) -> None:
    if notifier is None:
        return
    guarded_call(
        "Event emit",
        lambda: notifier.emit(kind, payload),
        logger=logger,
        context={"kind": kind, "task_id": payload.get("taskId"), "user_id": payload.get("userId")},
    )


def build_event_notifier(cfg: Settings | None = None) -> EventNotifier:
    cfg = cfg or default_settings
    if (cfg.event_notifier or "").strip().lower() == "mqtt":
        notifier = MqttEventNotifier(cfg)
        notifier.start()
        return notifier
    return LogEventNotifier()
