"""
MQTT consumer feeding automation jobs to the orchestrator.

Delivery is at-least-once. A job whose run raised a retryable error is
republished to the same topic with ``attempt + 1`` until
``automation_job_max_attempts``; non-retryable failures (bad config, failed
action with ``retryable=False``) are not redelivered.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from enum import Enum
from typing import Any, Optional

import paho.mqtt.client as mqtt
from pydantic import ValidationError

from ..core.config import Settings, settings as default_settings
from ..core.errors import log_exception
from ..schemas.automation import AutomationJob
from .orchestrator import RuleOrchestrator


class JobDisposition(str, Enum):
    DONE = "DONE"
    RETRY = "RETRY"
    DROPPED = "DROPPED"
    INVALID = "INVALID"


def run_job(orchestrator: RuleOrchestrator, job: AutomationJob, *, max_attempts: int, logger: logging.Logger) -> JobDisposition:
    try:
        orchestrator.execute(
            job.rule_id,
            job.trigger_type,
            job.trigger_data,
            job.triggered_by_id,
            job_id=job.job_id,
        )
    except Exception as exc:
        retryable = bool(getattr(exc, "retryable", True))
        if retryable and job.attempt < max_attempts:
            logger.warning(
                "Automation job rule=%s job=%s attempt=%s/%s failed, will retry: %s",
                job.rule_id,
                job.job_id,
                job.attempt,
                max_attempts,
                exc,
            )
            return JobDisposition.RETRY
        logger.error(
            "Automation job rule=%s job=%s dropped after attempt %s (retryable=%s): %s",
            job.rule_id,
            job.job_id,
            job.attempt,
            retryable,
            exc,
        )
        return JobDisposition.DROPPED
    return JobDisposition.DONE


class AutomationJobConsumer:
    """MQTT subscriber that executes automation jobs."""

    def __init__(self, orchestrator: RuleOrchestrator, cfg: Settings | None = None, client: Any = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.orchestrator = orchestrator
        self.cfg = cfg or default_settings
        self.topic = self.cfg.automation_job_topic
        self.client = client if client is not None else self._build_client()
        self._connected = threading.Event()

    def _build_client(self) -> mqtt.Client:
        protocol = os.getenv("MQTT_PROTOCOL", "v311").lower()
        if protocol == "v5":
            mqtt_protocol = mqtt.MQTTv5
        else:
            mqtt_protocol = mqtt.MQTTv311
        client_id = f"linxio-automation-{id(self)}"
        self.logger.info("MQTT client_id=%s protocol=%s", client_id, protocol)
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, protocol=mqtt_protocol)
        if self.cfg.mqtt_username:
            client.username_pw_set(self.cfg.mqtt_username, self.cfg.mqtt_password)
        client.on_connect = self.on_connect
        client.on_message = self.on_message
        client.on_disconnect = self.on_disconnect
        client.reconnect_delay_set(min_delay=1, max_delay=10)
        return client

    def on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code == 0:
            self.logger.info(
                "Connected to MQTT broker %s:%s, subscribing to %s",
                self.cfg.mqtt_broker_host,
                self.cfg.mqtt_broker_port,
                self.topic,
            )
            client.subscribe(self.topic, qos=1)
            self._connected.set()
        else:
            self.logger.error("Failed to connect to MQTT broker with code %s", reason_code)

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        self._connected.clear()
        self.logger.warning("MQTT disconnected with reason code %s", reason_code)

    def on_message(self, client, userdata, msg) -> None:
        self.handle_payload(msg.payload, topic=getattr(msg, "topic", None))

    def handle_payload(self, raw: bytes | str, *, topic: Optional[str] = None) -> JobDisposition:
        try:
            data = json.loads(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
            job = AutomationJob.model_validate(data)
        except (ValueError, ValidationError) as exc:
            self.logger.warning(
                "Invalid automation job topic=%s payload_len=%s err=%s",
                topic,
                len(raw) if raw is not None else None,
                exc,
            )
            return JobDisposition.INVALID

        disposition = run_job(
            self.orchestrator,
            job,
            max_attempts=self.cfg.automation_job_max_attempts,
            logger=self.logger,
        )
        if disposition == JobDisposition.RETRY:
            self._republish(job)
        return disposition

    def _republish(self, job: AutomationJob) -> None:
        retry = job.model_copy(update={"attempt": job.attempt + 1})
        try:
            self.client.publish(self.topic, json.dumps(retry.to_message()), qos=1)
        except Exception as exc:
            log_exception(self.logger, "Automation job republish failed", extra={"rule_id": job.rule_id, "job_id": job.job_id}, exc=exc)

    def start(self) -> None:
        try:
            self.client.connect_async(self.cfg.mqtt_broker_host, self.cfg.mqtt_broker_port, keepalive=60)
            self.client.loop_start()
        except Exception as exc:
            self.logger.error(
                "MQTT connection failed for %s:%s (%s)",
                self.cfg.mqtt_broker_host,
                self.cfg.mqtt_broker_port,
                exc,
            )

    def stop(self) -> None:
        try:
            self.client.loop_stop()
            self.client.disconnect()
        except Exception as exc:
            log_exception(self.logger, "MQTT shutdown failed", exc=exc)

    def is_connected(self) -> bool:
        return self._connected.is_set()
