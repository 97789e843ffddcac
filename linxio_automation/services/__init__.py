"""
Service layer for the Linxio automation service.

This package contains the rule engine: condition evaluation, action
dispatch, execution auditing and the orchestrator that ties them together,
plus the SQL and MQTT adapters it runs on.
"""

from .orchestrator import RuleOrchestrator
from .automation_service import build_orchestrator
