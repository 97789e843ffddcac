"""
API endpoints for automation rules: lifecycle toggles, audit history and
manual runs.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from ...core.db import get_db
from ...core.errors import (
    ActionFailedError,
    AuditWriteError,
    EntityNotFoundError,
    ExecutionTimeoutError,
)
from ...core.pagination import page_window
from ...models.automation_rule import AutomationRule, RuleStatus
from ...schemas.automation import ManualRunRequest, RuleExecutionList, RuleExecutionOut, RuleOut
from ...services.automation_service import build_orchestrator
from ...services.orchestrator import RuleOrchestrator


router = APIRouter(prefix="/api/v1/automation", tags=["automation"])


def get_orchestrator(request: Request) -> RuleOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = build_orchestrator(notifier=getattr(request.app.state, "event_notifier", None))
        request.app.state.orchestrator = orchestrator
    return orchestrator


def _get_rule(db: Session, rule_id: str) -> AutomationRule:
    rule = db.get(AutomationRule, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.get("/rules/{rule_id}", response_model=RuleOut)
def get_rule(rule_id: str, db: Session = Depends(get_db)) -> RuleOut:
    return RuleOut.model_validate(_get_rule(db, rule_id))


def _set_status(orchestrator: RuleOrchestrator, db: Session, rule_id: str, status: RuleStatus) -> RuleOut:
    if orchestrator.rule_store.set_status(rule_id, status.value) is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    db.expire_all()
    return RuleOut.model_validate(_get_rule(db, rule_id))


@router.post("/rules/{rule_id}/enable", response_model=RuleOut)
def enable_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    orchestrator: RuleOrchestrator = Depends(get_orchestrator),
) -> RuleOut:
    return _set_status(orchestrator, db, rule_id, RuleStatus.ACTIVE)


@router.post("/rules/{rule_id}/disable", response_model=RuleOut)
def disable_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    orchestrator: RuleOrchestrator = Depends(get_orchestrator),
) -> RuleOut:
    return _set_status(orchestrator, db, rule_id, RuleStatus.INACTIVE)


@router.get("/rules/{rule_id}/executions", response_model=RuleExecutionList)
def list_executions(
    rule_id: str,
    response: Response,
    success: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1),
    db: Session = Depends(get_db),
    orchestrator: RuleOrchestrator = Depends(get_orchestrator),
) -> RuleExecutionList:
    _get_rule(db, rule_id)
    window = page_window(page, page_size)
    records, total = orchestrator.recorder.store.list_for_rule(
        rule_id,
        success=success,
        offset=window.offset,
        limit=window.size,
    )
    window.apply_headers(response, total)
    return RuleExecutionList(
        items=[RuleExecutionOut.model_validate(r) for r in records],
        total=total,
        page=window.page,
        page_size=window.size,
    )


@router.post("/rules/{rule_id}/run")
def run_rule(
    rule_id: str,
    payload: ManualRunRequest,
    orchestrator: RuleOrchestrator = Depends(get_orchestrator),
) -> dict:
    try:
        outcome = orchestrator.execute(
            rule_id,
            payload.trigger_type,
            payload.trigger_data,
            payload.triggered_by_id,
            timeout_sec=payload.timeout_sec,
        )
    except ExecutionTimeoutError:
        raise HTTPException(status_code=504, detail="timeout")
    except ActionFailedError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except EntityNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except AuditWriteError:
        raise HTTPException(status_code=503, detail="Audit write failed")
    result = outcome.to_dict()
    if outcome.record_id:
        result["executionId"] = outcome.record_id
    return result
