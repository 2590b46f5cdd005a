# factory_ops/api/rules.py
"""
Automation rule endpoints - CRUD, manual evaluation and runner control.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from ..database import get_session
from ..errors import RecordNotFoundError, RuleValidationError
from ..services import automation


router = APIRouter(prefix="/api/rules", tags=["rules"])


# ============ Request Models ============

class TriggerSpec(BaseModel):
    type: str
    conditions: Dict[str, Any] = Field(default_factory=dict)


class ActionSpec(BaseModel):
    type: str
    params: Dict[str, Any] = Field(default_factory=dict)


class RuleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    enabled: bool = True
    trigger: TriggerSpec
    action: ActionSpec
    debounce_minutes: Optional[int] = Field(default=None, alias="debounceMinutes")


class RuleUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    description: Optional[str] = None
    enabled: Optional[bool] = None
    trigger: Optional[TriggerSpec] = None
    action: Optional[ActionSpec] = None
    debounce_minutes: Optional[int] = Field(default=None, alias="debounceMinutes")


def _payload(request: BaseModel) -> Dict[str, Any]:
    return request.model_dump(by_alias=True, exclude_none=True)


# ============ Rule CRUD ============

@router.get("")
def list_rules(session: Session = Depends(get_session)):
    return automation.list_rules(session)


@router.post("", status_code=201)
def create_rule(request: RuleRequest, session: Session = Depends(get_session)):
    try:
        return automation.create_rule(session, _payload(request))
    except RuleValidationError as e:
        raise HTTPException(status_code=422, detail={"message": str(e), "errors": e.errors})


@router.post("/import-defaults")
def import_defaults(session: Session = Depends(get_session)):
    """Store the built-in rule set; rules already present by name are skipped."""
    return automation.import_default_rules(session)


@router.post("/evaluate")
def evaluate_rules(session: Session = Depends(get_session)):
    """Run one evaluation pass over all enabled rules now."""
    return automation.evaluate_enabled_rules(session)


@router.get("/executions")
def list_executions(rule_id: Optional[str] = None, limit: int = 50, session: Session = Depends(get_session)):
    return automation.list_executions(session, rule_id=rule_id, limit=limit)


# ============ Runner control ============

@router.get("/runner/status")
def runner_status():
    from ..services.rule_runner import get_status
    return get_status()


@router.post("/runner/start")
def runner_start(interval: Optional[int] = None):
    from ..services.rule_runner import start_runner
    return start_runner(interval)


@router.post("/runner/stop")
def runner_stop():
    from ..services.rule_runner import stop_runner
    return stop_runner()


@router.get("/config")
def get_automation_config():
    """Get current automation configuration."""
    from ..config import get_config
    config = get_config()
    return {
        "write_enabled": config.WRITE_ENABLED,
        "dry_run": not config.WRITE_ENABLED,
        "default_debounce_minutes": config.DEFAULT_DEBOUNCE_MINUTES,
        "evaluation_interval_seconds": config.EVALUATION_INTERVAL_SECONDS,
    }


@router.post("/config/dry-run")
def set_dry_run_mode(enabled: bool = True):
    """
    Enable or disable dry-run mode.

    When dry_run=True, rules still evaluate and notify but mutating actions
    report what they would change without writing it.
    """
    from ..config import set_dry_run
    return set_dry_run(enabled)


# ============ Single rule ============

@router.get("/{rule_id}")
def get_rule(rule_id: str, session: Session = Depends(get_session)):
    try:
        return automation.get_rule(session, rule_id).to_dict()
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/{rule_id}")
def update_rule(rule_id: str, request: RuleUpdateRequest, session: Session = Depends(get_session)):
    try:
        return automation.update_rule(session, rule_id, _payload(request))
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuleValidationError as e:
        raise HTTPException(status_code=422, detail={"message": str(e), "errors": e.errors})


@router.post("/{rule_id}/toggle")
def toggle_rule(rule_id: str, session: Session = Depends(get_session)):
    try:
        return automation.toggle_rule(session, rule_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{rule_id}", status_code=204)
def delete_rule(rule_id: str, session: Session = Depends(get_session)):
    try:
        automation.delete_rule(session, rule_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{rule_id}/test")
def test_rule(rule_id: str, session: Session = Depends(get_session)):
    """
    Evaluate a single rule now. The response ``outcome`` is one of
    skipped / not_triggered / triggered / error.
    """
    try:
        return automation.test_rule(session, rule_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuleValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
