# factory_ops/api/orders.py

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from ..database import get_session
from ..errors import (
    ComputationError,
    ConcurrentUpdateError,
    CyclicDependencyError,
    DanglingDependencyError,
    NotADagError,
    RecordStoreError,
    UnknownOrderError,
)
from ..models.master import Order
from ..services import schedule as schedule_service

router = APIRouter(prefix="/api/orders", tags=["orders"])


class DependencyRequest(BaseModel):
    dependency_id: str


@router.get("")
def list_orders(session: Session = Depends(get_session)):
    return session.exec(select(Order).order_by(Order.order_id)).all()


@router.get("/schedule")
def get_schedule(session: Session = Depends(get_session)):
    """Earliest/latest start, slack and the critical path over all orders."""
    try:
        return schedule_service.compute_order_schedule(session)
    except NotADagError as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "cycle": e.cycle})
    except ComputationError as e:
        raise HTTPException(status_code=422, detail={"message": f"Schedule unavailable: {e}"})
    except RecordStoreError as e:
        raise HTTPException(status_code=503, detail={"message": f"Schedule unavailable: {e}"})


@router.get("/blocked")
def get_blocked(session: Session = Depends(get_session)):
    return schedule_service.get_blocked_orders(session)


@router.post("/{order_id}/dependencies")
def add_dependency(order_id: str, request: DependencyRequest, session: Session = Depends(get_session)):
    try:
        return schedule_service.add_order_dependency(session, order_id, request.dependency_id)
    except UnknownOrderError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DanglingDependencyError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except CyclicDependencyError as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "path": e.path})
    except ConcurrentUpdateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/{order_id}/dependencies/{dependency_id}")
def remove_dependency(order_id: str, dependency_id: str, session: Session = Depends(get_session)):
    try:
        return schedule_service.remove_order_dependency(session, order_id, dependency_id)
    except UnknownOrderError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConcurrentUpdateError as e:
        raise HTTPException(status_code=409, detail=str(e))
