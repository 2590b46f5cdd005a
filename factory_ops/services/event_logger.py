import json
import uuid
from typing import Any, Dict, Optional

from sqlmodel import Session

from ..models.planning import Event
from ..utils.helpers import utcnow


def log_event(
    session: Session,
    event_type: str,
    description: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    eid = f"EVT-{uuid.uuid4().hex}"
    e = Event(
        event_id=eid,
        event_type=event_type,
        description=description,
        event_date=utcnow(),
        metadata_json=json.dumps(metadata, default=str) if metadata else None,
    )
    session.add(e)
    return eid
