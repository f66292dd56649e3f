"""Audit trail writes shared by the AI layer and bulk entity persistence."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models.finance import AuditLog

logger = logging.getLogger(__name__)


def create_audit_log(
    db: Session,
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    old_value: Optional[dict[str, Any]],
    new_value: Optional[dict[str, Any]],
    actor_type: str,
    actor_id: Optional[str] = None,
    team_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    log = AuditLog(
        team_id=team_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        actor_type=actor_type,
        actor_id=actor_id,
        audit_meta=metadata,
    )
    db.add(log)
