"""Tenant-scoped persistence for contracts, receivables and expenses.

Each service validates rows with the strict create schemas, inserts the
valid ones and writes one summary audit entry per bulk call. Row
rejections are reported, database errors propagate.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.finance import Contract, Expense, Receivable
from app.schemas.finance import ContractCreate, ExpenseCreate, ReceivableCreate
from app.services.audit_service import create_audit_log

logger = logging.getLogger(__name__)

DRAFT_ONLY_FIELDS = {"source_sheet", "source_row"}


class BulkValidationError(Exception):
    pass


@dataclass
class BulkCreateResult:
    success_count: int = 0
    failure_count: int = 0
    errors: list[str] = field(default_factory=list)
    created: list[Any] = field(default_factory=list)


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "row"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


class EntityService:
    model: type = None
    create_schema: type[BaseModel] = None
    entity_label = "Entity"
    audit_entity_type = "entity"
    audit_action = "BULK_CREATE"

    def __init__(self, db: Session, team_id: str) -> None:
        self.db = db
        self.team_id = team_id

    def _payload(self, draft: BaseModel) -> dict[str, Any]:
        return draft.model_dump(exclude=DRAFT_ONLY_FIELDS, exclude_none=True)

    async def find_many(self) -> list[Any]:
        return (
            self.db.query(self.model)
            .filter(self.model.team_id == self.team_id)
            .order_by(self.model.created_at.asc())
            .all()
        )

    async def bulk_create(self, drafts: list[BaseModel], *, continue_on_error: bool = True) -> BulkCreateResult:
        result = BulkCreateResult()

        for index, draft in enumerate(drafts, start=1):
            try:
                data = self.create_schema.model_validate(self._payload(draft))
            except ValidationError as exc:
                source = getattr(draft, "source_label", None)
                where = f" ({source()})" if source else ""
                message = f"{self.entity_label} {index}{where}: {describe_validation_error(exc)}"
                if not continue_on_error:
                    raise BulkValidationError(message) from exc
                result.failure_count += 1
                result.errors.append(message)
                continue

            row = self.model(id=uuid.uuid4(), team_id=self.team_id, **data.model_dump())
            self.db.add(row)
            result.created.append(row)

        if not result.created:
            return result

        try:
            self.db.flush()
            create_audit_log(
                self.db,
                entity_type=self.audit_entity_type,
                entity_id=str(uuid.uuid4()),
                action=self.audit_action,
                old_value=None,
                new_value={
                    "created": len(result.created),
                    "failed": result.failure_count,
                    "ids": [str(row.id) for row in result.created],
                },
                actor_type="SYSTEM",
                team_id=self.team_id,
                metadata={"source": "setup_assistant"},
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("%s bulk create failed for team %s", self.entity_label, self.team_id)
            raise

        result.success_count = len(result.created)
        logger.info(
            "%s bulk create: %d created, %d rejected",
            self.entity_label,
            result.success_count,
            result.failure_count,
        )
        return result


class ContractService(EntityService):
    model = Contract
    create_schema = ContractCreate
    entity_label = "Contract"
    audit_entity_type = "contract"
    audit_action = "BULK_CREATE_CONTRACTS"


class ReceivableService(EntityService):
    model = Receivable
    create_schema = ReceivableCreate
    entity_label = "Receivable"
    audit_entity_type = "receivable"
    audit_action = "BULK_CREATE_RECEIVABLES"

    def _payload(self, draft: BaseModel) -> dict[str, Any]:
        payload = super()._payload(draft)
        contract_ref = payload.pop("contract_ref", None)
        if contract_ref:
            payload["contract_id"] = contract_ref
        return payload


class ExpenseService(EntityService):
    model = Expense
    create_schema = ExpenseCreate
    entity_label = "Expense"
    audit_entity_type = "expense"
    audit_action = "BULK_CREATE_EXPENSES"
