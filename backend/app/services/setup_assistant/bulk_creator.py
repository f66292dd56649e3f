"""Ordered bulk persistence of post-processed drafts.

Contracts go first so receivables can point at contracts created in the
same run; receivables and expenses are then written concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field

from app.schemas.setup_assistant import ExtractionResult, ReceivableDraft
from app.services.finance_entities import BulkCreateResult, EntityService

logger = logging.getLogger(__name__)


@dataclass
class CreationSummary:
    contracts_created: int = 0
    receivables_created: int = 0
    expenses_created: int = 0
    errors: list[str] = field(default_factory=list)
    success: bool = True


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def map_contract_ids(
    receivables: list[ReceivableDraft],
    contracts: list,
    created: list | None = None,
) -> list[ReceivableDraft]:
    """Replace textual contract references with contract ids.

    Matching is a case-insensitive exact match on project name; contracts
    created in this run win over older ones with the same name.
    Unresolved references become ``None`` (standalone receivables).
    """
    by_project: dict[str, str] = {}
    for contract in [*contracts, *(created or [])]:
        if contract.project_name:
            by_project[contract.project_name.strip().casefold()] = str(contract.id)
    known_ids = {str(contract.id) for contract in [*contracts, *(created or [])]}

    mapped = []
    for draft in receivables:
        reference = (draft.contract_ref or "").strip()
        resolved = None
        if reference:
            if _is_uuid(reference):
                canonical = str(uuid.UUID(reference))
                resolved = canonical if canonical in known_ids else None
            else:
                resolved = by_project.get(reference.casefold())
            if resolved is None:
                logger.info("Receivable reference %r not matched, stored as standalone", reference)
        mapped.append(draft.model_copy(update={"contract_ref": resolved}))
    return mapped


async def _persist(service: EntityService, drafts: list) -> BulkCreateResult:
    if not drafts:
        return BulkCreateResult()
    return await service.bulk_create(drafts, continue_on_error=True)


async def create_entities(
    batch: ExtractionResult,
    *,
    contract_service: EntityService,
    receivable_service: EntityService,
    expense_service: EntityService,
) -> CreationSummary:
    """Persist *batch* and aggregate counts and error strings.

    A failing bulk call marks the summary unsuccessful but never stops the
    other entity types from being attempted.
    """
    summary = CreationSummary()

    created_contracts: list = []
    try:
        contract_result = await _persist(contract_service, batch.contracts)
    except Exception as exc:
        logger.exception("Contracts bulk create failed")
        summary.errors.append(f"Contracts bulk create failed: {exc}")
        summary.success = False
    else:
        summary.contracts_created = contract_result.success_count
        summary.errors.extend(contract_result.errors)
        created_contracts = contract_result.created

    receivables = batch.receivables
    if receivables:
        try:
            existing = await contract_service.find_many()
        except Exception as exc:
            logger.exception("Loading contracts for reference mapping failed")
            summary.errors.append(f"Contract lookup failed: {exc}")
            existing = []
        created_ids = {str(contract.id) for contract in created_contracts}
        older = [contract for contract in existing if str(contract.id) not in created_ids]
        receivables = map_contract_ids(receivables, older, created_contracts)

    receivable_outcome, expense_outcome = await asyncio.gather(
        _persist(receivable_service, receivables),
        _persist(expense_service, batch.expenses),
        return_exceptions=True,
    )

    for label, outcome, attribute in (
        ("Receivables", receivable_outcome, "receivables_created"),
        ("Expenses", expense_outcome, "expenses_created"),
    ):
        if isinstance(outcome, BaseException):
            logger.error("%s bulk create failed: %s", label, outcome)
            summary.errors.append(f"{label} bulk create failed: {outcome}")
            summary.success = False
            continue
        setattr(summary, attribute, outcome.success_count)
        summary.errors.extend(outcome.errors)

    return summary
