"""Rule-based conversion of mapped spreadsheet cells into entity drafts.

Nothing here talks to a reasoning service: once a table has a column
mapping, every value goes through the same deterministic rules, and the
post-processing step is a pure function of (drafts, today).
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from app.schemas.setup_assistant import (
    CONTRACT_STATUSES,
    DRAFT_MODELS,
    EXPENSE_STATUSES,
    RECEIVABLE_STATUSES,
    ContractDraft,
    EntityType,
    ExpenseDraft,
    ExtractionResult,
    ReceivableDraft,
    TransformKind,
)

from .sheets import strip_accents

logger = logging.getLogger(__name__)

UNSPECIFIED_CLIENT = "Unspecified client"
DEFAULT_EXPENSE_CATEGORY = "Other"

MONEY_FIELDS = frozenset({"total_value", "amount", "received_amount", "paid_amount"})
DATE_FIELDS = frozenset({"signed_date", "expected_date", "received_date", "due_date", "paid_date"})

STATUS_VALUES: dict[EntityType, tuple[str, ...]] = {
    EntityType.CONTRACT: CONTRACT_STATUSES,
    EntityType.RECEIVABLE: RECEIVABLE_STATUSES,
    EntityType.EXPENSE: EXPENSE_STATUSES,
}

# Display spelling as it appears in Brazilian spreadsheets; lookups also
# try the case- and accent-folded form.
STATUS_VOCABULARY: dict[str, str] = {
    "Ativo": "active",
    "Ativa": "active",
    "Em andamento": "active",
    "Active": "active",
    "Concluído": "completed",
    "Concluída": "completed",
    "Completo": "completed",
    "Finalizado": "completed",
    "Completed": "completed",
    "Done": "completed",
    "Cancelado": "cancelled",
    "Cancelada": "cancelled",
    "Cancelled": "cancelled",
    "Canceled": "cancelled",
    "Recebido": "received",
    "Recebida": "received",
    "Received": "received",
    "Pago": "paid",
    "Paga": "paid",
    "Quitado": "paid",
    "Paid": "paid",
    "Pendente": "pending",
    "A Pagar": "pending",
    "A Receber": "pending",
    "Em aberto": "pending",
    "Aberto": "pending",
    "Pending": "pending",
    "Open": "pending",
    "Unpaid": "pending",
    "Atrasado": "overdue",
    "Atrasada": "overdue",
    "Vencido": "overdue",
    "Vencida": "overdue",
    "Overdue": "overdue",
    "Late": "overdue",
    "Sim": "received",
    "Verdadeiro": "received",
    "Yes": "received",
    "True": "received",
    "Não": "pending",
    "Falso": "pending",
    "No": "pending",
    "False": "pending",
}

_FOLDED_VOCABULARY = {strip_accents(key).casefold(): value for key, value in STATUS_VOCABULARY.items()}

# Settled status differs by entity: a "yes" in a receivables sheet means
# received, in an expenses sheet it means paid.
_SETTLED_EQUIVALENTS = {"received": "paid", "paid": "received"}

MONTHS: dict[str, int] = {
    "jan": 1,
    "feb": 2,
    "fev": 2,
    "mar": 3,
    "apr": 4,
    "abr": 4,
    "may": 5,
    "mai": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "ago": 8,
    "sep": 9,
    "set": 9,
    "oct": 10,
    "out": 10,
    "nov": 11,
    "dec": 12,
    "dez": 12,
}

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T\s].*)?$")
_MONTH_NAME_DATE_RE = re.compile(r"^(\d{1,4})[-/\s.]([^\W\d_]{3,})\.?[-/\s.](\d{2,4})$")
_NUMERIC_DATE_RE = re.compile(r"^(\d{1,4})[/\-.](\d{1,2})[/\-.](\d{1,4})$")
_SERIAL_DATE_RE = re.compile(r"^\d{5}(?:\.\d+)?$")
_SPREADSHEET_EPOCH = date(1899, 12, 30)


# ─── Numbers ─────────────────────────────────────────


def parse_locale_number(raw: Any) -> Optional[float]:
    """Parse a number written with either comma or dot as decimal mark.

    The right-most separator decides: followed by one or two digits it is
    the decimal mark, followed by three or more it groups thousands.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)

    text = str(raw).strip()
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = re.sub(r"[^\d.,\-]", "", text)
    if text.endswith("-"):
        negative = True
        text = text[:-1]
    if text.startswith("-"):
        negative = True
        text = text[1:]
    if not text or "-" in text or not any(ch.isdigit() for ch in text):
        return None

    separator_index = max(text.rfind(","), text.rfind("."))
    if separator_index == -1:
        normalized = text
    else:
        integer_part = text[:separator_index].replace(",", "").replace(".", "")
        fraction = text[separator_index + 1 :]
        if 1 <= len(fraction) <= 2 or integer_part in ("", "0"):
            normalized = f"{integer_part or '0'}.{fraction or '0'}"
        else:
            normalized = integer_part + fraction

    try:
        value = float(normalized)
    except ValueError:
        return None
    return -value if negative else value


def parse_currency(raw: Any) -> Optional[float]:
    if isinstance(raw, str):
        raw = re.sub(r"(?i)R\$|US\$|BRL|USD|EUR|[$€£]", "", raw)
    return parse_locale_number(raw)


# ─── Dates ───────────────────────────────────────────


def _expand_year(token: str) -> Optional[int]:
    if len(token) == 2:
        year = int(token)
        return 2000 + year if year < 30 else 1900 + year
    if len(token) == 4:
        return int(token)
    return None


def _build_date(year: Optional[int], month: int, day: int) -> Optional[str]:
    if year is None:
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_date(raw: Any) -> Optional[str]:
    """Normalize a date written in any of the common spreadsheet forms to ``YYYY-MM-DD``.

    Returns ``None`` when the value cannot be read as a calendar date.
    """
    if raw is None:
        return None
    if isinstance(raw, date):
        return raw.isoformat()[:10]

    text = str(raw).strip()
    if not text:
        return None

    match = _ISO_DATE_RE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _build_date(year, month, day)

    if _SERIAL_DATE_RE.match(text):
        serial = int(float(text))
        if 20000 <= serial <= 80000:
            return (_SPREADSHEET_EPOCH + timedelta(days=serial)).isoformat()
        return None

    # Drop a trailing time component ("23/10/2020 14:30").
    text = text.split(" ")[0] if re.match(r"^\S+\s+\d{1,2}:\d{2}", text) else text

    match = _MONTH_NAME_DATE_RE.match(text)
    if match:
        first, month_name, last = match.groups()
        month = MONTHS.get(strip_accents(month_name[:3]).lower())
        if month is None:
            return None
        if int(first) > 31:
            return _build_date(_expand_year(first), month, int(last))
        return _build_date(_expand_year(last), month, int(first))

    match = _NUMERIC_DATE_RE.match(text)
    if match:
        first, middle, last = match.groups()
        if len(first) == 4 or int(first) > 31:
            return _build_date(_expand_year(first), int(middle), int(last))
        return _build_date(_expand_year(last), int(middle), int(first))

    return None


# ─── Status / enum ───────────────────────────────────


def _fold(value: str) -> str:
    return strip_accents(value).casefold().strip()


def _fit_to_allowed(status: str, allowed: Optional[Iterable[str]]) -> str:
    if not allowed:
        return status
    allowed = [item.lower() for item in allowed]
    if status in allowed:
        return status
    equivalent = _SETTLED_EQUIVALENTS.get(status)
    if equivalent in allowed:
        return equivalent
    return status


def transform_status(raw: str, enum_values: Optional[list[str]] = None) -> str:
    """Map a free-text status to the canonical vocabulary.

    Order: exact match, case/accent-insensitive match, then substring match
    against the allowed values (or the vocabulary when none are given).
    Anything unmatched is returned lower-cased.
    """
    value = raw.strip()

    if value in STATUS_VOCABULARY:
        return _fit_to_allowed(STATUS_VOCABULARY[value], enum_values)

    folded = _fold(value)
    if folded in _FOLDED_VOCABULARY:
        return _fit_to_allowed(_FOLDED_VOCABULARY[folded], enum_values)

    if enum_values:
        for candidate in enum_values:
            folded_candidate = _fold(candidate)
            if folded_candidate == folded:
                return candidate.lower()
        for candidate in enum_values:
            folded_candidate = _fold(candidate)
            if folded_candidate and (folded_candidate in folded or folded in folded_candidate):
                return candidate.lower()
    else:
        for key, status in _FOLDED_VOCABULARY.items():
            if len(key) >= 4 and (key in folded or (len(folded) >= 4 and folded in key)):
                return status

    return value.lower()


# ─── Public API ──────────────────────────────────────


def transform_value(raw: Any, kind: TransformKind | str, enum_values: Optional[list[str]] = None) -> Any:
    if raw is None:
        return None
    if isinstance(raw, str) and raw.strip() == "":
        return None

    kind = TransformKind(kind)
    if kind == TransformKind.CURRENCY:
        return parse_currency(raw)
    if kind == TransformKind.NUMBER:
        return parse_locale_number(raw)
    if kind == TransformKind.DATE:
        return normalize_date(raw)
    if kind in (TransformKind.STATUS, TransformKind.ENUM):
        return transform_status(str(raw), enum_values)
    return str(raw).strip()


def _normalize_header(header: str) -> str:
    return " ".join(header.split()).casefold()


def extract_entity(
    row: dict[str, str],
    mapping: dict[str, Any],
    *,
    status_values: Optional[Iterable[str]] = None,
) -> dict[str, Any]:
    """Merge the mapped cells of *row* into one draft payload.

    Columns are visited left to right; once a field holds a value, later
    columns mapped to the same field are ignored.
    """
    normalized_mapping = {_normalize_header(key): entry for key, entry in mapping.items()}
    entity: dict[str, Any] = {}

    for header, raw in row.items():
        entry = mapping.get(header) or normalized_mapping.get(_normalize_header(header))
        if entry is None or entry.field in entity:
            continue
        enum_values = entry.enum_values
        if not enum_values and entry.field == "status" and status_values:
            enum_values = list(status_values)
        value = transform_value(raw, entry.transform, enum_values)
        if value is not None:
            entity[entry.field] = value

    return entity


def coerce_fields(values: dict[str, Any]) -> dict[str, Any]:
    """Bring money and date fields to their draft types whatever transform produced them."""
    coerced: dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        if key in MONEY_FIELDS:
            value = value if isinstance(value, (int, float)) and not isinstance(value, bool) else parse_currency(value)
        elif key in DATE_FIELDS:
            value = normalize_date(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        elif isinstance(value, str):
            value = value.strip() or None
        if value is not None:
            coerced[key] = value
    return coerced


def build_drafts(
    entity_type: EntityType,
    headers: list[str],
    rows: list[list[str]],
    mapping: dict[str, Any],
    *,
    label: str,
    row_numbers: Optional[list[int]] = None,
) -> tuple[list, list[str]]:
    """Turn region rows into drafts of *entity_type*; returns (drafts, warnings)."""
    model = DRAFT_MODELS[entity_type]
    status_values = STATUS_VALUES.get(entity_type)
    drafts = []
    warnings: list[str] = []

    for index, cells in enumerate(rows):
        row_number = row_numbers[index] if row_numbers else index + 1
        row: dict[str, str] = {}
        for position, header in enumerate(headers):
            row.setdefault(header, cells[position] if position < len(cells) else "")

        values = coerce_fields(extract_entity(row, mapping, status_values=status_values))
        if not values:
            continue
        try:
            drafts.append(
                model.model_validate({**values, "source_sheet": label, "source_row": row_number})
            )
        except ValidationError as exc:
            first = exc.errors()[0]
            warnings.append(f"{label} row {row_number}: {first.get('loc', ('?',))[0]}: {first.get('msg')}")

    return drafts, warnings


# ─── Post-processing ─────────────────────────────────


def _money(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _post_process_contract(draft: ContractDraft) -> tuple[Optional[ContractDraft], Optional[str]]:
    client_name = (draft.client_name or "").strip() or None
    project_name = (draft.project_name or "").strip() or None
    if client_name is None and project_name is None:
        return None, "contract dropped (no client or project name)"
    if draft.total_value is not None and draft.total_value <= 0:
        return None, "contract dropped (total value not positive)"

    return draft.model_copy(update={
        "client_name": client_name or project_name,
        "project_name": project_name or client_name,
        "status": draft.status or "active",
        "signed_date": normalize_date(draft.signed_date),
        "total_value": _money(draft.total_value),
    }), None


def _post_process_receivable(draft: ReceivableDraft, today: date) -> tuple[Optional[ReceivableDraft], Optional[str]]:
    if draft.amount is None or draft.amount <= 0:
        return None, "receivable dropped (amount missing or not positive)"

    expected_date = normalize_date(draft.expected_date) or today.isoformat()
    status = draft.status
    if status is None:
        status = "pending" if date.fromisoformat(expected_date) >= today else "received"

    received_date = normalize_date(draft.received_date)
    received_amount = draft.received_amount
    if status == "received":
        received_date = received_date or expected_date
        received_amount = received_amount if received_amount is not None else draft.amount

    client_name = draft.client_name
    if not client_name:
        reference = (draft.contract_ref or "").strip()
        if reference and not _is_uuid(reference):
            client_name = reference
        else:
            client_name = draft.description or UNSPECIFIED_CLIENT

    return draft.model_copy(update={
        "expected_date": expected_date,
        "status": status,
        "received_date": received_date,
        "received_amount": _money(received_amount),
        "amount": _money(draft.amount),
        "client_name": client_name,
    }), None


def _post_process_expense(draft: ExpenseDraft, today: date) -> tuple[Optional[ExpenseDraft], Optional[str]]:
    if not (draft.description or "").strip():
        return None, "expense dropped (no description)"
    if draft.amount is None or draft.amount <= 0:
        return None, "expense dropped (amount missing or not positive)"

    due_date = normalize_date(draft.due_date) or today.isoformat()
    status = draft.status
    if status is None:
        status = "pending" if date.fromisoformat(due_date) >= today else "paid"

    paid_date = normalize_date(draft.paid_date)
    paid_amount = draft.paid_amount
    if status == "paid":
        paid_date = paid_date or due_date
        paid_amount = paid_amount if paid_amount is not None else draft.amount

    return draft.model_copy(update={
        "category": draft.category or DEFAULT_EXPENSE_CATEGORY,
        "due_date": due_date,
        "status": status,
        "paid_date": paid_date,
        "paid_amount": _money(paid_amount),
        "amount": _money(draft.amount),
    }), None


def post_process_entities(batch: ExtractionResult, today: date) -> ExtractionResult:
    """Fill inferable fields and drop drafts that cannot become entities.

    Only missing values are filled in; a value present in the draft is kept
    (dates are re-normalized to ``YYYY-MM-DD``). Dropped drafts are reported
    in the returned result's warnings. *batch* is not modified.
    """
    result = ExtractionResult(warnings=list(batch.warnings))

    for draft in batch.contracts:
        processed, reason = _post_process_contract(draft)
        if processed is None:
            result.warnings.append(f"{draft.source_label()}: {reason}")
        else:
            result.contracts.append(processed)

    for draft in batch.receivables:
        processed, reason = _post_process_receivable(draft, today)
        if processed is None:
            result.warnings.append(f"{draft.source_label()}: {reason}")
        else:
            result.receivables.append(processed)

    for draft in batch.expenses:
        processed, reason = _post_process_expense(draft, today)
        if processed is None:
            result.warnings.append(f"{draft.source_label()}: {reason}")
        else:
            result.expenses.append(processed)

    dropped = batch.total_entities - result.total_entities
    if dropped:
        logger.warning("Post-processing dropped %d of %d drafts", dropped, batch.total_entities)
    return result
