from enum import StrEnum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FileType(StrEnum):
    XLSX = "xlsx"
    CSV = "csv"
    PDF = "pdf"
    IMAGE = "image"


class EntityType(StrEnum):
    CONTRACT = "contract"
    RECEIVABLE = "receivable"
    EXPENSE = "expense"
    SKIP = "skip"


class TransformKind(StrEnum):
    DATE = "date"
    CURRENCY = "currency"
    STATUS = "status"
    ENUM = "enum"
    TEXT = "text"
    NUMBER = "number"


CONTRACT_STATUSES = ("active", "completed", "cancelled")
RECEIVABLE_STATUSES = ("pending", "received", "overdue")
EXPENSE_STATUSES = ("pending", "paid", "overdue", "cancelled")


# --- Drafts (every field optional until post-processing) ---


class _Draft(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source_sheet: Optional[str] = None
    source_row: Optional[int] = None

    def source_label(self) -> str:
        if self.source_sheet and self.source_row:
            return f"{self.source_sheet} row {self.source_row}"
        return self.source_sheet or "document"


class ContractDraft(_Draft):
    client_name: Optional[str] = None
    project_name: Optional[str] = None
    total_value: Optional[float] = None
    signed_date: Optional[str] = None
    status: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class ReceivableDraft(_Draft):
    contract_ref: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("contract_ref", "contractRef", "contractId", "contract_id"),
    )
    client_name: Optional[str] = None
    description: Optional[str] = None
    expected_date: Optional[str] = None
    amount: Optional[float] = None
    status: Optional[str] = None
    received_date: Optional[str] = None
    received_amount: Optional[float] = None
    category: Optional[str] = None


class ExpenseDraft(_Draft):
    description: Optional[str] = None
    amount: Optional[float] = None
    due_date: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    paid_date: Optional[str] = None
    paid_amount: Optional[float] = None
    vendor: Optional[str] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None


DRAFT_MODELS: dict[EntityType, type[_Draft]] = {
    EntityType.CONTRACT: ContractDraft,
    EntityType.RECEIVABLE: ReceivableDraft,
    EntityType.EXPENSE: ExpenseDraft,
}


class ExtractionResult(BaseModel):
    contracts: list[ContractDraft] = Field(default_factory=list)
    receivables: list[ReceivableDraft] = Field(default_factory=list)
    expenses: list[ExpenseDraft] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def total_entities(self) -> int:
        return len(self.contracts) + len(self.receivables) + len(self.expenses)


# --- Results ---


class SheetsSummary(BaseModel):
    total_sheets: int = 0
    total_tables: int = 0
    analyzed_tables: int = 0
    skipped_tables: int = 0
    failed_tables: int = 0
    total_batches: int = 0


class ProcessingResult(BaseModel):
    success: bool
    file_type: Optional[FileType] = None
    contracts_created: int = 0
    receivables_created: int = 0
    expenses_created: int = 0
    contracts_found: int = 0
    receivables_found: int = 0
    expenses_found: int = 0
    errors: list[str] = Field(default_factory=list)
    sheets: Optional[SheetsSummary] = None
    metrics: dict[str, float] = Field(default_factory=dict)


class FileResult(BaseModel):
    filename: str
    status: str
    result: Optional[ProcessingResult] = None
    error: Optional[str] = None
    processing_ms: float = 0.0


class MultiFileResult(BaseModel):
    total_files: int
    successful_files: int
    failed_files: int
    contracts_created: int = 0
    receivables_created: int = 0
    expenses_created: int = 0
    file_results: list[FileResult] = Field(default_factory=list)
