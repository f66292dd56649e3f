"""Sheet analysis scope contracts: table sample in, entity type + column mapping out."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_snake

from app.schemas.setup_assistant import DRAFT_MODELS, EntityType, TransformKind

_SOURCE_FIELDS = {"source_sheet", "source_row"}

ENTITY_FIELDS: dict[EntityType, frozenset[str]] = {
    entity_type: frozenset(set(model.model_fields) - _SOURCE_FIELDS)
    for entity_type, model in DRAFT_MODELS.items()
}

FIELD_ALIASES = {
    "contract_id": "contract_ref",
    "contract": "contract_ref",
    "contract_name": "contract_ref",
}

ENTITY_ALIASES = {
    "contracts": EntityType.CONTRACT,
    "receivables": EntityType.RECEIVABLE,
    "expenses": EntityType.EXPENSE,
    "ignore": EntityType.SKIP,
    "none": EntityType.SKIP,
    "unknown": EntityType.SKIP,
}

TRANSFORM_ALIASES = {
    "boolean": TransformKind.STATUS,
    "money": TransformKind.CURRENCY,
    "amount": TransformKind.CURRENCY,
    "decimal": TransformKind.NUMBER,
    "integer": TransformKind.NUMBER,
    "string": TransformKind.TEXT,
}


def normalize_field_name(name: str) -> str:
    snake = to_snake(name.strip()).replace(" ", "_")
    return FIELD_ALIASES.get(snake, snake)


class TableSample(BaseModel):
    """What the reasoning service sees of one table region."""

    label: str
    headers: list[str]
    rows: list[list[str]] = []
    total_rows: int = 0


class AnalysisContext(BaseModel):
    business_context: str
    known_contract_names: list[str] = []
    filename: str = ""


class ColumnMappingEntry(BaseModel):
    field: str
    transform: TransformKind = TransformKind.TEXT
    enum_values: Optional[list[str]] = Field(
        default=None,
        validation_alias=AliasChoices("enum_values", "enumValues"),
    )

    @field_validator("field", mode="before")
    @classmethod
    def normalize_field(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Target field is required")
        return normalize_field_name(v)

    @field_validator("transform", mode="before")
    @classmethod
    def normalize_transform(cls, v):
        if v is None:
            return TransformKind.TEXT
        value = str(v).strip().lower()
        if value in TRANSFORM_ALIASES:
            return TRANSFORM_ALIASES[value]
        if value in {kind.value for kind in TransformKind}:
            return value
        return TransformKind.TEXT


class SheetAnalysisResult(BaseModel):
    """Structured output expected from sheet analysis."""

    entity_type: EntityType = Field(
        validation_alias=AliasChoices("entity_type", "entityType", "sheetType", "sheet_type", "type"),
    )
    column_mapping: dict[str, ColumnMappingEntry] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("column_mapping", "columnMapping", "mapping"),
    )
    reasoning: Optional[str] = None

    @field_validator("entity_type", mode="before")
    @classmethod
    def normalize_entity_type(cls, v):
        if not isinstance(v, str):
            msg = f"Entity type must be a string, got {v!r}"
            raise ValueError(msg)
        value = v.strip().lower()
        if value in ENTITY_ALIASES:
            return ENTITY_ALIASES[value]
        if value not in {kind.value for kind in EntityType}:
            msg = f"Unknown entity type {v!r}"
            raise ValueError(msg)
        return value

    @field_validator("column_mapping", mode="before")
    @classmethod
    def drop_unmapped_columns(cls, v):
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("Column mapping must be an object")
        cleaned = {}
        for header, entry in v.items():
            if isinstance(entry, str):
                entry = {"field": entry}
            if not isinstance(entry, dict):
                continue
            target = entry.get("field")
            if not isinstance(target, str) or target.strip().lower() in ("", "skip", "ignore", "none", "null"):
                continue
            cleaned[str(header)] = entry
        return cleaned

    @model_validator(mode="after")
    def keep_fields_of_entity(self):
        allowed = ENTITY_FIELDS.get(self.entity_type)
        if allowed is None:
            self.column_mapping = {}
        else:
            self.column_mapping = {
                header: entry
                for header, entry in self.column_mapping.items()
                if entry.field in allowed
            }
        return self
