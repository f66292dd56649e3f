from datetime import date
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ContractStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReceivableStatus(StrEnum):
    PENDING = "pending"
    RECEIVED = "received"
    OVERDUE = "overdue"


class ExpenseStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


def _strip_or_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


# --- Create payloads (validated at persistence time) ---


class ContractCreate(BaseModel):
    client_name: str = Field(..., min_length=1, max_length=255)
    project_name: str = Field(..., min_length=1, max_length=255)
    total_value: Optional[float] = Field(default=None, gt=0)
    signed_date: Optional[date] = None
    status: ContractStatus = ContractStatus.ACTIVE
    category: Optional[str] = Field(default=None, max_length=128)
    description: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("client_name", "project_name", "category", mode="before")
    @classmethod
    def _strip_text(cls, value):
        return _strip_or_none(value)


class ReceivableCreate(BaseModel):
    contract_id: Optional[str] = None
    client_name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    expected_date: date
    amount: float = Field(..., gt=0)
    status: ReceivableStatus = ReceivableStatus.PENDING
    received_date: Optional[date] = None
    received_amount: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, max_length=128)

    @model_validator(mode="after")
    def _received_not_above_amount(self):
        if self.received_amount is not None and self.received_amount > self.amount:
            raise ValueError("received_amount cannot exceed amount")
        return self


class ExpenseCreate(BaseModel):
    contract_id: Optional[str] = None
    description: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    due_date: date
    category: str = Field(..., min_length=1, max_length=128)
    status: ExpenseStatus = ExpenseStatus.PENDING
    paid_date: Optional[date] = None
    paid_amount: Optional[float] = Field(default=None, ge=0)
    vendor: Optional[str] = Field(default=None, max_length=255)
    invoice_number: Optional[str] = Field(default=None, max_length=128)
    notes: Optional[str] = None

    @field_validator("description", "category", mode="before")
    @classmethod
    def _strip_text(cls, value):
        return _strip_or_none(value)

    @model_validator(mode="after")
    def _paid_not_above_amount(self):
        if self.paid_amount is not None and self.paid_amount > self.amount:
            raise ValueError("paid_amount cannot exceed amount")
        return self
