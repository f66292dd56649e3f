import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import CHAR, TypeDecorator

Base = declarative_base()


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError:
                return value
            return parsed if dialect.name == "postgresql" else str(parsed)
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(value)
        except ValueError:
            return value


UUID_TYPE = GUID()
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")
MONEY_TYPE = Numeric(14, 2, asdecimal=False)


class Contract(Base):
    __tablename__ = "contracts"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID_TYPE, nullable=False)
    client_name = Column(String(255), nullable=False)
    project_name = Column(String(255), nullable=False)
    total_value = Column(MONEY_TYPE)
    signed_date = Column(Date)
    status = Column(String(32), nullable=False, default="active", server_default=text("'active'"))
    category = Column(String(128))
    description = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active','completed','cancelled')",
            name="chk_contract_status",
        ),
        Index("idx_contracts_team", "team_id"),
    )


class Receivable(Base):
    __tablename__ = "receivables"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID_TYPE, nullable=False)
    contract_id = Column(UUID_TYPE, ForeignKey("contracts.id", ondelete="SET NULL"))
    client_name = Column(String(255))
    description = Column(Text)
    expected_date = Column(Date, nullable=False)
    amount = Column(MONEY_TYPE, nullable=False)
    status = Column(String(32), nullable=False, default="pending", server_default=text("'pending'"))
    received_date = Column(Date)
    received_amount = Column(MONEY_TYPE)
    category = Column(String(128))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_receivable_amount_positive"),
        CheckConstraint(
            "status IN ('pending','received','overdue')",
            name="chk_receivable_status",
        ),
        Index("idx_receivables_team", "team_id"),
        Index("idx_receivables_contract", "contract_id"),
    )


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID_TYPE, nullable=False)
    contract_id = Column(UUID_TYPE, ForeignKey("contracts.id", ondelete="SET NULL"))
    description = Column(Text, nullable=False)
    amount = Column(MONEY_TYPE, nullable=False)
    due_date = Column(Date, nullable=False)
    category = Column(String(128), nullable=False)
    status = Column(String(32), nullable=False, default="pending", server_default=text("'pending'"))
    paid_date = Column(Date)
    paid_amount = Column(MONEY_TYPE)
    vendor = Column(String(255))
    invoice_number = Column(String(128))
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_expense_amount_positive"),
        CheckConstraint(
            "status IN ('pending','paid','overdue','cancelled')",
            name="chk_expense_status",
        ),
        Index("idx_expenses_team", "team_id"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID_TYPE)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(UUID_TYPE, nullable=False)
    action = Column(String(64), nullable=False)
    old_value = Column(JSON_TYPE)
    new_value = Column(JSON_TYPE)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(UUID_TYPE)
    audit_meta = Column("metadata", JSON_TYPE, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
