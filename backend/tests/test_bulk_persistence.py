"""Tests for tenant-scoped bulk persistence and ordered entity creation."""

import asyncio
import unittest
import uuid
from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.models.finance import AuditLog, Base, Contract, Expense, Receivable

TEAM_ID = "22222222-2222-2222-2222-222222222222"
OTHER_TEAM_ID = "33333333-3333-3333-3333-333333333333"


class _DbTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self.db = self.SessionLocal()

    def tearDown(self):
        self.db.close()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()


class EntityServiceTests(_DbTestCase):
    def test_valid_rows_created_and_rejections_reported(self):
        from app.schemas.setup_assistant import ContractDraft
        from app.services.finance_entities import ContractService

        drafts = [
            ContractDraft(client_name="Ana", project_name="Casa Ana", total_value=1000, signed_date="2024-01-10"),
            ContractDraft(client_name="Sem projeto", source_sheet="Contratos", source_row=3),
            ContractDraft(client_name="Bia", project_name="Loja Bia", status="archived"),
        ]
        result = asyncio.run(ContractService(self.db, TEAM_ID).bulk_create(drafts))

        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.failure_count, 2)
        self.assertTrue(result.errors[0].startswith("Contract 2 (Contratos row 3): project_name"))
        self.assertTrue(result.errors[1].startswith("Contract 3 (document): status"))

        rows = self.db.query(Contract).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].project_name, "Casa Ana")
        self.assertEqual(rows[0].status, "active")
        self.assertEqual(str(rows[0].team_id), TEAM_ID)
        self.assertEqual(rows[0].signed_date.isoformat(), "2024-01-10")

        audit = self.db.query(AuditLog).filter(AuditLog.action == "BULK_CREATE_CONTRACTS").one()
        self.assertEqual(audit.new_value["created"], 1)
        self.assertEqual(audit.new_value["failed"], 2)
        self.assertEqual(audit.audit_meta, {"source": "setup_assistant"})

    def test_stop_on_first_error(self):
        from app.schemas.setup_assistant import ExpenseDraft
        from app.services.finance_entities import BulkValidationError, ExpenseService

        drafts = [ExpenseDraft(description="Aluguel", amount=-1, due_date="2024-01-01", category="Rent")]
        with self.assertRaises(BulkValidationError):
            asyncio.run(ExpenseService(self.db, TEAM_ID).bulk_create(drafts, continue_on_error=False))
        self.assertEqual(self.db.query(Expense).count(), 0)

    def test_paid_amount_cannot_exceed_amount(self):
        from app.schemas.setup_assistant import ExpenseDraft
        from app.services.finance_entities import ExpenseService

        drafts = [
            ExpenseDraft(description="Aluguel", amount=100, paid_amount=150, due_date="2024-01-01", category="Rent"),
        ]
        result = asyncio.run(ExpenseService(self.db, TEAM_ID).bulk_create(drafts))

        self.assertEqual(result.success_count, 0)
        self.assertIn("paid_amount cannot exceed amount", result.errors[0])
        self.assertEqual(self.db.query(AuditLog).count(), 0)

    def test_duplicate_contracts_are_tolerated(self):
        from app.schemas.setup_assistant import ContractDraft
        from app.services.finance_entities import ContractService

        draft = ContractDraft(client_name="Ana", project_name="Casa Ana", total_value=1000)
        service = ContractService(self.db, TEAM_ID)
        first = asyncio.run(service.bulk_create([draft]))
        second = asyncio.run(service.bulk_create([draft]))

        self.assertEqual((first.success_count, second.success_count), (1, 1))
        self.assertEqual(second.errors, [])
        self.assertEqual(self.db.query(Contract).count(), 2)

    def test_find_many_is_team_scoped(self):
        from app.schemas.setup_assistant import ContractDraft
        from app.services.finance_entities import ContractService

        asyncio.run(ContractService(self.db, TEAM_ID).bulk_create([ContractDraft(client_name="A", project_name="A")]))
        asyncio.run(ContractService(self.db, OTHER_TEAM_ID).bulk_create([ContractDraft(client_name="B", project_name="B")]))

        mine = asyncio.run(ContractService(self.db, TEAM_ID).find_many())
        self.assertEqual([c.project_name for c in mine], ["A"])


class MapContractIdsTests(unittest.TestCase):
    def test_name_matching_and_uuid_pass_through(self):
        from app.schemas.setup_assistant import ReceivableDraft
        from app.services.setup_assistant.bulk_creator import map_contract_ids

        old_id, new_id, existing_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        older = [
            SimpleNamespace(id=old_id, project_name="Casa Azul"),
            SimpleNamespace(id=existing_id, project_name="Loja Centro"),
        ]
        created = [SimpleNamespace(id=new_id, project_name="casa azul")]

        mapped = map_contract_ids(
            [
                ReceivableDraft(contract_ref="CASA AZUL", amount=1),
                ReceivableDraft(contract_ref="Loja Centro ", amount=1),
                ReceivableDraft(contract_ref=str(existing_id).upper(), amount=1),
                ReceivableDraft(contract_ref=str(uuid.uuid4()), amount=1),
                ReceivableDraft(contract_ref="Casa", amount=1),
                ReceivableDraft(amount=1),
            ],
            older,
            created,
        )

        self.assertEqual(mapped[0].contract_ref, str(new_id))
        self.assertEqual(mapped[1].contract_ref, str(existing_id))
        self.assertEqual(mapped[2].contract_ref, str(existing_id))
        self.assertIsNone(mapped[3].contract_ref)
        self.assertIsNone(mapped[4].contract_ref)
        self.assertIsNone(mapped[5].contract_ref)


class CreateEntitiesTests(_DbTestCase):
    def _services(self):
        from app.services.finance_entities import ContractService, ExpenseService, ReceivableService

        return {
            "contract_service": ContractService(self.db, TEAM_ID),
            "receivable_service": ReceivableService(self.db, TEAM_ID),
            "expense_service": ExpenseService(self.db, TEAM_ID),
        }

    def test_receivables_linked_to_contracts_created_in_same_run(self):
        from app.schemas.setup_assistant import ContractDraft, ExpenseDraft, ExtractionResult, ReceivableDraft
        from app.services.setup_assistant.bulk_creator import create_entities

        batch = ExtractionResult(
            contracts=[ContractDraft(client_name="Ana", project_name="Residência Costa", status="active")],
            receivables=[
                ReceivableDraft(contract_ref="residência costa", amount=500, expected_date="2024-02-01",
                                status="pending", client_name="Ana"),
                ReceivableDraft(contract_ref="Unknown", amount=300, expected_date="2024-02-01",
                                status="pending", client_name="Bia"),
            ],
            expenses=[
                ExpenseDraft(description="Aluguel", amount=2500, due_date="2024-01-10", category="Rent", status="paid"),
            ],
        )
        summary = asyncio.run(create_entities(batch, **self._services()))

        self.assertTrue(summary.success)
        self.assertEqual(summary.errors, [])
        self.assertEqual(
            (summary.contracts_created, summary.receivables_created, summary.expenses_created),
            (1, 2, 1),
        )

        contract = self.db.query(Contract).one()
        linked = self.db.query(Receivable).filter(Receivable.client_name == "Ana").one()
        standalone = self.db.query(Receivable).filter(Receivable.client_name == "Bia").one()
        self.assertEqual(linked.contract_id, contract.id)
        self.assertIsNone(standalone.contract_id)

    def test_contract_failure_does_not_stop_other_entities(self):
        from app.schemas.setup_assistant import ContractDraft, ExpenseDraft, ExtractionResult
        from app.services.finance_entities import ContractService
        from app.services.setup_assistant.bulk_creator import create_entities

        class BrokenContracts(ContractService):
            async def bulk_create(self, drafts, *, continue_on_error=True):
                raise RuntimeError("database unavailable")

        services = self._services()
        services["contract_service"] = BrokenContracts(self.db, TEAM_ID)
        batch = ExtractionResult(
            contracts=[ContractDraft(client_name="Ana", project_name="Casa")],
            expenses=[ExpenseDraft(description="Luz", amount=90, due_date="2024-01-10", category="Other")],
        )
        summary = asyncio.run(create_entities(batch, **services))

        self.assertFalse(summary.success)
        self.assertEqual(summary.errors, ["Contracts bulk create failed: database unavailable"])
        self.assertEqual(summary.expenses_created, 1)

    def test_receivable_failure_reported(self):
        from app.schemas.setup_assistant import ExtractionResult, ReceivableDraft
        from app.services.finance_entities import ReceivableService
        from app.services.setup_assistant.bulk_creator import create_entities

        class BrokenReceivables(ReceivableService):
            async def bulk_create(self, drafts, *, continue_on_error=True):
                raise RuntimeError("timeout")

        services = self._services()
        services["receivable_service"] = BrokenReceivables(self.db, TEAM_ID)
        batch = ExtractionResult(receivables=[ReceivableDraft(amount=10, expected_date="2024-01-01")])
        summary = asyncio.run(create_entities(batch, **services))

        self.assertFalse(summary.success)
        self.assertEqual(summary.errors, ["Receivables bulk create failed: timeout"])

    def test_empty_batch_is_a_no_op(self):
        from app.schemas.setup_assistant import ExtractionResult
        from app.services.setup_assistant.bulk_creator import create_entities

        summary = asyncio.run(create_entities(ExtractionResult(), **self._services()))

        self.assertTrue(summary.success)
        self.assertEqual(summary.contracts_created + summary.receivables_created + summary.expenses_created, 0)
        self.assertEqual(self.db.query(AuditLog).count(), 0)
