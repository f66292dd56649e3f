"""Tests for vision extraction of PDFs and images into drafts."""

import asyncio
import unittest

from app.services.ai.common.json_tools import RecoveredEntities
from app.services.ai.common.reasoning import ReasoningService
from app.services.ai.vision.contracts import VisualDocument


class StubVisionReasoning(ReasoningService):
    def __init__(self, recovered=None, error=None):
        self.recovered = recovered
        self.error = error
        self.calls = []

    async def classify(self, sample, context):
        raise NotImplementedError

    async def extract_visual(self, document, schema, context):
        self.calls.append((document, schema, context))
        if self.error is not None:
            raise self.error
        return self.recovered


PROPOSAL = RecoveredEntities(arrays={
    "contracts": [
        {"clientName": "Marina Souza", "projectName": "Apartamento Souza", "totalValue": "R$ 36.000,00",
         "signedDate": "12/03/2024", "status": "Ativo"},
    ],
    "receivables": [
        {"contractId": "Apartamento Souza", "amount": 12000, "expectedDate": "2024-04-12", "description": "Parcela 1/3"},
        {"contractId": "Apartamento Souza", "amount": "12.000,00", "expectedDate": "12/05/2024"},
        {"amount": 5, "sourceRow": "not a number"},
    ],
    "expenses": [],
})


class ExtractFromDocumentTests(unittest.TestCase):
    def test_items_become_drafts(self):
        from app.services.ai.vision.prompts import VISION_ENTITY_SCHEMA
        from app.services.ai.vision.service import extract_from_document

        reasoning = StubVisionReasoning(PROPOSAL)
        document = VisualDocument(data=b"%PDF", media_type="application/pdf", filename="proposta.pdf")

        result = asyncio.run(extract_from_document(reasoning, document, "Business: architecture"))

        self.assertEqual(reasoning.calls[0][1], VISION_ENTITY_SCHEMA)
        self.assertEqual(reasoning.calls[0][2], "Business: architecture")

        self.assertEqual(len(result.contracts), 1)
        contract = result.contracts[0]
        self.assertEqual(contract.total_value, 36000.0)
        self.assertEqual(contract.signed_date, "2024-03-12")
        self.assertEqual(contract.status, "active")
        self.assertEqual(contract.source_sheet, "proposta.pdf")

        self.assertEqual(len(result.receivables), 2)
        self.assertEqual(result.receivables[0].contract_ref, "Apartamento Souza")
        self.assertEqual(result.receivables[1].amount, 12000.0)
        self.assertEqual(result.receivables[1].expected_date, "2024-05-12")

        self.assertEqual(len(result.warnings), 1)
        self.assertTrue(result.warnings[0].startswith("proposta.pdf: receivable 3 skipped"))

    def test_expense_status_vocabulary(self):
        from app.services.ai.vision.service import extract_from_document

        recovered = RecoveredEntities(arrays={
            "contracts": [],
            "receivables": [],
            "expenses": [{"description": "Nota fiscal 123", "amount": 890.5, "status": "Pago", "vendor": "Marcenaria"}],
        })
        document = VisualDocument(data=b"\x89PNG", media_type="image/png", filename="nota.png")

        result = asyncio.run(extract_from_document(StubVisionReasoning(recovered), document, "ctx"))

        self.assertEqual(result.expenses[0].status, "paid")
        self.assertEqual(result.expenses[0].vendor, "Marcenaria")

    def test_failed_arrays_are_reported(self):
        from app.services.ai.vision.service import extract_from_document

        recovered = RecoveredEntities(
            arrays={"contracts": [{"clientName": "A"}], "receivables": [], "expenses": []},
            layer="incremental",
            failed_arrays=["receivables"],
        )
        document = VisualDocument(data=b"%PDF", media_type="application/pdf", filename="doc.pdf")

        result = asyncio.run(extract_from_document(StubVisionReasoning(recovered), document, "ctx"))

        self.assertEqual(len(result.contracts), 1)
        self.assertEqual(result.warnings, ["doc.pdf: receivables could not be read from the response"])

    def test_call_failure_is_fatal(self):
        from app.services.ai.common.json_tools import ResponseRecoveryError
        from app.services.ai.vision.service import extract_from_document
        from app.services.setup_assistant.errors import VisionExtractionError

        reasoning = StubVisionReasoning(error=ResponseRecoveryError("No entities could be recovered"))
        document = VisualDocument(data=b"%PDF", media_type="application/pdf", filename="scan.pdf")

        with self.assertRaises(VisionExtractionError) as ctx:
            asyncio.run(extract_from_document(reasoning, document, "ctx"))
        self.assertIn("scan.pdf", ctx.exception.message)
        self.assertIsInstance(ctx.exception.__cause__, ResponseRecoveryError)


class VisualDocumentTests(unittest.TestCase):
    def test_attachment_kind(self):
        pdf = VisualDocument(data=b"%PDF", media_type="application/pdf", filename="a.pdf").as_attachment()
        image = VisualDocument(data=b"abc", media_type="image/jpeg").as_attachment()

        self.assertEqual(pdf.kind, "document")
        self.assertEqual(image.kind, "image")
        self.assertEqual(image.base64_data, "YWJj")

    def test_prompt_mentions_filename_and_rules(self):
        from app.services.ai.vision.prompts import VISION_ENTITY_SCHEMA, build_vision_prompt

        prompt = build_vision_prompt(VISION_ENTITY_SCHEMA, "Business: clinic", filename="orcamento.pdf")
        self.assertIn('("orcamento.pdf")', prompt)
        self.assertIn("Business: clinic", prompt)
        self.assertIn('{"contracts": [], "receivables": [], "expenses": []}', prompt)
