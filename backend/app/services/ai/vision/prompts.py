"""Prompt construction for direct extraction from PDFs and images."""

from __future__ import annotations

VISION_SYSTEM_PROMPT = (
    "You extract financial entities (contracts, receivables, expenses) from business "
    "documents. Return ONLY valid JSON, no markdown, no explanations."
)

VISION_ENTITY_SCHEMA = """\
CONTRACT:
{"clientName": "string (required)", "projectName": "string (required)",
 "totalValue": number, "signedDate": "YYYY-MM-DD",
 "status": "active|completed|cancelled (use active when unknown)",
 "description": "string|null", "category": "string|null", "notes": "string|null"}

RECEIVABLE:
{"contractId": "project name of the related contract|null", "clientName": "string|null",
 "expectedDate": "YYYY-MM-DD|null", "amount": number (required),
 "status": "pending|received|overdue|null", "receivedDate": "YYYY-MM-DD|null",
 "receivedAmount": number|null, "description": "string|null", "category": "string|null"}

EXPENSE:
{"description": "string (required)", "amount": number (required), "dueDate": "YYYY-MM-DD|null",
 "category": "string (use Other when unknown)", "status": "pending|paid|overdue|cancelled|null",
 "paidDate": "YYYY-MM-DD|null", "paidAmount": number|null, "vendor": "string|null",
 "invoiceNumber": "string|null", "notes": "string|null"}"""

DOCUMENT_RULES = """\
Document rules:
- Look at the document type and title first; they tell which entities to expect.
- A proposal or signed contract yields ONE contract plus one receivable per stated
  installment (down payment included) with its own amount and date. It never yields expenses.
- Installments may differ in value; compute each one from the payment terms instead of
  splitting the total evenly unless the document says so.
- An invoice, bill or receipt the business has already paid yields only an expense with
  status "paid".
- An invoice or bill still to be paid yields only an expense with status "pending".
- A receipt issued by the business to a client yields a receivable with status "received".
- Read the whole document before answering."""

RESPONSE_FORMAT = """\
Response format (empty arrays are allowed):
{"contracts": [], "receivables": [], "expenses": []}"""


def build_vision_prompt(schema: str, context: str, *, filename: str = "") -> str:
    intro = "Extract every financial entity from the attached document"
    if filename:
        intro += f' ("{filename}")'
    return "\n\n".join([
        intro + ".",
        "BUSINESS CONTEXT:\n" + context,
        "ENTITY SCHEMA:\n" + schema,
        DOCUMENT_RULES,
        RESPONSE_FORMAT,
    ])
