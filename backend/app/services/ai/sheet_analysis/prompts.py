"""Prompt construction for table classification and column mapping."""

from __future__ import annotations

from app.services.setup_assistant.csv_parser import rows_to_csv

from .contracts import AnalysisContext, TableSample

KNOWN_CONTRACTS_PREVIEW = 15

SHEET_ANALYSIS_SYSTEM_PROMPT = (
    "You analyse tables taken from financial spreadsheets of a small business. "
    "For one table you decide which entity its rows describe and map its columns "
    "to entity fields. You never extract the values yourself. "
    "Return ONLY a JSON object."
)

ENTITY_SCHEMA_TEXT = """\
Entity types:
- "contract": a client project or engagement.
  Fields: clientName, projectName, totalValue, signedDate, status (active|completed|cancelled),
  category, description, notes.
- "receivable": money expected from a client, usually an installment of a contract.
  Fields: contractId (the project name the installment belongs to), clientName, description,
  expectedDate, amount, status (pending|received|overdue), receivedDate, receivedAmount, category.
- "expense": money the business pays.
  Fields: description, amount, dueDate, category, status (pending|paid|overdue|cancelled),
  paidDate, paidAmount, vendor, invoiceNumber, notes.
- "skip": totals, summaries, notes, charts data or anything that is not one row per entity."""

TRANSFORM_TEXT = """\
Transform kinds: "date", "currency", "number", "status", "enum", "text".
Use "status" for status or yes/no (paid? received?) columns, "currency" for money columns."""

RULES_TEXT = """\
Rules:
- Map each field from at most one column; only "description" may take several columns.
- Leave out columns that match no field.
- Use the header text exactly as given as the key of columnMapping.
- Rows that reference a known contract are receivables of that contract, not new contracts."""

RESPONSE_FORMAT_TEXT = """\
Response format:
{"entityType": "contract|receivable|expense|skip",
 "columnMapping": {"<header>": {"field": "<field>", "transform": "<kind>", "enumValues": ["optional"]}},
 "reasoning": "one short sentence"}"""


def format_known_contracts(names: list[str], limit: int = KNOWN_CONTRACTS_PREVIEW) -> str:
    if not names:
        return ""
    listed = ", ".join(names[:limit])
    if len(names) > limit:
        listed += f" ... and {len(names) - limit} more"
    return listed


def build_sheet_analysis_prompt(sample: TableSample, context: AnalysisContext) -> str:
    sections = [
        "BUSINESS CONTEXT:\n" + context.business_context,
        ENTITY_SCHEMA_TEXT,
        TRANSFORM_TEXT,
        RULES_TEXT,
    ]

    known = format_known_contracts(context.known_contract_names)
    if known:
        sections.append("Contracts already identified in this file: " + known)

    table_header = f'TABLE "{sample.label}"'
    if context.filename:
        table_header += f' from file "{context.filename}"'
    table_header += f" ({sample.total_rows} data rows, first {len(sample.rows)} shown):"
    sections.append(table_header + "\n" + rows_to_csv([sample.headers, *sample.rows]))

    sections.append(RESPONSE_FORMAT_TEXT)
    return "\n\n".join(sections)
