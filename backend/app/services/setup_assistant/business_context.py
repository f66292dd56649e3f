"""Business verticals: the taxonomy text that steers classification and extraction."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_PROFESSION = "arquitetura"


@dataclass(frozen=True)
class BusinessContext:
    key: str
    profession_name: str
    business_type: str
    summary: str
    revenue_description: str
    expense_description: str
    project_types: tuple[str, ...]
    expense_categories: tuple[str, ...]
    contract_term: str = "project"
    contract_value_required: bool = True
    extra_rules: tuple[str, ...] = field(default_factory=tuple)

    def describe(self) -> str:
        lines = [
            f"Business: {self.profession_name} ({self.business_type}).",
            self.summary,
            f"Revenue: {self.revenue_description}",
            f"Expenses: {self.expense_description}",
            f"Typical {self.contract_term} types: {', '.join(self.project_types)}.",
            f"Expense categories: {', '.join(self.expense_categories)}.",
        ]
        if not self.contract_value_required:
            lines.append("Contract total value and signed date are often absent; leave them null.")
        lines.extend(self.extra_rules)
        return "\n".join(lines)


ARCHITECTURE = BusinessContext(
    key="arquitetura",
    profession_name="Architecture and interior design office",
    business_type="project-based professional services in Brazil",
    summary=(
        "Spreadsheets are usually in Brazilian Portuguese (R$ amounts, DD/MM/YYYY dates). "
        "Contracts are client projects; receivables are installments (parcelas) paid by "
        "clients for those projects; expenses are one-off or recurring office costs."
    ),
    revenue_description="project fees billed to clients, often split into installments",
    expense_description="rent, salaries, software licences, subcontractors, taxes, materials",
    project_types=("residential", "commercial", "interior design", "landscaping", "renovation"),
    expense_categories=("Rent", "Salaries", "Software", "Subcontractors", "Taxes", "Materials", "Other"),
)

MEDICINE = BusinessContext(
    key="medicina",
    profession_name="Medical practice",
    business_type="healthcare professional in Brazil",
    summary=(
        "Contracts are PATIENTS under ongoing care (client name and project name are both "
        "the patient's name). Receivables are consultation or procedure fees. "
        "Expenses are clinic costs."
    ),
    revenue_description="fees per consultation, session or procedure",
    expense_description="clinic rent, staff, medical supplies, equipment, insurance, taxes",
    project_types=("consultation", "follow-up", "procedure", "therapy plan"),
    expense_categories=("Rent", "Staff", "Medical supplies", "Equipment", "Insurance", "Taxes", "Other"),
    contract_term="patient",
    contract_value_required=False,
    extra_rules=(
        "Patient lists without amounts are still contracts.",
    ),
)

BUSINESS_CONTEXTS: dict[str, BusinessContext] = {
    ARCHITECTURE.key: ARCHITECTURE,
    MEDICINE.key: MEDICINE,
}


def get_business_context(profession: str | None, default: str = DEFAULT_PROFESSION) -> BusinessContext:
    """Context for *profession*; unknown or empty values use *default*."""
    key = (profession or "").strip().lower()
    return BUSINESS_CONTEXTS.get(key) or BUSINESS_CONTEXTS.get(default, ARCHITECTURE)
