"""
Financial Assistant

DESIGN DECISION: The assistant answers questions about the family's own
ledger and nothing else. It sends Gemini:
1. A JSON view of the current snapshot with document ids removed
2. The user's question

Category and member ids are replaced by their names, so the model sees
"Groceries" rather than an opaque reference.

CRITICAL BOUNDARIES:
- CAN: Summarize, compare and explain the data it was given
- CANNOT: Change any record
- CANNOT: Invent figures that are not in the data

A failed call never raises into the UI; the caller gets an error reply.
"""

import json
from typing import Any, Optional

import google.generativeai as genai
from pydantic import BaseModel, Field

from family_tracker.audit import AuditLogger
from family_tracker.config import GeminiSettings, get_settings
from family_tracker.models.records import HOME_BALANCE, UNCATEGORIZED, LedgerSnapshot


ASSISTANT_ERROR_MESSAGE = (
    "Sorry, I encountered an error. Please check the API key and try again."
)

SYSTEM_PROMPT = (
    "You are a helpful and friendly financial assistant for a family. "
    "Analyze the provided JSON data to answer the user's question. "
    "The data includes transactions, categories, and family members. "
    "Provide clear, concise, and actionable insights. "
    "Do not invent any data not present in the provided context. "
    "Format your response using Markdown for readability "
    "(e.g., use lists, bold text, tables)."
)


class AssistantReply(BaseModel):
    """One assistant answer."""

    text: str = Field(..., description="Markdown answer or error text")
    is_error: bool = False


def build_context(snapshot: LedgerSnapshot) -> dict[str, Any]:
    """The snapshot as plain JSON data without any document ids."""
    category_names = snapshot.category_names()
    member_names = snapshot.member_names()

    transactions = []
    for t in snapshot.transactions:
        transactions.append({
            "date": t.date.isoformat(),
            "type": t.type.value,
            "amount": float(t.amount),
            "description": t.description,
            "category": category_names.get(t.category_id, UNCATEGORIZED),
            "member": member_names.get(t.member_id, HOME_BALANCE) if t.member_id else HOME_BALANCE,
        })

    return {
        "transactions": transactions,
        "categories": [
            c.model_dump(mode="json", by_alias=True, exclude={"id", "created_at"})
            for c in snapshot.categories
        ],
        "members": [{"name": m.name} for m in snapshot.members],
    }


def build_prompt(snapshot: LedgerSnapshot, question: str) -> str:
    financial_data = json.dumps(build_context(snapshot), indent=2, ensure_ascii=False)
    return f"""System: {SYSTEM_PROMPT}

Here is the financial data:
{financial_data}

User's question:
{question.strip()}
"""


class FinancialAssistant:
    """Gemini-backed question answering over one ledger snapshot."""

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._audit = audit_logger or AuditLogger()
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def ask(self, question: str, snapshot: LedgerSnapshot) -> Optional[AssistantReply]:
        """
        Answer a question about the snapshot.

        Returns None for a blank question.
        """
        if not question or not question.strip():
            return None

        prompt = build_prompt(snapshot, question)
        try:
            response = await self._model.generate_content_async(prompt)
            return AssistantReply(text=response.text.strip())
        except Exception as e:
            self._audit.log_external_service_error("gemini", str(e))
            return AssistantReply(text=ASSISTANT_ERROR_MESSAGE, is_error=True)
