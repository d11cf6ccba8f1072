"""AI agents package."""

from family_tracker.agents.assistant import (
    ASSISTANT_ERROR_MESSAGE,
    AssistantReply,
    FinancialAssistant,
    build_context,
    build_prompt,
)

__all__ = [
    "ASSISTANT_ERROR_MESSAGE",
    "AssistantReply",
    "FinancialAssistant",
    "build_context",
    "build_prompt",
]
