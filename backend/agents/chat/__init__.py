"""
Chat assistant: tool-calling orchestration loop over the invoice/expense tools.
"""

from backend.agents.chat.orchestrator import ChatOrchestrator, handle_user_message

__all__ = ["ChatOrchestrator", "handle_user_message"]
