"""
Chat assistant prompt templates.
"""

from typing import Sequence

from backend.agents.types import ConversationTurn

MEMORY_QUERY_HISTORY_TURNS = 3

CHAT_SYSTEM_PROMPT = """You are a helpful assistant for an Invoice & Expense Copilot application.
You help users manage their invoices and expenses.{memory_block}

<capabilities>
- Query expenses by date, vendor, category, or amount
- Generate analytics and insights about spending
- Get invoice lists and details
- Detect duplicate invoices using similarity analysis
- Process invoices from uploaded files
- Generate expense reports (text format)
- Export expense data as CSV
- Update invoice status (pending, paid, overdue) and payment information
- Update expense categories
- Save and retrieve information about the user in memory
</capabilities>

<rules>
- Be concise and helpful.
- When users ask about expenses, invoices, analytics or reports, want to process invoices, or update invoice/expense information, use the appropriate tools.
- When users share personal information (their name, preferences, etc.), use the save_memory tool proactively so you remember it in future conversations.
- For general questions or small talk, respond naturally without tools.
- If a tool returns an error, explain the problem briefly instead of inventing data.
</rules>"""


def build_memory_query(user_message: str, history: Sequence[ConversationTurn]) -> str:
    """Text used to look up relevant memories: the new message plus the last few turns."""
    recent = [turn["content"] for turn in list(history)[-MEMORY_QUERY_HISTORY_TURNS:]]
    return "\n".join([user_message, *recent])


def build_system_prompt(memory_context: str = "") -> str:
    """System prompt with the optional relevant-memories block folded in."""
    memory_block = ""
    if memory_context:
        memory_block = (
            f"\n\n{memory_context.strip()}\n"
            "Remember and use this information when relevant to the conversation."
        )
    return CHAT_SYSTEM_PROMPT.format(memory_block=memory_block)
