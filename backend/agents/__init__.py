"""
AI Components for the Invoice & Expense Copilot backend.

1. Reasoning engine adapter (reasoning.py)
   - Gemini via the Google Gen AI SDK; plain text, multimodal and tool-calling requests

2. Chat assistant (chat/)
   - Bounded tool-calling loop over a fixed, per-user tool catalog

3. Sub-agents used by the chat tools
   - query/: natural language -> validated expense filter
   - analytics/: expense aggregates + model-written insights
   - invoice/: single-shot multimodal invoice extraction
"""

from backend.agents.reasoning import GeminiReasoningEngine, ReasoningEngine, build_reasoning_engine

__all__ = [
    "GeminiReasoningEngine",
    "ReasoningEngine",
    "build_reasoning_engine",
]
