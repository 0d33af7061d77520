"""
Pydantic request/response models for the HTTP API.

Tool argument models used by the chat assistant live with the tools in
backend/agents/chat/tools/schemas.py.
"""
