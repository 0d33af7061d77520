"""
Memory tools: thin pass-throughs to MemoryService scoped to the acting user.
"""

from typing import List

from backend.agents.chat.tools.base import ToolContext, ToolDescriptor
from backend.agents.chat.tools.schemas import MemoryKeyInput, SaveMemoryInput, SearchMemoryInput

MAX_MEMORY_RESULTS = 20

MEMORY_UNAVAILABLE = "the memory store is currently unavailable"


def build_memory_tools(context: ToolContext) -> List[ToolDescriptor]:
    """Memory tools bound to context.user_id."""
    memory = context.memory_service

    async def save_memory(params: SaveMemoryInput) -> str:
        saved = await memory.save(
            context.user_id,
            value=params.value,
            key=params.key,
            description=params.description,
            type=params.type,
        )
        if not saved:
            return f"Could not save memory ({MEMORY_UNAVAILABLE}): {params.key}"
        return f"Memory saved successfully: {params.key} = {params.value}"

    async def search_memory(params: SearchMemoryInput) -> str:
        memories = await memory.search_by_query(
            context.user_id, params.query, min(params.limit, MAX_MEMORY_RESULTS)
        )
        if not memories:
            return "No relevant memories found."

        listed = "\n".join(f"{index}. {item['text']}" for index, item in enumerate(memories, start=1))
        return f"Found {len(memories)} relevant memory/memories:\n\n{listed}"

    async def get_memory(params: MemoryKeyInput) -> str:
        text = await memory.get_by_key(context.user_id, params.key)
        if text is None:
            return f"No memory found with key: {params.key}"
        return f"Memory ({params.key}): {text}"

    async def delete_memory(params: MemoryKeyInput) -> str:
        deleted = await memory.delete_by_key(context.user_id, params.key)
        if deleted is None:
            return f"Could not delete memory ({MEMORY_UNAVAILABLE}): {params.key}"
        if deleted == 0:
            return f"No memory found with key: {params.key}"
        return f"Memory deleted successfully: {params.key}"

    return [
        ToolDescriptor(
            name="save_memory",
            description=(
                "Save information about the user for future conversations. Use this when users share "
                'personal information, preferences or facts to remember, e.g. "my name is John", '
                '"I prefer monthly reports", "I work in finance".'
            ),
            input_model=SaveMemoryInput,
            handler=save_memory,
        ),
        ToolDescriptor(
            name="search_memory",
            description=(
                "Search stored memories about the user by meaning. Use this to recall something "
                "about the user when you do not know the exact memory key."
            ),
            input_model=SearchMemoryInput,
            handler=search_memory,
        ),
        ToolDescriptor(
            name="get_memory",
            description="Get a stored memory by its exact key (e.g. \"name\").",
            input_model=MemoryKeyInput,
            handler=get_memory,
        ),
        ToolDescriptor(
            name="delete_memory",
            description=(
                "Delete every stored memory under a key. Use this when the user asks you to forget "
                "something."
            ),
            input_model=MemoryKeyInput,
            handler=delete_memory,
        ),
    ]
