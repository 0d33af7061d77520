"""
Query translation prompt.

The model only produces filter fields; the acting user's identity is never part
of the prompt or the output and is applied by the expense service.
"""

from datetime import date


def build_query_translation_prompt(user_query: str, today: date) -> str:
    """Prompt asking for an ExpenseFilter JSON object for user_query."""
    return f"""Convert this natural language expense query into a JSON filter object.

<query>
{user_query}
</query>

<context>
Today's date: {today.isoformat()}
</context>

<fields>
- amount: object with any of "gt", "gte", "lt", "lte" (numbers)
- currency: currency code, e.g. "USD", "INR"
- category: a category string, or a list of categories
- vendor: text contained in the vendor name (case-insensitive)
- description: text contained in the description (case-insensitive)
- date: object with any of "gt", "gte", "lt", "lte" (YYYY-MM-DD)
</fields>

<examples>
- "Show March expenses" -> {{"date": {{"gte": "{today.year}-03-01", "lte": "{today.year}-03-31"}}}}
- "Expenses over 1000" -> {{"amount": {{"gt": 1000}}}}
- "Software category" -> {{"category": "software"}}
- "Office or marketing spend at Acme" -> {{"category": ["office", "marketing"], "vendor": "Acme"}}
- "All my expenses" -> {{}}
</examples>

Only include fields the query mentions. Return ONLY valid JSON."""
