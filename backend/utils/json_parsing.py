"""
Helpers for reading JSON out of free-form model output.

Structured calls run in JSON mode, so the reply is normally a bare object.
The parser still tolerates markdown fences or prose around it and takes the
outermost {...} block as the payload.
"""

import json
import re
from typing import Any, Dict

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the first-to-last brace span of text as a JSON object.

    Raises:
        ValueError: If no JSON object can be parsed (json.JSONDecodeError is a ValueError)
    """
    match = _JSON_OBJECT.search(text or "")
    payload = match.group(0) if match else (text or "")
    parsed = json.loads(payload)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
