"""
LLM response utilities for handling multi-format model outputs.

Models answer with plain strings or with structured content blocks
(reasoning + text). Pipeline stages also need the JSON object or SQL block
embedded in that text, often wrapped in markdown fences.
"""

import json
import re
from typing import Any, Dict, Optional

from loguru import logger

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)```", re.I)
_SQL_FENCE = re.compile(r"```sql\s*([\s\S]*?)```", re.I)
_ANY_FENCE = re.compile(r"^```\w*\s*|```\s*$")


def extract_text_from_response(response: Any) -> str:
    """
    Extract text content from LLM response (handles all formats).

    Supports:
    - Simple string: "text here"
    - Structured blocks: [{'type': 'reasoning', ...}, {'type': 'text', 'text': '...'}]
    - LangChain AIMessage with content attribute

    Example:
        response.content = [
            {'type': 'reasoning', 'text': '...'},
            {'type': 'text', 'text': '{"plan": {...}, "sql": "SELECT ..."}'}
        ]
        extract_text_from_response(response) -> '{"plan": {...}, "sql": "SELECT ..."}'
    """
    content = response.content if hasattr(response, "content") else response

    if not content:
        return ""

    if isinstance(content, str):
        return content

    if isinstance(content, list):
        text_parts = []
        for block in content:
            if isinstance(block, dict):
                if block.get("type") == "reasoning":
                    continue
                if "text" in block:
                    text_parts.append(block["text"])
            elif isinstance(block, str):
                text_parts.append(block)

        result = "".join(text_parts)
        if not result:
            logger.warning(f"No text blocks found in structured response: {str(content)[:200]}")
        return result

    return str(content)


def strip_code_fences(text: str) -> str:
    """Remove one surrounding ``` fence (any language tag)."""
    return _ANY_FENCE.sub("", (text or "").strip()).strip()


def _braced(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    return text[start : end + 1] if 0 <= start < end else None


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse the JSON object in a model reply.

    Tries the span from the first '{' to the last '}', then the body of a
    ```json fence. Returns None when nothing parses to a dict.
    """
    if not text:
        return None
    fenced = _JSON_FENCE.search(text)
    for candidate in (_braced(text), _braced(fenced.group(1)) if fenced else None):
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def extract_sql_block(text: str) -> str:
    """Body of the first ```sql fence, or '' when there is none."""
    match = _SQL_FENCE.search(text or "")
    return match.group(1).strip() if match else ""
