import json
import time
from typing import Any, Dict, Optional, Union

from .types import Message, Role


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def create_message(role: Role, content: str) -> Message:
    """
    Create a standardized Message object.

    Args:
        role (str): The role of the message sender ('system', 'user', 'assistant').
        content (str): The text of the message.

    Returns:
        Message: A dictionary matching the Message type definition.
    """
    return {"role": role, "content": content}


def parse_json(text: Union[str, bytes, None]) -> Optional[Any]:
    """Decode JSON, returning None instead of raising on bad input."""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}
