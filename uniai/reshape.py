"""
Conversation reshaping.

Some providers only accept conversations that strictly alternate
user/assistant and both begin and end on a user turn.
"""
from typing import List, Sequence

from .types import Message

PLACEHOLDER = "None"


def alternate_turns(messages: Sequence[Message], placeholder: str = PLACEHOLDER) -> List[Message]:
    """
    Fold an arbitrary role sequence into strictly alternating turns.

    Every run of non-assistant messages (user and system alike) becomes one
    user turn, joined with newlines. Assistant messages are kept verbatim and
    always preceded by a user turn. The result always ends on a user turn;
    an empty user turn is replaced by ``placeholder``.

    Args:
        messages (Sequence[Message]): Conversation in caller order.
        placeholder (str): Content used for an empty user turn.

    Returns:
        List[Message]: The alternating conversation.
    """
    turns: List[Message] = []
    pending: List[str] = []

    for message in messages:
        if message["role"] != "assistant":
            pending.append(message["content"])
            continue
        turns.append({"role": "user", "content": _join(pending, placeholder)})
        turns.append({"role": "assistant", "content": message["content"]})
        pending = []

    turns.append({"role": "user", "content": _join(pending, placeholder)})
    return turns


def passthrough(messages: Sequence[Message]) -> List[Message]:
    """Copy messages unchanged, for providers without a turn rule."""
    return [{"role": m["role"], "content": m["content"]} for m in messages]


def _join(contents: List[str], placeholder: str) -> str:
    return "\n".join(contents).strip() or placeholder
