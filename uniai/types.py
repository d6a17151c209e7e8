import math
from dataclasses import dataclass
from typing import Literal, List, Dict, Any, TypedDict, Optional

# =============================================================================
# Chat Type Definitions
# =============================================================================

# Supported chat providers
Provider = Literal["baidu", "openai", "deepseek"]

Role = Literal["system", "user", "assistant"]


class Message(TypedDict):
    """
    Chat message exchanged with a provider.

    Roles:
    - "system": System prompt / instructions
    - "user": User message
    - "assistant": Model response
    """
    role: Role
    content: str


class ChatRequest(TypedDict, total=False):
    """
    Inbound chat request. ``provider``, ``model`` and ``messages`` are required;
    sampling options are forwarded only when set.
    """
    provider: str
    model: str
    messages: List[Message]
    max_length: int
    top_p: float
    temperature: float
    stream: bool


class ChatResponse(TypedDict):
    """
    Canonical chat response, identical in shape for every provider.

    When streaming, ``content`` holds the text known so far and the last item
    carries the final usage totals.
    """
    content: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str
    object: str


class StreamFragment(TypedDict, total=False):
    """
    One provider stream event reduced to the fields the relay accumulates.
    ``usage`` is only present when the provider reported token counts.
    """
    content: str
    object: str
    model: str
    usage: Dict[str, int]


def empty_response(model: str = "") -> ChatResponse:
    return {
        "content": "",
        "prompt_tokens": 0,
        "completion_tokens": 0,
        "total_tokens": 0,
        "model": model,
        "object": "",
    }


# =============================================================================
# Credential
# =============================================================================

@dataclass(frozen=True)
class Credential:
    """Provider access token with its absolute expiry (epoch milliseconds)."""

    token: str
    expires_at_ms: int

    def is_fresh(self, now_ms: int) -> bool:
        return self.expires_at_ms > now_ms

    def to_json(self) -> Dict[str, Any]:
        return {"access_token": self.token, "expires_in": self.expires_at_ms}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Credential":
        return cls(token=str(data["access_token"]), expires_at_ms=int(data["expires_in"]))


# =============================================================================
# Image Job Type Definitions
# =============================================================================

JobState = Literal["pending", "running", "succeeded", "failed"]


def aspect_ratio(width: int, height: int) -> str:
    """
    Reduce a width/height pair to a ``W:H`` aspect ratio string,
    e.g. 1920x1080 -> '16:9'.

    Raises:
        ValueError: If either side is not a positive integer.
    """
    width, height = int(width), int(height)
    if width <= 0 or height <= 0:
        raise ValueError(f"Image size must be positive, got {width}x{height}")
    divisor = math.gcd(width, height)
    return f"{width // divisor}:{height // divisor}"


@dataclass
class JobRequest:
    prompt: str
    aspect_ratio: str = "1:1"
    negative_prompt: Optional[str] = None
    notify_hook: Optional[str] = None

    @classmethod
    def from_size(
        cls,
        prompt: str,
        width: int = 1,
        height: int = 1,
        negative_prompt: Optional[str] = None,
        notify_hook: Optional[str] = None,
    ) -> "JobRequest":
        """Build a request whose aspect ratio is reduced from a pixel size."""
        return cls(
            prompt=prompt,
            aspect_ratio=aspect_ratio(width, height),
            negative_prompt=negative_prompt,
            notify_hook=notify_hook,
        )


@dataclass(frozen=True)
class JobHandle:
    job_id: str


@dataclass(frozen=True)
class JobStatus:
    job_id: str
    state: str
    progress: int = 0
    result_url: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.state in ("succeeded", "failed")
