from typing import Dict, Any, List, Optional

import httpx
from openai import AsyncOpenAI

from .base import ChatProvider
from ..errors import ProviderError
from ..types import ChatResponse, Message, StreamFragment
from ..utils import drop_none

DONE_SENTINEL = "[DONE]"


class OpenAIProvider(ChatProvider):
    """
    Provider for OpenAI-compatible APIs (OpenAI, DeepSeek, etc.).

    Conversations are sent as-is. Stream chunks carry deltas, so the relay
    appends them; usage arrives on the last chunk when requested through
    ``stream_options``.
    """

    cumulative_stream = False

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        provider_name: str = "openai",
    ):
        super().__init__(api_key, base_url)
        self.name = provider_name

    def build_request(
        self,
        client: httpx.AsyncClient,
        model: str,
        messages: List[Message],
        *,
        stream: bool = False,
        token: Optional[str] = None,
        **options,
    ) -> httpx.Request:
        body: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": stream,
            **drop_none({
                "temperature": options.get("temperature"),
                "top_p": options.get("top_p"),
                "max_tokens": options.get("max_length"),
            }),
        }
        if stream:
            body["stream_options"] = {"include_usage": True}

        return client.build_request(
            "POST",
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {token or self.api_key}"},
            json=body,
        )

    def normalize(self, payload: Dict[str, Any], model: str) -> ChatResponse:
        self._raise_for_error(payload)
        choices = payload.get("choices") or [{}]
        message = choices[0].get("message") or {}
        return {
            "content": message.get("content") or "",
            **self.normalize_usage(payload.get("usage")),
            "model": payload.get("model") or model,
            "object": payload.get("object") or "",
        }

    def parse_frame(self, data: str) -> Optional[StreamFragment]:
        if data.strip() == DONE_SENTINEL:
            return None
        return super().parse_frame(data)

    def parse_fragment(self, payload: Dict[str, Any]) -> Optional[StreamFragment]:
        self._raise_for_error(payload)

        piece = ""
        for choice in payload.get("choices") or []:
            delta = choice.get("delta") or {}
            piece += delta.get("content") or ""

        usage = payload.get("usage")
        if not piece and not usage:
            return None

        fragment: StreamFragment = {"content": piece, "object": payload.get("object") or ""}
        if payload.get("model"):
            fragment["model"] = payload["model"]
        if usage:
            fragment["usage"] = self.normalize_usage(usage)
        return fragment

    async def get_models(self) -> List[str]:
        """
        Get list of available models from the provider API.

        Returns:
            List[str]: List of model ids. Empty when no key is configured.
        """
        if not self.api_key:
            return []
        async with AsyncOpenAI(api_key=self.api_key, base_url=self.base_url) as client:
            models = await client.models.list()
        return [m.id for m in models.data]

    def _raise_for_error(self, payload: Dict[str, Any]) -> None:
        error = payload.get("error")
        if not error:
            return
        if isinstance(error, dict):
            raise ProviderError(
                error.get("message") or str(error),
                provider=self.name,
                code=error.get("code") or error.get("type"),
            )
        raise ProviderError(str(error), provider=self.name)
