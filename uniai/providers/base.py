import json
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Sequence

import httpx

from ..errors import CredentialError, MalformedStreamFrame
from ..reshape import passthrough
from ..types import ChatResponse, Credential, Message, StreamFragment


class ChatProvider(ABC):
    """
    Abstract base class for chat providers.

    A provider supplies everything the gateway needs to talk to one vendor:
    its turn rule, request builder, response normalizer and stream frame
    parser. The gateway itself never branches on provider identity.
    """

    name: str = ""

    # Token must be fetched from the provider's credential endpoint first.
    requires_credential: bool = False

    # Stream fragments restate the whole result (True) or carry a delta (False).
    cumulative_stream: bool = False

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = (base_url or "").rstrip("/")

    def reshape(self, messages: Sequence[Message]) -> List[Message]:
        """Convert the caller's conversation to the turns this provider accepts."""
        return passthrough(messages)

    @abstractmethod
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
        """
        Build the outbound completion request.

        Args:
            client (httpx.AsyncClient): Client the request will be sent with.
            model (str): The model identifier.
            messages (List[Message]): Already reshaped conversation.
            stream (bool): Ask the provider for an event stream.
            token (str, optional): Access token, for providers that need one.
            **options: ``temperature``, ``top_p``, ``max_length``.
        """
        pass

    @abstractmethod
    def normalize(self, payload: Dict[str, Any], model: str) -> ChatResponse:
        """
        Map a buffered completion payload to a ChatResponse.

        Raises:
            ProviderError: If the payload encodes an error.
        """
        pass

    @abstractmethod
    def parse_fragment(self, payload: Dict[str, Any]) -> Optional[StreamFragment]:
        """
        Reduce one decoded stream event to a fragment.

        Returns None for events without a usable result.

        Raises:
            ProviderError: If the event encodes an error.
        """
        pass

    def parse_frame(self, data: str) -> Optional[StreamFragment]:
        """
        Decode the data of one stream event.

        Raises:
            MalformedStreamFrame: If the data is not a JSON object.
            ProviderError: If the event encodes an error.
        """
        try:
            payload = json.loads(data)
        except ValueError as e:
            raise MalformedStreamFrame(f"Undecodable stream frame: {data[:80]!r}", provider=self.name) from e
        if not isinstance(payload, dict):
            raise MalformedStreamFrame(f"Stream frame is not an object: {data[:80]!r}", provider=self.name)
        return self.parse_fragment(payload)

    def build_credential_request(self, client: httpx.AsyncClient) -> httpx.Request:
        raise CredentialError(f"{self.name} does not issue access tokens", provider=self.name)

    def parse_credential(self, payload: Dict[str, Any], now_ms: int) -> Credential:
        raise CredentialError(f"{self.name} does not issue access tokens", provider=self.name)

    async def get_models(self) -> List[str]:
        """
        Get list of available models from the provider.

        Returns:
            List[str]: List of model identifiers.
        """
        return []

    @staticmethod
    def normalize_usage(usage: Optional[Dict[str, Any]]) -> Dict[str, int]:
        """
        Normalize token usage information across providers.

        Missing counts default to zero; a missing total is the sum of the
        prompt and completion counts.
        """
        usage = usage or {}
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        completion_tokens = int(usage.get("completion_tokens") or 0)
        total_tokens = usage.get("total_tokens")
        if total_tokens is None:
            total_tokens = prompt_tokens + completion_tokens

        return {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": int(total_tokens),
        }
