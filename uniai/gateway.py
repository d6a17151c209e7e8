import logging
from typing import Dict, List, Optional, Sequence, Union

import httpx

from .credentials import CredentialCache
from .errors import GatewayError, ProviderError, TransportError
from .providers.base import ChatProvider
from .relay import ChatStream
from .types import ChatResponse, Message
from .utils import parse_json

logger = logging.getLogger(__name__)

EVENT_STREAM = "text/event-stream"


class ProviderGateway:
    """
    Single entry point for chatting with any registered provider.

    The gateway orchestrates credential lookup, conversation reshaping, the
    outbound call and response normalization. Everything provider-specific
    lives on the ``ChatProvider`` instances it holds.

    Args:
        http_client (httpx.AsyncClient): Shared client for outbound calls.
        credentials (CredentialCache): Token cache for providers that need one.
        providers (Sequence[ChatProvider], optional): Providers to register.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        credentials: CredentialCache,
        providers: Optional[Sequence[ChatProvider]] = None,
    ):
        self.http_client = http_client
        self.credentials = credentials
        self.providers: Dict[str, ChatProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: ChatProvider) -> None:
        self.providers[provider.name] = provider

    def get_provider(self, name: str) -> ChatProvider:
        """
        Raises:
            ValueError: If the provider is not configured or not supported.
        """
        provider = self.providers.get(name.lower())
        if provider is None:
            raise ValueError(f"Provider '{name}' not configured or not supported.")
        return provider

    async def chat(
        self,
        provider: str,
        model: str,
        messages: List[Message],
        *,
        stream: bool = False,
        **options,
    ) -> Union[ChatResponse, ChatStream]:
        """
        Send a chat request to the specified provider.

        Args:
            provider (str): The provider name (e.g., 'baidu', 'openai', 'deepseek').
            model (str): The model identifier.
            messages (List[Message]): Conversation in caller order; roles may
                be interleaved freely, the provider reshapes them.
            stream (bool): Return a ChatStream instead of a single response.
            **options: ``temperature``, ``top_p`` and ``max_length``.

        Returns:
            Union[ChatResponse, ChatStream]: A ChatResponse when ``stream`` is
            False, otherwise a ChatStream over the live provider response.

        Raises:
            ValueError: If the provider is unknown or ``messages`` is empty.
            CredentialError: If the provider's access token cannot be obtained.
            ProviderError: If the provider answers with an error payload.
            TransportError: If the provider cannot be reached.
        """
        if not messages:
            raise ValueError("messages must not be empty")
        chat_provider = self.get_provider(provider)

        try:
            token = None
            if chat_provider.requires_credential:
                token = await self.credentials.get_token(chat_provider)

            turns = chat_provider.reshape(messages)
            request = chat_provider.build_request(
                self.http_client, model, turns, stream=stream, token=token, **options
            )
            logger.debug(
                "%s %s%s (%s/%s, stream=%s)",
                request.method, request.url.host, request.url.path, chat_provider.name, model, stream,
            )

            if stream:
                return await self._send_streaming(chat_provider, model, request)
            return await self._send_buffered(chat_provider, model, request)
        except GatewayError as e:
            e.add_context(chat_provider.name, model)
            raise

    async def list_models(self, provider: str) -> List[str]:
        return await self.get_provider(provider).get_models()

    async def _send_buffered(self, provider: ChatProvider, model: str, request: httpx.Request) -> ChatResponse:
        try:
            response = await self.http_client.send(request)
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}") from e

        payload = parse_json(response.content)
        if not isinstance(payload, dict):
            raise ProviderError(
                f"HTTP {response.status_code}: {response.text[:200]}", code=response.status_code
            )
        result = provider.normalize(payload, model)
        if response.is_error:
            raise ProviderError(f"HTTP {response.status_code}: {response.text[:200]}", code=response.status_code)
        return result

    async def _send_streaming(self, provider: ChatProvider, model: str, request: httpx.Request) -> ChatStream:
        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}") from e

        if EVENT_STREAM in response.headers.get("content-type", ""):
            return ChatStream(provider, model, response.aiter_bytes(), response.aclose)

        # Providers report request errors as a plain JSON body even when a
        # stream was asked for.
        try:
            body = await response.aread()
        except httpx.HTTPError as e:
            raise TransportError(f"Reading response failed: {e}") from e
        finally:
            await response.aclose()

        payload = parse_json(body)
        if isinstance(payload, dict):
            provider.normalize(payload, model)
        raise ProviderError(
            f"Expected an event stream, got HTTP {response.status_code} "
            f"{response.headers.get('content-type', 'without content type')}",
            code=response.status_code,
        )
