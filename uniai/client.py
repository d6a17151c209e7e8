from typing import Optional, List, Union

import httpx

from .config import Settings
from .credentials import CredentialCache, CredentialStore, FileCredentialStore
from .gateway import ProviderGateway
from .jobs import JobGateway
from .relay import ChatStream
from .types import ChatRequest, ChatResponse, JobHandle, JobRequest, JobStatus, Message
from .utils import create_message
from .providers.base import ChatProvider
from .providers.baidu import BaiduProvider
from .providers.openai import OpenAIProvider


class UnifiedClient:
    """
    Unified client for chatting with multiple LLM providers and running
    image generation jobs.

    Providers are registered only when their credentials are configured.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        credential_store: Optional[CredentialStore] = None,
        providers: Optional[List[ChatProvider]] = None,
    ):
        """
        Initialize the UnifiedClient.

        Args:
            settings: Configuration. Defaults to ``Settings.from_env()``.
            http_client: Shared HTTP client. One with the configured timeout is
                created (and owned) when omitted.
            credential_store: Where access tokens are cached. Defaults to
                files in ``settings.token_cache_dir``.
            providers: Providers to register instead of the ones derived
                from ``settings``.
        """
        self.settings = settings or Settings.from_env()
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout, connect=10.0)
        )

        store = credential_store or FileCredentialStore(self.settings.token_cache_dir)
        self.credentials = CredentialCache(store, self.http_client)
        self.gateway = ProviderGateway(
            self.http_client,
            self.credentials,
            providers if providers is not None else self._default_providers(self.settings),
        )

        self.jobs: Optional[JobGateway] = None
        if self.settings.mj_api:
            self.jobs = JobGateway(self.settings.mj_api, self.settings.mj_token, self.http_client)

    @staticmethod
    def _default_providers(settings: Settings) -> List[ChatProvider]:
        providers: List[ChatProvider] = []
        if settings.baidu_enabled:
            providers.append(BaiduProvider(settings.baidu_api_key, settings.baidu_secret_key))
        if settings.openai_api_key:
            providers.append(OpenAIProvider(settings.openai_api_key, base_url=settings.openai_base_url))
        if settings.deepseek_api_key:
            # DeepSeek is OpenAI-compatible, only the base URL differs
            providers.append(OpenAIProvider(
                settings.deepseek_api_key, base_url=settings.deepseek_base_url, provider_name="deepseek"
            ))
        return providers

    @property
    def providers(self):
        return self.gateway.providers

    @staticmethod
    def create_message(role, content: str) -> Message:
        return create_message(role, content)

    # ==========================================================================
    # Chat
    # ==========================================================================

    async def chat(self, request: ChatRequest) -> Union[ChatResponse, ChatStream]:
        """
        Send a chat request.

        Args:
            request (ChatRequest): Provider, model, messages and sampling
                options. ``stream`` selects the return type.

        Returns:
            Union[ChatResponse, ChatStream]: A single ChatResponse, or a
            ChatStream when ``request['stream']`` is true.
        """
        return await self.gateway.chat(
            request["provider"],
            request["model"],
            request["messages"],
            stream=bool(request.get("stream", False)),
            temperature=request.get("temperature"),
            top_p=request.get("top_p"),
            max_length=request.get("max_length"),
        )

    async def list_models(self, provider: str) -> List[str]:
        """
        Get the list of available models for a configured provider.

        Raises:
            ValueError: If the provider is not configured or not supported.
        """
        return await self.gateway.list_models(provider)

    # ==========================================================================
    # Image jobs
    # ==========================================================================

    async def submit_image_job(self, request: JobRequest) -> JobHandle:
        return await self._job_gateway().submit(request)

    async def poll_image_job(self, job_id: str) -> JobStatus:
        return await self._job_gateway().status(job_id)

    async def change_image_job(self, job_id: str, action: str, index: Optional[int] = None) -> JobHandle:
        return await self._job_gateway().change(job_id, action, index)

    def _job_gateway(self) -> JobGateway:
        if self.jobs is None:
            raise ValueError("Image jobs are not configured; set MID_JOURNEY_API.")
        return self.jobs

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "UnifiedClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
