from typing import Dict, Any, List, Optional, Sequence

import httpx

from .base import ChatProvider
from ..errors import CredentialError, ProviderError
from ..reshape import alternate_turns
from ..types import ChatResponse, Credential, Message, StreamFragment
from ..utils import drop_none

ACCESS_TOKEN_API = "https://aip.baidubce.com/oauth/2.0/token"
WORKSHOP_API = "https://aip.baidubce.com/rpc/2.0/ai_custom/v1/wenxinworkshop"

# Model name -> wenxinworkshop chat endpoint
BAIDU_MODELS = {
    "ernie-4.0": "completions_pro",
    "ernie-3.5": "completions",
    "ernie-turbo": "eb-instant",
    "ernie-speed": "ernie_speed",
}
DEFAULT_MODEL = "completions_pro"


class BaiduProvider(ChatProvider):
    """
    Provider for Baidu ERNIE (wenxinworkshop) chat models.

    ERNIE only accepts strictly alternating user/assistant turns, needs an
    OAuth access token on every call, and streams each result fragment as
    an event whose ``result`` field the relay treats as the current text.
    """

    name = "baidu"
    requires_credential = True
    cumulative_stream = True

    def __init__(
        self,
        api_key: Optional[str],
        secret_key: Optional[str],
        base_url: str = WORKSHOP_API,
        token_url: str = ACCESS_TOKEN_API,
    ):
        super().__init__(api_key, base_url)
        self.secret_key = secret_key
        self.token_url = token_url

    def reshape(self, messages: Sequence[Message]) -> List[Message]:
        return alternate_turns(messages)

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
        endpoint = BAIDU_MODELS.get(model, model or DEFAULT_MODEL)
        body = {
            "messages": messages,
            "stream": stream,
            **drop_none({
                "temperature": options.get("temperature"),
                "top_p": options.get("top_p"),
                "max_output_tokens": options.get("max_length"),
            }),
        }
        return client.build_request(
            "POST",
            f"{self.base_url}/chat/{endpoint}",
            params={"access_token": token or ""},
            json=body,
        )

    def normalize(self, payload: Dict[str, Any], model: str) -> ChatResponse:
        self._raise_for_error(payload)
        return {
            "content": payload.get("result") or "",
            **self.normalize_usage(payload.get("usage")),
            "model": model,
            "object": payload.get("object") or "",
        }

    def parse_fragment(self, payload: Dict[str, Any]) -> Optional[StreamFragment]:
        self._raise_for_error(payload)
        result = payload.get("result")
        if not result:
            return None

        fragment: StreamFragment = {"content": result, "object": payload.get("object") or ""}
        if payload.get("usage"):
            fragment["usage"] = self.normalize_usage(payload["usage"])
        return fragment

    def build_credential_request(self, client: httpx.AsyncClient) -> httpx.Request:
        if not (self.api_key and self.secret_key):
            raise CredentialError("Baidu API key and secret key are not configured", provider=self.name)
        return client.build_request(
            "GET",
            self.token_url,
            params={
                "grant_type": "client_credentials",
                "client_id": self.api_key,
                "client_secret": self.secret_key,
            },
        )

    def parse_credential(self, payload: Dict[str, Any], now_ms: int) -> Credential:
        if payload.get("error"):
            raise CredentialError(
                payload.get("error_description") or payload["error"],
                provider=self.name,
                code=payload["error"],
            )
        token = payload.get("access_token")
        if not token:
            raise CredentialError("Access token response carried no token", provider=self.name)
        return Credential(token=token, expires_at_ms=now_ms + int(payload.get("expires_in") or 0) * 1000)

    async def get_models(self) -> List[str]:
        return list(BAIDU_MODELS)

    def _raise_for_error(self, payload: Dict[str, Any]) -> None:
        if payload.get("error_code"):
            raise ProviderError(
                payload.get("error_msg") or f"Baidu error {payload['error_code']}",
                provider=self.name,
                code=payload["error_code"],
            )
