import os
import tempfile
from dataclasses import dataclass
from typing import Optional

import dotenv

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_DEEPSEEK_BASE_URL = "https://api.deepseek.com"
DEFAULT_TIMEOUT = 120.0


@dataclass(frozen=True)
class Settings:
    """
    Gateway configuration.

    Every field maps to one environment variable; ``from_env`` also reads a
    ``.env`` file from the working directory when present.
    """

    baidu_api_key: Optional[str] = None
    baidu_secret_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    deepseek_api_key: Optional[str] = None
    deepseek_base_url: str = DEFAULT_DEEPSEEK_BASE_URL
    mj_api: Optional[str] = None
    mj_token: Optional[str] = None
    token_cache_dir: str = tempfile.gettempdir()
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        dotenv.load_dotenv(dotenv_path)
        return cls(
            baidu_api_key=os.getenv("BAIDU_API_KEY") or None,
            baidu_secret_key=os.getenv("BAIDU_SECRET_KEY") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_base_url=os.getenv("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL,
            deepseek_api_key=os.getenv("DEEPSEEK_API_KEY") or None,
            deepseek_base_url=os.getenv("DEEPSEEK_BASE_URL") or DEFAULT_DEEPSEEK_BASE_URL,
            mj_api=os.getenv("MID_JOURNEY_API") or None,
            mj_token=os.getenv("MID_JOURNEY_TOKEN") or None,
            token_cache_dir=os.getenv("UNIAI_TOKEN_CACHE_DIR") or tempfile.gettempdir(),
            timeout=float(os.getenv("UNIAI_TIMEOUT") or DEFAULT_TIMEOUT),
        )

    @property
    def baidu_enabled(self) -> bool:
        return bool(self.baidu_api_key and self.baidu_secret_key)
