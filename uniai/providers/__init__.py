from .base import ChatProvider
from .baidu import BaiduProvider
from .openai import OpenAIProvider

__all__ = ["ChatProvider", "BaiduProvider", "OpenAIProvider"]
