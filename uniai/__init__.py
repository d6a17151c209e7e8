from .client import UnifiedClient
from .config import Settings
from .credentials import CredentialCache, CredentialStore, FileCredentialStore, MemoryCredentialStore
from .errors import GatewayError, CredentialError, ProviderError, TransportError, MalformedStreamFrame
from .gateway import ProviderGateway
from .jobs import JobGateway
from .relay import ChatStream
from .reshape import alternate_turns
from .types import (
    Message, ChatRequest, ChatResponse, Credential, JobRequest, JobHandle, JobStatus, Provider, aspect_ratio
)
from .rich_llm_printer import RichPrinter, RichStreamPrinter

__all__ = [
    "UnifiedClient",
    "Settings",
    "ProviderGateway",
    "JobGateway",
    "ChatStream",
    "CredentialCache",
    "CredentialStore",
    "FileCredentialStore",
    "MemoryCredentialStore",
    "alternate_turns",
    "aspect_ratio",
    "GatewayError",
    "CredentialError",
    "ProviderError",
    "TransportError",
    "MalformedStreamFrame",
    "Message",
    "ChatRequest",
    "ChatResponse",
    "Credential",
    "JobRequest",
    "JobHandle",
    "JobStatus",
    "Provider",
    "RichPrinter",
    "RichStreamPrinter",
]
