"""
Error kinds raised by the gateway.

Provider descriptions are kept verbatim in the exception message so callers
can show them to end users unchanged.
"""
from typing import Optional, Union


class GatewayError(Exception):
    """Base class for every error the gateway raises on purpose."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        code: Optional[Union[int, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.model = model
        self.code = code

    def add_context(self, provider: Optional[str] = None, model: Optional[str] = None) -> "GatewayError":
        """Record which provider/model was being invoked, keeping existing values."""
        if self.provider is None:
            self.provider = provider
        if self.model is None:
            self.model = model
        return self

    def __str__(self) -> str:
        where = "/".join(part for part in (self.provider, self.model) if part)
        return f"[{where}] {self.message}" if where else self.message


class CredentialError(GatewayError):
    """An access token could not be obtained or refreshed."""


class ProviderError(GatewayError):
    """The provider answered with a well-formed error payload."""


class TransportError(GatewayError):
    """Network or connection failure talking to a provider."""


class MalformedStreamFrame(GatewayError):
    """A stream event that cannot be used. Skipped by the relay, never surfaced."""
