"""Error types raised by provider adapters and the dispatch path."""

from __future__ import annotations

from typing import Optional

from .provider_registry import Provider


class ProviderError(Exception):
    """A provider call failed.

    ``cost`` is non-zero only when the call completed far enough to be
    billed before the failure surfaced.
    """

    def __init__(
        self,
        provider: Provider,
        message: str,
        cause: Optional[BaseException] = None,
        cost: float = 0.0,
    ) -> None:
        super().__init__(f"{provider.value}: {message}")
        self.provider = provider
        self.cause = cause
        self.cost = cost


class ProviderTimeout(ProviderError):
    """The provider did not answer within its generation timeout."""


class ProviderTransportError(ProviderError):
    """Network, HTTP status or SDK failure."""


class ProviderResponseMalformed(ProviderError):
    """The provider answered but the payload could not be understood."""


class DispatchError(Exception):
    """Terminal failure after the selected provider and any fallback failed."""

    def __init__(
        self,
        provider: Provider,
        error: ProviderError,
        fallback_provider: Optional[Provider] = None,
        fallback_error: Optional[ProviderError] = None,
    ) -> None:
        self.provider = provider
        self.error = error
        self.fallback_provider = fallback_provider
        self.fallback_error = fallback_error

        message = f"{provider.value} failed: {error}"
        if fallback_provider is not None:
            message += f"; fallback {fallback_provider.value} failed: {fallback_error}"
        super().__init__(message)

    @property
    def incurred_cost(self) -> float:
        cost = self.error.cost
        if self.fallback_error is not None:
            cost += self.fallback_error.cost
        return cost
