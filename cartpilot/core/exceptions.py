"""Exception types shared across gateways and services."""


class CartPilotError(Exception):
    """Base class for all application errors."""


class UpstreamError(CartPilotError):
    """A third-party API answered with a non-success status."""

    def __init__(self, service: str, status_code: int, detail: str = "") -> None:
        self.service = service
        self.status_code = status_code
        self.detail = detail
        message = f"{service} API error {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RateLimitedError(UpstreamError):
    """An upstream answered 429; escapes to callers once retries are exhausted."""

    def __init__(
        self,
        service: str,
        status_code: int = 429,
        detail: str = "",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(service, status_code, detail)
        self.retry_after = retry_after


class EmbeddingInputError(CartPilotError, ValueError):
    """Raised for input that must not be sent to the embedding provider."""


class ShopifyError(CartPilotError):
    """GraphQL-level failure reported by a Shopify API."""


class CartNotFoundError(ShopifyError):
    """The Storefront cart id is unknown to Shopify, usually because it expired."""


class TenantLookupError(CartPilotError):
    """The tenant store failed for a reason other than a missing row."""


class AgentError(CartPilotError):
    """Conversation processing failed.

    The message is safe to show to a shopper; the original exception is
    chained as ``__cause__`` for server-side logging.
    """
