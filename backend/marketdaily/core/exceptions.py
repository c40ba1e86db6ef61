"""Domain exceptions for report assembly and delivery."""


class MarketDailyError(Exception):
    """Base class for application errors."""


class PortfolioNotFoundError(MarketDailyError):
    """Raised when report assembly targets an unknown portfolio."""
    def __init__(self, portfolio_id):
        self.portfolio_id = portfolio_id
        super().__init__(f"Portfolio not found: {portfolio_id}")


class EmailTransportNotConfiguredError(MarketDailyError):
    """Raised per send when no SMTP host is configured."""
    def __init__(self):
        super().__init__("SMTP transport is not configured")


class ExternalProviderError(MarketDailyError):
    """Raised by a news provider for an unusable response payload."""
    def __init__(self, provider: str, detail: str):
        self.provider = provider
        super().__init__(f"{provider}: {detail}")
