class LoyaltyError(Exception):
    """Base class for loyalty engine failures."""


class InvalidConfigurationError(LoyaltyError, ValueError):
    """Merchant loyalty settings rejected at write time."""


class CouponIssueError(LoyaltyError):
    """A coupon owed to a customer could not be created."""


class UpstreamCouponError(CouponIssueError):
    """The e-commerce platform refused or failed to create a coupon code."""

    def __init__(self, message: str, *, status_code: int | None = None, attempts: int = 0):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts
