"""
Error taxonomy for the portfolio API.

Every error carries the HTTP status it maps to; main.py installs a single
handler that turns them into the same ``{"detail": ...}`` body HTTPException
produces.
"""


class PortfolioError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(PortfolioError):
    """Unknown id or slug. Also used for portfolios that are not public."""
    status_code = 404


class NotPublishedError(PortfolioError):
    """Portfolio exists and is public but its status is not PUBLISHED."""
    status_code = 200

    def __init__(self, slug: str):
        super().__init__("Portfolio is not published yet")
        self.slug = slug


class ForbiddenError(PortfolioError):
    status_code = 403


class InvalidRequestError(PortfolioError):
    status_code = 400


class MisconfiguredPlatformError(PortfolioError):
    """A protected platform menu the code relies on is missing or disabled."""
    status_code = 500
