"""Middleware package for the intake gateway."""

from intake.app.middleware.rate_limit import IPRateLimiter, RateLimitMiddleware
from intake.app.middleware.request_id import RequestIdMiddleware, get_request_id
from intake.app.middleware.request_size import RequestSizeLimitMiddleware

__all__ = [
    "IPRateLimiter",
    "RateLimitMiddleware",
    "RequestIdMiddleware",
    "RequestSizeLimitMiddleware",
    "get_request_id",
]
