"""Services package for the intake gateway.

This package provides:
- Origin resolution and GeoIP enrichment
- Body normalization and validation
- Message formatting and notifier dispatch
"""

from intake.app.services.formatter import format_message
from intake.app.services.geo import GeoResolver, Location
from intake.app.services.normalizer import CanonicalForm, normalize
from intake.app.services.notifier import Notifier, TelegramNotifier
from intake.app.services.origin import resolve_origin
from intake.app.services.submission import SubmissionService
from intake.app.services.validator import validate

__all__ = [
    "CanonicalForm",
    "GeoResolver",
    "Location",
    "Notifier",
    "SubmissionService",
    "TelegramNotifier",
    "format_message",
    "normalize",
    "resolve_origin",
    "validate",
]
