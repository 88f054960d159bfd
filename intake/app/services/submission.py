"""Submission pipeline: normalize, validate, enrich, format, dispatch."""

from typing import Optional

from intake.app.core.logging import get_log_context, get_logger
from intake.app.exceptions import DispatchError, NotifierError
from intake.app.services.formatter import format_message
from intake.app.services.geo import GeoResolver
from intake.app.services.normalizer import MAX_BODY_SIZE, CanonicalForm, normalize
from intake.app.services.notifier import Notifier
from intake.app.services.validator import SUMMARY_MAX_LENGTH, validate

logger = get_logger(__name__)

SUBJECT = "new case"


class SubmissionService:
    """Runs one submission from raw body to delivered message.

    Stateless apart from its collaborators, so one instance serves all
    requests concurrently.
    """

    def __init__(
        self,
        notifier: Notifier,
        geo: Optional[GeoResolver] = None,
        max_body_size: int = MAX_BODY_SIZE,
        summary_max_length: int = SUMMARY_MAX_LENGTH,
    ):
        self.notifier = notifier
        self.geo = geo or GeoResolver()
        self.max_body_size = max_body_size
        self.summary_max_length = summary_max_length

    def build_message(
        self,
        content_type: str,
        raw_body: bytes,
        origin: str = "",
        query: Optional[CanonicalForm] = None,
    ) -> str:
        """Normalize, validate and render a submission.

        Raises:
            MalformedBodyError: If the body cannot be decoded
            ValidationError: If a required field is missing or too long
        """
        form = normalize(content_type, raw_body, query, max_body_size=self.max_body_size)
        validate(form, summary_max_length=self.summary_max_length)
        location = self.geo.lookup(origin) if origin else None
        return format_message(form, origin, location)

    async def submit(
        self,
        content_type: str,
        raw_body: bytes,
        origin: str = "",
        query: Optional[CanonicalForm] = None,
        request_id: Optional[str] = None,
    ) -> None:
        """Process a submission and hand it to the notifier exactly once.

        Raises:
            MalformedBodyError: If the body cannot be decoded
            ValidationError: If a business rule fails
            DispatchError: If the notifier failed; not retried
        """
        message = self.build_message(content_type, raw_body, origin, query)
        try:
            await self.notifier.send(SUBJECT, message)
        except NotifierError as e:
            logger.error(
                f"send message error: {e}",
                extra=get_log_context(request_id=request_id, origin=origin or None),
            )
            raise DispatchError(cause=e) from e

        logger.info(
            "Submission dispatched",
            extra=get_log_context(request_id=request_id, origin=origin or None),
        )
