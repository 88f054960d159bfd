"""Business rules a submission must satisfy before it is dispatched."""

from intake.app.exceptions import ValidationError
from intake.app.services.normalizer import CanonicalForm

SUMMARY_MAX_LENGTH = 500


def validate(form: CanonicalForm, summary_max_length: int = SUMMARY_MAX_LENGTH) -> None:
    """Check required fields and the summary length.

    The summary is measured in UTF-8 bytes, not characters, so non-ASCII
    summaries hit the limit sooner.

    Raises:
        ValidationError: With a message naming the offending field
    """
    if not form.get("urgency"):
        raise ValidationError("urgency is required")
    summary = form.get("summary")
    if not summary:
        raise ValidationError("summary is required")
    if len(summary.encode("utf-8", errors="surrogatepass")) > summary_max_length:
        raise ValidationError("summary too long")
