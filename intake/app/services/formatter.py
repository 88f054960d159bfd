"""Plain text rendering of a submission for recipients."""

from datetime import datetime
from typing import List, Optional, Tuple

from intake.app.services.geo import Location
from intake.app.services.normalizer import CanonicalForm

# (label, field, every value or just the first)
FIELD_LAYOUT: Tuple[Tuple[str, str, bool], ...] = (
    ("Type", "type", True),
    ("Type other", "type_other_specify", False),
    ("Urgency", "urgency", False),
    ("Summary", "summary", False),
    ("Platforms", "platforms", True),
    ("Evidence", "evidence", True),
    ("Actions", "actions", True),
    ("Country residence", "country_residence", False),
    ("Country incident", "country_incident", False),
    ("Contact name", "contact_name", False),
    ("Contact method", "contact_method", False),
    ("Urgent contact", "urgent_contact", False),
    ("Privacy", "privacy", True),
)


def _field_lines(form: CanonicalForm) -> List[str]:
    """Blank values in list fields are skipped: ``type=&type=a`` renders
    ``Type: a``, and a list field holding only blanks gets no line."""
    lines = []
    for label, field, multi in FIELD_LAYOUT:
        if multi:
            value = ", ".join(v for v in form.getlist(field) if v)
        else:
            value = form.get(field)
        if value:
            lines.append(f"{label}: {value}")
    return lines


def format_message(
    form: CanonicalForm,
    origin: str = "",
    location: Optional[Location] = None,
    now: Optional[datetime] = None,
) -> str:
    """Render a submission as the message body sent to recipients.

    Known fields come out in a fixed order, one ``Label: value`` line
    each, and unknown fields are left out. A form with none of the known
    fields still yields a non-empty body. Origin and location lines
    follow after a blank line when available.
    """
    lines = _field_lines(form)
    if lines:
        body = "\n".join(lines) + "\n"
    else:
        now = now or datetime.now().astimezone()
        body = f"empty form submitted at {now.isoformat(timespec='seconds')}\n"

    if not origin:
        return body

    body += f"\nIP: {origin}\n"
    if location is not None:
        if location.country:
            body += f"Country: {location.country}\n"
        if location.city:
            body += f"City: {location.city}\n"
    return body
