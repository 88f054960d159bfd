"""Submission body normalization.

Submissions arrive as JSON, as URL-encoded form data, or as plain text
with alternating label and value lines. Whatever the shape, the result
is a ``CanonicalForm``: an ordered multi-map of field name to values.
"""

import json
import math
import re
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import parse_qsl

from intake.app.core.logging import get_logger
from intake.app.exceptions import MalformedBodyError

logger = get_logger(__name__)

MAX_BODY_SIZE = 256 * 1024

# Fields whose absence sends a form submission to the plain-text fallback
REQUIRED_FIELDS = ("urgency", "summary")

_INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


class CanonicalForm:
    """Ordered multi-map of field name to a list of string values.

    Keys keep the order in which they were first added.
    """

    def __init__(self, items: Optional[Iterable[Tuple[str, str]]] = None):
        self._data: Dict[str, List[str]] = {}
        if items is not None:
            for key, value in items:
                self.add(key, value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalForm":
        """Build from ``{key: value}`` or ``{key: [values]}``."""
        form = cls()
        for key, value in data.items():
            values = value if isinstance(value, (list, tuple)) else [value]
            for v in values:
                form.add(key, v)
        return form

    def add(self, key: str, value: str) -> None:
        self._data.setdefault(key, []).append(value)

    def extend(self, other: "CanonicalForm") -> None:
        for key, values in other.items():
            for value in values:
                self.add(key, value)

    def get(self, key: str, default: str = "") -> str:
        """First value of ``key``, or ``default``."""
        values = self._data.get(key)
        return values[0] if values else default

    def getlist(self, key: str) -> List[str]:
        return list(self._data.get(key, ()))

    def keys(self) -> List[str]:
        return list(self._data)

    def items(self) -> Iterator[Tuple[str, List[str]]]:
        for key, values in self._data.items():
            yield key, list(values)

    def to_dict(self) -> Dict[str, List[str]]:
        return {key: list(values) for key, values in self._data.items()}

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CanonicalForm):
            return NotImplemented
        return self._data == other._data

    def __repr__(self) -> str:
        return f"CanonicalForm({self._data!r})"


class BodyEncoding(str, Enum):
    """How a submission body is decoded."""
    JSON = "json"
    FORM = "form"
    PLAIN = "plain"


def _media_type(content_type: str) -> str:
    return (content_type or "").strip().lower()


def detect_encoding(content_type: str) -> BodyEncoding:
    """Pick the decoder for a Content-Type header value.

    ``application/json`` (with any parameters) is JSON. Everything else
    is decoded as URL-encoded form data; PLAIN is never detected from the
    header and is only used as the fallback after form decoding.
    """
    if _media_type(content_type).startswith("application/json"):
        return BodyEncoding.JSON
    return BodyEncoding.FORM


def scrub_surrogates(text: str) -> str:
    """Replace unpaired UTF-16 surrogates with U+FFFD.

    JSON escapes such as ``"\\ud800"`` decode to lone surrogates, which
    cannot be encoded as UTF-8 on the way out to recipients.
    """
    return _LONE_SURROGATE.sub("\ufffd", text)


def format_value(value: Any) -> str:
    """Stringify a decoded JSON scalar the way it is shown to recipients."""
    if isinstance(value, str):
        return scrub_surrogates(value)
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if value is None:
        return ""
    try:
        text = json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return ""
    return scrub_surrogates(text)


def decode_json(raw_body: bytes) -> CanonicalForm:
    """Decode a JSON object into a canonical form.

    String values are taken verbatim apart from unpaired surrogates,
    which become U+FFFD. Arrays contribute one value per element, other
    scalars are stringified. Empty strings are dropped.

    Raises:
        MalformedBodyError: If the body is empty, not JSON, or not an object
    """
    if not raw_body:
        raise MalformedBodyError(reason="empty body")
    try:
        data = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedBodyError(reason=f"invalid json: {e}") from e
    if not isinstance(data, dict):
        raise MalformedBodyError(reason="json body is not an object")

    form = CanonicalForm()
    for key, value in data.items():
        key = scrub_surrogates(key)
        values = value if isinstance(value, list) else [value]
        for item in values:
            text = format_value(item)
            if text:
                form.add(key, text)
    return form


def decode_form(raw_body: bytes, strict: bool = True) -> CanonicalForm:
    """Decode ``application/x-www-form-urlencoded`` data.

    Blank values are kept. With ``strict``, a malformed percent escape
    or a ``;`` separator fails the whole body.

    Raises:
        MalformedBodyError: If ``strict`` and the body is not valid form data
    """
    text = raw_body.decode("utf-8", errors="replace")
    if strict:
        for pair in text.split("&"):
            if ";" in pair:
                raise MalformedBodyError(reason="invalid semicolon separator in form data")
            if _INVALID_ESCAPE.search(pair):
                raise MalformedBodyError(reason=f"invalid URL escape in {pair[:32]!r}")
    return CanonicalForm(parse_qsl(text, keep_blank_values=True, errors="replace"))


def decode_plain_pairs(raw_body: bytes) -> CanonicalForm:
    """Decode text where lines alternate between a label and its value.

    Lines are trimmed. A blank line where a label is expected is
    skipped; a label on the last line gets an empty value.
    """
    form = CanonicalForm()
    text = raw_body.decode("utf-8", errors="replace").replace("\r\n", "\n")
    if not text.strip():
        return form

    lines = text.split("\n")
    i = 0
    while i < len(lines):
        key = lines[i].strip()
        i += 1
        if not key:
            continue
        value = ""
        if i < len(lines):
            value = lines[i].strip()
            i += 1
        form.add(key, value)
    return form


def decode(encoding: BodyEncoding, raw_body: bytes, strict: bool = True) -> CanonicalForm:
    """Decode ``raw_body`` with the decoder for ``encoding``.

    ``strict`` only applies to form data.
    """
    if encoding is BodyEncoding.JSON:
        return decode_json(raw_body)
    if encoding is BodyEncoding.FORM:
        return decode_form(raw_body, strict=strict)
    return decode_plain_pairs(raw_body)


def _missing_required(form: CanonicalForm) -> bool:
    return any(not form.get(field) for field in REQUIRED_FIELDS)


def normalize(
    content_type: str,
    raw_body: bytes,
    already_parsed: Optional[CanonicalForm] = None,
    max_body_size: int = MAX_BODY_SIZE,
) -> CanonicalForm:
    """Turn a raw submission body into a canonical form.

    Args:
        content_type: Request Content-Type header value
        raw_body: Request body; anything past ``max_body_size`` is ignored
        already_parsed: Fields decoded elsewhere (URL query parameters);
            form submissions append them after the body fields
        max_body_size: Body cap in bytes

    Returns:
        The canonical form. For form submissions missing ``urgency`` or
        ``summary``, label/value text lines found in the body are merged in.

    Raises:
        MalformedBodyError: If the body cannot be decoded
    """
    raw_body = raw_body[:max_body_size]
    encoding = detect_encoding(content_type)

    if encoding is BodyEncoding.JSON:
        return decode(encoding, raw_body)

    # Only bodies declared as form data must be well formed; anything
    # else may well be free text that happens to contain a '%'.
    declared_form = _media_type(content_type).startswith("application/x-www-form-urlencoded")
    form = decode(encoding, raw_body, strict=declared_form)
    if already_parsed is not None:
        form.extend(already_parsed)

    if _missing_required(form):
        pairs = decode(BodyEncoding.PLAIN, raw_body)
        if len(pairs):
            logger.debug(f"Merged {len(pairs)} plain text fields into form submission")
        form.extend(pairs)

    return form
