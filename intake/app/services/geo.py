"""Approximate geographic origin from a MaxMind City database."""

import ipaddress
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import maxminddb

from intake.app.core.logging import get_logger
from intake.app.exceptions import ConfigError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Location:
    """Where an address appears to be. Either part may be empty."""
    country: str = ""
    city: str = ""


class GeoReader(Protocol):
    """The part of ``maxminddb.Reader`` the resolver relies on."""

    def get(self, ip_address: str) -> Any: ...

    def close(self) -> None: ...


def _english_name(record: Any, section: str) -> str:
    if not isinstance(record, dict):
        return ""
    names = (record.get(section) or {}).get("names") or {}
    name = names.get("en", "")
    return name if isinstance(name, str) else ""


class GeoResolver:
    """Looks up the location of an IP address.

    The backing database is optional: without one every lookup returns
    None, which callers treat the same as "no data for this address".
    """

    def __init__(self, reader: Optional[GeoReader] = None):
        self._reader = reader

    @classmethod
    def open(cls, path: str) -> "GeoResolver":
        """Open the database at ``path``; an empty path disables lookups.

        Raises:
            ConfigError: If a path is given but the database cannot be opened
        """
        path = (path or "").strip()
        if not path:
            logger.info("GeoIP database not configured, enrichment disabled")
            return cls()
        try:
            reader = maxminddb.open_database(path)
        except (OSError, maxminddb.InvalidDatabaseError, ValueError) as e:
            raise ConfigError(f"open geoip db: {e}") from e
        logger.info(f"GeoIP database loaded from {path}")
        return cls(reader)

    @property
    def available(self) -> bool:
        return self._reader is not None

    def lookup(self, address: str) -> Optional[Location]:
        """Return the location of ``address`` or None. Never raises."""
        if self._reader is None:
            return None
        try:
            ip = ipaddress.ip_address(address.strip())
        except ValueError:
            return None

        try:
            record = self._reader.get(str(ip))
        except Exception as e:
            logger.debug(f"GeoIP lookup failed for {ip}: {e}")
            return None

        location = Location(
            country=_english_name(record, "country"),
            city=_english_name(record, "city"),
        )
        if not location.country and not location.city:
            return None
        return location

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
