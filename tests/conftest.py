"""Shared fixtures for the intake gateway tests."""

import pytest

from intake.app.core.config import Settings
from intake.app.exceptions import NotifierError
from intake.app.services.notifier import Notifier


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier(Notifier):
    """Notifier that records sends and optionally fails."""

    def __init__(self, error: Exception | None = None, recipients: int = 1):
        self.sent: list[tuple[str, str]] = []
        self.error = error
        self._recipients = recipients

    @property
    def recipient_count(self) -> int:
        return self._recipients

    async def send(self, subject: str, body: str) -> None:
        self.sent.append((subject, body))
        if self.error is not None:
            raise self.error


class FakeGeoReader:
    """Stand-in for maxminddb.Reader backed by a dict."""

    def __init__(self, records: dict | None = None, error: Exception | None = None):
        self.records = records or {}
        self.error = error
        self.closed = False
        self.lookups: list[str] = []

    def get(self, ip_address: str):
        self.lookups.append(ip_address)
        if self.error is not None:
            raise self.error
        return self.records.get(ip_address)

    def close(self) -> None:
        self.closed = True


def city_record(country: str = "", city: str = "") -> dict:
    record = {}
    if country:
        record["country"] = {"names": {"en": country, "de": country + "-de"}}
    if city:
        record["city"] = {"names": {"en": city}}
    return record


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(error=NotifierError("telegram error: status=502 body=bad gateway", status_code=502))


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        telegram_bot_token="123:abc",
        telegram_chat_ids=["111"],
        geoip_db_path="",
        telegram_webhook_url="",
        telegram_webhook_secret="",
    )


@pytest.fixture
def make_clock():
    return FakeClock


@pytest.fixture
def make_notifier():
    return RecordingNotifier


@pytest.fixture
def make_geo_reader():
    return FakeGeoReader


@pytest.fixture
def make_city_record():
    return city_record
