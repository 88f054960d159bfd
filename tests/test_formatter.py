"""Tests for message rendering."""

from datetime import datetime, timezone

from intake.app.services.formatter import format_message
from intake.app.services.geo import Location
from intake.app.services.normalizer import CanonicalForm


def _form(**fields):
    return CanonicalForm.from_dict(fields)


def test_fixed_label_order_and_joining():
    form = _form(
        privacy=["share", "anonymous"],
        summary="account stolen",
        urgency="high",
        type=["phishing", "fraud"],
        type_other_specify="sim swap",
        platforms=["instagram", "", "telegram"],
        evidence=["screenshots"],
        actions=["reported"],
        country_residence="Wonderland",
        country_incident="Oz",
        contact_name="Alice",
        contact_method="email",
        urgent_contact="yes",
        unknown_field="ignored",
    )

    assert format_message(form) == (
        "Type: phishing, fraud\n"
        "Type other: sim swap\n"
        "Urgency: high\n"
        "Summary: account stolen\n"
        "Platforms: instagram, telegram\n"
        "Evidence: screenshots\n"
        "Actions: reported\n"
        "Country residence: Wonderland\n"
        "Country incident: Oz\n"
        "Contact name: Alice\n"
        "Contact method: email\n"
        "Urgent contact: yes\n"
        "Privacy: share, anonymous\n"
    )


def test_single_value_fields_use_first_value():
    assert format_message(_form(urgency=["high", "low"], summary="x")) == "Urgency: high\nSummary: x\n"


def test_empty_fields_omitted():
    body = format_message(_form(urgency="high", summary="x", contact_name="", evidence=[""]))
    assert "Contact name" not in body
    assert "Evidence" not in body


def test_blank_values_skipped_in_list_fields():
    body = format_message(_form(urgency="high", summary="x", type=["", "phishing", ""]))
    assert "Type: phishing\n" in body


def test_empty_form_fallback_line():
    now = datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc)
    assert format_message(CanonicalForm(), now=now) == "empty form submitted at 2026-10-19T12:30:00+00:00\n"


def test_empty_form_fallback_uses_current_time():
    body = format_message(_form(unknown="x"))
    assert body.startswith("empty form submitted at ")
    assert body.strip()


def test_origin_and_location_lines():
    body = format_message(
        _form(urgency="high", summary="x"),
        origin="203.0.113.5",
        location=Location(country="Wonderland", city="Heartstown"),
    )
    assert body == (
        "Urgency: high\n"
        "Summary: x\n"
        "\n"
        "IP: 203.0.113.5\n"
        "Country: Wonderland\n"
        "City: Heartstown\n"
    )


def test_country_without_city():
    body = format_message(
        _form(urgency="high", summary="x"),
        origin="203.0.113.5",
        location=Location(country="Wonderland", city=""),
    )
    lines = body.splitlines()
    assert "Country: Wonderland" in lines
    assert not any(line.startswith("City:") for line in lines)


def test_city_without_country():
    body = format_message(_form(urgency="high", summary="x"), "203.0.113.5", Location(city="Heartstown"))
    assert body.endswith("IP: 203.0.113.5\nCity: Heartstown\n")


def test_no_origin_skips_ip_and_location():
    body = format_message(_form(urgency="high", summary="x"), "", Location(country="Wonderland"))
    assert body == "Urgency: high\nSummary: x\n"


def test_origin_without_location():
    body = format_message(_form(urgency="high", summary="x"), "198.51.100.1")
    assert body.endswith("\nIP: 198.51.100.1\n")
    assert "Country:" not in body
