from datetime import date, datetime
from types import SimpleNamespace

from app.services.ics_feed import build_calendar, default_session_end, escape_ics_text

NOW = datetime(2024, 3, 1, 12, 0, 0)


def make_gig(**overrides):
    fields = {
        "id": 7,
        "status": "accepted",
        "client": SimpleNamespace(name="Malmö Opera"),
        "gig_type": SimpleNamespace(name="Konsert"),
        "project_name": None,
        "venue": "Malmö Opera, Stora scenen",
        "fee": 4500.0,
        "notes": None,
        "gig_dates": [SimpleNamespace(date=date(2024, 3, 31), sessions=None)],
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def unfold(calendar: str) -> list[str]:
    return calendar.split("\r\n")


def test_escape_ics_text():
    assert escape_ics_text("a\\b;c,d\ne") == "a\\\\b\\;c\\,d\\ne"


def test_all_day_event_ends_next_day():
    lines = unfold(build_calendar([make_gig()], "sv", now=NOW, tzid="Europe/Stockholm"))
    assert "DTSTART;VALUE=DATE:20240331" in lines
    assert "DTEND;VALUE=DATE:20240401" in lines
    assert "STATUS:CONFIRMED" in lines
    assert "LOCATION:Malmö Opera\\, Stora scenen" in lines
    assert "DTSTAMP:20240301T120000Z" in lines


def test_all_day_event_on_last_day_of_year():
    gig = make_gig(gig_dates=[SimpleNamespace(date=date(2024, 12, 31), sessions=[])])
    lines = unfold(build_calendar([gig], "en", now=NOW))
    assert "DTEND;VALUE=DATE:20250101" in lines


def test_timed_sessions_use_tzid_and_default_end():
    gig = make_gig(
        status="tentative",
        gig_dates=[
            SimpleNamespace(
                date=date(2024, 5, 4),
                sessions=[{"start": "10:00", "end": "13:00", "label": "Rep"}, {"start": "19:30"}],
            )
        ],
    )
    lines = unfold(build_calendar([gig], "sv", now=NOW, tzid="Europe/Stockholm"))
    assert "DTSTART;TZID=Europe/Stockholm:20240504T100000" in lines
    assert "DTEND;TZID=Europe/Stockholm:20240504T130000" in lines
    assert "DTSTART;TZID=Europe/Stockholm:20240504T193000" in lines
    assert "DTEND;TZID=Europe/Stockholm:20240504T213000" in lines
    assert "SUMMARY:Rep: Konsert (Malmö Opera)" in lines
    assert lines.count("STATUS:TENTATIVE") == 2


def test_session_end_is_capped_at_midnight():
    assert default_session_end("22:30") == "23:59"
    assert default_session_end("21:15") == "23:15"


def test_declined_gigs_are_skipped():
    calendar = build_calendar([make_gig(status="declined")], "sv", now=NOW)
    assert "BEGIN:VEVENT" not in calendar


def test_labels_follow_locale():
    gig = make_gig(client=None)
    assert "Kund: Okänd kund" in build_calendar([gig], "sv", now=NOW)
    assert "Client: Unknown client" in build_calendar([gig], "en", now=NOW)
    # Unknown locales fall back to Swedish
    assert "Okänd kund" in build_calendar([gig], "de", now=NOW)
