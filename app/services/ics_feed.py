"""
ICS calendar feed for gigs
One VEVENT per gig date, or one per timed session when the date has sessions
"""

from datetime import date as date_type
from datetime import datetime, timedelta
from typing import Optional

from ..config import CALENDAR_TIMEZONE
from ..models import Gig

CRLF = "\r\n"
PRODID = "-//Gigbook//SE"
UID_DOMAIN = "gigbook.app"
DEFAULT_SESSION_HOURS = 2

# CET/CEST rules, valid for the Nordic timezones the feed is used with
VTIMEZONE_LINES = [
    "BEGIN:VTIMEZONE",
    "TZID:{tzid}",
    "BEGIN:DAYLIGHT",
    "TZOFFSETFROM:+0100",
    "TZOFFSETTO:+0200",
    "TZNAME:CEST",
    "DTSTART:19700329T020000",
    "RRULE:FREQ=YEARLY;BYDAY=-1SU;BYMONTH=3",
    "END:DAYLIGHT",
    "BEGIN:STANDARD",
    "TZOFFSETFROM:+0200",
    "TZOFFSETTO:+0100",
    "TZNAME:CET",
    "DTSTART:19701025T030000",
    "RRULE:FREQ=YEARLY;BYDAY=-1SU;BYMONTH=10",
    "END:STANDARD",
    "END:VTIMEZONE",
]

LABELS = {
    "sv": {
        "unknown_client": "Okänd kund",
        "client": "Kund",
        "type": "Typ",
        "fee": "Arvode",
        "status": "Status",
    },
    "en": {
        "unknown_client": "Unknown client",
        "client": "Client",
        "type": "Type",
        "fee": "Fee",
        "status": "Status",
    },
}

STATUS_LABELS = {
    "sv": {
        "tentative": "Ej bekräftat",
        "pending": "Väntar på svar",
        "accepted": "Accepterat",
        "declined": "Avböjt",
        "completed": "Genomfört",
        "invoiced": "Fakturerat",
        "paid": "Betalt",
        "cancelled": "Inställt",
    },
    "en": {
        "tentative": "Tentative",
        "pending": "Pending response",
        "accepted": "Accepted",
        "declined": "Declined",
        "completed": "Completed",
        "invoiced": "Invoiced",
        "paid": "Paid",
        "cancelled": "Cancelled",
    },
}


def escape_ics_text(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def format_date(value: date_type) -> str:
    return value.strftime("%Y%m%d")


def format_next_day(value: date_type) -> str:
    """All-day DTEND is exclusive"""
    return format_date(value + timedelta(days=1))


def format_local_datetime(value: date_type, hhmm: str) -> str:
    hours, minutes = parse_time(hhmm)
    return f"{format_date(value)}T{hours:02d}{minutes:02d}00"


def parse_time(hhmm: str) -> tuple[int, int]:
    parts = hhmm.strip().split(":")
    return int(parts[0]), int(parts[1]) if len(parts) > 1 else 0


def default_session_end(start: str) -> str:
    """Start + 2 hours, capped at 23:59 on the same day"""
    hours, minutes = parse_time(start)
    end_hours = hours + DEFAULT_SESSION_HOURS
    if end_hours > 23:
        return "23:59"
    return f"{end_hours:02d}:{minutes:02d}"


def format_fee(fee: float, locale: str) -> str:
    formatted = f"{fee:,.0f}" if float(fee).is_integer() else f"{fee:,.2f}"
    if locale == "sv":
        formatted = formatted.replace(",", " ").replace(".", ",")
    return f"{formatted} kr"


def gig_summary(gig: Gig, labels: dict) -> str:
    client_name = gig.client.name if gig.client else labels["unknown_client"]
    if gig.project_name:
        return f"{gig.project_name} ({client_name})"
    type_name = gig.gig_type.name if gig.gig_type else "Gig"
    return f"{type_name} ({client_name})"


def gig_description(gig: Gig, locale: str, labels: dict) -> str:
    client_name = gig.client.name if gig.client else labels["unknown_client"]
    parts = [
        f"{labels['client']}: {client_name}",
        f"{labels['type']}: {gig.gig_type.name if gig.gig_type else '-'}",
    ]
    if gig.fee:
        parts.append(f"{labels['fee']}: {format_fee(gig.fee, locale)}")
    status_label = STATUS_LABELS[locale].get(gig.status, gig.status)
    parts.append(f"{labels['status']}: {status_label}")
    if gig.notes:
        parts.append(f"\n{gig.notes}")
    return "\n".join(parts)


def build_gig_events(gig: Gig, locale: str, dtstamp: str, tzid: str) -> list[list[str]]:
    labels = LABELS[locale]
    summary = gig_summary(gig, labels)
    description = escape_ics_text(gig_description(gig, locale, labels))
    location = escape_ics_text(gig.venue) if gig.venue else ""
    ics_status = "CONFIRMED" if gig.status == "accepted" else "TENTATIVE"

    events = []
    for date_idx, gig_date in enumerate(gig.gig_dates or []):
        sessions = gig_date.sessions if isinstance(gig_date.sessions, list) else []
        timed = [s for s in sessions if isinstance(s, dict) and s.get("start")]

        if not timed:
            events.append(
                [
                    "BEGIN:VEVENT",
                    f"UID:{gig.id}-{date_idx}@{UID_DOMAIN}",
                    f"DTSTAMP:{dtstamp}",
                    f"DTSTART;VALUE=DATE:{format_date(gig_date.date)}",
                    f"DTEND;VALUE=DATE:{format_next_day(gig_date.date)}",
                    f"SUMMARY:{escape_ics_text(summary)}",
                    f"LOCATION:{location}",
                    f"DESCRIPTION:{description}",
                    f"STATUS:{ics_status}",
                    "END:VEVENT",
                ]
            )
            continue

        for session_idx, session in enumerate(timed):
            label = session.get("label")
            session_summary = f"{label}: {summary}" if label else summary
            end = session.get("end") or default_session_end(session["start"])
            events.append(
                [
                    "BEGIN:VEVENT",
                    f"UID:{gig.id}-{date_idx}-{session_idx}@{UID_DOMAIN}",
                    f"DTSTAMP:{dtstamp}",
                    f"DTSTART;TZID={tzid}:{format_local_datetime(gig_date.date, session['start'])}",
                    f"DTEND;TZID={tzid}:{format_local_datetime(gig_date.date, end)}",
                    f"SUMMARY:{escape_ics_text(session_summary)}",
                    f"LOCATION:{location}",
                    f"DESCRIPTION:{description}",
                    f"STATUS:{ics_status}",
                    "END:VEVENT",
                ]
            )

    return events


def build_calendar(
    gigs: list[Gig],
    locale: Optional[str] = "sv",
    now: Optional[datetime] = None,
    tzid: str = CALENDAR_TIMEZONE,
) -> str:
    """Render gigs as an ICS document. Declined gigs are skipped."""
    locale = locale if locale in LABELS else "sv"
    dtstamp = (now or datetime.utcnow()).strftime("%Y%m%dT%H%M%SZ")

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "X-WR-CALNAME:Gigbook",
        f"X-WR-TIMEZONE:{tzid}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    lines.extend(line.format(tzid=tzid) for line in VTIMEZONE_LINES)

    for gig in gigs:
        if gig.status == "declined":
            continue
        for event in build_gig_events(gig, locale, dtstamp, tzid):
            lines.extend(event)

    lines.append("END:VCALENDAR")
    return CRLF.join(lines) + CRLF
