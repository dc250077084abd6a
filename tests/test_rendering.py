import re

from tests.conftest import make_trip
from trip_notifier.rendering import (
    SAFETY_RULES,
    TRADEMARK_NOTICE,
    build_itinerary_pdf,
    build_reminder_html,
    build_reminder_text,
    reminder_subject,
    summary_rows,
)


def test_subject_uses_title():
    assert reminder_subject(make_trip(title="Spiti Loop")) == "New Travel Post Created: Spiti Loop"


def test_summary_rows_order_and_values():
    rows = summary_rows(make_trip(amount=15000.0, days=3, nights=2))
    assert [k for k, _ in rows] == [
        "Title", "Source", "Destination", "Start Date", "End Date",
        "Days", "Nights", "Amount", "Admin Name",
    ]
    assert dict(rows)["Amount"] == "15000.0"
    assert dict(rows)["Days"] == "3"


def test_missing_amount_renders_blank():
    assert dict(summary_rows(make_trip(amount=None)))["Amount"] == ""


class TestHtmlBody:

    def test_contains_all_sections(self):
        html = build_reminder_html("alice", make_trip())
        assert "<h1>Hello, alice!</h1>" in html
        assert "Travel Itinerary:" in html
        assert "<td>Goa</td>" in html
        assert "Events Timeline:" in html
        assert "<td>Check-in, Beach walk</td>" in html
        for rule in SAFETY_RULES:
            assert rule in html
        assert "Thank you for using Travel Buddy!" in html
        assert "© 2024 Travel Buddy." in html

    def test_timeline_omitted_when_empty(self):
        html = build_reminder_html("alice", make_trip(events=[]))
        assert "Events Timeline:" not in html

    def test_user_content_is_escaped(self):
        html = build_reminder_html("<b>eve</b>", make_trip(title="Rock & <Roll>"))
        assert "&lt;b&gt;eve&lt;/b&gt;" in html
        assert "Rock &amp; &lt;Roll&gt;" in html
        assert "<b>eve</b>" not in html


def test_text_body_mirrors_content():
    text = build_reminder_text("bob", make_trip())
    assert text.startswith("Hello, bob!")
    assert "  Destination: Goa" in text
    assert "  Day 1 (" in text
    assert text.endswith(TRADEMARK_NOTICE)


class TestPdf:

    def test_pdf_is_produced(self):
        pdf = build_itinerary_pdf("alice", make_trip())
        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 1000

    def test_pdf_handles_markup_characters_and_no_timeline(self):
        pdf = build_itinerary_pdf("a<b>&c", make_trip(title="<Trip & Co>", events=[]))
        assert pdf.startswith(b"%PDF")

    def test_long_timeline_paginates(self):
        from datetime import date, timedelta
        from trip_notifier.models import TimelineEntry

        start = date(2026, 4, 1)
        events = [
            TimelineEntry(f"Day {i + 1}", (start + timedelta(days=i)).isoformat(), ["Sightseeing"] * 5)
            for i in range(120)
        ]
        pdf = build_itinerary_pdf("alice", make_trip(events=events))
        page_counts = [int(n) for n in re.findall(rb"/Count (\d+)", pdf)]
        assert max(page_counts) > 1
