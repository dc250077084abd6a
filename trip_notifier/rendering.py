"""
Reminder content: the HTML email body, a plain-text fallback and the
printable PDF itinerary. All three carry the same structured content.
"""

import io
from typing import List, Tuple
from xml.sax.saxutils import escape as xml_escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from trip_notifier.models import TripRecord

ATTACHMENT_FILENAME = "TravelItinerary.pdf"

SAFETY_RULES = [
    "Always keep your valuables secure and avoid displaying them publicly.",
    "Be aware of your surroundings and avoid risky areas.",
    "Keep emergency contact numbers handy and know the local emergency services.",
    "Stay hydrated and take regular breaks during your travel.",
    "Follow local health guidelines and stay informed about any travel advisories.",
]

TRADEMARK_NOTICE = "© 2024 Travel Buddy. All rights reserved. 'Travel Buddy' is a trademark of Travel Buddy Inc."
INTRO_LINE = "We are excited to inform you about your new travel itinerary."
CLOSING_LINE = "Thank you for using Travel Buddy! We hope you have a great trip."


def esc(s) -> str:
    return ("" if s is None else str(s)).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def format_amount(amount) -> str:
    return "" if amount is None else str(amount)


def reminder_subject(trip: TripRecord) -> str:
    return f"New Travel Post Created: {trip.title}"


def summary_rows(trip: TripRecord) -> List[Tuple[str, str]]:
    """Field/value pairs shown in the itinerary table, in display order."""
    return [
        ("Title", trip.title),
        ("Source", trip.source),
        ("Destination", trip.destination),
        ("Start Date", trip.start_date),
        ("End Date", trip.end_date),
        ("Days", str(trip.days)),
        ("Nights", str(trip.nights)),
        ("Amount", format_amount(trip.amount)),
        ("Admin Name", trip.admin_name),
    ]


def timeline_rows(trip: TripRecord) -> List[Tuple[str, str, str]]:
    return [(entry.title, entry.date, ", ".join(entry.events)) for entry in trip.events]


# ─────────────────────────── EMAIL ───────────────────────────

EMAIL_STYLE = (
    "body { font-family: Arial, sans-serif; line-height: 1.6; }"
    ".container { max-width: 600px; margin: 0 auto; padding: 20px; }"
    "h1, h2, h3 { color: #333; }"
    "p { margin: 5px 0; }"
    "table { width: 100%; border-collapse: collapse; margin-bottom: 20px; }"
    "th, td { padding: 8px; text-align: left; border: 1px solid #ddd; }"
    "th { background-color: #f4f4f4; }"
    "tr:nth-child(even) { background-color: #f9f9f9; }"
    ".safety { margin-top: 20px; padding: 10px; border: 1px solid #ddd; background-color: #f9f9f9; }"
    ".trademark { margin-top: 20px; font-size: 12px; color: #888; }"
)


def build_reminder_html(user: str, trip: TripRecord) -> str:
    """Build the HTML reminder body for one participant"""
    row_html = ""
    for k, v in summary_rows(trip):
        row_html += f"<tr><td><strong>{esc(k)}</strong></td><td>{esc(v)}</td></tr>"

    timeline_html = ""
    if trip.events:
        entries = ""
        for title, date, details in timeline_rows(trip):
            entries += f"<tr><td>{esc(title)}</td><td>{esc(date)}</td><td>{esc(details)}</td></tr>"
        timeline_html = f"""
          <h2>Events Timeline:</h2>
          <table>
            <tr><th>Title</th><th>Date</th><th>Details</th></tr>
            {entries}
          </table>
        """

    safety_items = "".join(f"<li>{esc(rule)}</li>" for rule in SAFETY_RULES)

    return f"""\
<!DOCTYPE html>
<html>
  <head>
    <meta charset='UTF-8'>
    <title>Travel Itinerary Notification</title>
    <style>{EMAIL_STYLE}</style>
  </head>
  <body>
    <div class='container'>
      <h1>Hello, {esc(user)}!</h1>
      <p>{esc(INTRO_LINE)} Here are the details:</p>
      <h2>Travel Itinerary:</h2>
      <table>
        <tr><th>Field</th><th>Details</th></tr>
        {row_html}
      </table>
      {timeline_html}
      <div class='safety'>
        <h2>Safety Rules and Precautions:</h2>
        <ul>{safety_items}</ul>
      </div>
      <p>{esc(CLOSING_LINE)}</p>
    </div>
    <div class='trademark'>
      <p>{esc(TRADEMARK_NOTICE)}</p>
    </div>
  </body>
</html>
"""


def build_reminder_text(user: str, trip: TripRecord) -> str:
    """Plain-text alternative for mail clients without HTML"""
    lines = [f"Hello, {user}!", "", INTRO_LINE, "", "Travel Itinerary:"]
    lines += [f"  {k}: {v}" for k, v in summary_rows(trip)]
    if trip.events:
        lines += ["", "Events Timeline:"]
        lines += [f"  {title} ({date}): {details}" for title, date, details in timeline_rows(trip)]
    lines += ["", "Safety Rules and Precautions:"]
    lines += [f"  - {rule}" for rule in SAFETY_RULES]
    lines += ["", CLOSING_LINE, "", TRADEMARK_NOTICE]
    return "\n".join(lines)


# ─────────────────────────── PDF ───────────────────────────

_GRID = TableStyle([
    ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#dddddd")),
    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f4f4f4")),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
])


def build_itinerary_pdf(user: str, trip: TripRecord) -> bytes:
    """Render the itinerary as a paginated PDF document."""
    styles = getSampleStyleSheet()
    greeting = ParagraphStyle("Greeting", parent=styles["Title"], fontSize=18, alignment=TA_CENTER)
    heading = ParagraphStyle("Heading", parent=styles["Heading2"], fontSize=16)
    body = styles["BodyText"]
    footer = ParagraphStyle("Footer", parent=body, fontSize=10, alignment=TA_CENTER, spaceBefore=20)

    def para(text, style=body):
        return Paragraph(xml_escape("" if text is None else str(text)), style)

    story = [
        para(f"Hello, {user}!", greeting),
        para(INTRO_LINE),
        para("Travel Itinerary:", heading),
    ]

    details = [[para("Field"), para("Details")]]
    details += [[para(k), para(v)] for k, v in summary_rows(trip)]
    table = Table(details, colWidths=[120, 330], repeatRows=1)
    table.setStyle(_GRID)
    story.append(table)

    if trip.events:
        story.append(para("Events Timeline:", heading))
        timeline = [[para("Title"), para("Date"), para("Details")]]
        timeline += [[para(t), para(d), para(x)] for t, d, x in timeline_rows(trip)]
        timeline_table = Table(timeline, colWidths=[120, 80, 250], repeatRows=1)
        timeline_table.setStyle(_GRID)
        story.append(timeline_table)

    story.append(para("Safety Rules and Precautions:", heading))
    story += [para(f"• {rule}") for rule in SAFETY_RULES]
    story.append(Spacer(1, 12))
    story.append(para(TRADEMARK_NOTICE, footer))

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"Travel Itinerary - {trip.title}")
    doc.build(story)
    return buffer.getvalue()
