"""PDF invoices for paid bookings."""

from __future__ import annotations

from io import BytesIO

from django.core.files.base import ContentFile  # type: ignore
from django.core.files.storage import default_storage  # type: ignore
from reportlab.lib import colors  # type: ignore
from reportlab.lib.pagesizes import A4  # type: ignore
from reportlab.lib.styles import getSampleStyleSheet  # type: ignore
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle  # type: ignore

from .models import Booking

TABLE_STYLE = TableStyle(
    [
        ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
    ]
)


def invoice_path(booking: Booking) -> str:
    return f"invoices/{booking.booking_date:%Y/%m}/{booking.reference}.pdf"


def render_invoice(booking: Booking) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"Invoice {booking.reference}")
    styles = getSampleStyleSheet()
    story = [
        Paragraph(f"<b>Invoice {booking.reference}</b>", styles["Title"]),
        Paragraph(
            f"{booking.bookable_type.title()} #{booking.bookable_id}, "
            f"{booking.booking_date:%d.%m.%Y} {booking.start_time:%H:%M}-{booking.end_time:%H:%M}, "
            f"{booking.party_size} guests",
            styles["Normal"],
        ),
        Spacer(1, 16),
    ]

    rows = [["Item", f"Amount ({booking.currency})"], ["Subtotal", f"{booking.subtotal:,.2f}"]]
    for item in booking.applied_discounts or []:
        label = item.get("kind", "discount").replace("_", " ").title()
        if item.get("code"):
            label = f"{label} ({item['code']})"
        rows.append([label, f"-{item.get('amount', '0')}"])
    rows.append(["Total paid", f"{booking.total_price:,.2f}"])

    table = Table(rows, colWidths=[300, 150])
    table.setStyle(TABLE_STYLE)
    story.append(table)
    story.append(Spacer(1, 16))
    if booking.paid_at:
        story.append(
            Paragraph(
                f"Paid {booking.paid_at:%d.%m.%Y %H:%M} via {booking.payment_method or 'n/a'} "
                f"(ref. {booking.payment_reference})",
                styles["Normal"],
            )
        )

    doc.build(story)
    return buffer.getvalue()


def generate_invoice(booking: Booking) -> str:
    """Render and store the invoice, replacing an earlier copy. Returns the storage path."""
    path = invoice_path(booking)
    if default_storage.exists(path):
        default_storage.delete(path)
    return default_storage.save(path, ContentFile(render_invoice(booking)))
