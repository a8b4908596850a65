"""
costsheets/exports.py

CSV and PDF renditions of a client's approved cost sheet lines.

Both exports share the same column set and take LedgerRow lists produced by
ledger.approved_items(), so admin quotation overrides are already applied.
"""

from __future__ import annotations

import html
import io
from datetime import datetime
from decimal import Decimal
from typing import List, Sequence

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .ledger import LedgerRow
from .pricing import money

EXPORT_COLUMNS = [
    "#",
    "Date",
    "Item",
    "Supplier",
    "Qty",
    "Supplier Cost",
    "Misc Cost",
    "Total Cost",
    "REA Margin",
    "Actual Quoted",
]

DEFAULT_CURRENCY = "AED"


def format_money(value: Decimal, currency: str = DEFAULT_CURRENCY) -> str:
    return f"{currency} {money(Decimal(value)):,.2f}"


def _record(row: LedgerRow, currency: str) -> List[object]:
    return [
        row.item_number,
        row.date.isoformat() if row.date else "",
        row.item,
        row.supplier_name,
        row.qty,
        format_money(row.supplier_cost, currency),
        format_money(row.misc_cost, currency),
        format_money(row.total_cost, currency),
        format_money(row.rea_margin, currency),
        format_money(row.actual_quoted, currency),
    ]


def export_dataframe(rows: Sequence[LedgerRow], currency: str = DEFAULT_CURRENCY) -> pd.DataFrame:
    return pd.DataFrame([_record(r, currency) for r in rows], columns=EXPORT_COLUMNS)


def export_csv(rows: Sequence[LedgerRow], currency: str = DEFAULT_CURRENCY) -> bytes:
    return export_dataframe(rows, currency).to_csv(index=False).encode("utf-8")


def export_pdf(client_name: str, rows: Sequence[LedgerRow], currency: str = DEFAULT_CURRENCY) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=12 * mm,
        rightMargin=12 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=f"Approved Cost Sheet - {client_name}",
    )
    styles = getSampleStyleSheet()
    styles.add(
        ParagraphStyle(
            name="Cell",
            parent=styles["Normal"],
            fontSize=8,
            leading=10,
        )
    )
    styles.add(
        ParagraphStyle(
            name="Muted",
            parent=styles["Normal"],
            textColor=colors.HexColor("#475569"),
            fontSize=9,
        )
    )

    story: list[object] = []
    story.append(Paragraph(f"<b>Approved Cost Sheet: {html.escape(client_name)}</b>", styles["Title"]))
    story.append(Paragraph(f"Generated {datetime.utcnow():%Y-%m-%d %H:%M} UTC", styles["Muted"]))
    story.append(Spacer(1, 8))

    table_data: list[list[object]] = [list(EXPORT_COLUMNS)]
    for row in rows:
        record = _record(row, currency)
        # Wrap the free-text columns so long descriptions do not overflow the page.
        record[2] = Paragraph(html.escape(row.item), styles["Cell"])
        record[3] = Paragraph(html.escape(row.supplier_name), styles["Cell"])
        table_data.append(record)

    total_cost = sum((r.total_cost for r in rows), Decimal("0"))
    total_margin = sum((r.rea_margin for r in rows), Decimal("0"))
    total_quoted = sum((r.actual_quoted for r in rows), Decimal("0"))
    table_data.append(
        [
            "",
            "",
            "Total",
            "",
            "",
            "",
            "",
            format_money(total_cost, currency),
            format_money(total_margin, currency),
            format_money(total_quoted, currency),
        ]
    )

    widths = [0.04, 0.08, 0.22, 0.12, 0.05, 0.1, 0.09, 0.1, 0.1, 0.1]
    table = Table(table_data, colWidths=[doc.width * w for w in widths], repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("ALIGN", (0, 0), (-1, 0), "CENTER"),
                ("ALIGN", (4, 1), (-1, -1), "RIGHT"),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("BACKGROUND", (0, -1), (-1, -1), colors.whitesmoke),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("LEFTPADDING", (0, 0), (-1, -1), 4),
                ("RIGHTPADDING", (0, 0), (-1, -1), 4),
            ]
        )
    )
    story.append(table)

    doc.build(story)
    return buffer.getvalue()
