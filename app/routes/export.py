"""
API Routes - Compliance report export

Endpoints
---------
  GET  /api/scans/{id}/report          Compliance report of a completed scan (?format=pdf|csv)
"""
from __future__ import annotations

import asyncio
import csv
import io
import logging
import re
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from xml.sax.saxutils import escape

from app.core.plans import can_export_reports, get_plan_limits
from app.database import get_db
from app.models.account import AccountPermission
from app.models.scan import Scan, ScanStatus
from app.utils.auth import AccountContext, get_account_context

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Export"])

_SEVERITY_HEX = {
    "CRITICAL": "#DC2626",
    "WARNING":  "#D97706",
    "MEDIUM":   "#CA8A04",
    "LOW":      "#2563EB",
    "INFO":     "#6B7280",
}
_RISK_HEX = {
    "CRITICAL": "#DC2626",
    "HIGH":     "#EA580C",
    "MEDIUM":   "#CA8A04",
    "LOW":      "#16A34A",
}

# ── PDF generator ─────────────────────────────────────────────────────────────

def build_report_pdf(scan: Scan) -> bytes:
    """Render a scan's compliance report to a PDF byte string using reportlab."""
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.units import mm
    from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
    from reportlab.lib.colors import HexColor
    from reportlab.platypus import (
        SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, HRFlowable,
    )

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4,
        leftMargin=15*mm, rightMargin=15*mm,
        topMargin=20*mm, bottomMargin=20*mm,
        title=f"Compliance Report - {scan.product_name}",
    )

    BRAND_HEX = HexColor("#1D4ED8")
    CARD_HEX = HexColor("#F3F4F6")
    TEXT_HEX = HexColor("#111827")
    GRAY_HEX = HexColor("#6B7280")

    styles = getSampleStyleSheet()
    h1_style = ParagraphStyle("h1", parent=styles["Heading1"],
        textColor=BRAND_HEX, fontSize=20, spaceAfter=4)
    h2_style = ParagraphStyle("h2", parent=styles["Heading2"],
        textColor=TEXT_HEX, fontSize=13, spaceBefore=10, spaceAfter=6)
    sub_style = ParagraphStyle("sub", parent=styles["Normal"],
        textColor=GRAY_HEX, fontSize=9, spaceAfter=12)
    label_style = ParagraphStyle("label", parent=styles["Normal"],
        textColor=GRAY_HEX, fontSize=8)
    body_style = ParagraphStyle("body", parent=styles["Normal"],
        textColor=TEXT_HEX, fontSize=9, leading=12)

    results = scan.results or {}
    extracted = results.get("extractedInfo") or {}
    risk = scan.risk_level.value if scan.risk_level else "UNKNOWN"
    risk_hex = _RISK_HEX.get(risk, "#6B7280")
    passed = (results.get("compliance") or {}).get("passed", False)

    story = [
        Paragraph("Product Label Checker", h1_style),
        Paragraph(f"Compliance report for <b>{escape(scan.product_name)}</b>", sub_style),
        Paragraph(
            f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')} | "
            f"Scan #{scan.id}",
            label_style,
        ),
        Spacer(1, 6*mm),
    ]

    overview = [[
        Paragraph(f"<b>Score</b><br/>{scan.score if scan.score is not None else 0}/100", body_style),
        Paragraph(f"<b>Risk</b><br/><font color='{risk_hex}'>{risk}</font>", body_style),
        Paragraph(f"<b>Result</b><br/>{'PASSED' if passed else 'NOT PASSED'}", body_style),
        Paragraph(f"<b>Category</b><br/>{scan.category.value.replace('_', ' ').title()}", body_style),
        Paragraph(f"<b>Marketplaces</b><br/>{', '.join(scan.marketplaces or [])}", body_style),
    ]]
    overview_table = Table(overview, colWidths=[30*mm, 30*mm, 35*mm, 45*mm, 40*mm])
    overview_table.setStyle(TableStyle([
        ("BACKGROUND",    (0, 0), (-1, -1), CARD_HEX),
        ("BOX",           (0, 0), (-1, -1), 0.5, GRAY_HEX),
        ("TOPPADDING",    (0, 0), (-1, -1), 6),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ("LEFTPADDING",   (0, 0), (-1, -1), 8),
    ]))
    story.append(overview_table)

    if results.get("summary"):
        story.append(Paragraph("Summary", h2_style))
        story.append(Paragraph(escape(results["summary"]), body_style))

    story.append(Paragraph(f"Issues ({len(scan.issues)})", h2_style))
    if scan.issues:
        rows = [[
            Paragraph("<b>Severity</b>", label_style),
            Paragraph("<b>Category</b>", label_style),
            Paragraph("<b>Issue</b>", label_style),
            Paragraph("<b>Recommendation</b>", label_style),
        ]]
        for issue in scan.issues:
            sev = issue.severity.value
            detail = escape(issue.description)
            if issue.regulation:
                detail += f"<br/><font color='#6B7280'>{escape(issue.regulation)}</font>"
            rows.append([
                Paragraph(f"<font color='{_SEVERITY_HEX.get(sev, '#6B7280')}'>{sev}</font>", label_style),
                Paragraph(escape(issue.category), label_style),
                Paragraph(detail, label_style),
                Paragraph(escape(issue.recommendation or ""), label_style),
            ])
        issues_table = Table(rows, colWidths=[22*mm, 33*mm, 65*mm, 60*mm], repeatRows=1)
        issues_table.setStyle(TableStyle([
            ("BACKGROUND",    (0, 0), (-1, 0), CARD_HEX),
            ("BOX",           (0, 0), (-1, -1), 0.3, GRAY_HEX),
            ("INNERGRID",     (0, 0), (-1, -1), 0.2, GRAY_HEX),
            ("VALIGN",        (0, 0), (-1, -1), "TOP"),
            ("TOPPADDING",    (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ("LEFTPADDING",   (0, 0), (-1, -1), 6),
        ]))
        story.append(issues_table)
    else:
        story.append(Paragraph("No compliance issues were found.", body_style))

    info_rows = []
    for label, key in (("Product name", "productName"), ("Manufacturer", "manufacturer"),
                       ("Country of origin", "countryOfOrigin"), ("Weight", "weight")):
        if extracted.get(key):
            info_rows.append([Paragraph(label, label_style), Paragraph(escape(str(extracted[key])), body_style)])
    for label, key in (("Ingredients", "ingredients"), ("Warnings", "warnings"),
                       ("Certifications", "certifications")):
        values = extracted.get(key) or []
        if values:
            info_rows.append([Paragraph(label, label_style),
                              Paragraph(escape(", ".join(str(v) for v in values)), body_style)])
    if info_rows:
        story.append(Paragraph("Extracted label information", h2_style))
        info_table = Table(info_rows, colWidths=[40*mm, 140*mm])
        info_table.setStyle(TableStyle([
            ("VALIGN",        (0, 0), (-1, -1), "TOP"),
            ("TOPPADDING",    (0, 0), (-1, -1), 3),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
        ]))
        story.append(info_table)

    story.append(Spacer(1, 8*mm))
    story.append(HRFlowable(width="100%", thickness=0.5, color=GRAY_HEX))
    story.append(Paragraph(
        "This report is generated by an AI model and does not constitute legal advice.",
        label_style,
    ))

    doc.build(story)
    return buf.getvalue()


# ── CSV generator ─────────────────────────────────────────────────────────────

def build_report_csv(scan: Scan) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL)
    writer.writerow([
        "scan_id", "product_name", "category", "marketplaces", "score",
        "risk_level", "severity", "issue_category", "description",
        "recommendation", "regulation",
    ])
    base = [
        scan.id,
        scan.product_name,
        scan.category.value,
        "|".join(scan.marketplaces or []),
        scan.score if scan.score is not None else "",
        scan.risk_level.value if scan.risk_level else "",
    ]
    if not scan.issues:
        writer.writerow(base + ["", "", "", "", ""])
    for issue in scan.issues:
        writer.writerow(base + [
            issue.severity.value,
            issue.category,
            issue.description,
            issue.recommendation or "",
            issue.regulation or "",
        ])
    return buf.getvalue()


def _report_filename(scan: Scan) -> str:
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", scan.product_name).strip("-").lower() or "label"
    return f"compliance-report-{slug}-{scan.id}"


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/api/scans/{scan_id}/report")
async def export_scan_report(
    scan_id: int,
    format: str = Query("pdf", pattern="^(pdf|csv)$"),
    ctx: AccountContext = Depends(get_account_context(require_permissions=[AccountPermission.SCAN_VIEW])),
    db: Session = Depends(get_db),
):
    """
    Export the compliance report of a completed scan.

    - `format=pdf` returns a formatted PDF (default)
    - `format=csv` returns one row per issue
    """
    scan = db.query(Scan).filter(Scan.id == scan_id).first()
    if not scan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan not found")
    if scan.account_id != ctx.account_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this scan")

    plan = ctx.account.plan
    if not can_export_reports(plan):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Report export is not available on the {get_plan_limits(plan).name} plan. Please upgrade.",
        )

    if scan.status != ScanStatus.COMPLETED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Scan analysis is not completed yet")

    filename = _report_filename(scan)

    if format == "csv":
        return Response(
            content=build_report_csv(scan),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}.csv"'},
        )

    # Load lazy relationships before leaving the request thread
    _ = list(scan.issues)
    try:
        pdf_bytes = await asyncio.to_thread(build_report_pdf, scan)
    except Exception as e:
        logger.error(f"PDF generation failed for scan {scan_id}: {e}")
        raise HTTPException(status_code=500, detail="PDF generation failed")

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}.pdf"'},
    )
