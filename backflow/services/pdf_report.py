"""
Backflow Test Report PDF Generator
Renders the assembly test form submitted to customers and water districts
"""

import io
import logging
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..models import Company, Customer, Device, TestReport

logger = logging.getLogger(__name__)

COMPONENT_LABELS = [
    ("check_valve_1", "Check Valve #1"),
    ("check_valve_2", "Check Valve #2"),
    ("relief_valve", "Relief Valve"),
    ("shutoff_valve_inlet", "Shutoff Valve (Inlet)"),
    ("shutoff_valve_outlet", "Shutoff Valve (Outlet)"),
]

RESULT_COLORS = {
    "Passed": colors.HexColor("#16a34a"),
    "Failed": colors.HexColor("#dc2626"),
    "Needs Repair": colors.HexColor("#f59e0b"),
}


def _fmt(value, suffix: str = "") -> str:
    if value is None or value == "":
        return "N/A"
    return f"{value}{suffix}"


class TestReportPDFGenerator:
    """Generate a one-page backflow assembly test report"""

    __test__ = False

    def __init__(self, report: TestReport, company: Company, customer: Customer, device: Device):
        self.report = report
        self.company = company
        self.customer = customer
        self.device = device

        self.page_width, self.page_height = letter
        self.margin = 0.75 * inch
        self.brand_color = colors.HexColor("#0369a1")
        self.dark_gray = colors.HexColor("#1e293b")
        self.light_gray = colors.HexColor("#f1f5f9")

    def generate(self) -> bytes:
        logger.info(f"📄 Generating test report PDF for report {self.report.id}")
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=f"Backflow Test Report - {self.customer.display_name}",
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "ReportTitle",
            parent=styles["Heading1"],
            fontSize=20,
            textColor=self.brand_color,
            alignment=1,
            spaceAfter=6,
        )
        heading_style = ParagraphStyle(
            "ReportHeading",
            parent=styles["Heading2"],
            fontSize=13,
            textColor=self.dark_gray,
            spaceBefore=14,
            spaceAfter=6,
        )
        body_style = ParagraphStyle(
            "ReportBody", parent=styles["Normal"], fontSize=10, textColor=self.dark_gray
        )

        story = [
            Paragraph("BACKFLOW PREVENTION ASSEMBLY TEST REPORT", title_style),
            Paragraph(escape(self.company.name), ParagraphStyle("Co", parent=body_style, alignment=1)),
            Spacer(1, 0.25 * inch),
        ]

        story.append(Paragraph("Customer & Location", heading_style))
        story.append(self._key_value_table(self._customer_rows()))

        story.append(Paragraph("Assembly", heading_style))
        story.append(self._key_value_table(self._device_rows()))

        story.append(Paragraph("Test Results", heading_style))
        story.append(self._key_value_table(self._pressure_rows()))
        story.append(Spacer(1, 0.15 * inch))
        story.append(self._component_table())

        story.append(Spacer(1, 0.25 * inch))
        result_color = RESULT_COLORS.get(self.report.status, self.dark_gray)
        story.append(
            Paragraph(
                f"<b>RESULT: {escape(self.report.status)}</b>",
                ParagraphStyle("Result", parent=body_style, fontSize=16, textColor=result_color),
            )
        )
        if self.report.certification_number:
            story.append(
                Paragraph(f"Certification #: {escape(self.report.certification_number)}", body_style)
            )
        if self.report.notes:
            story.append(Paragraph("Notes", heading_style))
            story.append(Paragraph(escape(self.report.notes), body_style))

        story.append(Spacer(1, 0.3 * inch))
        story.append(
            Paragraph(
                f"Tester: {escape(self.report.technician_name or 'N/A')} &nbsp;&nbsp; "
                f"License: {escape(self.company.license_number or 'N/A')}",
                body_style,
            )
        )

        doc.build(story, onFirstPage=self._add_page_number, onLaterPages=self._add_page_number)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        logger.info(f"✅ Generated test report PDF ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    def _customer_rows(self) -> list[list[str]]:
        c = self.customer
        address = ", ".join(p for p in (c.address_line1, c.city, c.state, c.zip_code) if p)
        return [
            ["Customer:", c.display_name],
            ["Account #:", c.account_number],
            ["Service Address:", address or "N/A"],
            ["Water District:", self.report.water_district or "N/A"],
        ]

    def _device_rows(self) -> list[list[str]]:
        d = self.device
        return [
            ["Serial #:", d.serial_number],
            ["Make / Model:", f"{d.make or ''} {d.model or ''}".strip() or "N/A"],
            ["Size:", _fmt(d.size)],
            ["Type:", (d.device_type or "").upper() or "N/A"],
            ["Location:", _fmt(d.location)],
        ]

    def _pressure_rows(self) -> list[list[str]]:
        r = self.report
        return [
            ["Test Date:", r.test_date.strftime("%B %d, %Y") if r.test_date else "N/A"],
            ["Test Type:", _fmt(r.test_type)],
            ["Initial Pressure:", _fmt(r.initial_pressure, " PSI")],
            ["Final Pressure:", _fmt(r.final_pressure, " PSI")],
            ["Pressure Drop:", _fmt(r.pressure_drop, " PSI")],
            ["Duration:", _fmt(r.test_duration, " min")],
        ]

    def _key_value_table(self, rows: list[list[str]]) -> Table:
        table = Table(rows, colWidths=[1.7 * inch, 5.0 * inch])
        table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (0, -1), "Helvetica-Bold", 10),
                    ("FONT", (1, 0), (1, -1), "Helvetica", 10),
                    ("TEXTCOLOR", (0, 0), (-1, -1), self.dark_gray),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
                ]
            )
        )
        return table

    def _component_table(self) -> Table:
        data = [["Component", "Condition"]]
        test_data = self.report.test_data or {}
        for key, label in COMPONENT_LABELS:
            component = test_data.get(key)
            if component is None:
                continue
            condition = component.get("condition") if isinstance(component, dict) else component
            data.append([label, str(condition or "N/A").title()])
        if len(data) == 1:
            data.append(["No component data recorded", "-"])

        table = Table(data, colWidths=[3.5 * inch, 3.2 * inch], repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), self.brand_color),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 10),
                    ("FONT", (0, 1), (-1, -1), "Helvetica", 9),
                    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, self.light_gray]),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                    ("LEFTPADDING", (0, 0), (-1, -1), 8),
                ]
            )
        )
        return table

    def _add_page_number(self, canvas_obj, doc):
        canvas_obj.setFont("Helvetica", 9)
        canvas_obj.setFillColor(colors.grey)
        canvas_obj.drawRightString(
            self.page_width - self.margin, self.margin / 2, f"Page {canvas_obj.getPageNumber()}"
        )


def generate_test_report_pdf(
    report: TestReport, company: Company, customer: Customer, device: Device
) -> bytes:
    return TestReportPDFGenerator(report, company, customer, device).generate()


def report_filename(report: TestReport, customer: Customer) -> str:
    date_part = report.test_date.isoformat() if report.test_date else "undated"
    return f"backflow-test-{customer.account_number}-{date_part}.pdf"
