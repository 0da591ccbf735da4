"""DOCX renderer for validated leases"""

import asyncio
import io
from abc import ABC, abstractmethod

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt, RGBColor

from lease_generator.models.lease import LeaseOutput

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

BLANK = "________________"

_UTILITY_LABELS = {
    "water": "Water",
    "sewer": "Sewer",
    "trash": "Trash",
    "gas": "Gas",
    "electric": "Electricity",
    "internet": "Internet",
}

_POLICY_LABELS = {
    "allowed": "permitted",
    "prohibited": "prohibited",
    "designated": "permitted only in designated areas",
    "with_consent": "permitted only with the Landlord's prior written consent",
}

_RENEWAL_TEXT = {
    "none": "This Lease does not renew automatically.",
    "auto": "This Lease renews automatically for successive terms of equal length unless either party "
            "gives written notice of non-renewal before the end of the current term.",
    "mutual": "This Lease may be renewed by mutual written agreement of the parties.",
}


def format_currency(amount: int | float | str) -> str:
    """Format a number as US dollars"""
    try:
        return f"${float(amount):,.2f}"
    except (ValueError, TypeError):
        return str(amount)


class DocumentRenderer(ABC):
    """Turns a validated lease into document bytes using a fixed template"""

    media_type: str = ""
    extension: str = ""

    @abstractmethod
    async def render(self, lease: LeaseOutput) -> bytes:
        """Render ``lease`` and return the document bytes."""


class DocxLeaseRenderer(DocumentRenderer):
    """Word document with one section per lease topic"""

    media_type = DOCX_MEDIA_TYPE
    extension = ".docx"

    async def render(self, lease: LeaseOutput) -> bytes:
        return await asyncio.to_thread(self.render_sync, lease)

    def render_sync(self, lease: LeaseOutput) -> bytes:
        doc = Document()
        style = doc.styles["Normal"]
        style.font.name = "Calibri"
        style.font.size = Pt(11)

        title = doc.add_heading(lease.title.upper(), level=0)
        title.alignment = WD_ALIGN_PARAGRAPH.CENTER

        self._build_parties(doc, lease)
        self._build_property(doc, lease)
        self._build_term(doc, lease)
        self._build_financials(doc, lease)
        self._build_pets(doc, lease)
        self._build_rules(doc, lease)
        self._build_notices(doc, lease)

        for clause in lease.clauses:
            doc.add_heading(clause.heading, level=2)
            doc.add_paragraph(clause.body)

        self._build_signature_section(doc, lease)

        for text in lease.disclaimers:
            para = doc.add_paragraph()
            run = para.add_run(text)
            run.italic = True
            run.font.size = Pt(9)
            run.font.color.rgb = RGBColor(0x80, 0x80, 0x80)

        buffer = io.BytesIO()
        doc.save(buffer)
        return buffer.getvalue()

    @staticmethod
    def _labelled(doc, label: str, value) -> None:
        para = doc.add_paragraph()
        para.add_run(f"{label}: ").bold = True
        para.add_run(str(value) if value not in (None, "") else BLANK)

    def _build_parties(self, doc, lease: LeaseOutput) -> None:
        doc.add_heading("1. Parties", level=2)
        landlord = lease.landlord
        self._labelled(doc, "Landlord", landlord.name)
        self._labelled(doc, "Landlord address", landlord.address)
        if landlord.email:
            self._labelled(doc, "Landlord email", landlord.email)

        for i, tenant in enumerate(lease.tenants, start=1):
            label = "Tenant" if len(lease.tenants) == 1 else f"Tenant {i}"
            value = f"{tenant.name} ({tenant.email})" if tenant.email else tenant.name
            self._labelled(doc, label, value)

    def _build_property(self, doc, lease: LeaseOutput) -> None:
        doc.add_heading("2. Premises", level=2)
        prop = lease.property
        address = f"{prop.address} {prop.zip_code}" if prop.zip_code else prop.address
        self._labelled(doc, "Address", address)
        if prop.type:
            self._labelled(doc, "Type", prop.type.capitalize())
        if prop.include_bed_bath and (prop.bedrooms is not None or prop.bathrooms is not None):
            self._labelled(doc, "Bedrooms / bathrooms", f"{prop.bedrooms or 0} / {prop.bathrooms or 0:g}")

        place = ", ".join(p for p in (lease.jurisdiction.city, lease.jurisdiction.state) if p)
        self._labelled(doc, "Jurisdiction", f"{place}, {lease.jurisdiction.country}" if place else lease.jurisdiction.country)

    def _build_term(self, doc, lease: LeaseOutput) -> None:
        doc.add_heading("3. Term", level=2)
        term = lease.term
        self._labelled(doc, "Start date", term.start_date.isoformat())
        if term.end_date:
            self._labelled(doc, "End date", term.end_date.isoformat())
        if term.months:
            self._labelled(doc, "Length", f"{term.months} months")
        doc.add_paragraph(_RENEWAL_TEXT[term.renewal])

    def _build_financials(self, doc, lease: LeaseOutput) -> None:
        doc.add_heading("4. Rent and Deposit", level=2)
        fin = lease.financials
        self._labelled(doc, "Monthly rent", format_currency(fin.monthly_rent))
        self._labelled(doc, "Security deposit", format_currency(fin.security_deposit))
        proration = "actual days in the month" if fin.proration_method == "actual_days" else "a 30-day month"
        doc.add_paragraph(f"Rent for any partial month is prorated based on {proration}.")

        if fin.utilities_included:
            utilities = ", ".join(_UTILITY_LABELS[u] for u in fin.utilities_included)
            doc.add_paragraph(f"Utilities included in rent: {utilities}. All other utilities are paid by the Tenant.")
        else:
            doc.add_paragraph("The Tenant pays all utilities.")

        if fin.late_fee:
            fee = fin.late_fee
            amount = format_currency(fee.value) if fee.type == "flat" else f"{fee.value:g}% of the monthly rent"
            doc.add_paragraph(
                f"Rent not received within {fee.grace_days} day(s) of the due date incurs a late fee of {amount}."
            )

    def _build_pets(self, doc, lease: LeaseOutput) -> None:
        doc.add_heading("5. Pets", level=2)
        pets = lease.pets
        if not pets.allowed:
            doc.add_paragraph("No pets are permitted on the Premises.")
            return
        doc.add_paragraph("Pets are permitted subject to the following charges:")
        self._labelled(doc, "Pet fee", format_currency(pets.fee))
        self._labelled(doc, "Pet deposit", format_currency(pets.deposit))
        self._labelled(doc, "Monthly pet rent", format_currency(pets.rent))

    def _build_rules(self, doc, lease: LeaseOutput) -> None:
        doc.add_heading("6. House Rules", level=2)
        rules = lease.rules
        doc.add_paragraph(f"Smoking is {_POLICY_LABELS[rules.smoking]}.", style="List Bullet")
        doc.add_paragraph(f"Subletting is {_POLICY_LABELS[rules.subletting]}.", style="List Bullet")
        doc.add_paragraph(f"Alterations are {_POLICY_LABELS[rules.alterations]}.", style="List Bullet")
        if rules.insurance_required:
            doc.add_paragraph("The Tenant must maintain renter's insurance for the full term.", style="List Bullet")
        if rules.parking:
            doc.add_paragraph(f"Parking: {rules.parking}", style="List Bullet")

    def _build_notices(self, doc, lease: LeaseOutput) -> None:
        doc.add_heading("7. Notices", level=2)
        channel = {"email": "by email", "mail": "by mail", "both": "by email and by mail"}[lease.notices.delivery]
        doc.add_paragraph(f"Notices under this Lease are delivered {channel} to the addresses above.")

    def _build_signature_section(self, doc, lease: LeaseOutput) -> None:
        doc.add_heading("Signatures", level=2)
        method = "electronically" if lease.signatures.method == "e-sign" else "in ink"
        doc.add_paragraph(f"The parties sign this Lease {method}.")

        parties = [("Landlord", lease.landlord.name)] + [("Tenant", t.name) for t in lease.tenants]
        table = doc.add_table(rows=len(parties) + 1, cols=3)
        for col, header in enumerate(("Party", "Name", "Signature / Date")):
            cell = table.cell(0, col)
            cell.text = header
            cell.paragraphs[0].runs[0].bold = True
        for row, (role, name) in enumerate(parties, start=1):
            table.cell(row, 0).text = role
            table.cell(row, 1).text = name
            table.cell(row, 2).text = BLANK
