"""
Claim Formatters.

Source: Design Document 02_authorization_and_billing_consistency.md Section 4.5
Verified: 2026-10-19

Renders a claim into the payload sent to a payer or clearinghouse. The
rendering is representative, not payer-exact: each format carries the
claim header, the payer, the client and one line per member service.

Formats:
    X12_837P  -> X12 5010 837 professional (segment text)
    CMS1500   -> CMS-1500 field map (JSON)
    UB04      -> UB-04 form locator map (JSON)
    CUSTOM    -> plain claim document (JSON)
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from src.core.enums import BillingFormat, ClaimFormType
from src.core.errors import BusinessRuleError
from src.models import Claim, Payer, Service

logger = logging.getLogger(__name__)


def format_x12_date(d: date) -> str:
    """Format date as X12 CCYYMMDD."""
    return d.strftime("%Y%m%d")


def format_x12_time(t: datetime) -> str:
    """Format time as X12 HHMM."""
    return t.strftime("%H%M")


def format_x12_amount(amount: Decimal) -> str:
    """Format amount for X12 (2 decimal places)."""
    return f"{amount:.2f}"


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class ClaimDocument:
    """Claim with the payer and member services needed to render it."""

    claim: Claim
    payer: Payer
    services: list[Service] = field(default_factory=list)


@dataclass
class FormattedClaim:
    """Rendered claim payload."""

    billing_format: BillingFormat
    content_type: str
    body: str
    metadata: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Formatter Interface
# =============================================================================


class ClaimFormatter(ABC):
    """Renders a ClaimDocument in one billing format."""

    billing_format: BillingFormat
    content_type: str = "application/json"

    @abstractmethod
    def render(self, document: ClaimDocument) -> str:
        ...

    def format(self, document: ClaimDocument) -> FormattedClaim:
        body = self.render(document)
        return FormattedClaim(
            billing_format=self.billing_format,
            content_type=self.content_type,
            body=body,
            metadata={
                "claim_number": document.claim.claim_number,
                "payer_code": document.payer.payer_code,
                "line_count": len(document.services),
            },
        )


# =============================================================================
# X12 837P
# =============================================================================


class X12837PFormatter(ClaimFormatter):
    """
    X12 5010 837 professional claim.

    Usage:
        formatter = X12837PFormatter(submitter_id="HCBS01")
        edi_content = formatter.render(document)
    """

    billing_format = BillingFormat.X12_837P
    content_type = "application/edi-x12"

    def __init__(
        self,
        submitter_id: str = "HCBSBILLING",
        element_separator: str = "*",
        segment_terminator: str = "~",
        component_separator: str = ":",
    ):
        self.submitter_id = submitter_id
        self.element_sep = element_separator
        self.segment_term = segment_terminator
        self.component_sep = component_separator

    def render(self, document: ClaimDocument) -> str:
        claim, payer = document.claim, document.payer
        now = datetime.now()
        control_number = str(uuid4().int)[:9]

        segments = [
            self._build_isa(payer, control_number, now),
            self._build_segment(
                "GS", "HC", self.submitter_id, payer.payer_code,
                format_x12_date(now.date()), format_x12_time(now), control_number, "X", "005010X222A1",
            ),
        ]
        transaction = [
            self._build_segment("ST", "837", "0001", "005010X222A1"),
            self._build_segment(
                "BHT", "0019", "00", claim.claim_number,
                format_x12_date(now.date()), format_x12_time(now), "CH",
            ),
            # Loop 1000A submitter / 1000B receiver
            self._build_segment("NM1", "41", "2", "HCBS BILLING", "", "", "", "", "46", self.submitter_id),
            self._build_segment("NM1", "40", "2", payer.name, "", "", "", "", "46", payer.payer_code),
            # Loop 2000B subscriber
            self._build_segment("HL", "1", "", "22", "0"),
            self._build_segment("SBR", "P", "18", "", "", "", "", "", "", "MC"),
            self._build_segment("NM1", "IL", "1", "", "", "", "", "", "MI", str(claim.client_id)),
            self._build_segment("NM1", "PR", "2", payer.name, "", "", "", "", "PI", payer.payer_code),
            # Loop 2300 claim
            self._build_segment(
                "CLM", claim.claim_number, format_x12_amount(claim.total_amount), "", "",
                self.component_sep.join(["12", "B", "1"]), "Y", "A", "Y", "Y",
            ),
            self._build_segment(
                "DTP", "434", "RD8",
                f"{format_x12_date(claim.service_start_date)}-{format_x12_date(claim.service_end_date)}",
            ),
        ]
        for position, service in enumerate(document.services, start=1):
            transaction.extend(self._build_loop_2400(position, service))

        transaction.append(self._build_segment("SE", str(len(transaction) + 1), "0001"))
        segments.extend(transaction)
        segments.append(self._build_segment("GE", "1", control_number))
        segments.append(self._build_segment("IEA", "1", control_number.zfill(9)))

        return self.segment_term.join(segments) + self.segment_term

    def _build_segment(self, segment_id: str, *elements) -> str:
        all_elements = [segment_id] + [str(e) if e is not None else "" for e in elements]
        return self.element_sep.join(all_elements)

    def _build_isa(self, payer: Payer, control_number: str, now: datetime) -> str:
        return self._build_segment(
            "ISA",
            "00", " " * 10, "00", " " * 10,
            "ZZ", self.submitter_id.ljust(15),
            "ZZ", payer.payer_code.ljust(15),
            now.strftime("%y%m%d"), now.strftime("%H%M"),
            "^", "00501", control_number.zfill(9), "0", "P", self.component_sep,
        )

    def _build_loop_2400(self, position: int, service: Service) -> list[str]:
        """Service line: LX, SV1, DTP."""
        return [
            self._build_segment("LX", str(position)),
            self._build_segment(
                "SV1",
                self.component_sep.join(["HC", str(service.service_type_id)]),
                format_x12_amount(service.amount), "UN", str(service.units), "", "", "1",
            ),
            self._build_segment("DTP", "472", "D8", format_x12_date(service.service_date)),
        ]


# =============================================================================
# Paper / JSON Forms
# =============================================================================


class CMS1500Formatter(ClaimFormatter):
    """CMS-1500 field map keyed by box number."""

    billing_format = BillingFormat.CMS1500

    def render(self, document: ClaimDocument) -> str:
        claim, payer = document.claim, document.payer
        form = {
            "form": "CMS-1500",
            "payer": {"name": payer.name, "payer_code": payer.payer_code},
            "box_1a_insured_id": str(claim.client_id),
            "box_26_patient_account": claim.claim_number,
            "box_24_service_lines": [
                {
                    "line": position,
                    "24a_date_of_service": service.service_date.isoformat(),
                    "24d_procedure": str(service.service_type_id),
                    "24f_charges": format_x12_amount(service.amount),
                    "24g_units": service.units,
                }
                for position, service in enumerate(document.services, start=1)
            ],
            "box_28_total_charge": format_x12_amount(claim.total_amount),
        }
        return json.dumps(form, sort_keys=True)


class UB04Formatter(ClaimFormatter):
    """UB-04 form locator map for institutional claims."""

    billing_format = BillingFormat.UB04

    def render(self, document: ClaimDocument) -> str:
        claim, payer = document.claim, document.payer
        form = {
            "form": "UB-04",
            "fl_03a_patient_control_number": claim.claim_number,
            "fl_06_statement_period": {
                "from": claim.service_start_date.isoformat(),
                "through": claim.service_end_date.isoformat(),
            },
            "fl_50_payer_name": payer.name,
            "fl_51_health_plan_id": payer.payer_code,
            "fl_60_insured_id": str(claim.client_id),
            "service_lines": [
                {
                    "line": position,
                    "fl_44_hcpcs": str(service.service_type_id),
                    "fl_45_service_date": service.service_date.isoformat(),
                    "fl_46_units": service.units,
                    "fl_47_total_charges": format_x12_amount(service.amount),
                    "facility_id": str(service.facility_id) if service.facility_id else None,
                }
                for position, service in enumerate(document.services, start=1)
            ],
            "fl_47_total": format_x12_amount(claim.total_amount),
        }
        return json.dumps(form, sort_keys=True)


class CustomFormatter(ClaimFormatter):
    """Plain JSON claim document for payers with their own intake."""

    billing_format = BillingFormat.CUSTOM

    def render(self, document: ClaimDocument) -> str:
        claim = document.claim
        return json.dumps(
            {
                "claim_number": claim.claim_number,
                "claim_type": claim.claim_type.value,
                "claim_form_type": claim.claim_form_type.value,
                "client_id": str(claim.client_id),
                "payer_code": document.payer.payer_code,
                "service_start_date": claim.service_start_date.isoformat(),
                "service_end_date": claim.service_end_date.isoformat(),
                "total_amount": format_x12_amount(claim.total_amount),
                "services": [
                    {
                        "service_id": str(s.id),
                        "service_type_id": str(s.service_type_id),
                        "service_date": s.service_date.isoformat(),
                        "units": s.units,
                        "amount": format_x12_amount(s.amount),
                    }
                    for s in document.services
                ],
            },
            sort_keys=True,
        )


# =============================================================================
# Registry
# =============================================================================


class FormatterRegistry:
    """Formatter lookup keyed by billing format."""

    def __init__(self, formatters: Optional[list[ClaimFormatter]] = None):
        self._formatters: dict[BillingFormat, ClaimFormatter] = {}
        for formatter in formatters or default_formatters():
            self.register(formatter)

    def register(self, formatter: ClaimFormatter) -> None:
        self._formatters[formatter.billing_format] = formatter

    def get(self, billing_format: BillingFormat) -> ClaimFormatter:
        formatter = self._formatters.get(billing_format)
        if formatter is None:
            raise BusinessRuleError(
                f"No formatter registered for {billing_format.value}",
                code="unsupported-billing-format",
            )
        return formatter

    def format(self, document: ClaimDocument) -> FormattedClaim:
        claim = document.claim
        if (
            claim.billing_format == BillingFormat.X12_837P
            and claim.claim_form_type == ClaimFormType.INSTITUTIONAL
        ):
            logger.warning(
                f"Claim {claim.claim_number} is institutional but rendered as 837P"
            )
        return self.get(claim.billing_format).format(document)


def default_formatters() -> list[ClaimFormatter]:
    return [X12837PFormatter(), CMS1500Formatter(), UB04Formatter(), CustomFormatter()]
