"""
Payload builders and scripted fakes shared by the test modules.
"""

from typing import Optional

from tradedocs.models.document import DocumentCategory
from tradedocs.models.extraction import get_schema_for_category
from tradedocs.services.confidence import overall_confidence
from tradedocs.services.intelligence.base import (
    ClassificationResult,
    DocumentIntelligence,
    ExtractionResult,
    OracleResponse,
    OracleTransport,
    PageImage,
)

MINIMAL_PDF = b"%PDF-1.4\n%fake\n"


# ============================================================================
# Payload builders
# ============================================================================

def cf(value: str, confidence: str = "High") -> dict:
    return {"value": value, "confidence": confidence}


def build_shipping_bill(invoice_count: int = 2, exporter_confidence: str = "High") -> dict:
    return {
        "sb_number": cf("2093726"),
        "sb_date": cf("12-MAR-2024"),
        "cb_name": cf("SWIFT CUSTOMS BROKERS"),
        "port_of_loading": cf("INNSA1"),
        "hawb_number": cf("Not Found"),
        "iec_number": cf("0512034567"),
        "port_of_final_destination": cf("USNYC", "Medium"),
        "account_number": cf("Not Found"),
        "invoice_term": cf("FOB"),
        "fob_value": [{"currency": "USD", "value": "18250.00", "confidence": "High"}],
        "exporter_name_address": cf("ACME EXPORTS PVT LTD, MUMBAI", exporter_confidence),
        "consignee_name_address": cf("GLOBEX INC, NEW YORK"),
        "invoices": [
            {
                "invoice_number": cf(f"EXP/{n + 1:03d}"),
                "invoice_date": cf("10-MAR-2024"),
                "invoice_value": cf(f"{1000 + n}.00"),
            }
            for n in range(invoice_count)
        ],
        "ad_code": cf("6390005"),
        "buyer_name_address": cf("GLOBEX INC, NEW YORK"),
        "freight": cf("0"),
        "insurance": cf("0"),
        "discount": cf("Not Found"),
        "commission": cf("Not Found"),
    }


def build_invoice(confidence: str = "High") -> dict:
    return {"invoice_number": cf("INV-7781", confidence), "invoice_date": cf("2024-03-10", confidence)}


def build_logistics() -> dict:
    return {
        "primary_transport_id": cf("MAEU123456789"),
        "shipping_bill_number": cf("2093726"),
        "invoice_number": cf("EXP/001", "Medium"),
        "document_date": cf("15-MAR-2024"),
        "transport_type_detected": "Ocean",
    }


def build_remittance(leg_count: int = 2) -> dict:
    return {
        "provider": cf("HDFC BANK"),
        "utr_number": cf("HDFCN52024031512345"),
        "date": cf("15-03-2024"),
        "total_settlement_amount_inr": cf("1520000.00"),
        "account_number": cf("50200012345678"),
        "remitter": cf("GLOBEX INC"),
        "receiver": cf("ACME EXPORTS PVT LTD"),
        "purpose_code": cf("P0103"),
        "transaction_breakup": [
            {
                "reference_no": cf(f"REF{n:04d}"),
                "buyer_name": cf("GLOBEX INC"),
                "buyer_address": cf("NEW YORK"),
                "buyer_country": cf("US"),
                "date": cf("14-03-2024"),
                "amount_inr": cf("760000.00"),
                "amount_foreign_currency": cf("9125.00"),
                "currency": cf("USD"),
            }
            for n in range(leg_count)
        ],
    }


# ============================================================================
# Fakes
# ============================================================================

class ScriptedTransport(OracleTransport):
    """Plays back responses or raises errors in order; records every request."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.closed = False

    async def complete(self, request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            return OracleResponse(text=outcome, usage={"input_tokens": 10, "output_tokens": 5}, stop_reason="end_turn")
        return outcome

    async def aclose(self):
        self.closed = True


class FakeIntelligence(DocumentIntelligence):
    """Classification label and extraction payload are fixed up front."""

    def __init__(
        self,
        category: DocumentCategory = DocumentCategory.NOT_SPECIFIED,
        payload: Optional[dict] = None,
        classify_error: Optional[Exception] = None,
        extract_error: Optional[Exception] = None,
    ):
        self.category = category
        self.payload = payload
        self.classify_error = classify_error
        self.extract_error = extract_error
        self.classify_calls = []
        self.extract_calls = []

    async def classify(self, content, images=None):
        self.classify_calls.append((content, list(images or [])))
        if self.classify_error:
            raise self.classify_error
        confidence = 0.5 if self.category == DocumentCategory.NOT_SPECIFIED else 0.85
        return ClassificationResult(category=self.category, confidence=confidence, raw_label=self.category.value)

    async def extract(self, category, content, images=None):
        self.extract_calls.append((category, content, list(images or [])))
        if self.extract_error:
            raise self.extract_error
        payload = get_schema_for_category(category).model_validate(self.payload)
        return ExtractionResult(category=category, payload=payload, confidence=overall_confidence(payload))


class StubRasterizer:
    def __init__(self, pages: int = 1, error: Optional[Exception] = None):
        self.pages = pages
        self.error = error
        self.calls = []

    def rasterize(self, file_path):
        self.calls.append(file_path)
        if self.error:
            raise self.error
        return [PageImage(data=b"png-bytes", page_number=n) for n in range(self.pages)]


