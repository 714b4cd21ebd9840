"""
Category-specific extraction schemas.

Each document category that can be extracted has one payload model. The oracle
is handed the model's JSON schema as its target shape, and its answer is
validated strictly against the same model: unknown keys, missing fields,
nulls and non-string values are all rejected rather than coerced.

Every scalar field is a ConfidenceField. Values the oracle could not find are
the literal "Not Found", never null or omitted, so consumers can render every
record with the same shape.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from .document import DocumentCategory

NOT_FOUND = "Not Found"

Confidence = Literal["High", "Medium", "Low"]

# Numeric weight of each confidence tag when aggregating a record
CONFIDENCE_WEIGHTS: dict[str, float] = {"High": 0.95, "Medium": 0.75, "Low": 0.5}
DEFAULT_CONFIDENCE = 0.5


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ConfidenceField(StrictModel):
    value: StrictStr = Field(..., description='Exact value as printed, or "Not Found"')
    confidence: Confidence

    @property
    def is_found(self) -> bool:
        return self.value != NOT_FOUND


class CurrencyAmountField(ConfidenceField):
    """A monetary value paired with its currency, e.g. one FOB value."""
    currency: StrictStr


# ============================================================================
# Shipping Bill (export declaration)
# ============================================================================

class ShippingBillInvoice(StrictModel):
    invoice_number: ConfidenceField
    invoice_date: ConfidenceField
    invoice_value: ConfidenceField


class ShippingBillRecord(StrictModel):
    sb_number: ConfidenceField = Field(..., description="Shipping bill number (SB NO / CSB number)")
    sb_date: ConfidenceField
    cb_name: ConfidenceField = Field(..., description="Customs broker name")
    port_of_loading: ConfidenceField
    hawb_number: ConfidenceField
    iec_number: ConfidenceField = Field(..., description="Import Export Code")
    port_of_final_destination: ConfidenceField
    account_number: ConfidenceField
    invoice_term: ConfidenceField = Field(..., description="Trade term such as FOB, CIF, EXW")
    fob_value: list[CurrencyAmountField] = Field(..., description="One entry per currency")
    exporter_name_address: ConfidenceField
    consignee_name_address: ConfidenceField
    invoices: list[ShippingBillInvoice] = Field(..., description="Every invoice listed, none omitted")
    ad_code: ConfidenceField = Field(..., description="Authorized dealer code")
    buyer_name_address: ConfidenceField
    freight: ConfidenceField
    insurance: ConfidenceField
    discount: ConfidenceField
    commission: ConfidenceField


# ============================================================================
# Commercial invoice
# ============================================================================

class InvoiceRecord(StrictModel):
    invoice_number: ConfidenceField = Field(..., description="Primary invoice number, not order or reference numbers")
    invoice_date: ConfidenceField = Field(..., description="Primary invoice date, not due dates")


# ============================================================================
# Logistics / transport document
# ============================================================================

class LogisticsRecord(StrictModel):
    primary_transport_id: ConfidenceField = Field(..., description="B/L, AWB or CN23 number")
    shipping_bill_number: ConfidenceField
    invoice_number: ConfidenceField
    document_date: ConfidenceField
    transport_type_detected: Literal["Ocean", "Air", "Postal", "Multi-modal", "Not Found"]


# ============================================================================
# Remittance advice (FIRA/FIRC)
# ============================================================================

class RemittanceTransaction(StrictModel):
    reference_no: ConfidenceField
    buyer_name: ConfidenceField
    buyer_address: ConfidenceField
    buyer_country: ConfidenceField
    date: ConfidenceField
    amount_inr: ConfidenceField
    amount_foreign_currency: ConfidenceField
    currency: ConfidenceField


class RemittanceAdviceRecord(StrictModel):
    provider: ConfidenceField
    utr_number: ConfidenceField = Field(..., description="Unique transaction reference")
    date: ConfidenceField
    total_settlement_amount_inr: ConfidenceField
    account_number: ConfidenceField
    remitter: ConfidenceField
    receiver: ConfidenceField
    purpose_code: ConfidenceField
    transaction_breakup: list[RemittanceTransaction] = Field(..., description="Every settlement leg, none omitted")


ExtractionPayload = ShippingBillRecord | InvoiceRecord | LogisticsRecord | RemittanceAdviceRecord


# ============================================================================
# Schema Mapping
# ============================================================================

EXTRACTION_SCHEMAS: dict[DocumentCategory, type[StrictModel]] = {
    DocumentCategory.SHIPPING_BILL: ShippingBillRecord,
    DocumentCategory.INVOICE: InvoiceRecord,
    DocumentCategory.LOGISTICS_DOCUMENT: LogisticsRecord,
    DocumentCategory.REMITTANCE_ADVICE: RemittanceAdviceRecord,
}


def is_extractable(category: DocumentCategory) -> bool:
    return category in EXTRACTION_SCHEMAS


def get_schema_for_category(category: DocumentCategory) -> type[StrictModel]:
    """Get the payload model for a category. Raises KeyError for non-extractable ones."""
    return EXTRACTION_SCHEMAS[category]
