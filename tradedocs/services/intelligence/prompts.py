"""
Prompt text for the understanding oracle.

Extraction prompts embed the category's JSON schema so the oracle is handed
the exact target shape its answer is validated against.
"""

import json

from ...models.document import DocumentCategory
from ...models.extraction import NOT_FOUND, StrictModel

JSON_ONLY_SYSTEM_PROMPT = (
    "You are a data extraction API that only returns valid JSON. Never include "
    "explanations, comments, or conversational text. Only return the requested JSON structure."
)

VISION_NOTE = (
    "The document is supplied as page images. Treat the images as the primary evidence; "
    "the extracted text below comes from unreliable OCR and is only a reference."
)

CLASSIFICATION_PROMPT = """You are a document classification specialist for trade compliance. Classify the document into exactly one of these categories:

- Logistics Document
- Invoice
- Bank Statement
- Shipping Bill
- Remittance Advice
- Not Specified

Apply the rules in order:
1. Remittance Advice first. Any of: "FOREIGN INWARD REMITTANCE", "FIRA", "FIRC", "PAYEE ADVICE", "REMITTANCE ADVICE", "UTR", "NOSTRO"/"VOSTRO" account, remitter together with beneficiary, settlement amounts with foreign currency. Remittance documents often list invoices; they are still Remittance Advice.
2. Logistics Document: bill of lading, B/L, airway bill, AWB, sea waybill, CN23, carrier or vessel details.
3. Shipping Bill: "SB NO", "SHIPPING BILL", "CSB", export declaration, IEC number, customs port codes.
4. Invoice: "INVOICE" with itemized charges and billing details, without remittance or transport elements.
5. Bank Statement: bank letterhead with account transactions and balances.
6. If nothing matches confidently, answer Not Specified.

Return ONLY the category name, with no other text.

{vision_note}DOCUMENT TO CLASSIFY:
{content}"""

EXTRACTION_PROMPT = """You are an expert trade compliance document processor specializing in {document_kind}. Extract every field of the target schema with an individual confidence of High, Medium or Low.

{field_hints}

RULES:
- Extract EXACT values as they appear; keep original formatting of codes, dates and addresses.
- Every value is a string. If a field is not present, use "{not_found}" as its value. Never use null and never omit a field.
- Do not infer or guess values.
- Return EVERY record of repeated structures (all invoices, all transactions, all currencies). Never truncate, summarize, or write "..." for repeated data.

TARGET JSON SCHEMA:
{schema}

{vision_note}DOCUMENT TO PROCESS:
{content}"""

FIELD_HINTS: dict[DocumentCategory, tuple[str, str]] = {
    DocumentCategory.SHIPPING_BILL: (
        "shipping bill (export declaration) analysis",
        'sb_number: "SB NO", "CSB Number", e.g. 2093726. sb_date: date near the SB number. '
        'cb_name: customs broker. iec_number: "IEC", "Import Export Code". '
        'fob_value: one entry per currency with its currency code. '
        'invoices: one entry per invoice listed, with number, date and value. '
        'ad_code: authorized dealer code. freight, insurance, discount, commission: valuation section.',
    ),
    DocumentCategory.INVOICE: (
        "invoice analysis",
        'invoice_number: "INVOICE NO", "Invoice #", "INV NO"; the main invoice number, not order or reference numbers. '
        'invoice_date: the primary invoice date, not due dates.',
    ),
    DocumentCategory.LOGISTICS_DOCUMENT: (
        "logistics document analysis",
        'primary_transport_id: B/L number for ocean, AWB for air, CN23/CN22 for postal. '
        'shipping_bill_number: "SB NO", often followed by "DTD". '
        'document_date: prefer shipped-on-board or shipment date over issue date. '
        'transport_type_detected: one of Ocean, Air, Postal, Multi-modal, Not Found (plain string).',
    ),
    DocumentCategory.REMITTANCE_ADVICE: (
        "foreign inward remittance advice (FIRA/FIRC) analysis",
        'utr_number: unique transaction reference. total_settlement_amount_inr: settled amount in INR. '
        'purpose_code: RBI purpose code. transaction_breakup: one entry per settlement leg.',
    ),
}


def _vision_note(has_images: bool) -> str:
    return f"{VISION_NOTE}\n\n" if has_images else ""


def build_classification_prompt(content: str, has_images: bool) -> str:
    return CLASSIFICATION_PROMPT.format(vision_note=_vision_note(has_images), content=content)


def build_extraction_prompt(
    category: DocumentCategory, schema: type[StrictModel], content: str, has_images: bool
) -> str:
    document_kind, field_hints = FIELD_HINTS[category]
    return EXTRACTION_PROMPT.format(
        document_kind=document_kind,
        field_hints=field_hints,
        not_found=NOT_FOUND,
        schema=json.dumps(schema.model_json_schema(), indent=2),
        vision_note=_vision_note(has_images),
        content=content,
    )
