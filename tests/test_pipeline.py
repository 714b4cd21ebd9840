"""
Tests for the pipeline state machine: happy paths, the unrecognized-document
path and totality under injected failures.
"""

import asyncio
import json

import pytest

from tradedocs.core.errors import MalformedResponse, TransientOracleError
from tradedocs.models.document import DocumentCategory, DocumentCreate, DocumentStatus, IssueType
from tradedocs.services.classifier import DocumentClassifier
from tradedocs.services.extractor import DocumentExtractor
from tradedocs.services.intelligence.client import DocumentIntelligenceClient
from tradedocs.services.pipeline import CANCELLED_IN_FLIGHT, DocumentPipeline

from fakes import (
    FakeIntelligence,
    ScriptedTransport,
    StubRasterizer,
    build_invoice,
    build_remittance,
    build_shipping_bill,
    cf,
)

SB_CONTENT = "SHIPPING BILL\nSB NO: 2093726\nINVOICE NO: EXP/001\nINVOICE NO: EXP/002\n"


class RecordingStorage:
    """Wraps a storage backend and records every document status written."""

    def __init__(self, inner):
        self._inner = inner
        self.statuses = []

    def update_document(self, document_id, **changes):
        if "status" in changes:
            self.statuses.append(changes["status"])
        return self._inner.update_document(document_id, **changes)

    def __getattr__(self, name):
        return getattr(self._inner, name)


async def no_sleep(_delay):
    return None


def make_pipeline(storage, file_store, intelligence, rasterizer=None):
    return DocumentPipeline(
        storage=storage,
        classifier=DocumentClassifier(intelligence),
        extractor=DocumentExtractor(intelligence),
        file_store=file_store,
        rasterizer=rasterizer,
    )


# ============================================================================
# End-to-end scenarios
# ============================================================================

def test_shipping_bill_with_one_low_field_completes(storage, file_store, stored_document):
    oracle = FakeIntelligence(
        category=DocumentCategory.SHIPPING_BILL,
        payload=build_shipping_bill(invoice_count=2, exporter_confidence="Low"),
    )
    recording = RecordingStorage(storage)
    document = stored_document(customer_id=7)

    final = asyncio.run(make_pipeline(recording, file_store, oracle).process(document, SB_CONTENT))

    assert final.status == DocumentStatus.COMPLETED
    assert final.processed_at is not None
    assert final.classification == DocumentCategory.SHIPPING_BILL
    assert final.classification_confidence == 0.85
    assert final.processing_error is None
    assert recording.statuses == [
        DocumentStatus.PROCESSING,
        DocumentStatus.CLASSIFIED,
        DocumentStatus.EXTRACTED,
        DocumentStatus.COMPLETED,
    ]

    record = storage.get_extraction_record(document.id)
    assert record.category == DocumentCategory.SHIPPING_BILL
    assert record.data["sb_number"]["value"] == "2093726"
    assert len(record.data["invoices"]) == 2
    assert 0.5 <= record.confidence <= 0.95

    flags = storage.list_flags_for_document(document.id)
    assert len(flags) == 1
    assert flags[0].issue_type == IssueType.LOW_CONFIDENCE
    assert flags[0].field_name == "exporter_name_address"
    assert flags[0].current_value == "ACME EXPORTS PVT LTD, MUMBAI"
    assert flags[0].customer_id == 7


def test_end_to_end_through_real_client(storage, file_store, stored_document):
    """Classification and extraction both go over the scripted transport."""
    transport = ScriptedTransport([
        "Shipping Bill",
        json.dumps(build_shipping_bill(invoice_count=2, exporter_confidence="Low")),
    ])
    client = DocumentIntelligenceClient(transport, model="m", sleep=no_sleep)
    document = stored_document()

    final = asyncio.run(make_pipeline(storage, file_store, client).process(document, SB_CONTENT))

    assert final.status == DocumentStatus.COMPLETED
    assert [r.operation for r in transport.requests] == ["DOCUMENT_CLASSIFICATION", "SHIPPING_BILL_EXTRACTION"]
    flags = storage.list_flags_for_document(document.id)
    assert [(f.issue_type, f.field_name) for f in flags] == [(IssueType.LOW_CONFIDENCE, "exporter_name_address")]


def test_unrecognized_document_is_flagged_without_extraction(storage, file_store, stored_document):
    oracle = FakeIntelligence(category=DocumentCategory.NOT_SPECIFIED)
    document = stored_document()

    final = asyncio.run(make_pipeline(storage, file_store, oracle).process(document, "Lunch menu"))

    assert final.status == DocumentStatus.FLAGGED
    assert final.classification == DocumentCategory.NOT_SPECIFIED
    assert final.classification_confidence == 0.5
    assert storage.get_extraction_record(document.id) is None
    assert oracle.extract_calls == []

    flags = storage.list_flags_for_document(document.id)
    assert len(flags) == 1
    assert flags[0].issue_type == IssueType.NOT_SPECIFIED
    assert flags[0].field_name == "Document Type"


def test_bank_statement_is_routed_to_manual_classification(storage, file_store, stored_document):
    oracle = FakeIntelligence(category=DocumentCategory.BANK_STATEMENT)
    document = stored_document()

    final = asyncio.run(make_pipeline(storage, file_store, oracle).process(document, "statement"))

    assert final.status == DocumentStatus.FLAGGED
    flags = storage.list_flags_for_document(document.id)
    assert [(f.issue_type, f.field_name, f.current_value) for f in flags] == [
        (IssueType.NOT_SPECIFIED, "Document Type", "Bank Statement"),
    ]
    assert storage.get_extraction_record(document.id) is None


def test_every_low_leaf_in_arrays_gets_its_own_flag(storage, file_store, stored_document):
    payload = build_remittance(leg_count=3)
    payload["transaction_breakup"][0]["buyer_country"] = cf("U?", "Low")
    payload["transaction_breakup"][2]["amount_inr"] = cf("7?0000", "Low")
    oracle = FakeIntelligence(category=DocumentCategory.REMITTANCE_ADVICE, payload=payload)
    document = stored_document()

    asyncio.run(make_pipeline(storage, file_store, oracle).process(document, ""))

    fields = [f.field_name for f in storage.list_flags_for_document(document.id)]
    assert fields == ["transaction_breakup[0].buyer_country", "transaction_breakup[2].amount_inr"]


# ============================================================================
# Rasterization
# ============================================================================

def test_page_images_are_passed_to_both_stages(storage, file_store, stored_document):
    oracle = FakeIntelligence(category=DocumentCategory.INVOICE, payload=build_invoice())
    rasterizer = StubRasterizer(pages=2)
    document = stored_document()

    final = asyncio.run(make_pipeline(storage, file_store, oracle, rasterizer).process(document, ""))

    assert final.status == DocumentStatus.COMPLETED
    assert rasterizer.calls == [file_store.path_for(document.filename)]
    assert len(oracle.classify_calls[0][1]) == 2
    assert len(oracle.extract_calls[0][2]) == 2


def test_rasterization_failure_falls_back_to_text(storage, file_store, stored_document, failing_rasterizer):
    oracle = FakeIntelligence(category=DocumentCategory.INVOICE, payload=build_invoice())
    document = stored_document()

    final = asyncio.run(
        make_pipeline(storage, file_store, oracle, failing_rasterizer).process(document, "TAX INVOICE")
    )

    assert final.status == DocumentStatus.COMPLETED
    assert oracle.classify_calls == [("TAX INVOICE", [])]


def test_non_pdf_documents_are_not_rasterized(storage, file_store):
    oracle = FakeIntelligence(category=DocumentCategory.INVOICE, payload=build_invoice())
    rasterizer = StubRasterizer()
    document = storage.create_document(DocumentCreate(customer_id=1, filename="notes.txt", original_name="notes.txt"))

    asyncio.run(make_pipeline(storage, file_store, oracle, rasterizer).process(document, "INVOICE"))

    assert rasterizer.calls == []


# ============================================================================
# Totality under failure
# ============================================================================

@pytest.mark.parametrize("intelligence, rasterizer", [
    # oracle keeps failing after retries
    (FakeIntelligence(classify_error=TransientOracleError("503 after 3 attempts")), None),
    # extraction answer is not the expected shape
    (
        FakeIntelligence(
            category=DocumentCategory.INVOICE,
            extract_error=MalformedResponse("not JSON", raw_text="oops"),
        ),
        None,
    ),
    # rasterizer raises something other than RasterizationFailure
    (FakeIntelligence(category=DocumentCategory.INVOICE, payload=build_invoice()), StubRasterizer(error=OSError("disk"))),
    # extraction payload fails schema validation
    (FakeIntelligence(category=DocumentCategory.INVOICE, payload={"invoice_number": cf("1")}), None),
])
def test_any_failure_leaves_document_flagged_with_error(storage, file_store, stored_document, intelligence, rasterizer):
    document = stored_document()

    final = asyncio.run(make_pipeline(storage, file_store, intelligence, rasterizer).process(document, "text"))

    assert final.status == DocumentStatus.FLAGGED
    assert final.processing_error
    stored = storage.get_document(document.id)
    assert stored.status == DocumentStatus.FLAGGED
    assert stored.processing_error == final.processing_error


def test_retries_exhausted_are_recorded_on_the_document(storage, file_store, stored_document):
    transport = ScriptedTransport([TransientOracleError("HTTP 503")])
    client = DocumentIntelligenceClient(transport, model="m", max_attempts=3, sleep=no_sleep)
    document = stored_document()

    final = asyncio.run(make_pipeline(storage, file_store, client).process(document, "lunch"))

    assert len(transport.requests) == 3
    assert final.status == DocumentStatus.FLAGGED
    assert final.processing_error == "TransientOracleError: HTTP 503"


def test_malformed_extraction_keeps_no_record(storage, file_store, stored_document):
    transport = ScriptedTransport(["Invoice", "Sorry, I cannot read this document."])
    client = DocumentIntelligenceClient(transport, model="m", sleep=no_sleep)
    document = stored_document()

    final = asyncio.run(make_pipeline(storage, file_store, client).process(document, "TAX INVOICE"))

    assert final.status == DocumentStatus.FLAGGED
    assert final.classification == DocumentCategory.INVOICE
    assert final.processing_error.startswith("MalformedResponse")
    assert storage.get_extraction_record(document.id) is None
    assert len(transport.requests) == 2  # not retried


def test_cancellation_flags_the_document_and_propagates(storage, file_store, stored_document):
    class HangingIntelligence(FakeIntelligence):
        async def classify(self, content, images=None):
            self.classify_calls.append(content)
            await asyncio.sleep(60)

    document = stored_document()
    pipeline = make_pipeline(storage, file_store, HangingIntelligence())

    async def run_and_cancel():
        task = asyncio.create_task(pipeline.process(document, "text"))
        while not pipeline.classifier.intelligence.classify_calls:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run_and_cancel())

    stored = storage.get_document(document.id)
    assert stored.status == DocumentStatus.FLAGGED
    assert stored.processing_error == CANCELLED_IN_FLIGHT
