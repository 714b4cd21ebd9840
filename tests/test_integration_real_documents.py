"""
Integration tests using real trade document PDFs with a live oracle endpoint.

These tests require the oracle to be configured:
- Set LLM_API_KEY in .env (and LLM_BASE_URL for a non-default endpoint)
- Put sample PDFs under samples/documents/

If not configured, tests will be skipped.
"""

import asyncio
from pathlib import Path

import pytest

from tradedocs.core.config import settings
from tradedocs.models.document import DocumentCategory, DocumentCreate, DocumentStatus
from tradedocs.services.classifier import DocumentClassifier
from tradedocs.services.extractor import DocumentExtractor
from tradedocs.services.file_store import FileStore
from tradedocs.services.intelligence.client import DocumentIntelligenceClient
from tradedocs.services.pipeline import DocumentPipeline
from tradedocs.services.rasterizer import PdfRasterizer
from tradedocs.services.storage.memory import InMemoryStorage

ORACLE_CONFIGURED = bool(settings.llm_api_key)
skip_if_no_oracle = pytest.mark.skipif(
    not ORACLE_CONFIGURED,
    reason="Oracle not configured (set LLM_API_KEY)",
)

SAMPLES_DIR = Path(__file__).parent.parent / "samples" / "documents"


@skip_if_no_oracle
@pytest.mark.integration
@pytest.mark.parametrize(
    "sample_file, expected",
    [
        ("shipping-bill.pdf", DocumentCategory.SHIPPING_BILL),
        ("commercial-invoice.pdf", DocumentCategory.INVOICE),
        ("bill-of-lading.pdf", DocumentCategory.LOGISTICS_DOCUMENT),
        ("firc.pdf", DocumentCategory.REMITTANCE_ADVICE),
    ],
)
def test_process_real_document(sample_file, expected, tmp_path):
    """Full pipeline run against the configured oracle"""
    pdf_path = SAMPLES_DIR / sample_file
    if not pdf_path.exists():
        pytest.skip(f"Sample file not found: {pdf_path}")

    storage = InMemoryStorage()
    file_store = FileStore(tmp_path / "uploads")
    filename = file_store.save_upload(sample_file, pdf_path.read_bytes())
    document = storage.create_document(DocumentCreate(
        customer_id=1, filename=filename, original_name=sample_file, file_url=file_store.url_for(filename),
    ))

    async def run():
        client = DocumentIntelligenceClient.from_settings(settings)
        pipeline = DocumentPipeline(
            storage=storage,
            classifier=DocumentClassifier(client),
            extractor=DocumentExtractor(client),
            file_store=file_store,
            rasterizer=PdfRasterizer.from_settings(settings),
        )
        try:
            return await pipeline.process(document, file_store.read_text(filename))
        finally:
            await client.transport.aclose()

    final = asyncio.run(run())

    assert final.processing_error is None, final.processing_error
    assert final.classification == expected
    assert final.status == DocumentStatus.COMPLETED

    record = storage.get_extraction_record(document.id)
    assert 0.5 <= record.confidence <= 0.95

    print(f"\n✓ {sample_file}:")
    print(f"  Category: {final.classification.value} ({final.classification_confidence:.0%})")
    print(f"  Confidence: {record.confidence:.1%}")
    print(f"  Flags: {len(storage.list_flags_for_document(document.id))}")
