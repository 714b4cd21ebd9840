"""
Pytest configuration for the test suite.

Registers the integration marker and the fixtures most modules share.
Fakes are injected through constructors; no module-level state is patched.
"""

import pytest

from tradedocs.core.errors import RasterizationFailure
from tradedocs.models.document import DocumentCreate
from tradedocs.services.file_store import FileStore
from tradedocs.services.storage.memory import InMemoryStorage

from fakes import MINIMAL_PDF, StubRasterizer


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against a real oracle endpoint"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring a real oracle endpoint"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def file_store(tmp_path):
    return FileStore(upload_dir=tmp_path / "uploads")


@pytest.fixture
def stored_document(storage, file_store):
    """Factory: write a PDF into the file store and create its document row."""

    def _create(customer_id: int = 1, name: str = "document.pdf", data: bytes = MINIMAL_PDF):
        filename = file_store.save_upload(name, data)
        return storage.create_document(DocumentCreate(
            customer_id=customer_id,
            filename=filename,
            original_name=name,
            file_url=file_store.url_for(filename),
        ))

    return _create


@pytest.fixture
def failing_rasterizer():
    return StubRasterizer(error=RasterizationFailure("pdf is corrupt"))
