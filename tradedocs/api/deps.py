from dataclasses import dataclass

from fastapi import Request
from pydantic import BaseModel

from ..models.document import Document, ExtractionRecord, ReviewFlag
from ..services.file_store import FileStore
from ..services.pipeline import DocumentPipeline
from ..services.storage.base import StorageBase
from ..services.worker_pool import PipelineWorkerPool


@dataclass
class AppServices:
    """Explicitly constructed collaborators shared by the routers."""
    storage: StorageBase
    file_store: FileStore
    pipeline: DocumentPipeline
    pool: PipelineWorkerPool


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_storage(request: Request) -> StorageBase:
    return get_services(request).storage


class DocumentDetail(BaseModel):
    document: Document
    extraction: ExtractionRecord | None = None
    flags: list[ReviewFlag] = []


class ResolveFlagRequest(BaseModel):
    corrected_value: str | None = None
