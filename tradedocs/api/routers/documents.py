from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from loguru import logger

from ..deps import AppServices, DocumentDetail, get_services, get_storage
from ...core.errors import PipelineFailure
from ...models.document import Document, DocumentCategory, DocumentCreate, ExtractionRecord
from ...services.file_store import UploadRejected
from ...services.storage.base import StorageBase

router = APIRouter(tags=["documents"])


@router.post(
    "/customers/{customer_id}/documents",
    response_model=list[Document],
    status_code=status.HTTP_201_CREATED,
)
async def upload_documents(
    customer_id: int,
    files: list[UploadFile] = File(...),
    services: AppServices = Depends(get_services),
):
    """
    Store uploaded PDFs and schedule them for processing.

    Returns as soon as every Document row exists with status `uploaded`;
    classification and extraction run in the background worker pool.
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    # Reject the whole batch before storing anything
    uploads = []
    for upload in files:
        data = await upload.read()
        try:
            services.file_store.validate_upload(upload.filename, data, upload.content_type)
        except UploadRejected as e:
            raise HTTPException(status_code=400, detail=str(e))
        uploads.append((upload, data))

    created = []
    for upload, data in uploads:
        filename = services.file_store.save_upload(upload.filename, data, upload.content_type)
        document = services.storage.create_document(DocumentCreate(
            customer_id=customer_id,
            filename=filename,
            original_name=upload.filename or filename,
            file_url=services.file_store.url_for(filename),
        ))
        created.append(document)

    results = []
    for document in created:
        try:
            await services.pool.submit(document)
            results.append(document)
        except PipelineFailure as e:
            logger.warning(f"Document {document.id} not scheduled: {e}")
            results.append(services.storage.get_document(document.id))

    logger.info("Documents uploaded", customer_id=customer_id, count=len(results))
    return results


@router.get("/customers/{customer_id}/documents", response_model=list[Document])
async def list_documents(customer_id: int, storage: StorageBase = Depends(get_storage)):
    return storage.list_documents(customer_id)


@router.get("/documents/{document_id}", response_model=DocumentDetail)
async def get_document(document_id: str, storage: StorageBase = Depends(get_storage)):
    document = storage.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return DocumentDetail(
        document=document,
        extraction=storage.get_extraction_record(document_id),
        flags=storage.list_flags_for_document(document_id),
    )


@router.get("/customers/{customer_id}/extractions", response_model=list[ExtractionRecord])
async def list_extractions(
    customer_id: int,
    category: DocumentCategory | None = None,
    storage: StorageBase = Depends(get_storage),
):
    """Extraction records of one customer, optionally narrowed to one category."""
    return storage.list_extraction_records(customer_id, category)


@router.get("/uploads/{filename}")
async def serve_upload(filename: str, services: AppServices = Depends(get_services)):
    path = services.file_store.path_for(filename)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, media_type="application/pdf", filename=path.name)
