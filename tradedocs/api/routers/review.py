"""
Human review surface: flags raised by the pipeline and the manual
corrections reviewers make. Corrections are append-only audit records.
"""

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ..deps import ResolveFlagRequest, get_storage
from ...models.document import ManualCorrection, ManualCorrectionCreate, ReviewFlag
from ...services.storage.base import StorageBase

router = APIRouter(tags=["review"])


@router.get("/customers/{customer_id}/flags", response_model=list[ReviewFlag])
async def list_flags(
    customer_id: int,
    include_resolved: bool = False,
    storage: StorageBase = Depends(get_storage),
):
    """Unresolved flags of one customer, newest first."""
    return storage.list_review_flags(customer_id, unresolved_only=not include_resolved)


@router.patch("/flags/{flag_id}/resolve", response_model=ReviewFlag)
async def resolve_flag(
    flag_id: str,
    req: ResolveFlagRequest | None = Body(default=None),
    storage: StorageBase = Depends(get_storage),
):
    corrected_value = req.corrected_value if req else None
    # NotFoundError is mapped to 404 by the app
    return storage.resolve_review_flag(flag_id, corrected_value)


@router.post("/corrections", response_model=ManualCorrection, status_code=status.HTTP_201_CREATED)
async def create_correction(
    req: ManualCorrectionCreate,
    storage: StorageBase = Depends(get_storage),
):
    document = storage.get_document(req.document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    if document.customer_id != req.customer_id:
        raise HTTPException(status_code=400, detail="Document belongs to another customer")
    return storage.create_manual_correction(req)


@router.get("/documents/{document_id}/corrections", response_model=list[ManualCorrection])
async def list_corrections(document_id: str, storage: StorageBase = Depends(get_storage)):
    return storage.list_manual_corrections(document_id)
