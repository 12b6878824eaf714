import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from screening_api.services.export_service import export_filename, iter_csv
from screening_api.services.storage_service import (
    ADMIN_URL_EXPIRY_SECONDS,
    PhotoStorage,
    StorageError,
    extract_s3_key,
    get_photo_storage,
    repair_photo_urls,
    validate_photo_key,
)
from screening_api.services.submissions_service import (
    SubmissionNotFound,
    SubmissionQuery,
    SubmissionStore,
    decode_cursor,
    get_submission_store,
)
from screening_api.services.validation import (
    ExportRequest,
    FollowUpUpdate,
    PhotoPathRequest,
    SubmissionFilters,
    validate_data,
)
from screening_api.utils.auth import require_admin
from screening_api.utils.errors import validation_failed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin Submissions"], dependencies=[Depends(require_admin)])


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# ========== LISTING ==========

@router.get("/submissions")
def list_submissions(
    church_id: Optional[str] = Query(None, alias="churchId"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    risk_levels: Optional[str] = Query(None, alias="riskLevels"),
    follow_up_statuses: Optional[str] = Query(None, alias="followUpStatuses"),
    search_term: Optional[str] = Query(None, alias="searchTerm"),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    cursor: Optional[str] = Query(None),
    store: SubmissionStore = Depends(get_submission_store)
):
    """Filtered, cursor-paginated submissions, newest first"""
    ok, filters = validate_data(SubmissionFilters, {
        "churchId": church_id or None,
        "startDate": start_date or None,
        "endDate": end_date or None,
        "riskLevels": _split_list(risk_levels),
        "followUpStatuses": _split_list(follow_up_statuses),
        "searchTerm": search_term or None,
    })
    if not ok:
        raise validation_failed(filters, "Invalid query parameters")

    query = SubmissionQuery.from_filters(
        filters,
        page_size=page_size,
        exclusive_start_key=decode_cursor(cursor),
    )
    page = store.fetch_page(query)

    return {
        "success": True,
        "data": {
            "items": page.items,
            "nextCursor": page.next_cursor,
            "count": len(page.items),
        },
    }


@router.get("/submissions/{submission_id}")
def get_submission(submission_id: str, store: SubmissionStore = Depends(get_submission_store)):
    """Single submission"""
    submission = store.get(submission_id)
    if not submission:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Submission not found"
        )
    return {"success": True, "data": submission}


@router.put("/submissions/{submission_id}")
def update_follow_up(
    submission_id: str,
    update: FollowUpUpdate,
    store: SubmissionStore = Depends(get_submission_store)
):
    """Partial update of follow-up status, notes and date"""
    changes = update.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update"
        )

    try:
        updated = store.update_follow_up(submission_id, changes)
    except SubmissionNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Submission not found"
        )

    logger.info("Follow-up updated for %s: %s", submission_id, sorted(changes))
    return {"success": True, "data": updated, "message": "Follow-up updated successfully"}


# ========== EXPORT ==========

@router.post("/export")
def export_submissions(request: ExportRequest, store: SubmissionStore = Depends(get_submission_store)):
    """CSV download of every submission matching the filters"""
    submissions = store.fetch_all(SubmissionQuery.from_filters(request.filters))
    filename = export_filename(int(time.time() * 1000))
    logger.info("Exporting %d submissions", len(submissions))

    return StreamingResponse(
        iter_csv(submissions),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ========== PHOTOS ==========

@router.post("/photo-url")
def admin_photo_url(body: PhotoPathRequest, storage: PhotoStorage = Depends(get_photo_storage)):
    """One-hour link to a stored selfie"""
    key = extract_s3_key(body.photo_path)
    valid, reason = validate_photo_key(key)
    if not valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=reason
        )

    try:
        signed_url = storage.generate_signed_url(key, ADMIN_URL_EXPIRY_SECONDS)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate photo URL"
        )

    return {
        "success": True,
        "data": {"signedUrl": signed_url, "expiresIn": ADMIN_URL_EXPIRY_SECONDS},
        "message": "Signed URL generated successfully",
    }


@router.post("/refresh-photos")
def refresh_photos(
    store: SubmissionStore = Depends(get_submission_store),
    storage: PhotoStorage = Depends(get_photo_storage)
):
    """Verify stored selfies and normalize their URLs"""
    result = repair_photo_urls(store, storage)
    logger.info("Photo refresh completed: %s", {k: v for k, v in result.items() if k != "errors"})
    return {
        "success": True,
        "data": result,
        "message": (
            f"Photo refresh completed. Found {result['photosFound']} photos, "
            f"fixed {result['photosFixed']} URLs, {result['photosMissing']} missing."
        ),
    }
