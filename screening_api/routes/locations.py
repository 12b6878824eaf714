import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from screening_api.config import get_settings
from screening_api.services.location_service import (
    LocationHasSubmissions,
    LocationNotFound,
    LocationStore,
    delete_or_archive,
    get_location_store,
)
from screening_api.services.qr_service import generate_qr_png, location_form_url, qr_download_name
from screening_api.services.submissions_service import SubmissionStore, get_submission_store
from screening_api.services.validation import OutreachLocationInput
from screening_api.utils.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Outreach Locations"], dependencies=[Depends(require_admin)])


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Location not found"
    )


def _png_response(png: bytes, filename: str) -> Response:
    return Response(
        content=png,
        media_type="image/png",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "public, max-age=31536000",
        },
    )


@router.get("/locations")
def list_locations(store: LocationStore = Depends(get_location_store)):
    """All outreach locations, archived ones included"""
    return {"success": True, "data": store.list_all()}


@router.post("/locations", status_code=status.HTTP_201_CREATED)
def create_location(location: OutreachLocationInput, store: LocationStore = Depends(get_location_store)):
    """Register a new outreach location"""
    item = store.create(location.model_dump(by_alias=True, mode="json"))
    return {"success": True, "data": item, "message": "Location created successfully"}


@router.get("/locations/{location_id}")
def get_location(location_id: str, store: LocationStore = Depends(get_location_store)):
    location = store.get(location_id)
    if not location:
        raise _not_found()
    return {"success": True, "data": location, "message": "Location retrieved"}


@router.put("/locations/{location_id}")
def update_location(
    location_id: str,
    location: OutreachLocationInput,
    store: LocationStore = Depends(get_location_store)
):
    """Replace a location's editable fields"""
    try:
        updated = store.update(location_id, location.model_dump(by_alias=True, mode="json"))
    except LocationNotFound:
        raise _not_found()
    return {"success": True, "data": updated, "message": "Location updated successfully"}


@router.delete("/locations/{location_id}")
def delete_location(
    location_id: str,
    action: Optional[str] = Query(None),
    locations: LocationStore = Depends(get_location_store),
    submissions: SubmissionStore = Depends(get_submission_store)
):
    """
    Delete a location, or archive it with action=archive

    A location that submissions reference can only be archived.
    """
    try:
        outcome = delete_or_archive(locations, submissions, location_id, action)
    except LocationNotFound:
        raise _not_found()
    except LocationHasSubmissions:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "Location has existing submissions. Specify action=archive to archive instead of deleting.",
                "message": "This location has submissions. Archive it by sending action=archive.",
            }
        )

    message = "Location archived successfully" if outcome == "archived" else "Location deleted successfully"
    return {"success": True, "data": {"id": location_id, "action": outcome}, "message": message}


# ========== QR CODES ==========

@router.get("/locations/{location_id}/qr-code")
def location_qr_code(location_id: str, store: LocationStore = Depends(get_location_store)):
    """PNG QR code linking to the location's public form"""
    location = store.get(location_id)
    if not location:
        raise _not_found()

    url = location_form_url(get_settings().PUBLIC_FORM_BASE_URL, location_id)
    return _png_response(generate_qr_png(url), qr_download_name(location.get("name", "")))


@router.get("/qr-code")
def qr_code(url: Optional[str] = Query(None), name: Optional[str] = Query(None)):
    """PNG QR code for an arbitrary URL"""
    if not url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="URL parameter is required"
        )
    return _png_response(generate_qr_png(url), qr_download_name(name or ""))
