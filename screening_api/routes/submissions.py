import logging
import re

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from screening_api.services.analysis_client import FaceAnalysisClient, get_analysis_client
from screening_api.services.intake_service import IntakeError, IntakeService, SelfieUpload
from screening_api.services.location_service import LocationStore, get_location_store
from screening_api.services.rate_limiter import RateLimiter, get_client_ip, get_rate_limiter
from screening_api.services.sms_service import SMSService, get_sms_service
from screening_api.services.storage_service import (
    PARTICIPANT_URL_EXPIRY_SECONDS,
    PhotoStorage,
    StorageError,
    extract_s3_key,
    get_photo_storage,
)
from screening_api.services.submissions_service import SubmissionStore, get_submission_store
from screening_api.services.validation import ParticipantPhotoRequest
from screening_api.utils.errors import error_body

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Submissions"])


def get_intake_service(
    submissions: SubmissionStore = Depends(get_submission_store),
    locations: LocationStore = Depends(get_location_store),
    storage: PhotoStorage = Depends(get_photo_storage),
    analysis: FaceAnalysisClient = Depends(get_analysis_client),
    sms: SMSService = Depends(get_sms_service)
) -> IntakeService:
    """Dependency to get the intake pipeline"""
    return IntakeService(submissions, locations, storage, analysis, sms)


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


@router.post("/submissions", status_code=status.HTTP_201_CREATED)
async def create_submission(
    request: Request,
    intake: IntakeService = Depends(get_intake_service),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """Accept a public screening form with its selfie"""
    client_ip = get_client_ip(request)
    limiter.enforce(client_ip, "UPLOAD", "Too many submissions. Please wait a minute and try again.")

    form = await request.form()
    fields = {key: value for key, value in form.items() if isinstance(value, str)}
    upload = form.get("selfie")
    selfie = None
    if isinstance(upload, UploadFile):
        selfie = SelfieUpload(
            file=upload.file,
            filename=upload.filename or "",
            content_type=upload.content_type or "",
        )

    try:
        submission_id = await intake.submit(
            fields, selfie, request.headers, request.client.host if request.client else None
        )
    except IntakeError as e:
        content = {"error": e.message}
        if e.validation_errors:
            content["validationErrors"] = e.validation_errors
        if e.status_code >= 500:
            content["error"] = "Internal server error"
            content["message"] = e.message
        return JSONResponse(status_code=e.status_code, content=error_body(content))
    finally:
        await form.close()

    return {
        "success": True,
        "data": {"id": submission_id},
        "message": "Health screening submitted successfully",
    }


@router.post("/photo-url")
def participant_photo_url(
    body: ParticipantPhotoRequest,
    request: Request,
    submissions: SubmissionStore = Depends(get_submission_store),
    storage: PhotoStorage = Depends(get_photo_storage),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """Short-lived link to a participant's own selfie"""
    limiter.enforce(get_client_ip(request), "API", "Too many requests")

    submission = submissions.get(body.submission_id)
    if not submission:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Submission not found"
        )

    if body.phone_verification and _digits(body.phone_verification) != _digits(submission.get("phone")):
        logger.warning("Phone verification failed for submission %s", body.submission_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Phone verification failed"
        )

    if not submission.get("selfieUrl"):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No photo found for this submission"
        )

    key = extract_s3_key(submission["selfieUrl"])
    try:
        signed_url = storage.generate_signed_url(key, PARTICIPANT_URL_EXPIRY_SECONDS)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate photo URL"
        )

    return {
        "success": True,
        "data": {"signedUrl": signed_url, "expiresIn": PARTICIPANT_URL_EXPIRY_SECONDS},
        "message": "Photo URL generated successfully",
    }
