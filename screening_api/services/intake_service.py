"""
Submission intake
Runs one public form post through validation, selfie checks, photo upload,
facial analysis, risk scoring and persistence. A failure after the upload
removes the stored photo before the error is reported.
"""
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from screening_api.models.submission import build_submission_item, utc_now_iso
from screening_api.services.analysis_client import FaceAnalysisClient
from screening_api.services.device_tracker import (
    build_device_info,
    detect_fraud_indicators,
    extract_network_info,
    generate_submission_fingerprint,
)
from screening_api.services.file_validation import (
    SELFIE_VALIDATION_OPTIONS,
    FileValidationOptions,
    validate_uploaded_file,
)
from screening_api.services.risk_service import assess_health_risk
from screening_api.services.sms_service import SMSService
from screening_api.services.storage_service import PhotoStorage, StorageError, build_photo_key
from screening_api.services.validation import AnalysisFields, SubmissionForm, validate_data

logger = logging.getLogger(__name__)

SPOOL_CHUNK_SIZE = 64 * 1024


class IntakeError(Exception):
    """Intake stopped; carries the HTTP status and user-facing message"""

    def __init__(self, status_code: int, message: str, validation_errors: Optional[List[str]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.validation_errors = validation_errors


@dataclass
class SelfieUpload:
    """Uploaded selfie as declared by the client; file is any readable binary stream"""
    file: object
    filename: str
    content_type: str


def spool_to_temp_file(upload: SelfieUpload, max_bytes: Optional[int] = None) -> str:
    """Copy the upload to a temp file, reading no further than one byte past max_bytes"""
    suffix = os.path.splitext(upload.filename or "")[1][:10]
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix, prefix="selfie-") as tmp:
        path = tmp.name
        written = 0
        while True:
            size = SPOOL_CHUNK_SIZE if max_bytes is None else min(SPOOL_CHUNK_SIZE, max_bytes - written + 1)
            chunk = upload.file.read(size)
            if not chunk:
                return path
            if max_bytes is not None and written + len(chunk) > max_bytes:
                break
            tmp.write(chunk)
            written += len(chunk)

    _remove_temp_file(path)
    raise IntakeError(400, f"File size exceeds maximum {max_bytes} bytes")


def _remove_temp_file(path: Optional[str]) -> None:
    if path and os.path.exists(path):
        try:
            os.remove(path)
        except OSError as e:
            logger.warning("Could not remove temp file %s: %s", path, e)


class IntakeService:
    def __init__(
        self,
        submissions,
        locations,
        storage: PhotoStorage,
        analysis: FaceAnalysisClient,
        sms: SMSService,
        file_options: FileValidationOptions = SELFIE_VALIDATION_OPTIONS,
    ):
        self.submissions = submissions
        self.locations = locations
        self.storage = storage
        self.analysis = analysis
        self.sms = sms
        self.file_options = file_options

    async def submit(
        self,
        fields: Dict[str, str],
        selfie: Optional[SelfieUpload],
        headers: Mapping[str, str],
        remote_addr: Optional[str] = None,
    ) -> str:
        """
        Process one submission

        Returns:
            The new submission id

        Raises:
            IntakeError: 400 for bad input or selfie, 500 for storage/database failures
        """
        ok, result = validate_data(SubmissionForm, dict(fields))
        if not ok:
            logger.info("Submission rejected: %s", result)
            raise IntakeError(400, "Validation failed", validation_errors=result)
        form: SubmissionForm = result

        if selfie is None or not selfie.filename:
            raise IntakeError(400, "Selfie photo is required")

        temp_path = None
        try:
            temp_path = await run_in_threadpool(spool_to_temp_file, selfie, self.file_options.max_size_bytes)
            check = validate_uploaded_file(temp_path, selfie.filename, selfie.content_type, self.file_options)
            if not check.is_valid:
                logger.info("Selfie rejected: %s", check.error)
                raise IntakeError(400, check.error)

            return await self._process(form, fields, temp_path, check.sanitized_filename,
                                       check.detected_mime_type, headers, remote_addr)
        finally:
            _remove_temp_file(temp_path)

    async def _process(self, form: SubmissionForm, fields: Dict[str, str], temp_path: str,
                       secure_filename: str, mime_type: str, headers: Mapping[str, str],
                       remote_addr: Optional[str]) -> str:
        submission_id = str(uuid.uuid4())
        submission_date = utc_now_iso()
        photo_key = build_photo_key(submission_id, secure_filename)

        # Upload
        try:
            selfie_url = await run_in_threadpool(self.storage.upload, photo_key, temp_path, mime_type)
        except StorageError:
            await self._delete_photo(photo_key)
            raise IntakeError(500, "Failed to upload photo")

        # Provenance
        form_data = form.model_dump(by_alias=True, mode="json")
        user_agent = headers.get("user-agent", "")
        device_info = build_device_info(user_agent, fields.get("clientDeviceInfo"))
        network_info = extract_network_info(headers, remote_addr)
        fingerprint = generate_submission_fingerprint(device_info, network_info, form_data)
        fraud_indicators = detect_fraud_indicators(device_info, network_info)
        if fraud_indicators:
            logger.warning("Fraud indicators for submission %s: %s", submission_id, fraud_indicators)

        # Analysis and scoring, both optional
        analysis, risk = await self._analyze(temp_path, mime_type, form)

        item = build_submission_item(
            submission_id=submission_id,
            form=form_data,
            selfie_url=selfie_url,
            submission_date=submission_date,
            analysis=analysis,
            risk=risk,
            device_info=device_info,
            network_info=network_info,
            fingerprint=fingerprint,
            fraud_indicators=fraud_indicators,
            session_id=str(uuid.uuid4()),
        )

        # Persist
        try:
            await run_in_threadpool(self.submissions.create, item)
        except Exception:
            logger.exception("Saving submission %s failed; removing uploaded photo", submission_id)
            await self._delete_photo(photo_key)
            raise IntakeError(500, "Failed to save submission")

        logger.info("Stored submission %s for location %s", submission_id, form.church_id)

        await self._increment_location_counter(form.church_id)
        await self._send_welcome(form)
        return submission_id

    async def _analyze(self, temp_path: str, mime_type: str, form: SubmissionForm):
        with open(temp_path, "rb") as f:
            image_bytes = f.read()

        result = await self.analysis.analyze_selfie(image_bytes, mime_type)
        if not result.success:
            logger.warning("Analysis unavailable: %s", result.message)
            return None, None

        ok, checked = validate_data(AnalysisFields, {
            "estimatedBMI": result.bmi_value,
            "estimatedAge": result.age_estimated,
        })
        if not ok:
            logger.warning("Analysis values out of range, discarding: %s", checked)
            return None, None

        risk = assess_health_risk(
            result.bmi_value,
            form.family_history_diabetes,
            form.family_history_high_bp,
            form.family_history_dementia,
            form.nerve_symptoms,
        )
        return result.as_dict(), risk.as_dict()

    async def _delete_photo(self, photo_key: str) -> None:
        try:
            await run_in_threadpool(self.storage.delete, photo_key)
            logger.info("Removed orphaned photo %s", photo_key)
        except StorageError:
            logger.error("Compensating delete of %s failed; object may be orphaned", photo_key)

    async def _increment_location_counter(self, church_id: str) -> None:
        try:
            await run_in_threadpool(self.locations.increment_submissions, church_id)
        except (ClientError, BotoCoreError) as e:
            logger.warning("Could not update submission count for location %s: %s", church_id, e)

    async def _send_welcome(self, form: SubmissionForm) -> None:
        if not (self.sms.is_enabled() and form.consent_texting):
            return
        result = await run_in_threadpool(self.sms.send_welcome_sms, form.phone, form.first_name)
        if not result.success:
            logger.warning("Welcome SMS failed: %s", result.error)
