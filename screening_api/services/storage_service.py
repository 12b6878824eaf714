"""
Photo storage
S3 wrapper for participant selfies: uploads, compensating deletes,
existence checks and presigned read URLs
"""
import logging
from typing import Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from screening_api.config import get_settings
from screening_api.services.aws import get_s3_client

logger = logging.getLogger(__name__)

PHOTO_KEY_PREFIX = "submissions/"
ADMIN_URL_EXPIRY_SECONDS = 60 * 60
PARTICIPANT_URL_EXPIRY_SECONDS = 2 * 60 * 60


class StorageError(Exception):
    """Object store call failed"""


def build_photo_key(submission_id: str, secure_filename: str) -> str:
    return f"{PHOTO_KEY_PREFIX}{submission_id}/{secure_filename}"


def extract_s3_key(photo_path: str) -> str:
    """Accept either a bare key or a full https://{bucket}.s3.amazonaws.com/{key} URL"""
    marker = "s3.amazonaws.com/"
    if marker in photo_path:
        return photo_path.split(marker, 1)[1]
    return photo_path


def validate_photo_key(key: str) -> Tuple[bool, str]:
    if not key.startswith(PHOTO_KEY_PREFIX):
        return False, f"Photo key must start with: {PHOTO_KEY_PREFIX}"
    if ".." in key or "\\" in key or "//" in key:
        return False, "Invalid photo key: path traversal detected"
    return True, ""


class PhotoStorage:
    def __init__(self, s3_client, bucket: str):
        self.s3 = s3_client
        self.bucket = bucket

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def upload(self, key: str, file_path: str, content_type: str) -> str:
        """Upload a local file; returns the canonical object URL"""
        try:
            with open(file_path, "rb") as f:
                self.s3.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                    ServerSideEncryption="AES256",
                )
        except (ClientError, BotoCoreError, OSError) as e:
            logger.error("Upload of %s failed: %s", key, e)
            raise StorageError("Failed to upload photo") from e
        return self.public_url(key)

    def delete(self, key: str) -> None:
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error("Delete of %s failed: %s", key, e)
            raise StorageError("Failed to delete photo") from e

    def exists(self, key: str) -> bool:
        try:
            self.s3.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Failed to check photo {key}") from e

    def generate_signed_url(self, key: str, expires_in: int = ADMIN_URL_EXPIRY_SECONDS) -> str:
        try:
            return self.s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Presigning %s failed: %s", key, e)
            raise StorageError("Failed to generate photo URL") from e


_storage: Optional[PhotoStorage] = None


def get_photo_storage() -> PhotoStorage:
    """Dependency to get the photo storage"""
    global _storage
    if _storage is None:
        _storage = PhotoStorage(get_s3_client(), get_settings().S3_BUCKET)
    return _storage


def repair_photo_urls(submissions, storage: PhotoStorage) -> Dict:
    """
    Check every stored selfie and rewrite selfieUrl to the canonical
    https://{bucket}.s3.amazonaws.com/{key} form where it differs
    """
    result = {
        "totalSubmissions": 0,
        "submissionsWithPhotos": 0,
        "photosFound": 0,
        "photosFixed": 0,
        "photosMissing": 0,
        "errors": [],
    }

    items = submissions.scan_all()
    result["totalSubmissions"] = len(items)

    for submission in items:
        selfie_url = submission.get("selfieUrl")
        if not selfie_url:
            continue
        result["submissionsWithPhotos"] += 1
        key = extract_s3_key(selfie_url)

        try:
            found = storage.exists(key)
        except StorageError as e:
            logger.error("Photo check failed for submission %s: %s", submission["id"], e)
            result["errors"].append(f"Error processing submission {submission['id']}")
            continue

        if not found:
            result["photosMissing"] += 1
            result["errors"].append(
                f"Photo missing for {submission.get('firstName')} {submission.get('lastName')} ({submission['id']})"
            )
            continue

        result["photosFound"] += 1
        canonical = storage.public_url(key)
        if selfie_url != canonical:
            logger.info("Rewriting photo URL for submission %s", submission["id"])
            submissions.update_photo_url(submission["id"], canonical)
            result["photosFixed"] += 1

    return result
