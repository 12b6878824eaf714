"""
Upload validation for participant selfies
Size, type, extension, filename and file-signature checks; successful
validation yields a server-generated filename
"""
import logging
import os
import re
import secrets
import time
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

IMAGE_SIGNATURES = {
    "image/jpeg": [bytes([0xFF, 0xD8, 0xFF])],
    "image/png": [bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A])],
    "image/webp": [b"RIFF"],
}

WINDOWS_RESERVED = re.compile(r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])(\.|$)", re.IGNORECASE)
DANGEROUS_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')
MAX_FILENAME_LENGTH = 255


@dataclass
class FileValidationOptions:
    max_size_bytes: int
    allowed_mime_types: List[str]
    allowed_extensions: List[str]
    check_magic_bytes: bool = True


@dataclass
class FileValidationResult:
    is_valid: bool
    error: Optional[str] = None
    sanitized_filename: Optional[str] = None
    detected_mime_type: Optional[str] = None


SELFIE_VALIDATION_OPTIONS = FileValidationOptions(
    max_size_bytes=5 * 1024 * 1024,  # 5MB
    allowed_mime_types=["image/jpeg", "image/png", "image/webp"],
    allowed_extensions=[".jpg", ".jpeg", ".png", ".webp"],
    check_magic_bytes=True,
)


def validate_uploaded_file(
    file_path: str,
    original_name: str,
    mime_type: str,
    options: FileValidationOptions = SELFIE_VALIDATION_OPTIONS,
) -> FileValidationResult:
    """
    Validate an uploaded file on disk

    Args:
        file_path: Path of the spooled upload
        original_name: Filename as declared by the client
        mime_type: MIME type as declared by the client
        options: Policy to enforce

    Returns:
        FileValidationResult; never raises
    """
    try:
        if not os.path.isfile(file_path):
            return FileValidationResult(False, "File not found")

        size = os.path.getsize(file_path)
        if size > options.max_size_bytes:
            return FileValidationResult(
                False, f"File size {size} bytes exceeds maximum {options.max_size_bytes} bytes"
            )
        if size == 0:
            return FileValidationResult(False, "File is empty")

        if mime_type not in options.allowed_mime_types:
            return FileValidationResult(
                False,
                f"MIME type {mime_type} not allowed. Allowed types: {', '.join(options.allowed_mime_types)}",
            )

        extension = os.path.splitext(original_name or "")[1].lower()
        if extension not in options.allowed_extensions:
            return FileValidationResult(
                False,
                f"File extension {extension or '(none)'} not allowed. "
                f"Allowed extensions: {', '.join(options.allowed_extensions)}",
            )

        filename_check = validate_filename(original_name)
        if not filename_check.is_valid:
            return filename_check

        if options.check_magic_bytes:
            signature_check = validate_magic_bytes(file_path, mime_type)
            if not signature_check.is_valid:
                return signature_check

        return FileValidationResult(
            True,
            sanitized_filename=generate_secure_filename(extension),
            detected_mime_type=mime_type,
        )
    except Exception:
        logger.exception("File validation error")
        return FileValidationResult(False, "File validation failed due to internal error")


def validate_filename(filename: str) -> FileValidationResult:
    if "\0" in filename:
        return FileValidationResult(False, "Filename contains null bytes")

    if ".." in filename or "/" in filename or "\\" in filename:
        return FileValidationResult(False, "Filename contains directory traversal patterns")

    if WINDOWS_RESERVED.match(filename):
        return FileValidationResult(False, "Filename uses reserved system name")

    if len(filename) > MAX_FILENAME_LENGTH:
        return FileValidationResult(False, f"Filename too long (max {MAX_FILENAME_LENGTH} characters)")

    if filename.startswith(".") or filename.startswith(" "):
        return FileValidationResult(False, "Filename cannot start with dot or space")

    if DANGEROUS_CHARS.search(filename):
        return FileValidationResult(False, "Filename contains dangerous characters")

    return FileValidationResult(True)


def validate_magic_bytes(file_path: str, expected_mime_type: str) -> FileValidationResult:
    signatures = IMAGE_SIGNATURES.get(expected_mime_type)
    if not signatures:
        return FileValidationResult(False, f"No signature validation available for {expected_mime_type}")

    try:
        with open(file_path, "rb") as f:
            header = f.read(16)
    except OSError:
        logger.exception("Magic byte validation error")
        return FileValidationResult(False, "Failed to validate file signature")

    if not any(header.startswith(signature) for signature in signatures):
        return FileValidationResult(
            False, f"File signature does not match expected MIME type {expected_mime_type}"
        )

    # RIFF container must also declare WEBP at bytes 8-11
    if expected_mime_type == "image/webp" and header[8:12] != b"WEBP":
        return FileValidationResult(False, "Invalid WebP file structure")

    return FileValidationResult(True)


def generate_secure_filename(extension: str) -> str:
    timestamp = int(time.time() * 1000)
    return f"{timestamp}-{secrets.token_hex(16)}{extension}"
