import io
import os

import pytest

from screening_api.services.intake_service import IntakeError, SelfieUpload, spool_to_temp_file

CAP = 5 * 1024 * 1024


class CountingStream(io.BytesIO):
    """BytesIO that remembers how many bytes were handed out"""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.bytes_read = 0

    def read(self, size=-1):
        chunk = super().read(size)
        self.bytes_read += len(chunk)
        return chunk


def test_oversized_upload_stops_reading_at_cap():
    stream = CountingStream(b"\xff\xd8\xff" + b"\x00" * (50 * 1024 * 1024))

    with pytest.raises(IntakeError) as excinfo:
        spool_to_temp_file(SelfieUpload(stream, "selfie.jpg", "image/jpeg"), CAP)

    assert excinfo.value.status_code == 400
    assert "exceeds maximum" in excinfo.value.message
    assert stream.bytes_read <= CAP + 1


def test_oversized_upload_leaves_no_temp_file(monkeypatch, tmp_path):
    monkeypatch.setattr("tempfile.tempdir", str(tmp_path))

    with pytest.raises(IntakeError):
        spool_to_temp_file(SelfieUpload(io.BytesIO(b"x" * 2048), "selfie.png", "image/png"), 1024)

    assert list(tmp_path.iterdir()) == []


def test_upload_at_cap_is_spooled_whole():
    data = b"\xff\xd8\xff" + b"\x01" * (CAP - 3)

    path = spool_to_temp_file(SelfieUpload(io.BytesIO(data), "selfie.jpg", "image/jpeg"), CAP)
    try:
        assert os.path.getsize(path) == CAP
        assert path.endswith(".jpg")
    finally:
        os.remove(path)
