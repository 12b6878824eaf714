import pytest
from botocore.exceptions import ClientError

from screening_api.services.storage_service import (
    PhotoStorage,
    StorageError,
    build_photo_key,
    extract_s3_key,
    validate_photo_key,
)


class FakeS3:
    def __init__(self):
        self.objects = {}
        self.head_error_code = None

    def put_object(self, Bucket, Key, Body, ContentType, **kwargs):
        self.objects[Key] = {"body": Body.read(), "content_type": ContentType, **kwargs}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)

    def head_object(self, Bucket, Key):
        if self.head_error_code:
            raise ClientError({"Error": {"Code": self.head_error_code}}, "HeadObject")
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404"}}, "HeadObject")
        return {}

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://{Params['Bucket']}.s3.amazonaws.com/{Params['Key']}?expires={ExpiresIn}"


@pytest.fixture
def s3():
    return FakeS3()


@pytest.fixture
def storage(s3):
    return PhotoStorage(s3, "photos")


def test_upload_encrypts_and_returns_public_url(storage, s3, tmp_path):
    path = tmp_path / "selfie.jpg"
    path.write_bytes(b"\xff\xd8\xffdata")
    key = build_photo_key("sub-1", "123-abc.jpg")

    url = storage.upload(key, str(path), "image/jpeg")

    assert key == "submissions/sub-1/123-abc.jpg"
    assert url == "https://photos.s3.amazonaws.com/submissions/sub-1/123-abc.jpg"
    assert s3.objects[key]["ServerSideEncryption"] == "AES256"
    assert s3.objects[key]["body"] == b"\xff\xd8\xffdata"


def test_exists(storage, s3):
    s3.objects["submissions/a.jpg"] = {}

    assert storage.exists("submissions/a.jpg") is True
    assert storage.exists("submissions/b.jpg") is False


def test_exists_raises_on_other_errors(storage, s3):
    s3.head_error_code = "AccessDenied"

    with pytest.raises(StorageError):
        storage.exists("submissions/a.jpg")


def test_signed_url(storage):
    assert storage.generate_signed_url("submissions/a.jpg", 7200).endswith("?expires=7200")


@pytest.mark.parametrize("path,key", [
    ("https://photos.s3.amazonaws.com/submissions/sub-1/a.jpg", "submissions/sub-1/a.jpg"),
    ("submissions/sub-1/a.jpg", "submissions/sub-1/a.jpg"),
])
def test_extract_key(path, key):
    assert extract_s3_key(path) == key


@pytest.mark.parametrize("key,valid", [
    ("submissions/sub-1/a.jpg", True),
    ("private/keys.pem", False),
    ("submissions/../private/keys.pem", False),
    ("submissions//a.jpg", False),
    ("submissions\\a.jpg", False),
])
def test_validate_photo_key(key, valid):
    assert validate_photo_key(key)[0] is valid
