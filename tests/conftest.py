import os
import tempfile
from typing import Dict, List, Optional

import httpx
import pytest
from botocore.exceptions import ClientError

_TEST_DIR = tempfile.mkdtemp(prefix="screening-api-tests-")

os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'users.db')}"
os.environ["JWT_SECRET"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["APP_ENV"] = "test"
os.environ["SNS_ENABLED"] = "false"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["PUBLIC_FORM_BASE_URL"] = "https://screening.example.org"
os.environ["ADMIN_SEED_EMAIL"] = ""
os.environ["ADMIN_SEED_PASSWORD"] = ""

from screening_api.services.analysis_client import FaceAnalysisClient  # noqa: E402
from screening_api.services.location_service import LocationNotFound  # noqa: E402
from screening_api.services.sms_service import SMSService  # noqa: E402
from screening_api.services.storage_service import StorageError  # noqa: E402
from screening_api.services.submissions_service import (  # noqa: E402
    SubmissionNotFound,
    SubmissionPage,
    SubmissionQuery,
    apply_search_filter,
    encode_cursor,
    normalize_end_date,
    sort_newest_first,
)

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# ========== FAKE STORES ==========

class FakeSubmissionStore:
    """In-memory stand-in for SubmissionStore"""

    def __init__(self):
        self.items: Dict[str, Dict] = {}
        self.fail_on_create = False

    def add(self, **item) -> Dict:
        item.setdefault("followUpStatus", "Pending")
        self.items[item["id"]] = item
        return item

    def create(self, item: Dict) -> Dict:
        if self.fail_on_create:
            raise client_error("ProvisionedThroughputExceededException", "PutItem")
        self.items[item["id"]] = dict(item)
        return item

    def get(self, submission_id: str) -> Optional[Dict]:
        item = self.items.get(submission_id)
        return dict(item) if item else None

    def _matching(self, options: SubmissionQuery) -> List[Dict]:
        end_date = normalize_end_date(options.end_date)
        result = []
        for item in self.items.values():
            if options.church_id and item.get("churchId") != options.church_id:
                continue
            if options.start_date and (item.get("submissionDate") or "") < options.start_date:
                continue
            if end_date and (item.get("submissionDate") or "") > end_date:
                continue
            if options.risk_levels and item.get("healthRiskLevel") not in options.risk_levels:
                continue
            if options.follow_up_statuses and item.get("followUpStatus") not in options.follow_up_statuses:
                continue
            result.append(dict(item))
        return sort_newest_first(apply_search_filter(result, options.search_term))

    def fetch_page(self, options: SubmissionQuery) -> SubmissionPage:
        items = self._matching(options)
        if options.exclusive_start_key:
            ids = [item["id"] for item in items]
            start_id = options.exclusive_start_key.get("id")
            items = items[ids.index(start_id) + 1:] if start_id in ids else []

        last_key = None
        if options.page_size and len(items) > options.page_size:
            items = items[:options.page_size]
            last_key = {"id": items[-1]["id"]}

        return SubmissionPage(items=items, last_evaluated_key=last_key, next_cursor=encode_cursor(last_key))

    def fetch_all(self, options: SubmissionQuery) -> List[Dict]:
        return self._matching(options)

    def scan_all(self) -> List[Dict]:
        return self._matching(SubmissionQuery())

    def update_follow_up(self, submission_id: str, updates: Dict) -> Dict:
        if not updates:
            raise ValueError("No fields to update")
        if submission_id not in self.items:
            raise SubmissionNotFound(submission_id)
        self.items[submission_id].update(updates)
        return dict(self.items[submission_id])

    def update_photo_url(self, submission_id: str, selfie_url: str) -> None:
        self.items[submission_id]["selfieUrl"] = selfie_url

    def has_submissions_for_location(self, church_id: str) -> bool:
        return any(item.get("churchId") == church_id for item in self.items.values())

    def describe(self) -> Dict:
        return {"Table": {"TableName": "submissions", "TableStatus": "ACTIVE"}}


class FakeLocationStore:
    def __init__(self):
        self.items: Dict[str, Dict] = {}
        self.counter_calls: List[str] = []

    def add(self, **item) -> Dict:
        item.setdefault("isActive", True)
        item.setdefault("totalSubmissions", 0)
        self.items[item["id"]] = item
        return item

    def list_all(self) -> List[Dict]:
        return [dict(item) for item in self.items.values()]

    def get(self, location_id: str) -> Optional[Dict]:
        item = self.items.get(location_id)
        return dict(item) if item else None

    def create(self, data: Dict) -> Dict:
        item = {"id": f"loc-{len(self.items) + 1}", **data, "isActive": True, "totalSubmissions": 0}
        self.items[item["id"]] = item
        return dict(item)

    def update(self, location_id: str, data: Dict) -> Dict:
        if location_id not in self.items:
            raise LocationNotFound(location_id)
        self.items[location_id].update(data)
        return dict(self.items[location_id])

    def delete(self, location_id: str) -> None:
        del self.items[location_id]

    def archive(self, location_id: str) -> None:
        self.items[location_id]["isActive"] = False

    def increment_submissions(self, location_id: str) -> None:
        self.counter_calls.append(location_id)
        if location_id not in self.items:
            raise client_error("ConditionalCheckFailedException", "UpdateItem")
        self.items[location_id]["totalSubmissions"] += 1


class FakePhotoStorage:
    bucket = "test-bucket"

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.fail_on_upload = False

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def upload(self, key: str, file_path: str, content_type: str) -> str:
        if self.fail_on_upload:
            raise StorageError("Failed to upload photo")
        with open(file_path, "rb") as f:
            self.objects[key] = f.read()
        return self.public_url(key)

    def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.objects.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self.objects

    def generate_signed_url(self, key: str, expires_in: int = 3600) -> str:
        return f"{self.public_url(key)}?X-Amz-Expires={expires_in}"


class FakeSNS:
    def __init__(self):
        self.published: List[Dict] = []

    def publish(self, **kwargs) -> Dict:
        self.published.append(kwargs)
        return {"MessageId": f"msg-{len(self.published)}"}


class AnalysisStub:
    """Scripted vendor behind an httpx.MockTransport"""

    def __init__(self):
        self.payload: Dict = {"bmi": 23.4, "age": 41, "gender": "female"}
        self.status_code = 200
        self.error: Optional[Exception] = None
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.payload)

    def client(self) -> FaceAnalysisClient:
        return FaceAnalysisClient(
            "https://analysis.test", "test-key", timeout=5.0,
            transport=httpx.MockTransport(self.handler),
        )


# ========== FIXTURES ==========

@pytest.fixture
def submission_store() -> FakeSubmissionStore:
    return FakeSubmissionStore()


@pytest.fixture
def location_store() -> FakeLocationStore:
    return FakeLocationStore()


@pytest.fixture
def photo_storage() -> FakePhotoStorage:
    return FakePhotoStorage()


@pytest.fixture
def sns() -> FakeSNS:
    return FakeSNS()


@pytest.fixture
def sms_service(sns) -> SMSService:
    return SMSService(sns, sender_id="HealthCheck", enabled=False)


@pytest.fixture
def analysis() -> AnalysisStub:
    return AnalysisStub()


def submission_fields(**overrides) -> Dict[str, str]:
    fields = {
        "firstName": "Jane",
        "lastName": "Doe",
        "dateOfBirth": "01/15/1980",
        "churchId": "loc-1",
        "phone": "(555) 123-4567",
        "email": "jane@example.org",
        "sex": "female",
        "consentScheduling": "true",
        "consentTexting": "true",
        "consentFollowup": "true",
        "familyHistoryDiabetes": "false",
        "familyHistoryHighBP": "false",
        "familyHistoryDementia": "false",
        "nerveSymptoms": "false",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def make_fields():
    return submission_fields


@pytest.fixture
def selfie():
    return ("selfie.jpg", JPEG_BYTES, "image/jpeg")
