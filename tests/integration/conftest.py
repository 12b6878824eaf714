from typing import Dict

import pytest
from fastapi.testclient import TestClient

from screening_api.database import Base, SessionLocal, engine
from screening_api.main import app
from screening_api.services.analysis_client import get_analysis_client
from screening_api.services.location_service import get_location_store
from screening_api.services.rate_limiter import InMemoryRateLimitStore, RateLimiter
from screening_api.services.sms_service import get_sms_service
from screening_api.services.storage_service import get_photo_storage
from screening_api.services.submissions_service import get_submission_store
from screening_api.services.user_service import create_user
from screening_api.utils.auth import create_access_token

ADMIN_EMAIL = "admin@example.org"
ADMIN_PASSWORD = "AdminPass123"


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db, submission_store, location_store, photo_storage, analysis, sms_service):
    app.dependency_overrides[get_submission_store] = lambda: submission_store
    app.dependency_overrides[get_location_store] = lambda: location_store
    app.dependency_overrides[get_photo_storage] = lambda: photo_storage
    app.dependency_overrides[get_analysis_client] = analysis.client
    app.dependency_overrides[get_sms_service] = lambda: sms_service
    app.state.rate_limiter = RateLimiter(InMemoryRateLimitStore())

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def admin_user(db):
    return create_user(db, ADMIN_EMAIL, ADMIN_PASSWORD, role="admin", first_name="Ada", last_name="Admin")


@pytest.fixture
def admin_headers(admin_user) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(admin_user)}"}


@pytest.fixture
def viewer_headers(db) -> Dict[str, str]:
    viewer = create_user(db, "viewer@example.org", "ViewerPass123")
    return {"Authorization": f"Bearer {create_access_token(viewer)}"}
