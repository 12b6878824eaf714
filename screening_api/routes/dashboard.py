from fastapi import APIRouter, Depends

from screening_api.services.dashboard_service import compute_dashboard_stats
from screening_api.services.location_service import LocationStore, get_location_store
from screening_api.services.submissions_service import SubmissionStore, get_submission_store
from screening_api.utils.auth import require_admin

router = APIRouter(prefix="/api/admin", tags=["Dashboard"], dependencies=[Depends(require_admin)])


@router.get("/dashboard")
def get_dashboard(
    submissions: SubmissionStore = Depends(get_submission_store),
    locations: LocationStore = Depends(get_location_store)
):
    """Headline statistics for the admin overview"""
    stats = compute_dashboard_stats(submissions.scan_all(), locations.list_all())
    message = (
        "Dashboard data retrieved successfully"
        if stats["totalSubmissions"] else "Dashboard loaded - no submissions yet"
    )
    return {"success": True, "data": stats, "message": message}
