"""
CSV export of screening submissions
Fixed column set; booleans rendered as Yes/No
"""
import csv
import io
from typing import Any, Dict, Iterable, Iterator, List, Tuple

# (submission attribute or derived key, column title)
EXPORT_COLUMNS: List[Tuple[str, str]] = [
    ("id", "Submission ID"),
    ("firstName", "First Name"),
    ("lastName", "Last Name"),
    ("dateOfBirth", "Date of Birth"),
    ("phone", "Phone Number"),
    ("email", "Email Address"),
    ("sex", "Sex"),
    ("insuranceType", "Insurance Type"),
    ("churchId", "Outreach Location"),
    ("submissionDate", "Submission Date"),
    ("familyHistoryDiabetes", "Family History - Diabetes"),
    ("familyHistoryHighBP", "Family History - High BP"),
    ("familyHistoryDementia", "Family History - Dementia"),
    ("nerveSymptoms", "Nerve Symptoms"),
    ("estimatedBMI", "Estimated BMI"),
    ("bmiCategory", "BMI Category"),
    ("estimatedAge", "Estimated Age"),
    ("estimatedGender", "Estimated Gender"),
    ("healthRiskLevel", "Health Risk Level"),
    ("healthRiskScore", "Health Risk Score"),
    ("followUpStatus", "Follow-up Status"),
    ("followUpNotes", "Follow-up Notes"),
    ("followUpDate", "Follow-up Date"),
    ("consentScheduling", "Consent - Scheduling"),
    ("consentTexting", "Consent - Texting"),
    ("consentFollowup", "Consent - Follow-up"),
    ("ipAddress", "IP Address"),
    ("deviceType", "Device Type"),
    ("browser", "Browser"),
    ("operatingSystem", "Operating System"),
    ("submissionFingerprint", "Submission Fingerprint"),
    ("timezone", "Timezone"),
    ("screenResolution", "Screen Resolution"),
]

EXPORT_HEADERS = [title for _, title in EXPORT_COLUMNS]


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (list, tuple)):
        return "; ".join(str(item) for item in value)
    return str(value)


def _name_version(descriptor: Any) -> str:
    if not isinstance(descriptor, dict):
        return ""
    return " ".join(part for part in (descriptor.get("name"), descriptor.get("version")) if part)


def submission_to_row(submission: Dict) -> List[str]:
    """Flatten one submission, pulling provenance out of the nested device/network info"""
    device_info = submission.get("deviceInfo") or {}
    network_info = submission.get("networkInfo") or {}
    screen = device_info.get("screen") or {}

    derived = {
        "ipAddress": network_info.get("ipAddress"),
        "deviceType": (device_info.get("device") or {}).get("type"),
        "browser": _name_version(device_info.get("browser")),
        "operatingSystem": _name_version(device_info.get("os")),
        "timezone": device_info.get("timezone"),
        "screenResolution": (
            f"{screen['width']}x{screen['height']}"
            if screen.get("width") and screen.get("height") else ""
        ),
    }

    row = []
    for key, _ in EXPORT_COLUMNS:
        value = derived[key] if key in derived else submission.get(key)
        row.append(_format_value(value))
    return row


def _render_line(values: List[str]) -> str:
    buffer = io.StringIO()
    csv.writer(buffer).writerow(values)
    return buffer.getvalue()


def iter_csv(submissions: Iterable[Dict]) -> Iterator[str]:
    """Header line, then one line per submission"""
    yield _render_line(EXPORT_HEADERS)
    for submission in submissions:
        yield _render_line(submission_to_row(submission))


def export_filename(timestamp_ms: int) -> str:
    return f"health-screening-export-{timestamp_ms}.csv"
