"""
Submission and outreach location document shapes
Items are stored in DynamoDB with camelCase attribute names
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional

RISK_LEVELS = ("Low", "Moderate", "High", "Very High")
FOLLOW_UP_STATUSES = ("Pending", "Contacted", "Scheduled", "Completed")
BMI_CATEGORIES = ("Underweight", "Normal weight", "Overweight", "Obese")
SEX_VALUES = ("male", "female", "other")
INSURANCE_TYPES = ("private", "medicare", "medicaid", "self-pay", "other")

# Only these may change after a submission is created
MUTABLE_FIELDS = ("followUpStatus", "followUpNotes", "followUpDate", "updatedAt", "selfieUrl")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_submission_item(
    submission_id: str,
    form: Dict,
    selfie_url: str,
    submission_date: str,
    analysis: Optional[Dict],
    risk: Optional[Dict],
    device_info: Dict,
    network_info: Dict,
    fingerprint: str,
    fraud_indicators: List[str],
    session_id: str,
) -> Dict:
    """Assemble the persisted submission document"""
    item = {
        "id": submission_id,
        "firstName": form["firstName"],
        "lastName": form["lastName"],
        "dateOfBirth": form["dateOfBirth"],
        "churchId": form["churchId"],
        "phone": form["phone"],
        "email": form.get("email") or None,
        "sex": form.get("sex"),
        "insuranceType": form.get("insuranceType"),
        "selfieUrl": selfie_url,
        "submissionDate": submission_date,

        "familyHistoryDiabetes": form["familyHistoryDiabetes"],
        "familyHistoryHighBP": form["familyHistoryHighBP"],
        "familyHistoryDementia": form["familyHistoryDementia"],
        "nerveSymptoms": form["nerveSymptoms"],
        "cardiovascularHistory": form.get("cardiovascularHistory", False),
        "chronicKidneyDisease": form.get("chronicKidneyDisease", False),
        "diabetes": form.get("diabetes", False),

        "consentScheduling": form["consentScheduling"],
        "consentTexting": form["consentTexting"],
        "consentFollowup": form["consentFollowup"],
        "tcpaConsent": bool(form["consentScheduling"] and form["consentTexting"] and form["consentFollowup"]),

        "estimatedBMI": analysis["bmi"]["value"] if analysis else None,
        "bmiCategory": analysis["bmi"]["category"] if analysis else None,
        "estimatedAge": analysis["age"]["estimated"] if analysis else None,
        "estimatedGender": analysis["gender"]["predicted"] if analysis else None,
        "healthRiskLevel": risk["risk_level"] if risk else None,
        "healthRiskScore": risk["risk_score"] if risk else None,
        "recommendations": risk["recommendations"] if risk else None,

        "followUpStatus": "Pending",

        "deviceInfo": device_info,
        "networkInfo": network_info,
        "submissionFingerprint": fingerprint,
        "fraudIndicators": fraud_indicators,
        "sessionId": session_id,
    }
    return item


def build_location_item(location_id: str, data: Dict, created_date: str) -> Dict:
    return {
        "id": location_id,
        "name": data["name"],
        "address": data["address"],
        "contactPerson": data["contactPerson"],
        "contactEmail": data["contactEmail"],
        "contactPhone": data["contactPhone"],
        "qrCode": f"qr-{location_id}",
        "createdDate": created_date,
        "isActive": True,
        "totalSubmissions": 0,
    }
