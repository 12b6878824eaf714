"""
Facial analysis client
Sends a selfie to the vendor face-to-BMI endpoint and normalizes the
estimate; any failure yields a fixed fallback tagged success=False
"""
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from screening_api.config import get_settings
from screening_api.services.risk_service import get_bmi_category

logger = logging.getLogger(__name__)

FALLBACK_BMI = 25.0
FALLBACK_AGE = 35


class AnalysisResponseError(Exception):
    """Vendor answered, but not with something we can use"""


@dataclass
class FaceAnalysisResult:
    bmi_value: float
    bmi_range: str
    bmi_category: str
    age_estimated: int
    age_range: str
    gender_predicted: str
    gender_confidence: float
    success: bool
    message: Optional[str] = None

    def as_dict(self) -> Dict:
        return {
            "bmi": {"value": self.bmi_value, "range": self.bmi_range, "category": self.bmi_category},
            "age": {"estimated": self.age_estimated, "range": self.age_range},
            "gender": {"predicted": self.gender_predicted, "confidence": self.gender_confidence},
            "success": self.success,
            "message": self.message,
        }


def get_bmi_range(bmi: float) -> str:
    if bmi < 18.5:
        return "Below 18.5"
    elif bmi < 25:
        return "18.5-24.9"
    elif bmi < 30:
        return "25-29.9"
    return "30 and above"


def get_age_range(age: int) -> str:
    decade = (int(age) // 10) * 10
    return f"{decade}-{decade + 9}"


def fallback_result(message: str) -> FaceAnalysisResult:
    return FaceAnalysisResult(
        bmi_value=FALLBACK_BMI,
        bmi_range=get_bmi_range(FALLBACK_BMI),
        bmi_category=get_bmi_category(FALLBACK_BMI),
        age_estimated=FALLBACK_AGE,
        age_range=get_age_range(FALLBACK_AGE),
        gender_predicted="Unknown",
        gender_confidence=0.0,
        success=False,
        message=message,
    )


def _first_present(data: Dict, *names: str) -> Any:
    for name in names:
        if data.get(name) is not None:
            return data[name]
    return None


def _as_number(value: Any, nested_key: str) -> Optional[float]:
    if isinstance(value, dict):
        value = value.get(nested_key)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def parse_analysis_response(data: Any) -> FaceAnalysisResult:
    """Map a vendor payload (including its alternate field names) to a result"""
    if not isinstance(data, dict):
        raise AnalysisResponseError("Malformed analysis response")

    if data.get("success") is False:
        raise AnalysisResponseError(data.get("message") or data.get("error") or "Analysis was not successful")

    bmi = _as_number(_first_present(data, "bmi", "estimated_bmi", "bmiValue"), "value")
    age = _as_number(_first_present(data, "age", "estimated_age"), "estimated")
    if bmi is None or age is None:
        raise AnalysisResponseError("Analysis response missing bmi or age")

    gender_raw = _first_present(data, "gender", "predicted_gender", "sex")
    gender_confidence = 0.0
    if isinstance(gender_raw, dict):
        gender_confidence = float(gender_raw.get("confidence") or 0.0)
        gender_raw = gender_raw.get("predicted")
    gender = gender_raw if isinstance(gender_raw, str) and gender_raw else "Unknown"

    bmi = round(bmi, 1)
    age = int(round(age))
    return FaceAnalysisResult(
        bmi_value=bmi,
        bmi_range=get_bmi_range(bmi),
        bmi_category=get_bmi_category(bmi),
        age_estimated=age,
        age_range=get_age_range(age),
        gender_predicted=gender,
        gender_confidence=gender_confidence,
        success=True,
    )


class FaceAnalysisClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def analyze_selfie(self, image_bytes: bytes, mime_type: str) -> FaceAnalysisResult:
        """Never raises; failures come back as the fallback result"""
        data_uri = f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        payload = {"image": data_uri, "include_demographics": True}
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/face-to-bmi", json=payload, headers=headers)
                response.raise_for_status()
                return parse_analysis_response(response.json())
        except httpx.TimeoutException:
            logger.error("Face analysis timed out after %ss", self.timeout)
            return fallback_result("Analysis request timed out")
        except httpx.HTTPStatusError as e:
            logger.error("Face analysis returned HTTP %s", e.response.status_code)
            return fallback_result(f"Analysis service returned {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("Face analysis request failed: %s", e)
            return fallback_result("Failed to reach analysis service")
        except (AnalysisResponseError, ValueError) as e:
            logger.error("Face analysis response rejected: %s", e)
            return fallback_result(str(e) or "Malformed analysis response")


def get_analysis_client() -> FaceAnalysisClient:
    """Dependency to get the configured analysis client"""
    settings = get_settings()
    return FaceAnalysisClient(
        base_url=settings.ANALYSIS_API_BASE_URL,
        api_key=settings.ANALYSIS_API_KEY,
        timeout=settings.ANALYSIS_TIMEOUT_SECONDS,
    )
