"""
Request validation schemas
Declarative pydantic schemas for every inbound payload, plus a helper that
turns validation failures into itemized "field: message" strings
"""
import re
from datetime import date
from typing import List, Literal, Optional, Tuple, Type, TypeVar, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

PHONE_REGEX = re.compile(r"^\(?([0-9]{3})\)?[-. ]?([0-9]{3})[-. ]?([0-9]{4})$")
DATE_REGEX = re.compile(r"^\d{2}/\d{2}/\d{4}$")

RiskLevel = Literal["Low", "Moderate", "High", "Very High"]
FollowUpStatus = Literal["Pending", "Contacted", "Scheduled", "Completed"]

T = TypeVar("T", bound=BaseModel)


def validate_phone(value: str) -> str:
    value = value.strip()
    if not PHONE_REGEX.match(value):
        raise ValueError("Invalid phone number format")
    return value


def validate_calendar_date(value: str) -> str:
    """MM/DD/YYYY that names a real calendar day"""
    value = value.strip()
    if not DATE_REGEX.match(value):
        raise ValueError("Date must be in MM/DD/YYYY format")
    month, day, year = (int(part) for part in value.split("/"))
    try:
        parsed = date(year, month, day)
    except ValueError:
        raise ValueError("Invalid date")
    if (parsed.month, parsed.day, parsed.year) != (month, day, year):
        raise ValueError("Invalid date")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# ========== SUBMISSION ==========

class SubmissionForm(CamelModel):
    """Public health screening form"""
    first_name: str = Field(..., min_length=2)
    last_name: str = Field(..., min_length=2)
    date_of_birth: str
    church_id: str = Field(..., min_length=1)
    phone: str
    email: Optional[EmailStr] = None
    sex: Optional[Literal["male", "female", "other"]] = None
    insurance_type: Optional[Literal["private", "medicare", "medicaid", "self-pay", "other"]] = None

    family_history_diabetes: bool = False
    family_history_high_bp: bool = Field(False, alias="familyHistoryHighBP")
    family_history_dementia: bool = False
    nerve_symptoms: bool = False
    cardiovascular_history: bool = False
    chronic_kidney_disease: bool = False
    diabetes: bool = False

    consent_scheduling: bool = Field(False, validate_default=True)
    consent_texting: bool = Field(False, validate_default=True)
    consent_followup: bool = Field(False, validate_default=True)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: str) -> str:
        return validate_phone(value)

    @field_validator("date_of_birth")
    @classmethod
    def check_date_of_birth(cls, value: str) -> str:
        return validate_calendar_date(value)

    @field_validator("email", "sex", "insurance_type", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("consent_scheduling", "consent_texting", "consent_followup")
    @classmethod
    def consent_required(cls, value: bool) -> bool:
        if not value:
            raise ValueError("Consent is required")
        return value


class AnalysisFields(CamelModel):
    """Range checks for derived values before they are persisted"""
    estimated_bmi: float = Field(..., ge=10, le=60, alias="estimatedBMI")
    estimated_age: int = Field(..., ge=18, le=120)
    health_risk_score: Optional[int] = Field(None, ge=0, le=100)


# ========== ADMIN ==========

class SubmissionFilters(CamelModel):
    church_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    risk_levels: List[RiskLevel] = []
    follow_up_statuses: List[FollowUpStatus] = []
    search_term: Optional[str] = None


class FollowUpUpdate(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    follow_up_status: Optional[FollowUpStatus] = None
    follow_up_notes: Optional[str] = Field(None, max_length=2000)
    follow_up_date: Optional[str] = None


class ExportRequest(CamelModel):
    format: Literal["csv"] = "csv"
    filters: SubmissionFilters = Field(default_factory=SubmissionFilters)


class OutreachLocationInput(CamelModel):
    name: str = Field(..., min_length=2)
    address: str = Field(..., min_length=10)
    contact_person: str = Field(..., min_length=2)
    contact_email: EmailStr
    contact_phone: str

    @field_validator("contact_phone")
    @classmethod
    def check_phone(cls, value: str) -> str:
        return validate_phone(value)


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


class SmsRequest(CamelModel):
    phone_number: str
    message: Optional[str] = Field(None, min_length=1, max_length=160)
    first_name: Optional[str] = None
    message_type: Literal["welcome", "followup", "custom"] = "custom"

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, value: str) -> str:
        return validate_phone(value)


class SmsTestRequest(CamelModel):
    phone_number: str

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, value: str) -> str:
        return validate_phone(value)


class PhotoPathRequest(CamelModel):
    photo_path: str = Field(..., min_length=1)


class ParticipantPhotoRequest(CamelModel):
    submission_id: str = Field(..., min_length=1)
    phone_verification: Optional[str] = None


# ========== HELPERS ==========

REQUEST_LOCATIONS = ("body", "query", "path", "header", "cookie")


def format_issues(issues, schema: Optional[Type[BaseModel]] = None) -> List[str]:
    """One "field: message" string per pydantic error dict, named by API alias"""
    messages = []
    for issue in issues:
        loc = list(issue.get("loc", ()))
        if loc and loc[0] in REQUEST_LOCATIONS:
            loc = loc[1:]
        if schema is not None and loc and loc[0] in schema.model_fields:
            loc[0] = schema.model_fields[loc[0]].alias or loc[0]
        path = ".".join(str(part) for part in loc)
        message = issue["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{path}: {message}" if path else message)
    return messages


def format_errors(error: ValidationError, schema: Optional[Type[BaseModel]] = None) -> List[str]:
    return format_issues(error.errors(), schema)


def validate_data(schema: Type[T], data) -> Tuple[bool, Union[T, List[str]]]:
    """Validate a payload; returns (True, model) or (False, errors) and never raises"""
    if not isinstance(data, dict):
        return False, ["Invalid data format"]
    try:
        return True, schema.model_validate(data)
    except ValidationError as e:
        return False, format_errors(e, schema)
