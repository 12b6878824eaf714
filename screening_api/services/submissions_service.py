"""
Submission store
DynamoDB access for screening submissions: filtered, cursor-paginated
listing (GSI query when possible, scan otherwise), follow-up updates and
the occasional photo URL repair
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from screening_api.config import get_settings
from screening_api.models.submission import utc_now_iso
from screening_api.services.aws import get_dynamodb_resource

logger = logging.getLogger(__name__)

FETCH_ALL_PAGE_SIZE = 1000

FOLLOW_UP_FIELDS = ("followUpStatus", "followUpNotes", "followUpDate")


class SubmissionNotFound(Exception):
    pass


@dataclass
class SubmissionQuery:
    church_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    risk_levels: List[str] = field(default_factory=list)
    follow_up_statuses: List[str] = field(default_factory=list)
    search_term: Optional[str] = None
    page_size: Optional[int] = None
    exclusive_start_key: Optional[Dict] = None

    @classmethod
    def from_filters(cls, filters, **kwargs) -> "SubmissionQuery":
        """Build from a SubmissionFilters model"""
        return cls(
            church_id=filters.church_id,
            start_date=filters.start_date,
            end_date=filters.end_date,
            risk_levels=list(filters.risk_levels),
            follow_up_statuses=list(filters.follow_up_statuses),
            search_term=filters.search_term,
            **kwargs,
        )


@dataclass
class SubmissionPage:
    items: List[Dict]
    last_evaluated_key: Optional[Dict]
    next_cursor: Optional[str]


# ========== TYPE CONVERSION ==========

def to_dynamo(value: Any) -> Any:
    """Floats become Decimal; DynamoDB rejects Python floats"""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {key: to_dynamo(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_dynamo(item) for item in value]
    return value


def from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {key: from_dynamo(item) for key, item in value.items()}
    if isinstance(value, (list, set)):
        return [from_dynamo(item) for item in value]
    return value


# ========== CURSORS ==========

# Table key plus the location/date index key
CURSOR_KEY_FIELDS = {"id", "churchId", "submissionDate"}


def encode_cursor(key: Optional[Dict]) -> Optional[str]:
    if not key:
        return None
    return base64.b64encode(json.dumps(from_dynamo(key)).encode("utf-8")).decode("ascii")


def decode_cursor(cursor: Optional[str]) -> Optional[Dict]:
    """Malformed cursors decode to None rather than raising"""
    if not cursor:
        return None
    try:
        decoded = json.loads(base64.b64decode(cursor, validate=True).decode("utf-8"))
    except (binascii.Error, ValueError):
        logger.warning("Failed to decode submissions cursor")
        return None
    if not isinstance(decoded, dict) or not decoded:
        return None
    if not set(decoded) <= CURSOR_KEY_FIELDS or not all(isinstance(v, str) for v in decoded.values()):
        logger.warning("Submissions cursor is not a store key: %s", sorted(decoded))
        return None
    return decoded


# ========== QUERY BUILDING ==========

def normalize_end_date(end_date: Optional[str]) -> Optional[str]:
    """A bare YYYY-MM-DD end bound includes the whole day"""
    if end_date and len(end_date) == 10:
        return f"{end_date}T23:59:59.999Z"
    return end_date


def _in_clause(attribute_name: str, placeholder: str, values: List[str],
               names: Dict, expression_values: Dict) -> str:
    names[f"#{placeholder}"] = attribute_name
    placeholders = []
    for idx, value in enumerate(values):
        key = f":{placeholder}{idx}"
        expression_values[key] = value
        placeholders.append(key)
    return f"#{placeholder} IN ({', '.join(placeholders)})"


def uses_index(options: SubmissionQuery, index_name: Optional[str]) -> bool:
    return bool(options.church_id and (options.start_date or options.end_date) and index_name)


def build_dynamo_input(options: SubmissionQuery, table_name: str,
                       index_name: Optional[str] = None) -> Tuple[str, Dict]:
    """
    Build Query or Scan parameters for a listing request

    A Query against the church/date index is used when a location and at
    least one date bound are given and the index is configured. Key
    attributes go in the key condition there, since DynamoDB refuses
    filters on them. All remaining predicates are ANDed into the filter.
    """
    end_date = normalize_end_date(options.end_date)
    query_mode = uses_index(options, index_name)

    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}
    filters: List[str] = []

    if not query_mode:
        if options.church_id:
            names["#churchId"] = "churchId"
            values[":churchId"] = options.church_id
            filters.append("#churchId = :churchId")
        if options.start_date:
            names["#submissionDate"] = "submissionDate"
            values[":startDate"] = options.start_date
            filters.append("#submissionDate >= :startDate")
        if end_date:
            names["#submissionDate"] = "submissionDate"
            values[":endDate"] = end_date
            filters.append("#submissionDate <= :endDate")

    if options.risk_levels:
        filters.append(_in_clause("healthRiskLevel", "riskLevel", options.risk_levels, names, values))

    if options.follow_up_statuses:
        filters.append(_in_clause("followUpStatus", "followUpStatus", options.follow_up_statuses, names, values))

    params: Dict[str, Any] = {"TableName": table_name}
    if options.page_size:
        params["Limit"] = options.page_size
    if options.exclusive_start_key:
        params["ExclusiveStartKey"] = options.exclusive_start_key

    if query_mode:
        names["#churchId"] = "churchId"
        names["#submissionDate"] = "submissionDate"
        values[":churchId"] = options.church_id
        key_condition = "#churchId = :churchId"
        if options.start_date and end_date:
            values[":startDate"] = options.start_date
            values[":endDate"] = end_date
            key_condition += " AND #submissionDate BETWEEN :startDate AND :endDate"
        elif options.start_date:
            values[":startDate"] = options.start_date
            key_condition += " AND #submissionDate >= :startDate"
        else:
            values[":endDate"] = end_date
            key_condition += " AND #submissionDate <= :endDate"
        params["IndexName"] = index_name
        params["KeyConditionExpression"] = key_condition

    if filters:
        params["FilterExpression"] = " AND ".join(filters)
    if names:
        params["ExpressionAttributeNames"] = names
    if values:
        params["ExpressionAttributeValues"] = values

    return ("Query" if query_mode else "Scan"), params


def apply_search_filter(submissions: List[Dict], search_term: Optional[str]) -> List[Dict]:
    """Case-insensitive substring match on name, email, phone and id"""
    normalized = (search_term or "").strip().lower()
    if not normalized:
        return submissions

    def matches(submission: Dict) -> bool:
        for key in ("firstName", "lastName", "email", "phone", "id"):
            value = submission.get(key)
            if value and normalized in str(value).lower():
                return True
        return False

    return [submission for submission in submissions if matches(submission)]


def sort_newest_first(submissions: List[Dict]) -> List[Dict]:
    return sorted(submissions, key=lambda s: s.get("submissionDate") or "", reverse=True)


# ========== STORE ==========

class SubmissionStore:
    def __init__(self, table, index_name: Optional[str] = None):
        self.table = table
        self.index_name = index_name

    def _run(self, operation: str, params: Dict) -> Dict:
        call_params = {key: value for key, value in params.items() if key != "TableName"}
        if operation == "Query":
            return self.table.query(**call_params)
        return self.table.scan(**call_params)

    def create(self, item: Dict) -> Dict:
        self.table.put_item(
            Item=to_dynamo(item),
            ConditionExpression="attribute_not_exists(id)",
        )
        return item

    def get(self, submission_id: str) -> Optional[Dict]:
        item = self.table.get_item(Key={"id": submission_id}).get("Item")
        return from_dynamo(item) if item else None

    def fetch_page(self, options: SubmissionQuery) -> SubmissionPage:
        operation, params = build_dynamo_input(options, self.table.name, self.index_name)
        result = self._run(operation, params)

        items = [from_dynamo(item) for item in result.get("Items", [])]
        items = sort_newest_first(apply_search_filter(items, options.search_term))
        last_key = result.get("LastEvaluatedKey")

        return SubmissionPage(
            items=items,
            last_evaluated_key=from_dynamo(last_key) if last_key else None,
            next_cursor=encode_cursor(last_key),
        )

    def fetch_all(self, options: SubmissionQuery) -> List[Dict]:
        """Follow cursors until the store is exhausted"""
        submissions: List[Dict] = []
        options.page_size = FETCH_ALL_PAGE_SIZE
        options.exclusive_start_key = None

        while True:
            page = self.fetch_page(options)
            submissions.extend(page.items)
            if not page.last_evaluated_key:
                break
            options.exclusive_start_key = page.last_evaluated_key

        return sort_newest_first(submissions)

    def scan_all(self) -> List[Dict]:
        return self.fetch_all(SubmissionQuery())

    def update_follow_up(self, submission_id: str, updates: Dict) -> Dict:
        """
        Sparse update of follow-up fields

        Only keys present in updates are written, plus updatedAt.

        Raises:
            ValueError: no follow-up fields supplied
            SubmissionNotFound: no submission with this id
        """
        present = {key: updates[key] for key in FOLLOW_UP_FIELDS if key in updates}
        if not present:
            raise ValueError("No fields to update")

        present["updatedAt"] = utc_now_iso()
        names = {f"#{key}": key for key in present}
        values = {f":{key}": value for key, value in present.items()}
        set_clause = ", ".join(f"#{key} = :{key}" for key in present)

        try:
            result = self.table.update_item(
                Key={"id": submission_id},
                UpdateExpression=f"SET {set_clause}",
                ConditionExpression="attribute_exists(id)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=to_dynamo(values),
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise SubmissionNotFound(submission_id) from e
            raise
        return from_dynamo(result["Attributes"])

    def update_photo_url(self, submission_id: str, selfie_url: str) -> None:
        self.table.update_item(
            Key={"id": submission_id},
            UpdateExpression="SET selfieUrl = :url, updatedAt = :updatedAt",
            ConditionExpression="attribute_exists(id)",
            ExpressionAttributeValues={":url": selfie_url, ":updatedAt": utc_now_iso()},
        )

    def has_submissions_for_location(self, church_id: str) -> bool:
        if self.index_name:
            result = self.table.query(
                IndexName=self.index_name,
                KeyConditionExpression="#churchId = :churchId",
                ExpressionAttributeNames={"#churchId": "churchId"},
                ExpressionAttributeValues={":churchId": church_id},
                Limit=1,
            )
            return bool(result.get("Items"))

        # Scan limits apply before the filter, so keep paging until a hit
        params = {
            "FilterExpression": "#churchId = :churchId",
            "ExpressionAttributeNames": {"#churchId": "churchId"},
            "ExpressionAttributeValues": {":churchId": church_id},
            "ProjectionExpression": "id",
        }
        while True:
            result = self.table.scan(**params)
            if result.get("Items"):
                return True
            if not result.get("LastEvaluatedKey"):
                return False
            params["ExclusiveStartKey"] = result["LastEvaluatedKey"]

    def describe(self) -> Dict:
        """Table metadata; used by the health check"""
        return self.table.meta.client.describe_table(TableName=self.table.name)


_store: Optional[SubmissionStore] = None


def get_submission_store() -> SubmissionStore:
    """Dependency to get the submission store"""
    global _store
    if _store is None:
        settings = get_settings()
        table = get_dynamodb_resource().Table(settings.SUBMISSIONS_TABLE)
        _store = SubmissionStore(table, settings.SUBMISSIONS_GSI_CHURCH_DATE)
    return _store
