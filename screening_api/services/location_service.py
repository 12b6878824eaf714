"""
Outreach location store
CRUD over the locations table plus the delete-or-archive rule: a location
referenced by any submission can only be archived
"""
import logging
import uuid
from typing import Dict, List, Optional

from botocore.exceptions import ClientError

from screening_api.config import get_settings
from screening_api.models.submission import build_location_item, utc_now_iso
from screening_api.services.aws import get_dynamodb_resource
from screening_api.services.submissions_service import from_dynamo

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "address", "contactPerson", "contactEmail", "contactPhone")


class LocationNotFound(Exception):
    pass


class LocationHasSubmissions(Exception):
    """Hard delete refused because submissions reference the location"""


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response["Error"]["Code"] == "ConditionalCheckFailedException"


class LocationStore:
    def __init__(self, table):
        self.table = table

    def list_all(self) -> List[Dict]:
        items: List[Dict] = []
        params: Dict = {}
        while True:
            result = self.table.scan(**params)
            items.extend(from_dynamo(item) for item in result.get("Items", []))
            if not result.get("LastEvaluatedKey"):
                break
            params["ExclusiveStartKey"] = result["LastEvaluatedKey"]
        return sorted(items, key=lambda item: item.get("createdDate") or "", reverse=True)

    def get(self, location_id: str) -> Optional[Dict]:
        item = self.table.get_item(Key={"id": location_id}).get("Item")
        return from_dynamo(item) if item else None

    def create(self, data: Dict) -> Dict:
        location_id = str(uuid.uuid4())
        item = build_location_item(location_id, data, utc_now_iso())
        self.table.put_item(Item=item, ConditionExpression="attribute_not_exists(id)")
        logger.info("Created location %s (%s)", location_id, item["name"])
        return item

    def update(self, location_id: str, data: Dict) -> Dict:
        names = {f"#{key}": key for key in EDITABLE_FIELDS}
        values = {f":{key}": data[key] for key in EDITABLE_FIELDS}
        values[":updatedAt"] = utc_now_iso()
        set_clause = ", ".join(f"#{key} = :{key}" for key in EDITABLE_FIELDS)
        try:
            result = self.table.update_item(
                Key={"id": location_id},
                UpdateExpression=f"SET {set_clause}, updatedAt = :updatedAt",
                ConditionExpression="attribute_exists(id)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                raise LocationNotFound(location_id) from e
            raise
        return from_dynamo(result["Attributes"])

    def delete(self, location_id: str) -> None:
        try:
            self.table.delete_item(Key={"id": location_id}, ConditionExpression="attribute_exists(id)")
        except ClientError as e:
            if _is_conditional_failure(e):
                raise LocationNotFound(location_id) from e
            raise

    def archive(self, location_id: str) -> None:
        try:
            self.table.update_item(
                Key={"id": location_id},
                UpdateExpression="SET isActive = :inactive, archivedAt = :ts",
                ConditionExpression="attribute_exists(id)",
                ExpressionAttributeValues={":inactive": False, ":ts": utc_now_iso()},
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                raise LocationNotFound(location_id) from e
            raise

    def increment_submissions(self, location_id: str) -> None:
        """Bump the denormalized counter; callers treat failure as non-fatal"""
        self.table.update_item(
            Key={"id": location_id},
            UpdateExpression="ADD totalSubmissions :one",
            ConditionExpression="attribute_exists(id)",
            ExpressionAttributeValues={":one": 1},
        )


def delete_or_archive(locations: LocationStore, submissions, location_id: str,
                      action: Optional[str] = None) -> str:
    """
    Remove a location

    Hard-deletes when no submission references it. Otherwise the caller must
    ask for action="archive", which deactivates it instead.

    Returns:
        "deleted" or "archived"

    Raises:
        LocationNotFound: unknown id
        LocationHasSubmissions: referenced and no archive requested
    """
    if locations.get(location_id) is None:
        raise LocationNotFound(location_id)

    if submissions.has_submissions_for_location(location_id):
        if action != "archive":
            raise LocationHasSubmissions(location_id)
        locations.archive(location_id)
        logger.info("Archived location %s", location_id)
        return "archived"

    locations.delete(location_id)
    logger.info("Deleted location %s", location_id)
    return "deleted"


_store: Optional[LocationStore] = None


def get_location_store() -> LocationStore:
    """Dependency to get the location store"""
    global _store
    if _store is None:
        _store = LocationStore(get_dynamodb_resource().Table(get_settings().LOCATIONS_TABLE))
    return _store
