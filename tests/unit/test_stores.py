from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

from screening_api.services.location_service import (
    LocationHasSubmissions,
    LocationNotFound,
    LocationStore,
    delete_or_archive,
)
from screening_api.services.submissions_service import (
    SubmissionNotFound,
    SubmissionQuery,
    SubmissionStore,
)


def conditional_failure(operation):
    return ClientError({"Error": {"Code": "ConditionalCheckFailedException"}}, operation)


class RecordingTable:
    """Minimal boto3 Table double: records calls and serves canned pages"""

    name = "submissions"

    def __init__(self, pages=None, items=None):
        self.pages = list(pages or [])
        self.items = dict(items or {})
        self.calls = []

    def scan(self, **params):
        self.calls.append(("scan", params))
        return self.pages.pop(0) if self.pages else {"Items": []}

    def query(self, **params):
        self.calls.append(("query", params))
        return self.pages.pop(0) if self.pages else {"Items": []}

    def get_item(self, Key):
        item = self.items.get(Key["id"])
        return {"Item": item} if item else {}

    def put_item(self, Item, ConditionExpression=None):
        self.calls.append(("put", Item))
        self.items[Item["id"]] = Item

    def update_item(self, Key, **params):
        self.calls.append(("update", params))
        if Key["id"] not in self.items:
            raise conditional_failure("UpdateItem")
        item = self.items[Key["id"]]
        if "ExpressionAttributeNames" in params and "SET" in params.get("UpdateExpression", ""):
            for placeholder, attribute in params["ExpressionAttributeNames"].items():
                item[attribute] = params["ExpressionAttributeValues"][":" + placeholder[1:]]
        return {"Attributes": dict(item)}

    def delete_item(self, Key, ConditionExpression=None):
        if Key["id"] not in self.items:
            raise conditional_failure("DeleteItem")
        del self.items[Key["id"]]


# ========== SUBMISSIONS ==========

def test_create_converts_floats():
    table = RecordingTable()

    SubmissionStore(table).create({"id": "sub-1", "estimatedBMI": 27.5})

    assert table.items["sub-1"]["estimatedBMI"] == Decimal("27.5")


def test_get_converts_decimals_back():
    table = RecordingTable(items={"sub-1": {"id": "sub-1", "healthRiskScore": Decimal("5")}})

    assert SubmissionStore(table).get("sub-1") == {"id": "sub-1", "healthRiskScore": 5}
    assert SubmissionStore(table).get("missing") is None


def test_fetch_page_strips_table_name_and_encodes_cursor():
    table = RecordingTable(pages=[{
        "Items": [{"id": "a", "submissionDate": "2026-03-01"}, {"id": "b", "submissionDate": "2026-03-05"}],
        "LastEvaluatedKey": {"id": "b"},
    }])

    page = SubmissionStore(table).fetch_page(SubmissionQuery(page_size=2))

    operation, params = table.calls[0]
    assert operation == "scan"
    assert "TableName" not in params
    assert params["Limit"] == 2
    assert [item["id"] for item in page.items] == ["b", "a"]
    assert page.next_cursor is not None


def test_fetch_all_follows_every_page():
    table = RecordingTable(pages=[
        {"Items": [{"id": "a", "submissionDate": "2026-03-01"}], "LastEvaluatedKey": {"id": "a"}},
        {"Items": [{"id": "b", "submissionDate": "2026-03-02"}]},
    ])

    items = SubmissionStore(table).fetch_all(SubmissionQuery())

    assert [item["id"] for item in items] == ["b", "a"]
    assert table.calls[1][1]["ExclusiveStartKey"] == {"id": "a"}
    assert table.calls[0][1]["Limit"] == 1000


def test_fetch_page_uses_index_query():
    table = RecordingTable()

    SubmissionStore(table, "church-date-index").fetch_page(
        SubmissionQuery(church_id="loc-1", start_date="2026-03-01")
    )

    operation, params = table.calls[0]
    assert operation == "query"
    assert params["IndexName"] == "church-date-index"


def test_update_follow_up_writes_only_present_fields():
    table = RecordingTable(items={"sub-1": {"id": "sub-1", "followUpStatus": "Pending", "firstName": "Ana"}})

    updated = SubmissionStore(table).update_follow_up("sub-1", {"followUpStatus": "Contacted", "firstName": "X"})

    params = table.calls[-1][1]
    assert set(params["ExpressionAttributeNames"].values()) == {"followUpStatus", "updatedAt"}
    assert params["ConditionExpression"] == "attribute_exists(id)"
    assert updated["followUpStatus"] == "Contacted"
    assert updated["firstName"] == "Ana"


def test_update_follow_up_errors():
    store = SubmissionStore(RecordingTable())

    with pytest.raises(ValueError):
        store.update_follow_up("sub-1", {"firstName": "X"})
    with pytest.raises(SubmissionNotFound):
        store.update_follow_up("sub-1", {"followUpStatus": "Contacted"})


def test_has_submissions_scans_past_empty_pages():
    table = RecordingTable(pages=[
        {"Items": [], "LastEvaluatedKey": {"id": "x"}},
        {"Items": [{"id": "sub-7"}]},
    ])

    assert SubmissionStore(table).has_submissions_for_location("loc-1") is True
    assert len(table.calls) == 2


def test_has_submissions_with_index_limits_to_one():
    table = RecordingTable()

    assert SubmissionStore(table, "church-date-index").has_submissions_for_location("loc-1") is False
    assert table.calls[0][1]["Limit"] == 1


# ========== LOCATIONS ==========

LOCATION = {
    "name": "Grace Chapel",
    "address": "100 Main Street, Springfield",
    "contactPerson": "Pastor Lee",
    "contactEmail": "lee@gracechapel.org",
    "contactPhone": "555-222-3333",
}


def test_location_create_defaults():
    table = RecordingTable()

    item = LocationStore(table).create(LOCATION)

    assert item["isActive"] is True
    assert item["totalSubmissions"] == 0
    assert item["qrCode"] == f"qr-{item['id']}"
    assert table.items[item["id"]]["name"] == "Grace Chapel"


def test_location_update_unknown():
    with pytest.raises(LocationNotFound):
        LocationStore(RecordingTable()).update("missing", LOCATION)


def test_delete_or_archive():
    locations = LocationStore(RecordingTable(items={
        "loc-1": {"id": "loc-1", **LOCATION},
        "loc-2": {"id": "loc-2", **LOCATION},
    }))
    submissions = SubmissionStore(RecordingTable(pages=[{"Items": [{"id": "sub-1"}]}]))
    empty = SubmissionStore(RecordingTable())

    with pytest.raises(LocationHasSubmissions):
        delete_or_archive(locations, SubmissionStore(RecordingTable(pages=[{"Items": [{"id": "s"}]}])), "loc-1")
    assert delete_or_archive(locations, submissions, "loc-1", "archive") == "archived"
    assert delete_or_archive(locations, empty, "loc-2") == "deleted"
    assert "loc-2" not in locations.table.items
    with pytest.raises(LocationNotFound):
        delete_or_archive(locations, empty, "missing")
