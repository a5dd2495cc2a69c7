from bson import ObjectId

from database import dump_json_list, oid, parse_json_list, to_public


def test_json_list_keeps_order_and_unicode():
    items = ["Zürich", "a", "Zürich", "", "b"]
    assert parse_json_list(dump_json_list(items)) == items


def test_json_list_degrades_to_empty():
    assert parse_json_list("{not json") == []
    assert parse_json_list('{"a": 1}') == []
    assert parse_json_list(None) == []
    assert parse_json_list("") == []


def test_json_list_accepts_stored_list():
    assert parse_json_list(["x", "y"]) == ["x", "y"]


def test_oid():
    value = ObjectId()
    assert oid(str(value)) == value
    assert oid(value) is value
    assert oid("not-an-id") is None
    assert oid(None) is None


def test_to_public_renames_id():
    value = ObjectId()
    assert to_public({"_id": value, "name": "x"}) == {"id": str(value), "name": "x"}
    assert to_public(None) is None
