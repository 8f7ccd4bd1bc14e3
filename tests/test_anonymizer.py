"""Tests for load-pass redaction."""

import copy

from recordstage.core.constants import DEFAULT_ANONYMIZE_RULES
from recordstage.processors.anonymizer import AnonymizationPolicy, PathSetPredicate, redact


def test_scalars_are_replaced_by_kind():
    predicate = PathSetPredicate(["/flag", "/count", "/amount", "/name", "/missing"])
    record = {"id": "1", "flag": True, "count": 7, "amount": 2.5, "name": "x", "missing": None}

    assert redact(record, predicate) == {
        "id": "1", "flag": False, "count": 0, "amount": 0, "name": "", "missing": None,
    }


def test_wildcard_matches_array_indexes():
    predicate = PathSetPredicate(["/addresses/*/city"])
    record = {"id": "1", "addresses": [{"city": "A", "zip": "1"}, {"city": "B"}]}

    assert redact(record, predicate)["addresses"] == [{"city": "", "zip": "1"}, {"city": ""}]


def test_wildcard_matches_one_segment_only():
    predicate = PathSetPredicate(["/a/*"])

    assert predicate("/a/0")
    assert not predicate("/a/0/b")
    assert not predicate("/a")


def test_objects_are_walked_not_replaced():
    predicate = PathSetPredicate(["/personal"])
    record = {"id": "1", "personal": {"email": "a@b"}}

    assert redact(record, predicate) == record


def test_redact_does_not_modify_input():
    predicate = PathSetPredicate(["/name"])
    record = {"id": "1", "name": "x", "nested": {"name": "kept"}}
    before = copy.deepcopy(record)

    result = redact(record, predicate)

    assert record == before
    assert result["nested"]["name"] == "kept"


def test_default_rules_for_users():
    policy = AnonymizationPolicy(DEFAULT_ANONYMIZE_RULES)
    predicate = policy.predicate_for("user_users")
    record = {
        "id": "1",
        "username": "jdoe",
        "active": True,
        "personal": {
            "lastName": "Doe",
            "email": "j@example.org",
            "preferredContactTypeId": "002",
            "addresses": [{"city": "Springfield", "primaryAddress": True}],
        },
    }

    result = redact(record, predicate)

    assert result["username"] == ""
    assert result["active"] is True
    assert result["personal"]["lastName"] == ""
    assert result["personal"]["email"] == ""
    assert result["personal"]["preferredContactTypeId"] == "002"
    assert result["personal"]["addresses"] == [{"city": "", "primaryAddress": True}]


def test_tables_without_rules_have_no_predicate():
    policy = AnonymizationPolicy({"user_users": ["/username"], "empty": []})

    assert policy.predicate_for("inventory_items") is None
    assert policy.predicate_for("empty") is None
    assert policy.predicate_for("user_users")("/username")
