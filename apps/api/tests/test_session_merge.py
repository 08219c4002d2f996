"""Tests for the fill-if-absent auto-fill merge."""

from casewizard.services.session_merge import (
    merge_into_live_session,
    merge_responses,
    merge_with_report,
)
from casewizard.services.session_records import new_session


def _live(**client):
    session = new_session("workflow_live")
    session["client"].update(client)
    return session


def _matched():
    return {
        "sessionId": "workflow_saved",
        "status": "completed",
        "stage": 5,
        "updatedAt": "2025-05-01T00:00:00+00:00",
        "client": {
            "_id": "client-9",
            "firstName": "Ana",
            "lastName": "Ruiz",
            "email": "ana@example.com",
            "phone": "555-9999",
            "address": {"street": "1 Main St", "city": "Austin", "country": "Mexico"},
        },
        "case": {"_id": "case-3", "title": "Spousal petition", "formCaseIds": {"I-130": "CR-1"}},
        "selectedForms": ["I-130"],
        "clientCredentials": {"email": "ana@example.com", "password": "hunter2"},
    }


def test_user_entered_value_is_kept():
    merged = merge_into_live_session(_matched(), _live(phone="555-0000"))

    assert merged["client"]["phone"] == "555-0000"
    assert merged["client"]["firstName"] == "Ana"


def test_address_is_merged_key_by_key():
    live = _live()
    live["client"]["address"]["city"] = "Denver"

    merged = merge_into_live_session(_matched(), live)

    address = merged["client"]["address"]
    assert address["city"] == "Denver"
    assert address["street"] == "1 Main St"
    assert address["country"] == "Mexico"
    assert address["zipCode"] == ""


def test_live_owned_keys_are_not_adopted():
    live = _live()

    merged = merge_into_live_session(_matched(), live)

    assert merged["sessionId"] == "workflow_live"
    assert merged["status"] == "in-progress"
    assert merged["updatedAt"] == live["updatedAt"]


def test_stage_never_regresses():
    live = _live()
    live["stage"] = 6

    merged = merge_into_live_session(_matched(), live)
    assert merged["stage"] == 6

    live["stage"] = 2
    merged = merge_into_live_session(_matched(), live)
    assert merged["stage"] == 5


def test_secrets_are_not_copied():
    merged = merge_into_live_session(_matched(), _live())

    assert "password" not in merged["clientCredentials"]
    assert merged["clientCredentials"]["email"] == "ana@example.com"


def test_ids_are_aliased_and_form_case_ids_mirrored():
    merged = merge_into_live_session(_matched(), _live())

    assert merged["client"]["id"] == "client-9"
    assert merged["case"]["id"] == "case-3"
    assert merged["formCaseIds"] == {"I-130": "CR-1"}
    assert merged["case"]["formCaseIds"] == {"I-130": "CR-1"}


def test_merge_is_idempotent():
    once = merge_into_live_session(_matched(), _live(phone="555-0000"))
    twice = merge_into_live_session(_matched(), once)

    assert twice == once


def test_no_match_leaves_live_untouched():
    live = _live(phone="555-0000")

    merged, adopted = merge_with_report(None, live)

    assert merged == live
    assert merged is not live
    assert adopted == []


def test_report_lists_adopted_paths():
    _, adopted = merge_with_report(_matched(), _live(phone="555-0000"))

    assert "client.firstName" in adopted
    assert "client.address.street" in adopted
    assert "client.phone" not in adopted


def test_responses_are_additive():
    merged = merge_responses({"q1": "mine"}, {"q1": "theirs", "q2": "extra"})

    assert merged == {"q1": "mine", "q2": "extra"}


def test_assignment_responses_merge_for_same_assignment():
    live = _live()
    live["questionnaireAssignment"] = {"_id": "assign-1", "responses": {"full_name": "Ana"}}
    matched = _matched()
    matched["questionnaireAssignment"] = {
        "_id": "assign-1",
        "status": "in-progress",
        "responses": {"full_name": "Other", "birth_city": "Lima"},
    }

    merged = merge_into_live_session(matched, live)

    assignment = merged["questionnaireAssignment"]
    assert assignment["responses"] == {"full_name": "Ana", "birth_city": "Lima"}
    assert assignment["status"] == "in-progress"


def test_assignment_responses_ignored_for_other_assignment():
    live = _live()
    live["questionnaireAssignment"] = {"_id": "assign-1", "responses": {}}
    matched = _matched()
    matched["questionnaireAssignment"] = {"_id": "assign-2", "responses": {"q": "a"}}

    merged = merge_into_live_session(matched, live)

    assert merged["questionnaireAssignment"]["responses"] == {}
