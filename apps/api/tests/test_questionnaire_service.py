"""Tests for questionnaire normalization and response-key validation."""

import pytest

from casewizard.services.questionnaire_service import (
    QuestionnaireIntegrityError,
    missing_required,
    normalize_questionnaire,
    require_fields,
    validate_questionnaire,
    validate_response_keys,
)


@pytest.mark.parametrize(
    "shape",
    [
        lambda items: {"fields": items},
        lambda items: {"questions": items},
        lambda items: {"form": {"fields": items}},
        lambda items: {"form": {"questions": items}},
        lambda items: {"data": {"fields": items}},
        lambda items: {"data": {"questions": items}},
    ],
)
def test_every_source_shape_normalizes_to_fields(shape):
    items = [
        {"id": "a", "label": "First", "type": "text"},
        {"question": "Second", "type": "select", "options": ["x", "y"]},
    ]
    normalized = normalize_questionnaire({"_id": "quest-2", "title": "T", **shape(items)})

    assert len(normalized["fields"]) == 2
    assert "questions" not in normalized
    for field in normalized["fields"]:
        assert {"id", "type", "label", "required"} <= set(field)


def test_data_questions_shape_fills_defaults():
    normalized = normalize_questionnaire(
        {"_id": "quest-3", "title": "Intake", "data": {"questions": [{}, {"label": "Email"}]}}
    )

    first, second = normalized["fields"]
    assert first == {
        "id": "field_0",
        "type": "text",
        "label": "Question 1",
        "required": True,
        "options": [],
        "placeholder": "",
        "description": "",
        "validation": {},
    }
    assert second["label"] == "Email"
    assert second["id"] == "field_1"


def test_non_object_fields_are_skipped():
    normalized = normalize_questionnaire({"fields": ["bad", {"id": "ok", "label": "Ok"}]})
    assert [field["id"] for field in normalized["fields"]] == ["ok"]


def test_remote_sourced_flag_and_title_fallback():
    normalized = normalize_questionnaire({"id": "q_abc", "name": "Asylum screening"})
    assert normalized["remoteSourced"] is True
    assert normalized["title"] == "Asylum screening"
    assert normalized["_id"] == "q_abc"


def test_validate_questionnaire_reports_integrity_errors():
    errors = validate_questionnaire(
        normalize_questionnaire(
            {"title": "", "fields": [{"id": "c", "label": "Pick", "type": "radio"}]}
        )
    )
    assert "Title is required" in errors
    assert "Category is required" in errors
    assert "Field 1: Options are required for radio fields" in errors


def test_require_fields_rejects_empty_questionnaire():
    with pytest.raises(QuestionnaireIntegrityError):
        require_fields({"_id": "empty", "title": "Empty", "fields": []})


def test_response_keys_accept_ids_and_labels(questionnaire):
    normalized = normalize_questionnaire(questionnaire)
    responses = {"full_name": "Ana Ruiz", "City of birth": "Quito", "shoe_size": "7"}

    assert validate_response_keys(normalized, responses) == ["shoe_size"]


def test_missing_required_checks_label_fallback(questionnaire):
    normalized = normalize_questionnaire(questionnaire)

    assert missing_required(normalized, {}) == ["full_name"]
    assert missing_required(normalized, {"Full legal name": "Ana Ruiz"}) == []
