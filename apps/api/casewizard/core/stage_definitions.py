"""Wizard stage definitions and ordering."""

from __future__ import annotations

from enum import Enum


class WizardStage(str, Enum):
    START = "start"
    CLIENT = "client"
    CASE = "case"
    FORMS = "forms"
    QUESTIONNAIRE = "questionnaire"
    ANSWERS = "answers"
    FORM_DETAILS = "form-details"
    AUTO_FILL = "auto-fill"


STAGE_ORDER: list[WizardStage] = [
    WizardStage.START,
    WizardStage.CLIENT,
    WizardStage.CASE,
    WizardStage.FORMS,
    WizardStage.QUESTIONNAIRE,
    WizardStage.ANSWERS,
    WizardStage.FORM_DETAILS,
    WizardStage.AUTO_FILL,
]

STAGE_TITLES = {
    WizardStage.START: "Start",
    WizardStage.CLIENT: "Create Client",
    WizardStage.CASE: "Create Case",
    WizardStage.FORMS: "Select Forms",
    WizardStage.QUESTIONNAIRE: "Assign Questions",
    WizardStage.ANSWERS: "Collect Answers",
    WizardStage.FORM_DETAILS: "Form Details",
    WizardStage.AUTO_FILL: "Auto-fill Forms",
}

STAGE_DESCRIPTIONS = {
    WizardStage.START: "New or existing client",
    WizardStage.CLIENT: "Add new client information",
    WizardStage.CASE: "Set up case details and category",
    WizardStage.FORMS: "Choose required forms for filing",
    WizardStage.QUESTIONNAIRE: "Send questionnaire to client",
    WizardStage.ANSWERS: "Review client responses",
    WizardStage.FORM_DETAILS: "Complete form information",
    WizardStage.AUTO_FILL: "Generate completed forms",
}

# Committing one of these stages writes the cumulative session through.
WRITE_THROUGH_STAGES = frozenset(
    {
        WizardStage.CLIENT,
        WizardStage.CASE,
        WizardStage.FORMS,
        WizardStage.QUESTIONNAIRE,
    }
)

FIRST_STAGE_INDEX = 0
LAST_STAGE_INDEX = len(STAGE_ORDER) - 1


def stage_at(index: int) -> WizardStage:
    if index < FIRST_STAGE_INDEX or index > LAST_STAGE_INDEX:
        raise ValueError(f"Stage index out of range: {index}")
    return STAGE_ORDER[index]


def stage_index(stage: WizardStage | str) -> int:
    return STAGE_ORDER.index(WizardStage(stage))


def clamp_stage_index(value: object) -> int:
    """Coerce a stored stage marker (index or slug) into a valid index."""
    if isinstance(value, bool):
        return FIRST_STAGE_INDEX
    if isinstance(value, int):
        return max(FIRST_STAGE_INDEX, min(LAST_STAGE_INDEX, value))
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return clamp_stage_index(int(stripped))
        try:
            return stage_index(stripped)
        except ValueError:
            return FIRST_STAGE_INDEX
    return FIRST_STAGE_INDEX


def get_stage_defs(current_index: int | None = None) -> list[dict[str, object]]:
    """Generate wizard stage descriptors with per-stage progress status."""
    stages: list[dict[str, object]] = []
    for order, stage in enumerate(STAGE_ORDER):
        if current_index is None:
            status = "pending"
        elif order < current_index:
            status = "completed"
        elif order == current_index:
            status = "current"
        else:
            status = "pending"
        stages.append(
            {
                "id": stage.value,
                "title": STAGE_TITLES[stage],
                "description": STAGE_DESCRIPTIONS[stage],
                "order": order,
                "status": status,
            }
        )
    return stages
