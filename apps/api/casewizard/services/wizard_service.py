"""Eight-stage case wizard state machine.

Stages run ``start → client → case → forms → questionnaire → answers →
form-details → auto-fill``. ``next()`` checks the current stage's exit
validation and the next stage's entry precondition before moving;
``previous()`` is always allowed; ``jump_to()`` only while bootstrapping a
resumed session or review handoff.

Committing the client, case, forms and questionnaire stages writes the
cumulative session through the persistence gateway. Entering ``answers``
starts a background auto-fill that merges the best saved session into the
live one without blocking the transition.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import validate_email
from pydantic_core import PydanticCustomError

from casewizard.core.config import settings
from casewizard.core.rate_limit import AccountCreationLimiter
from casewizard.core.results import Degraded, Failed
from casewizard.core.stage_definitions import (
    FIRST_STAGE_INDEX,
    LAST_STAGE_INDEX,
    WRITE_THROUGH_STAGES,
    WizardStage,
    clamp_stage_index,
    get_stage_defs,
    stage_at,
)
from casewizard.core.structured_logging import build_log_context
from casewizard.services import credentials_service, questionnaire_service
from casewizard.services.identity_service import (
    coerce_id,
    with_id_aliases,
)
from casewizard.services.session_matcher import (
    TIER_ASSIGNMENT,
    TIER_CLIENT_EMAIL,
    TIER_CLIENT_NAME,
    TIER_FORM_CASE_ID,
    MatchKey,
    SessionMatcher,
)
from casewizard.services.session_merge import merge_into_live_session, merge_with_report
from casewizard.services.session_records import (
    STATUS_COMPLETED,
    generate_object_id,
    new_session,
    strip_secrets,
    touch,
    utcnow,
)
from casewizard.utils.case_ids import generate_case_ids
from casewizard.utils.normalization import is_empty_value, normalize_email

logger = logging.getLogger(__name__)

AUTH_REQUIRED_MESSAGE = "Your sign-in has expired. Sign in again to keep saving this case."
DEGRADED_NOTICE = "Saved on this device; the case service is currently unavailable."

# Recency tiers can pick another client's session; never merge those.
AUTO_FILL_TIERS = frozenset(
    {TIER_FORM_CASE_ID, TIER_ASSIGNMENT, TIER_CLIENT_EMAIL, TIER_CLIENT_NAME}
)

DICT_GROUPS = frozenset({"client", "case", "clientCredentials", "formCaseIds"})
LIST_GROUPS = frozenset({"selectedForms", "formDetails"})
EDITABLE_GROUPS = DICT_GROUPS | LIST_GROUPS | {"selectedQuestionnaire", "responses"}


class WizardError(Exception):
    """Base wizard error."""

    pass


class IllegalTransitionError(WizardError):
    """A stage jump was requested outside of bootstrap."""

    pass


class UnknownFieldGroupError(WizardError):
    pass


@dataclass
class TransitionResult:
    moved: bool
    stage: WizardStage
    errors: list[str] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    auth_failed: bool = False
    payload: list[dict[str, Any]] | None = None


def _dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _entity_id(record: Mapping[str, Any] | None) -> str | None:
    if not isinstance(record, Mapping):
        return None
    return coerce_id(record.get("_id")) or coerce_id(record.get("id"))


def _email_error(email: Any) -> str | None:
    if not isinstance(email, str) or not email.strip():
        return "Client email is required"
    try:
        validate_email(email.strip())
    except PydanticCustomError:
        return "Client email is not a valid email address"
    return None


class WizardStateMachine:
    def __init__(
        self,
        gateway,
        matcher: SessionMatcher | None = None,
        *,
        account_limiter: AccountCreationLimiter | None = None,
        auto_fill_enabled: bool | None = None,
        session: dict[str, Any] | None = None,
    ):
        self.gateway = gateway
        self.matcher = matcher
        self.account_limiter = account_limiter
        self.auto_fill_enabled = (
            settings.AUTO_FILL_ENABLED if auto_fill_enabled is None else auto_fill_enabled
        )
        self.session: dict[str, Any] = session or new_session()
        self.questionnaire: dict[str, Any] | None = None
        self.auto_fill_source: str | None = None
        self.pending_notices: list[str] = []
        self._bootstrapping = False
        self._auto_fill_task: asyncio.Task | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self.session["sessionId"]

    @property
    def stage_index(self) -> int:
        return clamp_stage_index(self.session.get("stage"))

    @property
    def stage(self) -> WizardStage:
        return stage_at(self.stage_index)

    @property
    def auto_fill_pending(self) -> bool:
        return self._auto_fill_task is not None and not self._auto_fill_task.done()

    def _context(self, **kwargs: Any) -> dict[str, Any]:
        return build_log_context(
            session_id=self.session_id, stage=self.stage.value, **kwargs
        )

    def _result(self, moved: bool, **kwargs: Any) -> TransitionResult:
        notices = kwargs.pop("notices", [])
        notices = [*self.pending_notices, *notices]
        self.pending_notices = []
        return TransitionResult(moved=moved, stage=self.stage, notices=notices, **kwargs)

    def snapshot(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "stage": self.stage.value,
            "stageIndex": self.stage_index,
            "stages": get_stage_defs(self.stage_index),
            "session": copy.deepcopy(self.session),
            "autoFillPending": self.auto_fill_pending,
            "autoFillSource": self.auto_fill_source,
        }

    # -------------------------------------------------------------------------
    # Entry preconditions and exit validation
    # -------------------------------------------------------------------------

    def entry_errors(self, stage: WizardStage) -> list[str]:
        session = self.session
        if stage == WizardStage.CASE and not _entity_id(session.get("client")):
            return ["Create the client before setting up the case"]
        if stage == WizardStage.FORMS and not _entity_id(session.get("case")):
            return ["Create the case before selecting forms"]
        if stage == WizardStage.QUESTIONNAIRE and not session.get("selectedForms"):
            return ["Select at least one form before assigning a questionnaire"]
        if stage in (WizardStage.ANSWERS, WizardStage.FORM_DETAILS):
            assignment = session.get("questionnaireAssignment")
            if not _entity_id(assignment):
                return ["Assign a questionnaire before collecting answers"]
        if stage == WizardStage.AUTO_FILL:
            forms = session.get("selectedForms") or []
            case_ids = session.get("formCaseIds") or {}
            if not forms or any(not case_ids.get(form) for form in forms):
                return ["Every selected form needs a case id before auto-fill"]
        return []

    async def exit_errors(self, stage: WizardStage) -> list[str]:
        session = self.session
        if stage == WizardStage.CLIENT:
            client = _dict(session.get("client"))
            errors = []
            if is_empty_value(client.get("firstName")):
                errors.append("Client first name is required")
            if is_empty_value(client.get("lastName")):
                errors.append("Client last name is required")
            email_error = _email_error(client.get("email"))
            if email_error:
                errors.append(email_error)
            return errors
        if stage == WizardStage.CASE:
            case = _dict(session.get("case"))
            errors = []
            if is_empty_value(case.get("title")):
                errors.append("Case title is required")
            if is_empty_value(case.get("category")):
                errors.append("Case category is required")
            return errors
        if stage == WizardStage.FORMS:
            if not session.get("selectedForms"):
                return ["Select at least one form"]
            return []
        if stage == WizardStage.QUESTIONNAIRE:
            return await self._load_questionnaire()
        if stage == WizardStage.ANSWERS:
            return await self._validate_answers()
        return []

    async def _load_questionnaire(self) -> list[str]:
        selected = self.session.get("selectedQuestionnaire")
        if is_empty_value(selected):
            return ["Select a questionnaire for the client"]

        if isinstance(selected, Mapping) and questionnaire_service.raw_fields(selected):
            definition = self.gateway.cache_questionnaire(dict(selected))
        else:
            questionnaire_id = coerce_id(selected)
            result = await self.gateway.read_questionnaire(questionnaire_id)
            if isinstance(result, Failed) and result.value is None:
                return [AUTH_REQUIRED_MESSAGE]
            definition = result.value
            if definition is None:
                return ["The selected questionnaire could not be found"]

        try:
            self.questionnaire = questionnaire_service.require_fields(definition)
        except questionnaire_service.QuestionnaireIntegrityError as exc:
            logger.warning(
                "Questionnaire rejected", extra=self._context(reason="no fields")
            )
            return [str(exc)]
        return []

    async def _definition_for_answers(self) -> dict[str, Any] | None:
        if self.questionnaire is not None:
            return self.questionnaire
        assignment = _dict(self.session.get("questionnaireAssignment"))
        if questionnaire_service.raw_fields(assignment):
            return questionnaire_service.normalize_questionnaire(assignment)
        questionnaire_id = coerce_id(assignment.get("questionnaireId"))
        if questionnaire_id:
            result = await self.gateway.read_questionnaire(questionnaire_id)
            if result.value is not None:
                self.questionnaire = questionnaire_service.normalize_questionnaire(
                    result.value
                )
        return self.questionnaire

    async def _validate_answers(self) -> list[str]:
        assignment = _dict(self.session.get("questionnaireAssignment"))
        responses = _dict(assignment.get("responses"))
        definition = await self._definition_for_answers()
        if definition is None:
            self.pending_notices.append("Responses could not be checked against the questionnaire")
            return []
        unknown = questionnaire_service.validate_response_keys(definition, responses)
        if unknown:
            return [f"Responses reference unknown questions: {', '.join(unknown)}"]
        missing = questionnaire_service.missing_required(definition, responses)
        if missing:
            self.pending_notices.append(
                f"{len(missing)} required question(s) are still unanswered"
            )
        return []

    # -------------------------------------------------------------------------
    # Stage commits
    # -------------------------------------------------------------------------

    async def _commit(self, stage: WizardStage) -> list[str]:
        if stage == WizardStage.CLIENT:
            return await self._commit_client()
        if stage == WizardStage.CASE:
            self._commit_case()
        elif stage == WizardStage.FORMS:
            self._commit_forms()
        elif stage == WizardStage.QUESTIONNAIRE:
            return await self._commit_questionnaire()
        elif stage == WizardStage.ANSWERS:
            self._commit_answers()
        return []

    async def _commit_client(self) -> list[str]:
        client = _dict(self.session.get("client"))
        if not _entity_id(client):
            client["_id"] = generate_object_id()
        client = with_id_aliases(client)
        client["email"] = normalize_email(client.get("email")) or ""
        if is_empty_value(client.get("name")):
            client["name"] = " ".join(
                part for part in (client.get("firstName"), client.get("lastName")) if part
            )
        self.session["client"] = client

        credentials = strip_secrets(_dict(self.session.get("clientCredentials")))
        credentials["email"] = normalize_email(credentials.get("email")) or client["email"]
        self.session["clientCredentials"] = credentials

        if not credentials.get("createAccount") or self.account_limiter is None:
            return []
        summary = self.gateway.read_credentials_summary() or {}
        if summary.get("email") == credentials["email"] and (
            summary.get("userId") or summary.get("accountRequested")
        ):
            return []
        try:
            outcome = await credentials_service.request_account(
                self.gateway,
                self.account_limiter,
                {**client, "email": credentials["email"]},
                session_id=self.session_id,
                return_password=False,
            )
        except credentials_service.AccountCreationThrottledError as exc:
            return [str(exc)]
        if outcome.auth_failed:
            return [AUTH_REQUIRED_MESSAGE]
        if outcome.created:
            self.pending_notices.append("Client account created; login details were sent")
        elif outcome.existed:
            self.pending_notices.append("Client already has an account")
        elif outcome.notice:
            self.pending_notices.append(outcome.notice)
        return []

    def _commit_case(self) -> None:
        case = _dict(self.session.get("case"))
        if not _entity_id(case):
            case["_id"] = generate_object_id()
        case = with_id_aliases(case)
        case["clientId"] = _entity_id(self.session.get("client")) or case.get("clientId", "")
        case["formCaseIds"] = dict(self.session.get("formCaseIds") or {})
        self.session["case"] = case

    def _commit_forms(self) -> None:
        forms = [form for form in self.session.get("selectedForms") or [] if form]
        form_case_ids = generate_case_ids(
            forms, existing=dict(self.session.get("formCaseIds") or {})
        )
        self.session["selectedForms"] = forms
        self.session["formCaseIds"] = form_case_ids
        case = _dict(self.session.get("case"))
        case["assignedForms"] = list(forms)
        case["formCaseIds"] = dict(form_case_ids)
        self.session["case"] = case

    async def _commit_questionnaire(self) -> list[str]:
        definition = self.questionnaire or {}
        questionnaire_id = _entity_id(definition)
        current = _dict(self.session.get("questionnaireAssignment"))
        if current and coerce_id(current.get("questionnaireId")) == questionnaire_id:
            assignment = current
        else:
            assignment = {
                "_id": generate_object_id(),
                "status": "pending",
                "responses": {},
                "assignedAt": utcnow().isoformat(),
            }
        client = _dict(self.session.get("client"))
        form_case_ids = dict(self.session.get("formCaseIds") or {})
        assignment.update(
            {
                "questionnaireId": questionnaire_id,
                "questionnaireTitle": definition.get("title") or "",
                "clientId": _entity_id(client),
                "clientEmail": client.get("email") or "",
                "clientFirstName": client.get("firstName") or "",
                "clientLastName": client.get("lastName") or "",
                "caseId": _entity_id(self.session.get("case")),
                "formCaseIds": form_case_ids,
                "formCaseIdGenerated": next(iter(form_case_ids.values()), None),
            }
        )
        assignment = with_id_aliases(assignment)
        self.session["questionnaireAssignment"] = assignment
        self.session["selectedQuestionnaire"] = questionnaire_id or self.session.get(
            "selectedQuestionnaire"
        )

        result = await self.gateway.save_assignment(assignment)
        if isinstance(result, Failed):
            return [AUTH_REQUIRED_MESSAGE]
        if isinstance(result, Degraded):
            self.pending_notices.append(DEGRADED_NOTICE)
        return []

    def _commit_answers(self) -> None:
        assignment = _dict(self.session.get("questionnaireAssignment"))
        responses = _dict(assignment.get("responses"))
        if self.questionnaire and not questionnaire_service.missing_required(
            self.questionnaire, responses
        ):
            assignment["status"] = "completed"
        elif responses:
            assignment["status"] = "in-progress"
        self.session["questionnaireAssignment"] = assignment

    async def _write_through(self) -> list[str]:
        touch(self.session)
        result = await self.gateway.save_session(self.session)
        if isinstance(result, Failed):
            logger.warning(
                "Session write-through rejected credentials",
                extra=self._context(reason=result.reason),
            )
            return [AUTH_REQUIRED_MESSAGE]
        if isinstance(result, Degraded):
            self.pending_notices.append(DEGRADED_NOTICE)
        return []

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def next(self) -> TransitionResult:
        current = self.stage
        if self.stage_index >= LAST_STAGE_INDEX:
            return self._result(False, errors=["This is the final stage; complete the wizard"])

        errors = await self.exit_errors(current)
        if errors:
            return self._result(False, errors=errors)

        errors = await self._commit(current)
        if errors:
            return self._result(
                False, errors=errors, auth_failed=AUTH_REQUIRED_MESSAGE in errors
            )

        target = stage_at(self.stage_index + 1)
        errors = self.entry_errors(target)
        if errors:
            return self._result(False, errors=errors)

        previous_index = self.stage_index
        self.session["stage"] = previous_index + 1
        if current in WRITE_THROUGH_STAGES:
            errors = await self._write_through()
            if errors:
                self.session["stage"] = previous_index
                return self._result(False, errors=errors, auth_failed=True)

        logger.info("Wizard advanced", extra=self._context())
        self._on_enter(target)
        return self._result(True)

    async def previous(self) -> TransitionResult:
        if self.stage_index <= FIRST_STAGE_INDEX:
            return self._result(False)
        self.session["stage"] = self.stage_index - 1
        return self._result(True)

    def jump_to(self, stage: WizardStage | str | int) -> TransitionResult:
        """Resume at ``stage``; only allowed while bootstrapping.

        Lands on the furthest stage at or before ``stage`` whose entry
        precondition holds.
        """
        if not self._bootstrapping:
            raise IllegalTransitionError("Stage jumps are only allowed when resuming a session")
        target = clamp_stage_index(stage.value if isinstance(stage, WizardStage) else stage)
        while target > FIRST_STAGE_INDEX and self.entry_errors(stage_at(target)):
            target -= 1
        self.session["stage"] = target
        self._on_enter(stage_at(target))
        return self._result(True)

    def _on_enter(self, stage: WizardStage) -> None:
        if stage == WizardStage.ANSWERS:
            self.start_auto_fill()

    # -------------------------------------------------------------------------
    # Auto-fill
    # -------------------------------------------------------------------------

    def start_auto_fill(self) -> asyncio.Task | None:
        """Schedule the background match-and-merge; no-op when disabled or running."""
        if not self.auto_fill_enabled or self.matcher is None:
            return None
        if self.auto_fill_pending:
            return self._auto_fill_task
        self._auto_fill_task = asyncio.create_task(self._auto_fill())
        self._auto_fill_task.add_done_callback(self._log_auto_fill_failure)
        return self._auto_fill_task

    def _log_auto_fill_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Auto-fill failed", exc_info=exc, extra=self._context())

    async def _auto_fill(self) -> bool:
        client = _dict(self.session.get("client"))
        email = normalize_email(client.get("email")) or normalize_email(
            _dict(self.session.get("clientCredentials")).get("email")
        )
        if not email:
            return False
        assignment_id = _entity_id(self.session.get("questionnaireAssignment"))
        result = await self.matcher.resolve(
            MatchKey(client_email=email),
            context_assignment_id=assignment_id,
            exclude_session_ids=[self.session_id],
        )
        if result.session is None:
            return False
        if result.tier not in AUTO_FILL_TIERS:
            logger.info(
                "Auto-fill skipped unrelated session",
                extra=self._context(source=result.tier),
            )
            return False

        # Applied to whatever the live session looks like now.
        merged, adopted = merge_with_report(result.session, self.session)
        self.session = merged
        self.auto_fill_source = result.session.get("sessionId")
        if adopted:
            self.pending_notices.append(
                f"Filled {len(adopted)} field(s) from a previously saved session"
            )
        if result.degraded_reason and not result.auth_failed:
            self.pending_notices.append(DEGRADED_NOTICE)
        logger.info(
            "Auto-fill merged saved session",
            extra=self._context(source=result.tier),
        )
        return bool(adopted)

    async def wait_for_auto_fill(self) -> bool:
        """Await the in-flight auto-fill; True when it adopted any field."""
        if self._auto_fill_task is None:
            return False
        return await self._auto_fill_task

    # -------------------------------------------------------------------------
    # Bootstrap and edits
    # -------------------------------------------------------------------------

    async def bootstrap(
        self,
        *,
        session_id: str | None = None,
        handoff: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        """Start fresh, resume a saved session, or consume a review handoff."""
        self._bootstrapping = True
        try:
            if session_id:
                return await self._resume(session_id)
            if handoff:
                self.session = session_from_handoff(handoff)
                return self.jump_to(handoff.get("targetStep", FIRST_STAGE_INDEX))
            self.session = new_session()
            return self._result(True)
        finally:
            self._bootstrapping = False

    async def _resume(self, session_id: str) -> TransitionResult:
        result = await self.gateway.read_session(session_id)
        saved = result.value
        if saved is None:
            self.session = new_session()
            if isinstance(result, Failed):
                return self._result(False, errors=[AUTH_REQUIRED_MESSAGE], auth_failed=True)
            return self._result(
                False, notices=["Saved session not found; started a new session"]
            )
        session = merge_into_live_session(saved, new_session(session_id))
        for key in ("status", "createdAt", "updatedAt"):
            if saved.get(key):
                session[key] = saved[key]
        session["stage"] = FIRST_STAGE_INDEX
        self.session = session
        if isinstance(result, Degraded):
            self.pending_notices.append(DEGRADED_NOTICE)
        elif isinstance(result, Failed):
            self.pending_notices.append(AUTH_REQUIRED_MESSAGE)
        logger.info(
            "Resuming saved session",
            extra=self._context(source=getattr(result, "source", None)),
        )
        return self.jump_to(saved.get("stage", FIRST_STAGE_INDEX))

    def update(self, group: str, values: Any) -> dict[str, Any]:
        """Apply user edits to one field group of the live session."""
        if group not in EDITABLE_GROUPS:
            raise UnknownFieldGroupError(f"Unknown field group: {group}")
        values = strip_secrets(values)
        if group in DICT_GROUPS:
            if not isinstance(values, Mapping):
                raise WizardError(f"{group} expects an object")
            current = _dict(self.session.get(group))
            for key, value in values.items():
                if isinstance(value, Mapping) and isinstance(current.get(key), Mapping):
                    current[key] = {**current[key], **value}
                else:
                    current[key] = value
            if group in ("client", "case"):
                current = with_id_aliases(current)
            self.session[group] = current
        elif group in LIST_GROUPS:
            if not isinstance(values, list):
                raise WizardError(f"{group} expects a list")
            self.session[group] = values
        elif group == "responses":
            if not isinstance(values, Mapping):
                raise WizardError("responses expects an object")
            assignment = _dict(self.session.get("questionnaireAssignment"))
            if not _entity_id(assignment):
                raise WizardError("No questionnaire is assigned yet")
            assignment["responses"] = {**_dict(assignment.get("responses")), **values}
            self.session["questionnaireAssignment"] = assignment
        else:
            if isinstance(values, Mapping):
                self.session[group] = dict(values)
            else:
                self.session[group] = coerce_id(values)
            self.questionnaire = None
        return self.session

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def build_auto_fill_payload(self) -> list[dict[str, Any]]:
        """Per-form payload handed to the PDF filling collaborator."""
        client = _dict(self.session.get("client"))
        case = _dict(self.session.get("case"))
        assignment = _dict(self.session.get("questionnaireAssignment"))
        form_case_ids = self.session.get("formCaseIds") or {}
        form_details = {
            detail.get("formType"): detail
            for detail in self.session.get("formDetails") or []
            if isinstance(detail, Mapping)
        }
        payload = []
        for form_type in self.session.get("selectedForms") or []:
            payload.append(
                {
                    "formType": form_type,
                    "formCaseId": form_case_ids.get(form_type),
                    "clientId": _entity_id(client),
                    "caseId": _entity_id(case),
                    "client": {
                        key: client.get(key)
                        for key in (
                            "firstName",
                            "middleName",
                            "lastName",
                            "email",
                            "phone",
                            "dateOfBirth",
                            "nationality",
                            "address",
                        )
                    },
                    "responses": _dict(assignment.get("responses")),
                    "formData": _dict(_dict(form_details.get(form_type)).get("formData")),
                }
            )
        return payload

    async def complete(self) -> TransitionResult:
        if self.stage != WizardStage.AUTO_FILL:
            return self._result(False, errors=["Finish the earlier stages before auto-fill"])
        errors = self.entry_errors(WizardStage.AUTO_FILL)
        if errors:
            return self._result(False, errors=errors)

        payload = self.build_auto_fill_payload()
        previous_status = self.session.get("status")
        self.session["status"] = STATUS_COMPLETED
        errors = await self._write_through()
        if errors:
            self.session["status"] = previous_status
            return self._result(False, errors=errors, auth_failed=True)
        logger.info("Wizard completed", extra=self._context())
        return self._result(True, payload=payload)


def session_from_handoff(handoff: Mapping[str, Any]) -> dict[str, Any]:
    """Live session seeded from a review-screen handoff."""
    session = new_session(coerce_id(handoff.get("sessionId")))
    client = _dict(handoff.get("workflowClient"))
    if not client:
        first, _, last = (handoff.get("clientName") or "").partition(" ")
        client = {"firstName": first, "lastName": last, "name": handoff.get("clientName") or ""}
    client.setdefault("email", handoff.get("clientEmail") or "")
    if handoff.get("clientId"):
        client.setdefault("_id", handoff["clientId"])
    seeded: dict[str, Any] = {
        "client": with_id_aliases(client),
        "selectedForms": list(handoff.get("selectedForms") or []),
        "formCaseIds": _dict(handoff.get("formCaseIds")),
        "selectedQuestionnaire": handoff.get("selectedQuestionnaire")
        or handoff.get("questionnaireId"),
        "clientCredentials": _dict(handoff.get("clientCredentials")),
        "stage": handoff.get("currentStep", FIRST_STAGE_INDEX),
    }
    case = _dict(handoff.get("workflowCase"))
    if _entity_id(case):
        seeded["case"] = with_id_aliases(case)
    assignment_id = coerce_id(handoff.get("originalAssignmentId"))
    if assignment_id:
        seeded["questionnaireAssignment"] = with_id_aliases(
            {
                "_id": assignment_id,
                "questionnaireId": handoff.get("questionnaireId"),
                "questionnaireTitle": handoff.get("questionnaireTitle") or "",
                "fields": list(handoff.get("fields") or []),
                "responses": _dict(handoff.get("existingResponses")),
                "status": "completed" if handoff.get("existingResponses") else "pending",
            }
        )
    merged = merge_into_live_session(seeded, session)
    merged["stage"] = FIRST_STAGE_INDEX
    return merged
