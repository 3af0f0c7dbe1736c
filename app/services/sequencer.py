"""Prompt sequencer: blueprints in, an ordered and gated worklist out.

Every task depends on the task generated just before it, plus any earlier
task it names explicitly. A task becomes ``unlocked`` as soon as all of its
prerequisites are ``completed`` or ``skipped``.
"""

import json
import logging
import re
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.config import settings
from app.errors import (
    GenerationFailedError,
    InvalidInputError,
    PrerequisitesUnmetError,
    ProviderExhaustedError,
)
from app.models.blueprint import Blueprint, BlueprintSuite
from app.models.project import Project
from app.models.prompt import ImplementationPrompt, PromptSequence
from app.services.ai_gateway import AIGateway
from app.services.credits import CREDIT_COSTS, ledger
from app.services.parsing import Failed, Parsed, parse_structured, strip_wrappers
from app.services.sequencer_templates import (
    CATEGORY_BLUEPRINTS,
    CATEGORY_INFO,
    DEFAULT_TECH_STACK,
    DEFAULT_USER_ACTIONS,
    ENGINEERING_MANAGER_SYSTEM_PROMPT,
    PROMPT_CATEGORIES,
    build_category_request,
    build_regenerate_request,
)

logger = logging.getLogger(__name__)

PROMPT_STATUSES = ("pending", "unlocked", "in_progress", "completed", "skipped")
DONE_STATUSES = ("completed", "skipped")
GATED_STATUSES = ("in_progress", "completed")


def _string_list(v: Any) -> list[str]:
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, list):
        return []
    return [str(item).strip() for item in v if str(item).strip()]


class TaskDraft(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    content: str = ""
    prerequisites: list[str] = Field(default_factory=list)
    user_actions: list[str] = Field(default_factory=list, alias="userActions")
    acceptance_criteria: list[str] = Field(default_factory=list, alias="acceptanceCriteria")

    @field_validator("title", mode="before")
    @classmethod
    def _clean_title(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("prerequisites", "user_actions", "acceptance_criteria", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _string_list(v)


def decode_task_batch(payload: Any) -> list[TaskDraft]:
    if isinstance(payload, dict):
        items = payload.get("tasks", payload.get("prompts", [payload]))
    else:
        items = payload
    if not isinstance(items, list):
        raise ValueError("task batch is not a list")

    drafts = []
    for item in items:
        try:
            drafts.append(TaskDraft.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed task: {e.errors()[0]['msg']}")
    if not drafts:
        raise ValueError("no usable tasks in response")
    return drafts


_COMPONENT_SPLIT = re.compile(r"^##\s*(?:\S+\s+)?Component:\s*", re.MULTILINE | re.IGNORECASE)
_LIST_ITEM = re.compile(r"^\s*[-*]\s*(?:\[.\])?\s*(.+)$", re.MULTILINE)


def _section(text: str, heading: str) -> str:
    match = re.search(rf"###\s*{heading}([\s\S]*?)(?=^###|\Z)", text, re.IGNORECASE | re.MULTILINE)
    return match.group(1) if match else ""


def parse_markdown_tasks(text: str) -> list[TaskDraft]:
    """Read tasks laid out as ``## Component: <title>`` markdown sections."""
    drafts = []
    for section in _COMPONENT_SPLIT.split(text)[1:]:
        lines = section.strip().split("\n")
        title = lines[0].strip() if lines else ""
        if not title:
            continue

        prerequisites = []
        for item in _LIST_ITEM.findall(_section(section, "Prerequisites")):
            if item.lower().startswith("required files"):
                continue
            item = re.sub(r"^completed:\s*", "", item, flags=re.IGNORECASE)
            prerequisites.extend(p.strip() for p in item.split(",") if p.strip())

        content = strip_wrappers(_section(section, "Implementation Prompt")) or section.strip()
        drafts.append(
            TaskDraft(
                title=title,
                content=content,
                prerequisites=prerequisites,
                user_actions=_LIST_ITEM.findall(_section(section, "User Action Required")),
                acceptance_criteria=_LIST_ITEM.findall(_section(section, "Acceptance Criteria")),
            )
        )
    return drafts


def parse_task_batch(raw: str | None) -> Parsed[list[TaskDraft]] | Failed:
    outcome = parse_structured(raw, decode_task_batch)
    if isinstance(outcome, Parsed):
        return outcome
    drafts = parse_markdown_tasks(strip_wrappers(raw))
    if drafts:
        return Parsed(drafts)
    return outcome


def json_list(value: str) -> list[str]:
    return json.loads(value or "[]")


def extract_tech_stack(blueprints: list[Blueprint]) -> str:
    for blueprint_type in ("frontend", "backend"):
        for blueprint in blueprints:
            if blueprint.type != blueprint_type or not blueprint.content:
                continue
            match = re.search(r"framework\s*:\s*([^\n]+)", blueprint.content, re.IGNORECASE)
            if match:
                stack = match.group(1).strip(" *_`")
                if stack:
                    return stack
    return DEFAULT_TECH_STACK


def applicable_categories(blueprint_types: set[str]) -> list[str]:
    return [
        c
        for c in PROMPT_CATEGORIES
        if not CATEGORY_BLUEPRINTS[c] or blueprint_types & set(CATEGORY_BLUEPRINTS[c])
    ]


def get_sequence(session: Session, project_id: int, user_id: int) -> PromptSequence | None:
    return session.exec(
        select(PromptSequence).where(
            PromptSequence.project_id == project_id,
            PromptSequence.user_id == user_id,
        )
    ).first()


def list_prompts(session: Session, project_id: int, user_id: int) -> list[ImplementationPrompt]:
    return list(
        session.exec(
            select(ImplementationPrompt)
            .where(
                ImplementationPrompt.project_id == project_id,
                ImplementationPrompt.user_id == user_id,
            )
            .order_by(ImplementationPrompt.sequence)
        ).all()
    )


def completed_blueprints(session: Session, suite: BlueprintSuite) -> list[Blueprint]:
    return list(
        session.exec(
            select(Blueprint)
            .where(
                Blueprint.suite_id == suite.id,
                Blueprint.user_id == suite.user_id,
                Blueprint.status == "complete",
            )
            .order_by(Blueprint.id)
        ).all()
    )


def _unique_title(title: str, known: dict[str, str]) -> str:
    candidate = title
    n = 2
    while candidate.lower() in known:
        candidate = f"{title} ({n})"
        n += 1
    return candidate


def _resolve_prerequisites(
    declared: list[str], predecessor: str | None, known: dict[str, str], title: str
) -> list[str]:
    resolved = [predecessor] if predecessor else []
    for name in declared:
        canonical = known.get(name.lower())
        if canonical is None:
            logger.warning(f"Dropping unknown prerequisite {name!r} of task {title!r}")
            continue
        if canonical not in resolved:
            resolved.append(canonical)
    return resolved


def unmet_prerequisites(session: Session, prompt: ImplementationPrompt) -> list[str]:
    prerequisites = json_list(prompt.prerequisites)
    if not prerequisites:
        return []
    done = set(
        session.exec(
            select(ImplementationPrompt.title).where(
                ImplementationPrompt.project_id == prompt.project_id,
                ImplementationPrompt.user_id == prompt.user_id,
                ImplementationPrompt.title.in_(prerequisites),
                ImplementationPrompt.status.in_(DONE_STATUSES),
            )
        ).all()
    )
    return [t for t in prerequisites if t not in done]


def unlock_ready_prompts(session: Session, project_id: int, user_id: int) -> list[ImplementationPrompt]:
    prompts = list_prompts(session, project_id, user_id)
    done = {p.title for p in prompts if p.status in DONE_STATUSES}
    unlocked = []
    for prompt in prompts:
        if prompt.status == "pending" and all(t in done for t in json_list(prompt.prerequisites)):
            prompt.status = "unlocked"
            prompt.updated_at = datetime.utcnow()
            session.add(prompt)
            unlocked.append(prompt)
    session.commit()
    for prompt in unlocked:
        logger.info(f"Unlocked prompt {prompt.sequence} ({prompt.title!r})")
    return unlocked


def _adjust_completed(session: Session, sequence: PromptSequence, delta: int) -> None:
    """Move the completed counter with SQL-side arithmetic, then flip to complete."""
    if delta > 0:
        session.connection().execute(
            update(PromptSequence)
            .where(
                PromptSequence.id == sequence.id,
                PromptSequence.completed_prompts < PromptSequence.total_prompts,
            )
            .values(completed_prompts=PromptSequence.completed_prompts + 1)
        )
    elif delta < 0:
        session.connection().execute(
            update(PromptSequence)
            .where(PromptSequence.id == sequence.id, PromptSequence.completed_prompts > 0)
            .values(completed_prompts=PromptSequence.completed_prompts - 1)
        )
    # Not reverted when a prompt is un-completed later
    session.connection().execute(
        update(PromptSequence)
        .where(
            PromptSequence.id == sequence.id,
            PromptSequence.total_prompts > 0,
            PromptSequence.completed_prompts >= PromptSequence.total_prompts,
        )
        .values(status="complete")
    )
    session.commit()
    session.refresh(sequence)


def _refresh_current_index(session: Session, sequence: PromptSequence) -> None:
    prompts = list_prompts(session, sequence.project_id, sequence.user_id)
    current = next((p.sequence for p in prompts if p.status not in DONE_STATUSES), None)
    sequence.current_prompt_index = current if current is not None else sequence.total_prompts
    sequence.updated_at = datetime.utcnow()
    session.add(sequence)
    session.commit()
    session.refresh(sequence)


def update_prompt_status(
    session: Session, prompt: ImplementationPrompt, status: str
) -> PromptSequence | None:
    if status not in PROMPT_STATUSES:
        raise InvalidInputError(f"Invalid status value: {status}")

    if status in GATED_STATUSES:
        unmet = unmet_prerequisites(session, prompt)
        if unmet:
            raise PrerequisitesUnmetError(unmet)

    previous = prompt.status
    prompt.status = status
    if status == "completed":
        if previous != "completed":
            prompt.completed_at = datetime.utcnow()
    else:
        prompt.completed_at = None
    prompt.updated_at = datetime.utcnow()
    session.add(prompt)
    session.commit()
    session.refresh(prompt)
    logger.info(f"Prompt {prompt.id} moved {previous} -> {status}")

    sequence = get_sequence(session, prompt.project_id, prompt.user_id)
    if sequence is not None:
        if status == "completed" and previous != "completed":
            _adjust_completed(session, sequence, +1)
        elif previous == "completed" and status != "completed":
            _adjust_completed(session, sequence, -1)

    if status in DONE_STATUSES:
        unlock_ready_prompts(session, prompt.project_id, prompt.user_id)

    if sequence is not None:
        _refresh_current_index(session, sequence)
    session.refresh(prompt)
    return sequence


def claim_for_resume(session: Session, sequence: PromptSequence) -> bool:
    """Take over a ``partial`` or abandoned ``generating`` sequence.

    The status check and the flip to ``generating`` are a single UPDATE, so
    only one of several overlapping requests wins the claim.
    """
    now = datetime.utcnow()
    stale_before = now - timedelta(seconds=settings.generation_stale_seconds)
    result = session.connection().execute(
        update(PromptSequence)
        .where(
            PromptSequence.id == sequence.id,
            or_(
                PromptSequence.status == "partial",
                and_(
                    PromptSequence.status == "generating",
                    PromptSequence.updated_at < stale_before,
                ),
            ),
        )
        .values(status="generating", updated_at=now)
    )
    session.commit()
    session.refresh(sequence)
    return result.rowcount == 1


class PromptSequencer:
    def __init__(self, gateway: AIGateway):
        self.gateway = gateway

    async def generate(
        self,
        session: Session,
        project: Project,
        suite: BlueprintSuite,
        skip_categories: list[str] | None = None,
        tech_stack: str | None = None,
    ) -> tuple[PromptSequence, bool]:
        """Generate the project's worklist, or resume an unfinished one for free.

        Returns the sequence and whether an existing one was returned untouched.
        """
        if suite.status != "complete":
            raise InvalidInputError("Blueprint suite must be complete before generating prompts")
        unknown = set(skip_categories or []) - set(PROMPT_CATEGORIES)
        if unknown:
            raise InvalidInputError(f"Unknown categories: {', '.join(sorted(unknown))}")

        blueprints = completed_blueprints(session, suite)
        categories = [
            c
            for c in applicable_categories({b.type for b in blueprints})
            if c not in (skip_categories or [])
        ]

        sequence = get_sequence(session, project.id, project.user_id)
        if sequence is not None:
            if sequence.status in ("generating", "partial") and claim_for_resume(session, sequence):
                existing = list_prompts(session, project.id, project.user_id)
                done_categories = {p.category for p in existing}
                remaining = [c for c in categories if c not in done_categories]
                logger.info(
                    f"Resuming sequence {sequence.id}: {', '.join(remaining) or 'nothing left'}"
                )
                finished = await self._run(session, sequence, project, blueprints, remaining, existing)
                return sequence, not finished
            if sequence.status != "error":
                return sequence, True
            # A sequence that produced nothing was refunded; start over
            session.delete(sequence)
            session.commit()

        cost = CREDIT_COSTS["prompt_sequence"]
        ledger.charge(session, project.user_id, cost, "prompt_sequence_generation")

        sequence = PromptSequence(
            project_id=project.id,
            suite_id=suite.id,
            user_id=project.user_id,
            tech_stack=tech_stack or extract_tech_stack(blueprints),
        )
        session.add(sequence)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            ledger.refund(session, project.user_id, cost, "prompt_sequence_generation")
            return get_sequence(session, project.id, project.user_id), True
        session.refresh(sequence)

        if not await self._run(session, sequence, project, blueprints, categories, []):
            ledger.refund(session, project.user_id, cost, "prompt_sequence_generation")
            return get_sequence(session, project.id, project.user_id), True

        if sequence.status == "error":
            ledger.refund(session, project.user_id, cost, "prompt_sequence_generation")
            raise GenerationFailedError("No implementation prompts could be generated")
        return sequence, False

    async def _run(
        self,
        session: Session,
        sequence: PromptSequence,
        project: Project,
        blueprints: list[Blueprint],
        categories: list[str],
        existing: list[ImplementationPrompt],
    ) -> bool:
        """Generate ``categories`` into ``sequence``.

        Returns False when another writer inserted conflicting prompts; the
        batch is rolled back and the sequence is left to that writer.
        """
        sequence.status = "generating"
        session.add(sequence)
        session.commit()

        known = {p.title.lower(): p.title for p in existing}
        done = {p.title for p in existing if p.status in DONE_STATUSES}
        titles = [p.title for p in existing]
        number = max((p.sequence for p in existing), default=0)
        has_errors = False

        for category in categories:
            request = build_category_request(
                category, blueprints, project.title, sequence.tech_stack, titles
            )
            try:
                raw = await self.gateway.complete(ENGINEERING_MANAGER_SYSTEM_PROMPT, request)
            except ProviderExhaustedError:
                logger.error(f"Provider exhausted while generating {category} prompts")
                has_errors = True
                continue

            outcome = parse_task_batch(raw)
            if isinstance(outcome, Failed):
                logger.error(f"Could not parse {category} prompts: {outcome.reason}")
                has_errors = True
                continue

            for draft in outcome.value:
                number += 1
                title = _unique_title(draft.title, known)
                predecessor = titles[-1] if titles else None
                prerequisites = _resolve_prerequisites(draft.prerequisites, predecessor, known, title)
                ready = all(t in done for t in prerequisites)
                session.add(
                    ImplementationPrompt(
                        project_id=project.id,
                        suite_id=sequence.suite_id,
                        user_id=project.user_id,
                        sequence=number,
                        category=category,
                        title=title,
                        content=draft.content,
                        prerequisites=json.dumps(prerequisites),
                        user_actions=json.dumps(
                            draft.user_actions or DEFAULT_USER_ACTIONS[category]
                        ),
                        acceptance_criteria=json.dumps(draft.acceptance_criteria),
                        estimated_time=CATEGORY_INFO[category]["estimated_time"],
                        status="unlocked" if ready else "pending",
                    )
                )
                known[title.lower()] = title
                titles.append(title)

            sequence.total_prompts = number
            sequence.current_prompt_index = number
            sequence.updated_at = datetime.utcnow()
            session.add(sequence)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                session.refresh(sequence)
                logger.warning(
                    f"Sequence {sequence.id} was written concurrently while generating {category}; stopping"
                )
                return False
            logger.info(f"Generated {category} prompts for project {project.id} (total: {number})")

        if sequence.total_prompts == 0:
            sequence.status = "error"
        elif has_errors:
            sequence.status = "partial"
        else:
            sequence.status = "active"
        sequence.updated_at = datetime.utcnow()
        session.add(sequence)
        session.commit()
        if sequence.status != "error":
            _refresh_current_index(session, sequence)
        session.refresh(sequence)
        return True

    async def regenerate(
        self, session: Session, prompt: ImplementationPrompt, project: Project
    ) -> float:
        """Rewrite one prompt in place; returns the caller's remaining credits."""
        cost = CREDIT_COSTS["prompt_regenerate"]
        ledger.charge(session, project.user_id, cost, "prompt_regeneration")

        suite = session.exec(
            select(BlueprintSuite).where(
                BlueprintSuite.id == prompt.suite_id,
                BlueprintSuite.user_id == project.user_id,
            )
        ).first()
        blueprints = completed_blueprints(session, suite) if suite else []
        sequence = get_sequence(session, project.id, project.user_id)
        tech_stack = sequence.tech_stack if sequence and sequence.tech_stack else extract_tech_stack(blueprints)
        others = [p.title for p in list_prompts(session, project.id, project.user_id) if p.id != prompt.id]

        request = build_regenerate_request(
            prompt.category, blueprints, project.title, tech_stack, prompt.title, others
        )
        try:
            raw = await self.gateway.complete(ENGINEERING_MANAGER_SYSTEM_PROMPT, request)
        except ProviderExhaustedError:
            ledger.refund(session, project.user_id, cost, "prompt_regeneration")
            raise

        outcome = parse_task_batch(raw)
        draft = outcome.value[0] if isinstance(outcome, Parsed) else None
        if draft is None or not draft.content.strip():
            ledger.refund(session, project.user_id, cost, "prompt_regeneration")
            raise GenerationFailedError("Failed to parse regenerated prompt")

        prompt.content = draft.content
        if draft.user_actions:
            prompt.user_actions = json.dumps(draft.user_actions)
        if draft.acceptance_criteria:
            prompt.acceptance_criteria = json.dumps(draft.acceptance_criteria)

        was_completed = prompt.status == "completed"
        if was_completed:
            prompt.status = "unlocked"
            prompt.completed_at = None
        prompt.updated_at = datetime.utcnow()
        session.add(prompt)
        session.commit()

        if sequence is not None and was_completed:
            _adjust_completed(session, sequence, -1)
            _refresh_current_index(session, sequence)
        session.refresh(prompt)
        logger.info(f"Regenerated prompt {prompt.id} ({prompt.title!r})")
        return ledger.get_balance(session, project.user_id)
