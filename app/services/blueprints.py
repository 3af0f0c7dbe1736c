"""Blueprint selection and suite generation."""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.errors import GenerationFailedError, InvalidInputError, ProviderExhaustedError
from app.models.blueprint import Blueprint, BlueprintSuite
from app.models.conversation import Conversation, ConversationMessage
from app.services.ai_gateway import AIGateway
from app.services.blueprint_templates import (
    BLUEPRINT_CONFIGS,
    BLUEPRINT_SYSTEM_PROMPT,
    CORE_BLUEPRINTS,
    FEATURE_BLUEPRINTS,
    PROJECT_TYPE_BLUEPRINTS,
    blueprint_title,
    build_blueprint_prompt,
)
from app.services.credits import CREDIT_COSTS, ledger
from app.services.interrogation import detected_features, load_messages
from app.services.parsing import Parsed, parse_document

logger = logging.getLogger(__name__)

_CANONICAL_ORDER = list(BLUEPRINT_CONFIGS)


def select_blueprint_types(
    project_type: str | None, features: list[str] | None
) -> set[str]:
    """Core documents, plus those implied by the project type and each feature."""
    selected = set(CORE_BLUEPRINTS)
    selected.update(PROJECT_TYPE_BLUEPRINTS.get(project_type or "saas", []))
    for feature in features or []:
        blueprint_type = FEATURE_BLUEPRINTS.get(feature)
        if blueprint_type:
            selected.add(blueprint_type)
    return selected


def ordered_types(types: set[str]) -> list[str]:
    def key(t: str) -> tuple[int, str]:
        return (
            _CANONICAL_ORDER.index(t) if t in _CANONICAL_ORDER else len(_CANONICAL_ORDER),
            t,
        )

    return sorted(types, key=key)


def build_conversation_summary(
    initial_description: str, messages: list[ConversationMessage]
) -> str:
    qa_pairs = []
    for question, answer in zip(messages, messages[1:]):
        if question.role == "assistant" and answer.role == "user":
            qa_pairs.append(f"Q: {question.content}\nA: {answer.content}")
    return f"""## Initial Description
{initial_description}

## Interview Q&A
{chr(10).join(qa_pairs) if qa_pairs else "No answers recorded."}"""


def get_suite(session: Session, project_id: int, user_id: int) -> BlueprintSuite | None:
    return session.exec(
        select(BlueprintSuite).where(
            BlueprintSuite.project_id == project_id,
            BlueprintSuite.user_id == user_id,
        )
    ).first()


def suite_blueprints(session: Session, suite: BlueprintSuite) -> list[Blueprint]:
    return list(
        session.exec(
            select(Blueprint)
            .where(Blueprint.suite_id == suite.id, Blueprint.user_id == suite.user_id)
            .order_by(Blueprint.id)
        ).all()
    )


class BlueprintGenerator:
    def __init__(self, gateway: AIGateway):
        self.gateway = gateway

    async def generate(
        self, session: Session, conversation: Conversation
    ) -> tuple[BlueprintSuite, bool]:
        """Generate (or resume) the suite for the conversation's project.

        Returns the suite and whether it already existed in a finished or
        in-flight state.
        """
        if not conversation.is_ready_for_blueprints:
            raise InvalidInputError("Conversation is not ready for blueprint generation")

        suite = get_suite(session, conversation.project_id, conversation.user_id)
        if suite is not None:
            if suite.status in ("complete", "generating"):
                return suite, True
            if suite.status == "partial":
                logger.info(f"Retrying failed blueprints of suite {suite.id}")
                retry = [b for b in suite_blueprints(session, suite) if b.status != "complete"]
                await self._generate_documents(session, suite, conversation, retry)
                return suite, False
            # A suite that produced nothing was refunded; start over
            for blueprint in suite_blueprints(session, suite):
                session.delete(blueprint)
            session.delete(suite)
            session.commit()

        cost = CREDIT_COSTS["blueprint_suite"]
        ledger.charge(session, conversation.user_id, cost, "blueprint_suite_generation")

        types = ordered_types(
            select_blueprint_types(conversation.project_type, detected_features(conversation))
        )
        suite = BlueprintSuite(
            project_id=conversation.project_id,
            user_id=conversation.user_id,
            conversation_id=conversation.id,
            total_count=len(types),
        )
        session.add(suite)
        try:
            session.commit()
        except IntegrityError:
            # Another request created the suite first
            session.rollback()
            ledger.refund(session, conversation.user_id, cost, "blueprint_suite_generation")
            return get_suite(session, conversation.project_id, conversation.user_id), True
        session.refresh(suite)

        placeholders = []
        for blueprint_type in types:
            blueprint = Blueprint(
                suite_id=suite.id,
                project_id=suite.project_id,
                user_id=suite.user_id,
                type=blueprint_type,
                title=blueprint_title(blueprint_type),
            )
            session.add(blueprint)
            placeholders.append(blueprint)
        session.commit()

        await self._generate_documents(session, suite, conversation, placeholders)

        if suite.status == "error":
            ledger.refund(session, conversation.user_id, cost, "blueprint_suite_generation")
            raise GenerationFailedError("No blueprint could be generated")
        return suite, False

    async def _generate_documents(
        self,
        session: Session,
        suite: BlueprintSuite,
        conversation: Conversation,
        blueprints: list[Blueprint],
    ) -> None:
        summary = build_conversation_summary(
            conversation.initial_description, load_messages(session, conversation)
        )
        suite.status = "generating"
        session.add(suite)
        session.commit()

        for blueprint in blueprints:
            blueprint.status = "generating"
            session.add(blueprint)
            session.commit()

            try:
                raw = await self.gateway.complete(
                    BLUEPRINT_SYSTEM_PROMPT, build_blueprint_prompt(blueprint.type, summary)
                )
            except ProviderExhaustedError:
                logger.error(f"Provider exhausted while generating {blueprint.type}")
                raw = None

            outcome = parse_document(raw)
            if isinstance(outcome, Parsed):
                blueprint.content = outcome.value
                blueprint.status = "complete"
                suite.completed_count += 1
            else:
                logger.error(f"Blueprint {blueprint.type} failed: {outcome.reason}")
                blueprint.status = "failed"
            blueprint.updated_at = datetime.utcnow()
            session.add(blueprint)
            session.add(suite)
            session.commit()

        if suite.completed_count == suite.total_count:
            suite.status = "complete"
        elif suite.completed_count > 0:
            suite.status = "partial"
        else:
            suite.status = "error"
        suite.updated_at = datetime.utcnow()
        session.add(suite)
        session.commit()
        session.refresh(suite)
        logger.info(
            f"Suite {suite.id} finished {suite.status}: "
            f"{suite.completed_count}/{suite.total_count}"
        )
