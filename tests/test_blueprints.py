from unittest.mock import patch

import pytest
from sqlmodel import Session

from app.errors import ProviderExhaustedError
from app.models.blueprint import BlueprintSuite
from app.models.conversation import Conversation, ConversationMessage
from app.services.blueprints import (
    BlueprintGenerator,
    build_conversation_summary,
    ordered_types,
    select_blueprint_types,
)


def _document(system_prompt, user_prompt):
    title = user_prompt.rsplit("Generate the ", 1)[1].split(" now.")[0]
    return f"```markdown\n# {title}\n\nDetails.\n```"


def _generate(client, project, auth):
    return client.post(f"/api/projects/{project['id']}/blueprints/generate", headers=auth)


def test_select_defaults_to_saas():
    assert select_blueprint_types(None, []) == {
        "mvp-features",
        "backend",
        "database",
        "security",
        "design-system",
        "frontend",
    }


def test_select_adds_project_type_and_feature_documents():
    selected = select_blueprint_types("mobile", ["real-time", "notifications", "i18n"])
    assert selected == {
        "mvp-features",
        "backend",
        "database",
        "security",
        "mobile-architecture",
        "push-notifications",
        "real-time-architecture",
        "notification-system",
    }


def test_select_marketplace_with_payments_has_no_duplicates():
    selected = select_blueprint_types("marketplace", ["payments"])
    assert "payment-integration" in selected
    assert "trust-safety" in selected
    assert len(selected) == 8


def test_ordered_types_follow_canonical_order():
    assert ordered_types({"frontend", "security", "mvp-features"}) == [
        "mvp-features",
        "security",
        "frontend",
    ]


def test_summary_pairs_questions_with_answers():
    messages = [
        ConversationMessage(conversation_id=1, position=0, role="assistant", content="Who?"),
        ConversationMessage(conversation_id=1, position=1, role="user", content="Walkers"),
        ConversationMessage(conversation_id=1, position=2, role="assistant", content="Why?"),
    ]
    summary = build_conversation_summary("Dog app", messages)
    assert "Dog app" in summary
    assert "Q: Who?\nA: Walkers" in summary
    assert "Why?" not in summary


def test_generate_full_suite(client, project, auth, gateway, ready_conversation, balance):
    gateway.handler = _document

    resp = _generate(client, project, auth)

    assert resp.status_code == 200
    data = resp.json()
    assert data["is_existing"] is False
    assert data["remaining_credits"] == 27
    suite = data["suite"]
    assert suite["status"] == "complete"
    assert suite["total_count"] == suite["completed_count"] == 6
    assert [b["type"] for b in suite["blueprints"]] == [
        "mvp-features",
        "backend",
        "database",
        "security",
        "design-system",
        "frontend",
    ]
    assert suite["blueprints"][0]["content"].startswith("# MVP Feature List")
    assert all(b["status"] == "complete" for b in suite["blueprints"])
    assert balance() == 27


def test_generate_requires_finished_interview(client, project, auth, session, ready_conversation):
    ready_conversation.is_ready_for_blueprints = False
    session.add(ready_conversation)
    session.commit()

    resp = _generate(client, project, auth)
    assert resp.status_code == 400


def test_generate_without_conversation(client, project, auth):
    assert _generate(client, project, auth).status_code == 400


def test_existing_complete_suite_is_returned_free(client, project, auth, gateway, ready_conversation, balance):
    gateway.handler = _document
    _generate(client, project, auth)
    calls = len(gateway.calls)

    resp = _generate(client, project, auth)

    assert resp.json()["is_existing"] is True
    assert len(gateway.calls) == calls
    assert balance() == 27


def test_partial_suite_retries_only_failures_for_free(
    client, project, auth, gateway, ready_conversation, balance
):
    def flaky(system_prompt, user_prompt):
        if "Security PRD" in user_prompt:
            return "   "
        if "Design System PRD" in user_prompt:
            raise ProviderExhaustedError("AI service temporarily unavailable")
        return _document(system_prompt, user_prompt)

    gateway.handler = flaky
    suite = _generate(client, project, auth).json()["suite"]
    assert suite["status"] == "partial"
    assert suite["completed_count"] == 4
    failed = {b["type"] for b in suite["blueprints"] if b["status"] == "failed"}
    assert failed == {"security", "design-system"}
    assert balance() == 27

    gateway.handler = _document
    gateway.calls.clear()
    suite = _generate(client, project, auth).json()["suite"]

    assert suite["status"] == "complete"
    assert suite["completed_count"] == 6
    assert len(gateway.calls) == 2
    assert balance() == 27


def test_suite_with_nothing_generated_is_refunded(client, project, auth, gateway, ready_conversation, balance):
    gateway.handler = lambda s, u: ""

    resp = _generate(client, project, auth)

    assert resp.status_code == 502
    assert resp.json()["error"] == "generation_failed"
    assert balance() == 30
    assert client.get(f"/api/projects/{project['id']}/blueprints", headers=auth).json()["status"] == "error"

    # The next attempt pays again and starts over
    gateway.handler = _document
    suite = _generate(client, project, auth).json()["suite"]
    assert suite["status"] == "complete"
    assert balance() == 27


def test_insufficient_credits_creates_nothing(client, project, auth, gateway, ready_conversation, session, user):
    user.credit_units = 250
    session.add(user)
    session.commit()
    gateway.handler = _document

    resp = _generate(client, project, auth)

    assert resp.status_code == 402
    assert resp.json()["required_credits"] == 3
    assert gateway.calls == []
    assert client.get(f"/api/projects/{project['id']}/blueprints", headers=auth).status_code == 404


def test_get_suite_by_id_is_owner_scoped(client, project, auth, admin_token, complete_suite):
    resp = client.get(f"/api/blueprint-suites/{complete_suite.id}", headers=auth)
    assert resp.status_code == 200
    assert resp.json()["completed_count"] == 2

    resp = client.get(
        f"/api/blueprint-suites/{complete_suite.id}",
        headers={"Authorization": f"Bearer {admin_token}"},
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_concurrent_insert_is_refunded(session: Session, gateway, complete_suite, balance):
    conversation = session.get(Conversation, complete_suite.conversation_id)
    existing_id = complete_suite.id

    with patch(
        "app.services.blueprints.get_suite",
        side_effect=[None, session.get(BlueprintSuite, existing_id)],
    ):
        suite, is_existing = await BlueprintGenerator(gateway).generate(session, conversation)

    assert is_existing is True
    assert suite.id == existing_id
    assert gateway.calls == []
    assert balance() == 30
