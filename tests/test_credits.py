import threading

import pytest
from sqlmodel import Session, SQLModel, create_engine

from app.errors import InsufficientCreditsError, NotFoundError
from app.models.user import User
from app.services.credits import CREDIT_COSTS, ledger


def test_new_accounts_start_with_default_credits(session: Session, user: User):
    assert ledger.get_balance(session, user.id) == 30


def test_check_and_deduct_success(session: Session, user: User):
    result = ledger.check_and_deduct(session, user.id, 3, "blueprint_suite_generation")
    assert result.success
    assert result.remaining_credits == 27
    assert result.error is None


def test_fractional_costs_stay_exact(session: Session, user: User):
    for _ in range(10):
        ledger.charge(session, user.id, CREDIT_COSTS["message"], "interview_message")
    assert ledger.get_balance(session, user.id) == 29


def test_check_and_deduct_insufficient_leaves_balance(session: Session, user: User):
    ledger.grant(session, user.id, -29)
    result = ledger.check_and_deduct(session, user.id, 1.5, "prompt_sequence_generation")
    assert not result.success
    assert result.remaining_credits == 1
    assert result.error == (
        "Insufficient credits. You have 1.0 credits but this action costs 1.5 credits."
    )
    assert ledger.get_balance(session, user.id) == 1


def test_balance_can_reach_exactly_zero(session: Session, user: User):
    ledger.charge(session, user.id, 30, "everything")
    assert ledger.get_balance(session, user.id) == 0
    with pytest.raises(InsufficientCreditsError) as exc_info:
        ledger.charge(session, user.id, 0.1, "interview_message")
    assert exc_info.value.remaining_credits == 0
    assert exc_info.value.required_credits == 0.1


def test_charge_raises_with_payload(session: Session, user: User):
    ledger.grant(session, user.id, -28)
    with pytest.raises(InsufficientCreditsError) as exc_info:
        ledger.charge(session, user.id, 3, "blueprint_suite_generation")
    assert exc_info.value.payload() == {
        "error": "insufficient_credits",
        "detail": "Insufficient credits. You have 2.0 credits but this action costs 3 credits.",
        "remaining_credits": 2,
        "required_credits": 3,
    }


def test_refund_restores_balance(session: Session, user: User):
    ledger.charge(session, user.id, 3, "blueprint_suite_generation")
    assert ledger.refund(session, user.id, 3, "blueprint_suite_generation") == 30


def test_grant_unknown_user(session: Session):
    with pytest.raises(NotFoundError):
        ledger.grant(session, 99999, 5)


def test_concurrent_deductions_never_overspend(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'credits.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        user = User(email="racer@example.com", password_hash="x", credit_units=100)
        session.add(user)
        session.commit()
        user_id = user.id

    outcomes = []
    lock = threading.Lock()

    def spend():
        with Session(engine) as session:
            result = ledger.check_and_deduct(session, user_id, 0.3, "race")
        with lock:
            outcomes.append(result.success)

    threads = [threading.Thread(target=spend) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count(True) == 3
    with Session(engine) as session:
        assert ledger.get_balance(session, user_id) == pytest.approx(0.1)
