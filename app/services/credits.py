"""Credit ledger.

Balances live on the user row in hundredths of a credit. Deductions are a
single conditional UPDATE so two concurrent requests can never both spend the
same balance.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlmodel import Session, select

from app.errors import InsufficientCreditsError, NotFoundError
from app.models.user import User

logger = logging.getLogger(__name__)

CREDIT_COSTS = {
    "message": 0.1,  # Per interview message
    "blueprint_suite": 3,  # Full blueprint suite generation
    "prompt_sequence": 1.5,  # Full prompt sequence generation
    "prompt_regenerate": 0.2,  # Single prompt regeneration
    "project": 0,  # Free
}


def to_units(credits: float) -> int:
    return round(credits * 100)


def from_units(units: int) -> float:
    return units / 100


@dataclass
class CreditResult:
    success: bool
    remaining_credits: float
    error: str | None = None


class CreditLedger:
    def get_balance(self, session: Session, user_id: int) -> float:
        units = session.exec(select(User.credit_units).where(User.id == user_id)).first()
        return from_units(units) if units is not None else 0.0

    def check_and_deduct(
        self, session: Session, user_id: int, cost: float, action: str
    ) -> CreditResult:
        """Deduct ``cost`` only if the balance covers it, as one statement.

        On failure the balance is left untouched and the result carries the
        current balance plus a readable shortfall message.
        """
        units = to_units(cost)
        result = session.connection().execute(
            update(User)
            .where(User.id == user_id, User.credit_units >= units)
            .values(credit_units=User.credit_units - units)
        )
        session.commit()

        if result.rowcount == 0:
            current = session.exec(
                select(User.credit_units).where(User.id == user_id)
            ).first()
            if current is None:
                return CreditResult(False, 0.0, "Account not found")
            balance = from_units(current)
            logger.info(
                f"User {user_id} could not afford {action}: has {balance}, needs {cost}"
            )
            return CreditResult(
                False,
                balance,
                f"Insufficient credits. You have {balance:.1f} credits "
                f"but this action costs {cost} credits.",
            )

        remaining = self.get_balance(session, user_id)
        logger.info(
            f"User {user_id} spent {cost} credits on {action}. Remaining: {remaining}"
        )
        return CreditResult(True, remaining)

    def charge(self, session: Session, user_id: int, cost: float, action: str) -> float:
        """Deduct or raise InsufficientCreditsError; returns the remaining balance."""
        result = self.check_and_deduct(session, user_id, cost, action)
        if not result.success:
            raise InsufficientCreditsError(
                result.error or "Insufficient credits",
                remaining_credits=result.remaining_credits,
                required_credits=cost,
            )
        return result.remaining_credits

    def grant(self, session: Session, user_id: int, amount: float) -> float:
        result = session.connection().execute(
            update(User)
            .where(User.id == user_id)
            .values(credit_units=User.credit_units + to_units(amount))
        )
        session.commit()
        if result.rowcount == 0:
            raise NotFoundError("User not found")
        balance = self.get_balance(session, user_id)
        logger.info(f"Added {amount} credits to user {user_id}. New balance: {balance}")
        return balance

    def refund(self, session: Session, user_id: int, amount: float, action: str) -> float:
        logger.warning(f"Refunding {amount} credits to user {user_id} for failed {action}")
        return self.grant(session, user_id, amount)


ledger = CreditLedger()
