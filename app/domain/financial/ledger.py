"""Running-balance ledger shared by payments, refunds and commission payouts"""

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models_financial import Transaction

logger = logging.getLogger(__name__)

DEBIT_TYPES = ("REFUND", "WITHDRAWAL")
DEBIT_CATEGORIES = ("EXPENSE",)


def current_balance(db: Session, tenant_id: str) -> float:
    total = (
        db.query(func.coalesce(func.sum(Transaction.balance_after - Transaction.balance_before), 0))
        .filter(Transaction.tenant_id == tenant_id)
        .scalar()
    )
    return round(float(total or 0), 2)


def is_debit(type_: str, category: str) -> bool:
    return type_ in DEBIT_TYPES or category in DEBIT_CATEGORIES


def record_transaction(
    db: Session,
    tenant_id: str,
    type_: str,
    amount: float,
    category: str = "SERVICE",
    description: Optional[str] = None,
    payment_id: Optional[str] = None,
    reference_id: Optional[str] = None,
    created_by: Optional[str] = None,
) -> Transaction:
    """Append a ledger row. Debits subtract abs(amount). Caller commits"""
    before = current_balance(db, tenant_id)
    delta = -abs(amount) if is_debit(type_, category) else amount
    transaction = Transaction(
        tenant_id=tenant_id,
        payment_id=payment_id,
        type=type_,
        category=category,
        amount=round(amount, 2),
        balance_before=before,
        balance_after=round(before + delta, 2),
        description=description,
        reference_id=reference_id,
        created_by=created_by,
    )
    db.add(transaction)
    db.flush()
    logger.info(f"📒 {type_} {amount:.2f} recorded, balance {transaction.balance_after:.2f}")
    return transaction
