"""
Badge rules and awarding.

A badge is unique per (user, group, badge type, calendar month in UTC). The
rules are evaluated after a payment is marked paid:

- Table Hero: the payer has collected at least 90% of what they are owed on
  their expenses from the last 7 days.
- Pay It Forward: the debtor paid within 24 hours of the expense.
- Even Steven: the whole group is settled within 3 days of an expense.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from models.badge import BadgeBase, BadgeType
from models.expense import ExpenseBase, ExpenseStatus
from models.payment import PaymentBase, PaymentStatus
from models.users import UserStats
from services.calculations import (
    ROUNDING_TOLERANCE_CENTS,
    RemainderPolicy,
    apply_payments,
    compute_net_balances,
    owed_to_payer,
)
from services.dynamodb import KasyTable
from utils.logging import setup_logger

logger = setup_logger(__name__)

QUICK_PAY_WINDOW = timedelta(hours=24)
TABLE_HERO_WINDOW = timedelta(days=7)
EVEN_STEVEN_WINDOW = timedelta(days=3)
TABLE_HERO_COLLECTION_RATE = 0.9


def _days(delta: timedelta) -> float:
    return round(delta.total_seconds() / 86400, 1)


def award_badge(
    table: KasyTable,
    user_id: str,
    group_id: str,
    badge_type: BadgeType,
    metadata: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Award a badge unless the user already holds it this month in this group.

    Returns:
        True if the badge was newly awarded, False if it already existed
    """
    badge = BadgeBase.for_now(user_id, group_id, badge_type, metadata, now)
    awarded = table.put_badge_if_absent(badge)

    if awarded:
        logger.info(
            "Badge awarded",
            extra={
                "user_id": user_id,
                "group_id": group_id,
                "badge_type": badge.badge_type.value,
                "period": f"{badge.year:04d}-{badge.month:02d}",
            },
        )
    else:
        logger.info(
            "Badge already awarded this month",
            extra={"user_id": user_id, "badge_type": badge.badge_type.value},
        )
    return awarded


def is_quick_pay(expense_created_at: Optional[datetime], paid_at: datetime) -> bool:
    if expense_created_at is None:
        return False
    return paid_at - expense_created_at <= QUICK_PAY_WINDOW


def collection_rate(
    expenses: Iterable[ExpenseBase],
    payments: Iterable[PaymentBase],
    creditor_id: str,
    policy: RemainderPolicy = RemainderPolicy.PAYER,
) -> float:
    """Share of what a creditor is owed on ``expenses`` that paid payments cover."""
    owed = sum(
        owed_to_payer(expense, policy)
        for expense in expenses
        if expense.payer_id == creditor_id and expense.status != ExpenseStatus.DELETED
    )
    if owed <= 0:
        return 0.0

    collected = sum(
        payment.amount_cents
        for payment in payments
        if payment.to_user_id == creditor_id and payment.is_paid
    )
    return collected / owed


def group_fully_settled(
    expenses: Iterable[ExpenseBase],
    payments: Iterable[PaymentBase],
    policy: RemainderPolicy = RemainderPolicy.PAYER,
) -> bool:
    """True when every member's balance, after paid payments, is within a cent of zero."""
    balances = apply_payments(compute_net_balances(expenses, policy), payments)
    return all(abs(cents) <= ROUNDING_TOLERANCE_CENTS for cents in balances.values())


def check_table_hero(
    table: KasyTable,
    group_id: str,
    creditor_id: str,
    expense: ExpenseBase,
    now: Optional[datetime] = None,
    policy: RemainderPolicy = RemainderPolicy.PAYER,
) -> bool:
    now = now or datetime.now(timezone.utc)
    if expense.created_at is None:
        return False

    since_expense = now - expense.created_at
    if since_expense > TABLE_HERO_WINDOW:
        return False

    cutoff = now - TABLE_HERO_WINDOW
    recent = [
        e
        for e in table.list_group_expenses(group_id)
        if e.payer_id == creditor_id and e.created_at and e.created_at >= cutoff
    ]
    if not recent:
        return False

    payments = table.list_group_payments(group_id, status=PaymentStatus.PAID)
    rate = collection_rate(recent, payments, creditor_id, policy)

    logger.info(
        "Table Hero check",
        extra={
            "creditor_id": creditor_id,
            "group_id": group_id,
            "collection_rate": round(rate * 100),
        },
    )

    if rate < TABLE_HERO_COLLECTION_RATE:
        return False

    return award_badge(
        table,
        creditor_id,
        group_id,
        BadgeType.TABLE_HERO,
        {"collection_rate": round(rate * 100), "days_to_collect": _days(since_expense)},
        now,
    )


def check_pay_it_forward(
    table: KasyTable,
    payment: PaymentBase,
    expense: ExpenseBase,
    stats: Optional[UserStats] = None,
    now: Optional[datetime] = None,
) -> bool:
    now = now or datetime.now(timezone.utc)
    paid_at = payment.paid_at or now
    if not is_quick_pay(expense.created_at, paid_at):
        return False

    hours = round((paid_at - expense.created_at).total_seconds() / 3600, 1)
    return award_badge(
        table,
        payment.from_user_id,
        payment.group_id,
        BadgeType.PAY_IT_FORWARD,
        {
            "hours_to_pay": hours,
            "consecutive_quick_pays": stats.consecutive_quick_pays if stats else 1,
        },
        now,
    )


def check_even_steven(
    table: KasyTable,
    group_id: str,
    expense: ExpenseBase,
    now: Optional[datetime] = None,
    policy: RemainderPolicy = RemainderPolicy.PAYER,
) -> List[str]:
    """
    Award every member of a fully settled group.

    Only applies while the triggering expense is at most 3 days old.

    Returns:
        Ids of the users newly awarded
    """
    now = now or datetime.now(timezone.utc)
    if expense.created_at is None:
        return []

    since_expense = now - expense.created_at
    if since_expense > EVEN_STEVEN_WINDOW:
        return []

    expenses = table.list_group_expenses(group_id)
    if not expenses:
        return []

    payments = table.list_group_payments(group_id, status=PaymentStatus.PAID)
    if not group_fully_settled(expenses, payments, policy):
        return []

    members: Dict[str, None] = {}
    for e in expenses:
        members.update(dict.fromkeys(e.members()))

    logger.info(
        "Group fully settled",
        extra={"group_id": group_id, "days_to_settle": _days(since_expense)},
    )

    metadata = {"days_to_settle": _days(since_expense), "group_size": len(members)}
    return [
        user_id
        for user_id in members
        if award_badge(table, user_id, group_id, BadgeType.EVEN_STEVEN, metadata, now)
    ]


def update_user_stats(
    table: KasyTable,
    user_id: str,
    was_quick_pay: bool,
    amount_cents: int,
    now: Optional[datetime] = None,
) -> UserStats:
    now = now or datetime.now(timezone.utc)
    stats = table.get_user_stats(user_id) or UserStats(user_id=user_id)
    stats.record_payment(was_quick_pay, amount_cents, now)
    table.put_user_stats(stats)
    return stats


def evaluate_payment_badges(
    table: KasyTable,
    payment: PaymentBase,
    expense: ExpenseBase,
    now: Optional[datetime] = None,
    policy: RemainderPolicy = RemainderPolicy.PAYER,
) -> Dict[str, Any]:
    """
    Run every badge rule for a payment that was just marked paid.

    Returns:
        Which badges were newly awarded
    """
    now = now or datetime.now(timezone.utc)
    quick = is_quick_pay(expense.created_at, payment.paid_at or now)
    stats = update_user_stats(
        table, payment.from_user_id, quick, payment.amount_cents, now
    )

    return {
        "table_hero": check_table_hero(
            table, payment.group_id, payment.to_user_id, expense, now, policy
        ),
        "pay_it_forward": check_pay_it_forward(table, payment, expense, stats, now),
        "even_steven": check_even_steven(
            table, payment.group_id, expense, now, policy
        ),
    }


def get_user_badges(
    table: KasyTable,
    user_id: str,
    group_id: Optional[str] = None,
    this_month_only: bool = False,
    now: Optional[datetime] = None,
) -> List[BadgeBase]:
    if not this_month_only:
        return table.list_user_badges(user_id, group_id)

    now = now or datetime.now(timezone.utc)
    return table.list_user_badges(user_id, group_id, now.year, now.month)
