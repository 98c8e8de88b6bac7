"""
Balance and settlement calculations.

Balances are aggregated from a group's expenses in integer cents. Settlements
are then produced by greedily matching the largest creditor with the largest
debtor until every balance is within one cent of zero. That gives at most
``#creditors + #debtors - 1`` transfers. It is not guaranteed to be the
minimum for every topology.

Everything here is pure: callers load expenses, payments and profiles from
the table and pass them in.
"""

import re
import uuid
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote

from models.expense import ExpenseBase, ExpenseStatus
from models.payment import PaymentBase
from models.settlement import Balance, Settlement
from models.users import UserBase
from utils.logging import setup_logger
from utils.money import to_major

logger = setup_logger(__name__)

# Balances and transfers at or below this many cents count as settled
ROUNDING_TOLERANCE_CENTS = 1

SETTLEMENT_NAMESPACE = uuid.UUID("6f1c9a8e-4f0b-4d55-9d7e-3b2a1c5e8f10")


class RemainderPolicy(str, Enum):
    """Who absorbs the cents left over when a simple split does not divide evenly."""

    PAYER = "payer"
    ROUND_ROBIN = "round_robin"


def resolve_policy(value: Optional[str]) -> RemainderPolicy:
    """Map a configured policy name to a RemainderPolicy, defaulting to payer."""
    try:
        return RemainderPolicy((value or RemainderPolicy.PAYER.value).strip().lower())
    except ValueError:
        logger.warning(
            "Unknown remainder policy, using payer", extra={"policy": value}
        )
        return RemainderPolicy.PAYER


def expense_debits(
    expense: ExpenseBase, policy: RemainderPolicy = RemainderPolicy.PAYER
) -> List[Tuple[str, int]]:
    """
    List the (user_id, cents) debits one expense places on its participants.

    Simple splits debit every participant the floor share. With the payer
    policy the leftover cents are simply never debited, so the payer, who is
    credited the full amount, keeps them. With round robin the first
    ``amount % n`` participants pay one extra cent each.

    Overlapping splits debit each participant once per split group they
    appear in, using that group's per-person share.
    """
    if expense.is_overlapping:
        return [
            (participant, group.share_cents())
            for group in expense.split_groups
            for participant in group.participants
        ]

    participants = expense.participants
    if not participants:
        return []

    share, remainder = divmod(expense.amount_cents, len(participants))
    debits = []
    for index, participant in enumerate(participants):
        extra = 1 if policy == RemainderPolicy.ROUND_ROBIN and index < remainder else 0
        debits.append((participant, share + extra))
    return debits


def compute_net_balances(
    expenses: Iterable[ExpenseBase],
    policy: RemainderPolicy = RemainderPolicy.PAYER,
) -> Dict[str, int]:
    """
    Net cents per user over all non-deleted expenses, in first-seen order.

    No tolerance filtering is applied; see ``calculate_balances``.
    """
    balances: Dict[str, int] = {}

    for expense in expenses:
        if expense.status == ExpenseStatus.DELETED:
            continue

        for participant, cents in expense_debits(expense, policy):
            balances[participant] = balances.get(participant, 0) - cents

        # Payer is credited the full amount once, even for overlapping splits
        balances[expense.payer_id] = (
            balances.get(expense.payer_id, 0) + expense.amount_cents
        )

    return balances


def apply_payments(
    balances: Dict[str, int], payments: Iterable[PaymentBase]
) -> Dict[str, int]:
    """Return a copy of ``balances`` with every paid payment applied."""
    adjusted = dict(balances)
    for payment in payments:
        if not payment.is_paid:
            continue
        adjusted[payment.from_user_id] = (
            adjusted.get(payment.from_user_id, 0) + payment.amount_cents
        )
        adjusted[payment.to_user_id] = (
            adjusted.get(payment.to_user_id, 0) - payment.amount_cents
        )
    return adjusted


def owed_to_payer(
    expense: ExpenseBase, policy: RemainderPolicy = RemainderPolicy.PAYER
) -> int:
    """Cents the rest of the group owes the payer for one expense."""
    own_share = sum(
        cents for user_id, cents in expense_debits(expense, policy)
        if user_id == expense.payer_id
    )
    return expense.amount_cents - own_share


def calculate_balances(
    expenses: Iterable[ExpenseBase],
    user_names: Optional[Mapping[str, str]] = None,
    policy: RemainderPolicy = RemainderPolicy.PAYER,
) -> List[Balance]:
    """
    Per-user balances for a group, dropping anything within a cent of zero.

    Args:
        expenses: The group's expenses; deleted ones are ignored
        user_names: Display names by user id; unknown ids keep the raw id
        policy: Remainder policy for simple splits

    Returns:
        Balances in first-seen order
    """
    user_names = user_names or {}
    net = compute_net_balances(expenses, policy)

    balances = [
        Balance(
            user_id=user_id,
            user_name=user_names.get(user_id) or user_id,
            balance=cents,
        )
        for user_id, cents in net.items()
        if abs(cents) > ROUNDING_TOLERANCE_CENTS
    ]

    logger.info(
        "Calculated balances",
        extra={"people": len(net), "unsettled": len(balances)},
    )
    return balances


def settlement_id_for(group_id: str, debtor_id: str, creditor_id: str, amount_cents: int) -> str:
    """
    Identifier of a proposed transfer, derived from its values.

    Recomputing the same transfer yields the same id; a changed amount yields
    a new one.
    """
    return str(
        uuid.uuid5(
            SETTLEMENT_NAMESPACE,
            f"{group_id}:{debtor_id}:{creditor_id}:{amount_cents}",
        )
    )


def _guess_handle(display_name: str) -> str:
    return re.sub(r"\s+", "", display_name)


def build_payment_links(
    amount_cents: int,
    display_name: str,
    profile: Optional[UserBase] = None,
) -> Dict[str, object]:
    """
    Venmo and PayPal deep links paying ``amount_cents`` to a creditor.

    Handles come from the creditor's stored profile. When a handle is
    missing the display name without whitespace is used instead and the link
    is reported as unverified.
    """
    amount = to_major(amount_cents)
    venmo = profile.venmo if profile else None
    paypal = profile.paypal if profile else None
    venmo_handle = quote(venmo or _guess_handle(display_name))
    paypal_handle = quote(paypal or _guess_handle(display_name))

    return {
        "venmo_link": (
            f"https://venmo.com/{venmo_handle}?txn=pay&amount={amount}"
            "&note=Group%20expense%20settlement"
        ),
        "paypal_link": f"https://paypal.me/{paypal_handle}/{amount}",
        "venmo_verified": bool(venmo),
        "paypal_verified": bool(paypal),
    }


def calculate_settlements(
    balances: Iterable[Balance],
    group_id: str,
    payments: Iterable[PaymentBase] = (),
    profiles: Optional[Mapping[str, UserBase]] = None,
) -> List[Settlement]:
    """
    Reduce balances to a list of debtor -> creditor transfers.

    Creditors are matched largest first against debtors most-negative first.
    Both sorts are stable, so ties keep the order of ``balances``.

    Args:
        balances: Output of ``calculate_balances``
        group_id: Group the balances belong to, part of every settlement id
        payments: The group's payments, used for the paid flag
        profiles: Payment profiles by user id, used for the links

    Returns:
        Settlements in matching order
    """
    profiles = profiles or {}
    payments = list(payments)
    paid_ids = {p.settlement_id for p in payments if p.is_paid and p.settlement_id}
    # Payments recorded without a settlement id fall back to value matching
    paid_triples = {
        (p.from_user_id, p.to_user_id, p.amount_cents)
        for p in payments
        if p.is_paid and not p.settlement_id
    }

    creditors = sorted(
        ([b.user_id, b.user_name, b.balance] for b in balances if b.balance > 0),
        key=lambda entry: entry[2],
        reverse=True,
    )
    debtors = sorted(
        ([b.user_id, b.user_name, b.balance] for b in balances if b.balance < 0),
        key=lambda entry: entry[2],
    )

    settlements: List[Settlement] = []
    i = j = 0

    while i < len(creditors) and j < len(debtors):
        creditor = creditors[i]
        debtor = debtors[j]
        amount_cents = min(creditor[2], abs(debtor[2]))

        if amount_cents > ROUNDING_TOLERANCE_CENTS:
            settlement_id = settlement_id_for(
                group_id, debtor[0], creditor[0], amount_cents
            )
            is_paid = settlement_id in paid_ids or (
                (debtor[0], creditor[0], amount_cents) in paid_triples
            )
            settlements.append(
                Settlement(
                    settlement_id=settlement_id,
                    from_user_id=debtor[0],
                    from_name=debtor[1],
                    to_user_id=creditor[0],
                    to_name=creditor[1],
                    amount_cents=amount_cents,
                    is_paid=is_paid,
                    **build_payment_links(
                        amount_cents, creditor[1], profiles.get(creditor[0])
                    ),
                )
            )

        creditor[2] -= amount_cents
        debtor[2] += amount_cents

        if creditor[2] <= ROUNDING_TOLERANCE_CENTS:
            i += 1
        if abs(debtor[2]) <= ROUNDING_TOLERANCE_CENTS:
            j += 1

    return settlements


def summarize(balances: List[Balance], settlements: List[Settlement]) -> Dict[str, int]:
    """Totals shown alongside the settlements list."""
    unpaid = [s for s in settlements if not s.is_paid]
    return {
        "total_owed": sum(b.balance for b in balances if b.balance > 0),
        "total_debt": sum(-b.balance for b in balances if b.balance < 0),
        "total_settlements": len(settlements),
        "unpaid_settlements": len(unpaid),
        "paid_settlements": len(settlements) - len(unpaid),
        "total_unpaid_amount": sum(s.amount_cents for s in unpaid),
    }
