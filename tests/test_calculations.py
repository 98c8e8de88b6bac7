from conftest import make_expense

from models.expense import ExpenseStatus, SplitGroup, SplitType
from models.payment import PaymentBase, PaymentStatus
from models.settlement import Balance
from models.users import UserBase
from services.calculations import (RemainderPolicy, apply_payments,
                                   build_payment_links, calculate_balances,
                                   calculate_settlements, compute_net_balances,
                                   owed_to_payer, resolve_policy,
                                   settlement_id_for, summarize)


def overlapping_dinner():
    return make_expense(
        payer_id="A",
        amount_cents=9000,
        participants=["A", "B", "C", "D", "E"],
        split_type=SplitType.OVERLAPPING,
        split_groups=[
            SplitGroup(name="Half 1", participants=["A", "B", "C"], total_cents=4500, per_person_cents=1500),
            SplitGroup(name="Half 2", participants=["A", "D", "E"], total_cents=4500, per_person_cents=1500),
        ],
    )


def settle(balances, settlements):
    remaining = {b.user_id: b.balance for b in balances}
    for s in settlements:
        remaining[s.from_user_id] += s.amount_cents
        remaining[s.to_user_id] -= s.amount_cents
    return remaining


class TestBalances:
    def test_even_split_credits_payer(self):
        balances = calculate_balances([make_expense()])

        assert [(b.user_id, b.balance) for b in balances] == [
            ("p1", 4000),
            ("p2", -2000),
            ("p3", -2000),
        ]

    def test_remainder_stays_with_payer(self):
        net = compute_net_balances([make_expense(amount_cents=1000)])

        assert net == {"p1": 667, "p2": -333, "p3": -333}
        assert sum(net.values()) == 1000 % 3

    def test_round_robin_spreads_remainder(self):
        expense = make_expense(amount_cents=1001, participants=["p2", "p3", "p1"])

        net = compute_net_balances([expense], RemainderPolicy.ROUND_ROBIN)

        assert net == {"p2": -334, "p3": -334, "p1": 668}
        assert sum(net.values()) == 0

    def test_overlapping_member_is_debited_in_both_groups(self):
        net = compute_net_balances([overlapping_dinner()])

        assert net["A"] == 9000 - 1500 - 1500
        assert net["B"] == net["C"] == net["D"] == net["E"] == -1500
        assert sum(net.values()) == 0

    def test_deleted_expenses_are_ignored(self):
        deleted = make_expense(amount_cents=9999, status=ExpenseStatus.DELETED)

        assert compute_net_balances([make_expense(), deleted]) == compute_net_balances(
            [make_expense()]
        )

    def test_near_zero_balances_are_dropped(self):
        balances = calculate_balances([make_expense(amount_cents=2)])

        assert [(b.user_id, b.balance) for b in balances] == [("p1", 2)]

    def test_names_fall_back_to_ids(self):
        balances = calculate_balances([make_expense()], {"p1": "Alice"})

        assert [b.user_name for b in balances] == ["Alice", "p2", "p3"]

    def test_only_paid_payments_are_applied(self):
        payments = [
            PaymentBase(expense_id="e", group_id="g1", from_user_id="p2", to_user_id="p1",
                        amount_cents=2000, status=PaymentStatus.PAID),
            PaymentBase(expense_id="e", group_id="g1", from_user_id="p3", to_user_id="p1",
                        amount_cents=2000),
        ]

        adjusted = apply_payments({"p1": 4000, "p2": -2000, "p3": -2000}, payments)

        assert adjusted == {"p1": 2000, "p2": 0, "p3": -2000}

    def test_owed_to_payer_excludes_own_share(self):
        assert owed_to_payer(make_expense()) == 4000
        assert owed_to_payer(overlapping_dinner()) == 6000


class TestSettlements:
    def test_sixty_dollar_dinner(self):
        balances = calculate_balances([make_expense()])

        settlements = calculate_settlements(balances, "g1")

        assert [(s.from_user_id, s.to_user_id, s.amount_cents) for s in settlements] == [
            ("p2", "p1", 2000),
            ("p3", "p1", 2000),
        ]

    def test_settlements_zero_out_balances(self):
        expenses = [
            make_expense(payer_id="p1", amount_cents=12345, participants=["p1", "p2", "p3", "p4"]),
            make_expense(payer_id="p2", amount_cents=5000, participants=["p3", "p4"]),
            make_expense(payer_id="p4", amount_cents=777, participants=["p1", "p2", "p3"]),
            overlapping_dinner(),
        ]
        balances = calculate_balances(expenses)

        settlements = calculate_settlements(balances, "g1")

        remaining = settle(balances, settlements)
        assert all(abs(cents) <= 1 for cents in remaining.values())
        creditors = sum(1 for b in balances if b.balance > 0)
        debtors = sum(1 for b in balances if b.balance < 0)
        assert len(settlements) <= creditors + debtors - 1

    def test_largest_creditor_is_matched_first(self):
        balances = [
            Balance(user_id="a", user_name="A", balance=1000),
            Balance(user_id="b", user_name="B", balance=3000),
            Balance(user_id="c", user_name="C", balance=-4000),
        ]

        settlements = calculate_settlements(balances, "g1")

        assert [(s.to_user_id, s.amount_cents) for s in settlements] == [("b", 3000), ("a", 1000)]

    def test_equal_creditors_keep_input_order(self):
        balances = [
            Balance(user_id="zed", user_name="Zed", balance=2000),
            Balance(user_id="amy", user_name="Amy", balance=2000),
            Balance(user_id="c", user_name="C", balance=-4000),
        ]

        settlements = calculate_settlements(balances, "g1")

        assert [(s.to_user_id, s.amount_cents) for s in settlements] == [
            ("zed", 2000),
            ("amy", 2000),
        ]

    def test_equal_debtors_keep_input_order(self):
        balances = [
            Balance(user_id="x", user_name="X", balance=3000),
            Balance(user_id="tom", user_name="Tom", balance=-1500),
            Balance(user_id="ann", user_name="Ann", balance=-1500),
        ]

        settlements = calculate_settlements(balances, "g1")

        assert [(s.from_user_id, s.amount_cents) for s in settlements] == [
            ("tom", 1500),
            ("ann", 1500),
        ]

    def test_no_balances_means_no_settlements(self):
        assert calculate_settlements([], "g1") == []

    def test_settlement_ids_are_stable(self):
        balances = calculate_balances([make_expense()])

        first = calculate_settlements(balances, "g1")
        second = calculate_settlements(balances, "g1")

        assert [s.settlement_id for s in first] == [s.settlement_id for s in second]
        assert first[0].settlement_id == settlement_id_for("g1", "p2", "p1", 2000)
        assert first[0].settlement_id != first[1].settlement_id

    def test_paid_flag_follows_settlement_id(self):
        balances = calculate_balances([make_expense()])
        paid = PaymentBase(
            expense_id="e", group_id="g1", from_user_id="p2", to_user_id="p1",
            amount_cents=2000, status=PaymentStatus.PAID,
            settlement_id=settlement_id_for("g1", "p2", "p1", 2000),
        )

        settlements = calculate_settlements(balances, "g1", [paid])

        assert [s.is_paid for s in settlements] == [True, False]

    def test_payment_without_settlement_id_matches_by_value(self):
        balances = calculate_balances([make_expense()])
        legacy = PaymentBase(
            expense_id="e", group_id="g1", from_user_id="p3", to_user_id="p1",
            amount_cents=2000, status=PaymentStatus.PAID,
        )

        settlements = calculate_settlements(balances, "g1", [legacy])

        assert [s.is_paid for s in settlements] == [False, True]

    def test_unpaid_payment_does_not_mark_settlement(self):
        balances = calculate_balances([make_expense()])
        pending = PaymentBase(
            expense_id="e", group_id="g1", from_user_id="p2", to_user_id="p1",
            amount_cents=2000, settlement_id=settlement_id_for("g1", "p2", "p1", 2000),
        )

        settlements = calculate_settlements(balances, "g1", [pending])

        assert not any(s.is_paid for s in settlements)

    def test_serialized_with_camel_case_keys(self):
        balances = calculate_balances([make_expense()], {"p1": "Alice"})
        settlement = calculate_settlements(balances, "g1")[0]

        data = settlement.model_dump(mode="json", by_alias=True)

        assert data["from"] == "p2"
        assert data["toName"] == "Alice"
        assert data["amountCents"] == 2000
        assert data["isPaid"] is False
        assert balances[0].model_dump(by_alias=True) == {
            "userId": "p1", "userName": "Alice", "balance": 4000,
        }

    def test_summary_totals(self):
        balances = calculate_balances([make_expense()])
        settlements = calculate_settlements(balances, "g1")
        settlements[0].is_paid = True

        assert summarize(balances, settlements) == {
            "total_owed": 4000,
            "total_debt": 4000,
            "total_settlements": 2,
            "unpaid_settlements": 1,
            "paid_settlements": 1,
            "total_unpaid_amount": 2000,
        }


class TestPaymentLinks:
    def test_links_use_profile_handles(self):
        profile = UserBase(user_id="p1", display_name="Sarah", username="sarah",
                           venmo="@sarah-v", paypal="sarahpp")

        links = build_payment_links(2000, "Sarah", profile)

        assert links["venmo_link"] == (
            "https://venmo.com/sarah-v?txn=pay&amount=20.00&note=Group%20expense%20settlement"
        )
        assert links["paypal_link"] == "https://paypal.me/sarahpp/20.00"
        assert links["venmo_verified"] is True
        assert links["paypal_verified"] is True

    def test_missing_handles_are_guessed_from_name(self):
        links = build_payment_links(1234, "Mary Jane")

        assert links["venmo_link"].startswith("https://venmo.com/MaryJane?txn=pay&amount=12.34")
        assert links["paypal_link"] == "https://paypal.me/MaryJane/12.34"
        assert links["venmo_verified"] is False
        assert links["paypal_verified"] is False


def test_resolve_policy():
    assert resolve_policy("ROUND_ROBIN") == RemainderPolicy.ROUND_ROBIN
    assert resolve_policy(None) == RemainderPolicy.PAYER
    assert resolve_policy("largest-first") == RemainderPolicy.PAYER
