from datetime import timedelta

from conftest import make_expense

from models.badge import BadgeType
from models.payment import PaymentBase
from services import badges


def paid(from_user, to_user, amount_cents, paid_at, expense_id="e1"):
    return PaymentBase(
        expense_id=expense_id,
        group_id="g1",
        from_user_id=from_user,
        to_user_id=to_user,
        amount_cents=amount_cents,
    ).mark_paid(paid_at)


def badge_types(table, user_id):
    return sorted(b.badge_type.value for b in table.list_user_badges(user_id))


class TestAwardBadge:
    def test_second_award_in_same_month_is_refused(self, table, now):
        assert badges.award_badge(table, "u1", "g1", BadgeType.PAY_IT_FORWARD, now=now)
        assert not badges.award_badge(
            table, "u1", "g1", BadgeType.PAY_IT_FORWARD, now=now + timedelta(hours=1)
        )
        assert badges.award_badge(table, "u1", "g2", BadgeType.PAY_IT_FORWARD, now=now)

    def test_this_month_filter(self, table, now):
        badges.award_badge(table, "u1", "g1", BadgeType.TABLE_HERO, now=now - timedelta(days=45))
        badges.award_badge(table, "u1", "g1", BadgeType.EVEN_STEVEN, now=now)

        assert len(badges.get_user_badges(table, "u1")) == 2
        assert [b.badge_type for b in badges.get_user_badges(table, "u1", this_month_only=True, now=now)] == [
            BadgeType.EVEN_STEVEN
        ]


class TestRules:
    def test_quick_pay_window(self, now):
        assert badges.is_quick_pay(now, now + timedelta(hours=24))
        assert not badges.is_quick_pay(now, now + timedelta(hours=24, minutes=1))
        assert not badges.is_quick_pay(None, now)

    def test_collection_rate(self, now):
        expense = make_expense(created_at=now)

        rate = badges.collection_rate(
            [expense], [paid("p2", "p1", 2000, now), paid("p3", "p1", 1600, now)], "p1"
        )

        assert rate == 3600 / 4000

    def test_group_fully_settled(self, now):
        expense = make_expense(created_at=now)
        payments = [paid("p2", "p1", 2000, now), paid("p3", "p1", 2000, now)]

        assert badges.group_fully_settled([expense], payments)
        assert not badges.group_fully_settled([expense], payments[:1])

    def test_table_hero_at_ninety_percent(self, table, now):
        expense = make_expense(created_at=now - timedelta(days=2))
        table.put_expense(expense)
        table.put_payment(paid("p2", "p1", 2000, now))
        table.put_payment(paid("p3", "p1", 1600, now))

        assert badges.check_table_hero(table, "g1", "p1", expense, now)
        badge = table.list_user_badges("p1")[0]
        assert badge.metadata == {"collection_rate": 90, "days_to_collect": 2.0}

    def test_table_hero_below_threshold(self, table, now):
        expense = make_expense(created_at=now)
        table.put_expense(expense)
        table.put_payment(paid("p2", "p1", 2000, now))

        assert not badges.check_table_hero(table, "g1", "p1", expense, now)

    def test_table_hero_window_closed(self, table, now):
        expense = make_expense(created_at=now - timedelta(days=8))
        table.put_expense(expense)
        table.put_payment(paid("p2", "p1", 4000, now))

        assert not badges.check_table_hero(table, "g1", "p1", expense, now)

    def test_even_steven_awards_whole_group(self, table, now):
        expense = make_expense(created_at=now - timedelta(days=1))
        table.put_expense(expense)
        table.put_payment(paid("p2", "p1", 2000, now))
        table.put_payment(paid("p3", "p1", 2000, now))

        awarded = badges.check_even_steven(table, "g1", expense, now)

        assert awarded == ["p1", "p2", "p3"]
        assert badges.check_even_steven(table, "g1", expense, now) == []

    def test_even_steven_requires_settled_group(self, table, now):
        expense = make_expense(created_at=now)
        table.put_expense(expense)
        table.put_payment(paid("p2", "p1", 2000, now))

        assert badges.check_even_steven(table, "g1", expense, now) == []

    def test_even_steven_window(self, table, now):
        expense = make_expense(created_at=now - timedelta(days=3, hours=1))
        table.put_expense(expense)
        table.put_payment(paid("p2", "p1", 2000, now))
        table.put_payment(paid("p3", "p1", 2000, now))

        assert badges.check_even_steven(table, "g1", expense, now) == []


class TestEvaluatePaymentBadges:
    def test_quick_payment(self, table, now):
        expense = make_expense(created_at=now - timedelta(hours=3))
        table.put_expense(expense)
        payment = paid("p2", "p1", 2000, now, expense.expense_id)
        table.put_payment(payment)

        result = badges.evaluate_payment_badges(table, payment, expense, now)

        assert result == {"table_hero": False, "pay_it_forward": True, "even_steven": []}
        assert badge_types(table, "p2") == ["pay_it_forward"]
        stats = table.get_user_stats("p2")
        assert stats.consecutive_quick_pays == 1
        assert stats.total_settled_cents == 2000

    def test_last_payment_settles_group(self, table, now):
        expense = make_expense(created_at=now - timedelta(days=2))
        table.put_expense(expense)
        table.put_payment(paid("p2", "p1", 2000, now, expense.expense_id))
        last = paid("p3", "p1", 2000, now, expense.expense_id)
        table.put_payment(last)

        result = badges.evaluate_payment_badges(table, last, expense, now)

        assert result["table_hero"] is True
        assert result["pay_it_forward"] is False
        assert result["even_steven"] == ["p1", "p2", "p3"]
        assert badge_types(table, "p1") == ["even_steven", "table_hero"]
        assert table.get_user_stats("p3").consecutive_quick_pays == 0

    def test_stats_streak_across_payments(self, table, now):
        expense = make_expense(created_at=now)
        table.put_expense(expense)

        for hours in (1, 2):
            payment = paid("p2", "p1", 1000, now + timedelta(hours=hours), expense.expense_id)
            table.put_payment(payment)
            badges.evaluate_payment_badges(table, payment, expense, now + timedelta(hours=hours))

        stats = table.get_user_stats("p2")
        assert stats.consecutive_quick_pays == 2
        assert stats.payments_on_time == 2
        assert badge_types(table, "p2") == ["pay_it_forward"]
