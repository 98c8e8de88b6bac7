from datetime import datetime, timedelta, timezone

from conftest import api_event, make_expense, response_body

from handlers import payments, settlements
from models.payment import PaymentBase, PaymentStatus
from models.users import UserBase
from services.calculations import settlement_id_for


def seed_dinner(table, created_at=None):
    expense = make_expense(created_at=created_at or datetime.now(timezone.utc))
    table.put_expense(expense)
    table.put_user(UserBase(user_id="p1", display_name="Alice", username="alice", venmo="alice-v"))
    table.create_user_if_absent(UserBase.placeholder("p2"))
    table.create_user_if_absent(UserBase.placeholder("p3"))
    return expense


def unpaid(expense, from_user="p2", amount_cents=2000):
    return PaymentBase(
        expense_id=expense.expense_id,
        group_id=expense.group_id,
        from_user_id=from_user,
        to_user_id="p1",
        amount_cents=amount_cents,
    )


class TestCreatePayment:
    def test_creates_unpaid_payment_with_links(self, handler_table):
        expense = seed_dinner(handler_table)

        response = payments.create_payment(
            api_event(
                {
                    "expense_id": expense.expense_id,
                    "from_user_id": "p2",
                    "to_user_id": "p1",
                    "amount_cents": 2000,
                }
            ),
            None,
        )

        assert response["statusCode"] == 201
        payment = response_body(response)["payment"]
        assert payment["status"] == "unpaid"
        assert payment["group_id"] == "g1"
        assert payment["venmo_link"].startswith("https://venmo.com/alice-v?txn=pay&amount=20.00")
        assert payment["paypal_link"] == "https://paypal.me/Alice/20.00"
        assert handler_table.get_payment(payment["payment_id"]) is not None

    def test_paying_yourself_is_rejected(self, handler_table):
        expense = seed_dinner(handler_table)

        response = payments.create_payment(
            api_event(
                {
                    "expense_id": expense.expense_id,
                    "from_user_id": "p1",
                    "to_user_id": "p1",
                    "amount_cents": 2000,
                }
            ),
            None,
        )

        assert response["statusCode"] == 400

    def test_unknown_user(self, handler_table):
        expense = seed_dinner(handler_table)

        response = payments.create_payment(
            api_event(
                {
                    "expense_id": expense.expense_id,
                    "from_user_id": "ghost",
                    "to_user_id": "p1",
                    "amount_cents": 2000,
                }
            ),
            None,
        )

        assert response["statusCode"] == 404
        assert "ghost" in response_body(response)["error"]

    def test_unknown_expense(self, handler_table):
        response = payments.create_payment(
            api_event(
                {"expense_id": "nope", "from_user_id": "p2", "to_user_id": "p1", "amount_cents": 5}
            ),
            None,
        )

        assert response["statusCode"] == 404


class TestMarkPaid:
    def test_quick_payment_earns_pay_it_forward(self, handler_table):
        expense = seed_dinner(handler_table, datetime.now(timezone.utc) - timedelta(hours=1))
        payment = unpaid(expense)
        handler_table.put_payment(payment)

        response = payments.mark_paid(
            api_event({"payment_id": payment.payment_id, "marked_by": "p2"}), None
        )

        body = response_body(response)
        assert response["statusCode"] == 200
        assert body["payment"]["status"] == "paid"
        assert body["badges"] == {"table_hero": False, "pay_it_forward": True, "even_steven": []}
        assert handler_table.get_payment(payment.payment_id).status == PaymentStatus.PAID
        assert handler_table.get_user_stats("p2").consecutive_quick_pays == 1

    def test_second_mark_is_a_no_op(self, handler_table):
        expense = seed_dinner(handler_table)
        payment = unpaid(expense)
        handler_table.put_payment(payment)
        event = api_event({"payment_id": payment.payment_id})

        payments.mark_paid(event, None)
        response = payments.mark_paid(api_event({"payment_id": payment.payment_id}), None)

        body = response_body(response)
        assert body["message"] == "Payment was already marked paid"
        assert body["badges"] is None
        assert handler_table.get_user_stats("p2").total_settled == 1

    def test_badge_failure_keeps_payment_paid(self, handler_table, monkeypatch):
        expense = seed_dinner(handler_table)
        payment = unpaid(expense)
        handler_table.put_payment(payment)

        def broken(*args, **kwargs):
            raise RuntimeError("badge store down")

        monkeypatch.setattr(payments, "evaluate_payment_badges", broken)

        response = payments.mark_paid(api_event({"payment_id": payment.payment_id}), None)

        assert response["statusCode"] == 200
        assert response_body(response)["badges"] is None
        assert handler_table.get_payment(payment.payment_id).is_paid

    def test_unknown_payment(self, handler_table):
        response = payments.mark_paid(api_event({"payment_id": "nope"}), None)

        assert response["statusCode"] == 404


class TestPaymentProfile:
    def test_update_strips_at_sign(self, handler_table):
        seed_dinner(handler_table)

        response = payments.update_payment_profile(
            api_event({"venmo": "@alice-new", "paypal": "alicepp"}, path={"user_id": "p1"}, method="PUT"),
            None,
        )

        assert response_body(response)["profile"] == {
            "user_id": "p1",
            "user_name": "Alice",
            "venmo": "alice-new",
            "paypal": "alicepp",
        }
        fetched = payments.get_payment_profile(api_event(path={"user_id": "p1"}, method="GET"), None)
        assert response_body(fetched)["profile"]["venmo"] == "alice-new"

    def test_unknown_user(self, handler_table):
        response = payments.get_payment_profile(api_event(path={"user_id": "ghost"}, method="GET"), None)

        assert response["statusCode"] == 404


class TestSettlements:
    def test_sixty_dollar_dinner(self, handler_table):
        seed_dinner(handler_table)

        response = settlements.get_settlements(
            api_event(path={"group_id": "g1"}, method="GET"), None
        )

        body = response_body(response)
        assert response["statusCode"] == 200
        assert [(b["userId"], b["balance"]) for b in body["balances"]] == [
            ("p1", 4000),
            ("p2", -2000),
            ("p3", -2000),
        ]
        assert [(s["from"], s["to"], s["amountCents"]) for s in body["settlements"]] == [
            ("p2", "p1", 2000),
            ("p3", "p1", 2000),
        ]
        assert body["settlements"][0]["toName"] == "Alice"
        assert body["summary"]["total_owed"] == 4000
        assert body["summary"]["unpaid_settlements"] == 2

    def test_paid_settlement_is_flagged(self, handler_table):
        expense = seed_dinner(handler_table)
        payment = unpaid(expense).mark_paid()
        payment.settlement_id = settlement_id_for("g1", "p2", "p1", 2000)
        handler_table.put_payment(payment)

        body = response_body(
            settlements.get_settlements(api_event(path={"group_id": "g1"}, method="GET"), None)
        )

        assert [s["isPaid"] for s in body["settlements"]] == [True, False]
        assert body["summary"]["total_unpaid_amount"] == 2000

    def test_empty_group(self, handler_table):
        body = response_body(
            settlements.get_settlements(api_event(path={"group_id": "empty"}, method="GET"), None)
        )

        assert body["balances"] == []
        assert body["settlements"] == []
