from datetime import datetime, timezone

from conftest import api_event, response_body

import main
from handlers import badges, users
from models.badge import BadgeType
from models.users import UserBase, UserStats
from services.badges import award_badge


class TestProfiles:
    def test_new_profile(self, handler_table):
        response = users.update_profile(
            api_event({"user_id": "u1", "display_name": "Sarah", "handle": "@sarah"}), None
        )

        user = response_body(response)["user"]
        assert response["statusCode"] == 200
        assert user["username"] == "sarah"
        assert user["handle"] == "@sarah"
        assert handler_table.get_user("u1").display_name == "Sarah"

    def test_update_keeps_unset_fields(self, handler_table):
        handler_table.put_user(
            UserBase(user_id="u1", display_name="Sarah", username="sarah", venmo="sarah-v")
        )

        users.update_profile(api_event({"user_id": "u1", "paypal": "sarahpp"}), None)

        user = handler_table.get_user("u1")
        assert user.venmo == "sarah-v"
        assert user.paypal == "sarahpp"
        assert user.display_name == "Sarah"

    def test_handle_with_spaces_is_rejected(self, handler_table):
        response = users.update_profile(api_event({"user_id": "u1", "handle": "sa rah"}), None)

        assert response["statusCode"] == 400

    def test_get_user_with_stats(self, handler_table):
        handler_table.put_user(UserBase.placeholder("u1", "@tom"))
        handler_table.put_user_stats(
            UserStats(user_id="u1").record_payment(True, 1500, datetime.now(timezone.utc))
        )

        body = response_body(users.get_user(api_event(path={"user_id": "u1"}, method="GET"), None))

        assert body["user"]["display_name"] == "Tom"
        assert body["stats"]["consecutive_quick_pays"] == 1

    def test_get_unknown_user(self, handler_table):
        response = users.get_user(api_event(path={"user_id": "ghost"}, method="GET"), None)

        assert response["statusCode"] == 404


class TestBadgeHandlers:
    def test_award_then_duplicate(self, handler_table):
        body = {"user_id": "u1", "group_id": "g1", "badge_type": "table_hero", "metadata": {"collection_rate": 95}}

        first = badges.award_badge(api_event(body), None)
        second = badges.award_badge(api_event(body), None)

        assert first["statusCode"] == 201
        assert response_body(first)["awarded"] is True
        assert second["statusCode"] == 200
        assert response_body(second) == {
            "success": True,
            "message": "Badge already awarded this month",
            "awarded": False,
        }

    def test_unknown_badge_type(self, handler_table):
        response = badges.award_badge(
            api_event({"user_id": "u1", "group_id": "g1", "badge_type": "big_spender"}), None
        )

        assert response["statusCode"] == 400

    def test_list_badges(self, handler_table):
        award_badge(handler_table, "u1", "g1", BadgeType.EVEN_STEVEN, {"group_size": 3})
        award_badge(handler_table, "u1", "g2", BadgeType.PAY_IT_FORWARD)

        everything = response_body(
            badges.list_badges(api_event(path={"user_id": "u1"}, method="GET"), None)
        )
        in_group = response_body(
            badges.list_badges(
                api_event(path={"user_id": "u1"}, query={"group_id": "g1", "this_month": "true"}, method="GET"),
                None,
            )
        )

        assert len(everything["badges"]) == 2
        assert [b["badge_type"] for b in in_group["badges"]] == ["even_steven"]
        assert in_group["badges"][0]["metadata"] == {"group_size": 3}


def test_healthz():
    response = main.healthz(api_event(method="GET"), None)

    body = response_body(response)
    assert response["statusCode"] == 200
    assert body["status"] == "healthy"
    assert body["service"] == "kasy-backend"
    assert response["headers"]["Access-Control-Allow-Origin"] == "*"
