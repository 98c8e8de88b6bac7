"""Badge handlers for the KASY API."""

import logging

from pydantic import ValidationError

from models.badge import BadgeAward
from services import badges as badge_service
from services.dynamodb import KasyTable
from utils.decorators import (extract_path_params, extract_query_params,
                              lambda_handler, validate_json_body)
from utils.responses import (HTTPStatus, error_response, success_response,
                             validation_error_response)

logger = logging.getLogger(__name__)
table = KasyTable()


@lambda_handler()
@extract_path_params("user_id")
@extract_query_params(group_id=None, this_month="false")
def list_badges(event, context):
    """
    List a user's badges, newest first.

    GET /badges/{user_id}?group_id=...&this_month=true
    """
    user_id = event["path_params"]["user_id"]
    params = event["query_params"]

    try:
        badges = badge_service.get_user_badges(
            table,
            user_id,
            group_id=params["group_id"],
            this_month_only=params["this_month"].lower() == "true",
        )
        return success_response(
            data={"badges": [badge.model_dump(mode="json") for badge in badges]}
        )
    except Exception as e:
        logger.error(f"Error listing badges for {user_id}: {str(e)}", exc_info=True)
        return error_response(
            f"Failed to list badges: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )


@lambda_handler()
@validate_json_body(required_fields=["user_id", "group_id", "badge_type"])
def award_badge(event, context):
    """
    Award a badge directly.

    POST /badges/award

    A badge the user already holds this month in the group is not awarded
    again; the response then carries ``awarded: false``.
    """
    try:
        request = BadgeAward(**event["json_body"])
        awarded = badge_service.award_badge(
            table,
            request.user_id,
            request.group_id,
            request.badge_type,
            request.metadata,
        )
    except ValidationError as e:
        return validation_error_response(
            "Badge validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )
    except Exception as e:
        logger.error(f"Error awarding badge: {str(e)}", exc_info=True)
        return error_response(
            f"Failed to award badge: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )

    if not awarded:
        return success_response(
            data={"awarded": False},
            message="Badge already awarded this month",
        )

    return success_response(
        data={"awarded": True},
        message="Badge awarded successfully",
        status_code=HTTPStatus.CREATED,
    )
