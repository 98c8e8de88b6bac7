"""
User profile handlers for the KASY API.

Users are created implicitly the first time an expense mentions them; these
handlers let a user fill in their real name, handle and payment handles.
"""

import logging
from datetime import datetime, timezone

from pydantic import ValidationError

from models.users import UserBase, UserProfileUpdate
from services.dynamodb import KasyTable
from utils.decorators import (extract_path_params, lambda_handler,
                              validate_json_body)
from utils.responses import (HTTPStatus, error_response, not_found_response,
                             success_response, validation_error_response)

logger = logging.getLogger(__name__)
table = KasyTable()


def user_to_dict(user: UserBase) -> dict:
    data = user.model_dump(mode="json")
    data["handle"] = f"@{user.username}"
    return data


@lambda_handler()
@validate_json_body(required_fields=["user_id"])
def update_profile(event, context):
    """
    Create or update a user profile.

    POST /users/profile

    Only the fields present in the body change; an unknown user is created
    with the id standing in for missing names.
    """
    try:
        update = UserProfileUpdate(**event["json_body"])
        now = datetime.now(timezone.utc)

        user = table.get_user(update.user_id)
        if user:
            changes = {
                "display_name": update.display_name,
                "username": update.username,
                "venmo": update.venmo,
                "paypal": update.paypal,
                "avatar_url": update.avatar_url,
            }
            user = UserBase.model_validate(
                {
                    **user.model_dump(),
                    **{k: v for k, v in changes.items() if v},
                    "updated_at": now,
                }
            )
        else:
            user = UserBase(
                user_id=update.user_id,
                display_name=update.display_name or update.user_id,
                username=update.username or update.user_id,
                venmo=update.venmo,
                paypal=update.paypal,
                avatar_url=update.avatar_url,
                created_at=now,
                updated_at=now,
            )

        table.put_user(user)
        logger.info(f"Profile updated for user {user.user_id}")

        return success_response(
            data={"user": user_to_dict(user)}, message="Profile updated"
        )

    except ValidationError as e:
        return validation_error_response(
            "Profile validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )
    except Exception as e:
        logger.error(f"Error updating profile: {str(e)}", exc_info=True)
        return error_response(
            f"Failed to update profile: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )


@lambda_handler()
@extract_path_params("user_id")
def get_user(event, context):
    """
    Get a user profile together with their payment stats.

    GET /users/{user_id}
    """
    user_id = event["path_params"]["user_id"]

    user = table.get_user(user_id)
    if not user:
        return not_found_response("User", user_id)

    stats = table.get_user_stats(user_id)
    return success_response(
        data={
            "user": user_to_dict(user),
            "stats": stats.model_dump(mode="json") if stats else None,
        }
    )
