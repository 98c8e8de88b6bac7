"""
DynamoDB service for the KASY backend.

All entities share one table keyed by ``PK``/``SK``; lookups by expense or
payment id alone use the inverted ``SK-PK-index``. See ``models.dynamodb`` for
the key layout.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import boto3
import botocore

from models.badge import BadgeBase
from models.expense import ExpenseBase, ExpenseStatus
from models.group import GroupBase, membership_item
from models.payment import PaymentBase, PaymentStatus
from models.receipt import PendingReceipt
from models.users import UserBase, UserStats

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

INVERTED_INDEX = "SK-PK-index"

_dynamodb_resource = None


def get_dynamodb_resource():
    """Get or create the shared DynamoDB resource, reused across warm starts."""
    global _dynamodb_resource
    if _dynamodb_resource is None:
        _dynamodb_resource = boto3.resource("dynamodb")
    return _dynamodb_resource


def reset_dynamodb_resource():
    """Drop the cached resource so the next call builds a fresh one."""
    global _dynamodb_resource
    _dynamodb_resource = None


def _is_conditional_failure(err: botocore.exceptions.ClientError) -> bool:
    return err.response["Error"]["Code"] == "ConditionalCheckFailedException"


class KasyTable:
    """
    Encapsulates operations on the KASY DynamoDB table.

    Methods log DynamoDB client errors with the table name and re-raise them;
    lookups return ``None`` when an item does not exist.
    """

    def __init__(self, table_name: str = None):
        """
        :param table_name: Name of the DynamoDB table, ``TABLE_NAME`` by default.
        """
        self.table_name = table_name or os.environ.get("TABLE_NAME", "KasyTable")
        self._table = None

    @property
    def table(self):
        if self._table is None:
            self._table = get_dynamodb_resource().Table(self.table_name)
        return self._table

    def _log_client_error(self, action: str, err: botocore.exceptions.ClientError):
        logger.error(
            "Couldn't %s in table %s. Error: %s: %s",
            action,
            self.table_name,
            err.response["Error"]["Code"],
            err.response["Error"]["Message"],
        )

    def _query_all(self, **kwargs) -> List[Dict[str, Any]]:
        """Run a query and follow pagination until every item is collected."""
        items = []
        while True:
            response = self.table.query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def _query_prefix(self, pk: str, sk_prefix: str) -> List[Dict[str, Any]]:
        return self._query_all(
            KeyConditionExpression="PK = :pk AND begins_with(SK, :sk_prefix)",
            ExpressionAttributeValues={":pk": pk, ":sk_prefix": sk_prefix},
        )

    def _get_by_sort_key(self, sk: str) -> Optional[Dict[str, Any]]:
        items = self._query_all(
            IndexName=INVERTED_INDEX,
            KeyConditionExpression="SK = :sk",
            ExpressionAttributeValues={":sk": sk},
        )
        return items[0] if items else None

    # Users

    def put_user(self, user: UserBase) -> bool:
        """
        Adds or replaces a user profile.

        :param user: The user to store.
        :return: True if successful, raises exception otherwise.
        """
        try:
            self.table.put_item(Item=user.to_dynamodb_item().model_dump())
            return True
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"put user {user.user_id}", err)
            raise

    def create_user_if_absent(self, user: UserBase) -> bool:
        """
        Stores a user only when no profile exists yet.

        :return: True if the user was created, False if it already existed.
        """
        try:
            self.table.put_item(
                Item=user.to_dynamodb_item().model_dump(),
                ConditionExpression="attribute_not_exists(PK)",
            )
            logger.info("Created user %s", user.user_id)
            return True
        except botocore.exceptions.ClientError as err:
            if _is_conditional_failure(err):
                return False
            self._log_client_error(f"create user {user.user_id}", err)
            raise

    def get_user(self, user_id: str) -> Optional[UserBase]:
        """
        Gets a user profile.

        :param user_id: The id of the user to retrieve.
        :return: The user if found, None otherwise.
        """
        try:
            response = self.table.get_item(
                Key={"PK": f"USER#{user_id}", "SK": "PROFILE"}
            )
            return UserBase.from_dynamodb_item(response.get("Item"))
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"get user {user_id}", err)
            raise

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserBase]:
        """Profiles of the given users keyed by id; unknown ids are skipped."""
        users = {}
        for user_id in dict.fromkeys(user_ids):
            user = self.get_user(user_id)
            if user:
                users[user_id] = user
        return users

    def get_user_stats(self, user_id: str) -> Optional[UserStats]:
        try:
            response = self.table.get_item(Key={"PK": f"USER#{user_id}", "SK": "STATS"})
            return UserStats.from_dynamodb_item(response.get("Item"))
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"get stats for user {user_id}", err)
            raise

    def put_user_stats(self, stats: UserStats) -> bool:
        try:
            self.table.put_item(Item=stats.to_dynamodb_item().model_dump())
            return True
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"put stats for user {stats.user_id}", err)
            raise

    # Groups

    def ensure_group(self, group_id: str, member_ids: Iterable[str]) -> None:
        """
        Creates the group on first use and records every member.

        Membership writes are idempotent puts keyed by user id.
        """
        try:
            self.table.put_item(
                Item=GroupBase(group_id=group_id, name=group_id)
                .to_dynamodb_item()
                .model_dump(),
                ConditionExpression="attribute_not_exists(PK)",
            )
            logger.info("Created group %s", group_id)
        except botocore.exceptions.ClientError as err:
            if not _is_conditional_failure(err):
                self._log_client_error(f"create group {group_id}", err)
                raise

        try:
            with self.table.batch_writer(overwrite_by_pkeys=["PK", "SK"]) as batch:
                for user_id in dict.fromkeys(member_ids):
                    batch.put_item(Item=membership_item(group_id, user_id).model_dump())
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"add members to group {group_id}", err)
            raise

    def get_group(self, group_id: str) -> Optional[GroupBase]:
        try:
            response = self.table.get_item(Key={"PK": f"GROUP#{group_id}", "SK": "META"})
            return GroupBase.from_dynamodb_item(response.get("Item"))
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"get group {group_id}", err)
            raise

    def list_group_members(self, group_id: str) -> List[str]:
        try:
            items = self._query_prefix(f"GROUP#{group_id}", "MEMBER#")
            return [item["user_id"] for item in items]
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"list members of group {group_id}", err)
            raise

    # Expenses

    def put_expense(self, expense: ExpenseBase) -> bool:
        """
        Adds or replaces an expense.

        :param expense: The expense to store.
        :return: True if successful, raises exception otherwise.
        """
        try:
            self.table.put_item(Item=expense.to_dynamodb_item().model_dump())
            return True
        except botocore.exceptions.ClientError as err:
            self._log_client_error(
                f"put expense {expense.expense_id} for group {expense.group_id}", err
            )
            raise

    def get_expense(self, expense_id: str) -> Optional[ExpenseBase]:
        """
        Gets an expense by id through the inverted index.

        :return: The expense if found, None otherwise.
        """
        try:
            return ExpenseBase.from_dynamodb_item(
                self._get_by_sort_key(f"EXPENSE#{expense_id}")
            )
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"get expense {expense_id}", err)
            raise

    def list_group_expenses(
        self, group_id: str, include_deleted: bool = False
    ) -> List[ExpenseBase]:
        """
        Lists a group's expenses, newest first.

        :param include_deleted: Also return soft-deleted expenses.
        """
        try:
            items = self._query_prefix(f"GROUP#{group_id}", "EXPENSE#")
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"list expenses for group {group_id}", err)
            raise

        expenses = [ExpenseBase.from_dynamodb_item(item) for item in items]
        if not include_deleted:
            expenses = [e for e in expenses if e.status != ExpenseStatus.DELETED]
        return sorted(
            expenses,
            key=lambda e: e.created_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )

    def update_expense(self, expense: ExpenseBase) -> bool:
        """Replaces an existing expense; put_item overwrites the stored item."""
        return self.put_expense(expense)

    def clear_group_expenses(self, group_id: str) -> int:
        """
        Physically deletes every expense and payment of a group.

        :return: The number of expenses removed.
        """
        try:
            expense_items = self._query_prefix(f"GROUP#{group_id}", "EXPENSE#")
            payment_items = self._query_prefix(f"GROUP#{group_id}", "PAYMENT#")
            with self.table.batch_writer() as batch:
                for item in payment_items + expense_items:
                    batch.delete_item(Key={"PK": item["PK"], "SK": item["SK"]})
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"clear expenses for group {group_id}", err)
            raise

        logger.info(
            "Cleared group %s: %d expenses, %d payments",
            group_id,
            len(expense_items),
            len(payment_items),
        )
        return len(expense_items)

    # Payments

    def put_payment(self, payment: PaymentBase) -> bool:
        try:
            self.table.put_item(Item=payment.to_dynamodb_item().model_dump())
            return True
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"put payment {payment.payment_id}", err)
            raise

    def get_payment(self, payment_id: str) -> Optional[PaymentBase]:
        try:
            return PaymentBase.from_dynamodb_item(
                self._get_by_sort_key(f"PAYMENT#{payment_id}")
            )
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"get payment {payment_id}", err)
            raise

    def list_group_payments(
        self, group_id: str, status: Optional[PaymentStatus] = None
    ) -> List[PaymentBase]:
        try:
            items = self._query_prefix(f"GROUP#{group_id}", "PAYMENT#")
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"list payments for group {group_id}", err)
            raise

        payments = [PaymentBase.from_dynamodb_item(item) for item in items]
        if status is not None:
            payments = [p for p in payments if p.status == status]
        return payments

    # Badges

    def put_badge_if_absent(self, badge: BadgeBase) -> bool:
        """
        Stores a badge unless the same (user, group, type, month) exists.

        The uniqueness rule is the item key, so the conditional put is atomic
        and concurrent awards cannot create duplicates.

        :return: True if the badge was stored, False if it already existed.
        """
        try:
            self.table.put_item(
                Item=badge.to_dynamodb_item().model_dump(),
                ConditionExpression="attribute_not_exists(SK)",
            )
            return True
        except botocore.exceptions.ClientError as err:
            if _is_conditional_failure(err):
                return False
            self._log_client_error(
                f"put badge {badge.badge_type.value} for user {badge.user_id}", err
            )
            raise

    def list_user_badges(
        self,
        user_id: str,
        group_id: Optional[str] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> List[BadgeBase]:
        """Lists a user's badges newest first, optionally for one group or month."""
        prefix = f"BADGE#{group_id}#" if group_id else "BADGE#"
        try:
            items = self._query_prefix(f"USER#{user_id}", prefix)
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"list badges for user {user_id}", err)
            raise

        badges = [BadgeBase.from_dynamodb_item(item) for item in items]
        if year is not None and month is not None:
            badges = [b for b in badges if b.year == year and b.month == month]
        return sorted(badges, key=lambda b: b.awarded_at, reverse=True)

    # Pending receipts

    def put_pending_receipt(self, receipt: PendingReceipt) -> bool:
        """
        Stores a pending receipt, superseding earlier ones for the same user and group.
        """
        try:
            stale = self._query_prefix(
                f"USER#{receipt.user_id}", f"RECEIPT#{receipt.group_id}#"
            )
            with self.table.batch_writer() as batch:
                for item in stale:
                    batch.delete_item(Key={"PK": item["PK"], "SK": item["SK"]})
            self.table.put_item(Item=receipt.to_dynamodb_item().model_dump())
            return True
        except botocore.exceptions.ClientError as err:
            self._log_client_error(
                f"put pending receipt for user {receipt.user_id}", err
            )
            raise

    def get_pending_receipt(
        self, user_id: str, group_id: str, receipt_id: str
    ) -> Optional[PendingReceipt]:
        """
        Gets a pending receipt by id, expired or not.

        Callers decide how to treat an expired receipt.
        """
        try:
            response = self.table.get_item(
                Key={"PK": f"USER#{user_id}", "SK": f"RECEIPT#{group_id}#{receipt_id}"}
            )
            return PendingReceipt.from_dynamodb_item(response.get("Item"))
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"get pending receipt {receipt_id}", err)
            raise

    def get_latest_pending_receipt(
        self, user_id: str, group_id: str, now: Optional[datetime] = None
    ) -> Optional[PendingReceipt]:
        """The newest unexpired pending receipt of a user in a group."""
        try:
            items = self._query_prefix(f"USER#{user_id}", f"RECEIPT#{group_id}#")
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"list pending receipts for user {user_id}", err)
            raise

        receipts = [PendingReceipt.from_dynamodb_item(item) for item in items]
        live = [r for r in receipts if not r.is_expired(now)]
        if not live:
            return None
        return max(live, key=lambda r: r.created_at)

    def delete_pending_receipt(self, receipt: PendingReceipt) -> bool:
        try:
            item = receipt.to_dynamodb_item()
            self.table.delete_item(Key={"PK": item.PK, "SK": item.SK})
            return True
        except botocore.exceptions.ClientError as err:
            self._log_client_error(f"delete pending receipt {receipt.receipt_id}", err)
            raise
