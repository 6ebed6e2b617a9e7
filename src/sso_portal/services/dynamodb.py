"""DynamoDB service wrapper for the portal's tables.

Tables (name = "{prefix}-{table}"):
- browser-state: per-browser key/value storage, keyed by device_id
- consumed-credentials: one-time recovery credential claims, keyed by credential_hash
- profiles: user profiles, keyed by id
- apps: client applications, keyed by id
- login-stats: append-only login records, keyed by id
"""

import os
from datetime import datetime, timezone
from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

# Browser storage records expire after a year without writes
BROWSER_STATE_TTL_SECONDS = 60 * 60 * 24 * 365

# Module-level singleton for connection reuse
_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Get or create the singleton DynamoDB service instance.

    Args:
        environment: Environment name. Only used on first call.

    Returns:
        Shared DynamoDBService instance
    """
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Reset the singleton instance (for testing only).

    This allows tests to create a fresh DynamoDBService inside
    a mock_aws context.
    """
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


class DynamoDBService:
    """Service for DynamoDB operations with environment-aware table names."""

    def __init__(self, environment: str | None = None) -> None:
        """Initialize DynamoDB service.

        Args:
            environment: Environment name (dev/prod). Defaults to ENVIRONMENT env var.
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        # Allow override via DYNAMODB_TABLE_PREFIX for testing
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"sso-portal-{self.environment}"
        )
        self._dynamodb = boto3.resource("dynamodb")

    def _table_name(self, table: str) -> str:
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        return self._dynamodb.Table(self._table_name(table))

    # Generic operations

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Get a single item by key.

        Args:
            table: Table name without prefix
            key: Primary key dict

        Returns:
            Item dict or None if not found
        """
        response = self._get_table(table).get_item(Key=key)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Put an item into the table.

        Args:
            table: Table name without prefix
            item: Item to store
            condition_expression: Optional condition for write

        Returns:
            True if successful, False if condition failed
        """
        try:
            kwargs: dict[str, Any] = {"Item": item}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            self._get_table(table).put_item(**kwargs)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise

    def delete_item(self, table: str, key: dict[str, Any]) -> bool:
        """Delete an item by key. Returns True even if it didn't exist."""
        self._get_table(table).delete_item(Key=key)
        return True

    def scan(
        self,
        table: str,
        filter_expression: Any | None = None,
    ) -> list[dict[str, Any]]:
        """Scan a whole table, following pagination.

        Only used on small configuration tables (apps).

        Args:
            table: Table name without prefix
            filter_expression: Optional boto3 Attr condition

        Returns:
            List of items
        """
        kwargs: dict[str, Any] = {}
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression

        items: list[dict[str, Any]] = []
        while True:
            response = self._get_table(table).scan(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
    ) -> list[dict[str, Any]]:
        """Query a GSI by partition key."""
        response = self._get_table(table).query(
            IndexName=index_name,
            KeyConditionExpression=Key(partition_key_name).eq(partition_key_value),
        )
        items: list[dict[str, Any]] = response.get("Items", [])
        return items

    # =========================================================================
    # Browser storage
    # =========================================================================

    def get_browser_storage(self, device_id: str) -> dict[str, str] | None:
        """Load the key/value storage of one browser.

        Args:
            device_id: Value of the device cookie

        Returns:
            Storage mapping, or None if the device is unknown
        """
        item = self.get_item(table="browser-state", key={"device_id": device_id})
        if not item:
            return None
        storage = item.get("storage") or {}
        return {str(k): str(v) for k, v in storage.items()}

    def apply_browser_storage_changes(
        self, device_id: str, changes: dict[str, str | None]
    ) -> None:
        """Write the keys one request set or removed in a browser's storage.

        Keys are updated one by one inside the storage map, so keys written
        by another request in between are kept.

        Args:
            device_id: Value of the device cookie
            changes: Key to new value, or to None for a removal
        """
        if not changes:
            return

        table = self._get_table("browser-state")
        key = {"device_id": device_id}
        now = datetime.now(timezone.utc)

        # Nested paths can only be written once the map exists
        table.update_item(
            Key=key,
            UpdateExpression=(
                "SET #storage = if_not_exists(#storage, :empty), "
                "updated_at = :now, expires_at = :expires"
            ),
            ExpressionAttributeNames={"#storage": "storage"},
            ExpressionAttributeValues={
                ":empty": {},
                ":now": now.isoformat(),
                ":expires": int(now.timestamp()) + BROWSER_STATE_TTL_SECONDS,
            },
        )

        names = {"#storage": "storage"}
        values: dict[str, Any] = {}
        set_clauses: list[str] = []
        remove_clauses: list[str] = []
        for i, (name, value) in enumerate(sorted(changes.items())):
            names[f"#k{i}"] = name
            if value is None:
                remove_clauses.append(f"#storage.#k{i}")
            else:
                values[f":v{i}"] = value
                set_clauses.append(f"#storage.#k{i} = :v{i}")

        clauses = []
        if set_clauses:
            clauses.append("SET " + ", ".join(set_clauses))
        if remove_clauses:
            clauses.append("REMOVE " + ", ".join(remove_clauses))

        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": " ".join(clauses),
            "ExpressionAttributeNames": names,
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values
        table.update_item(**kwargs)

    def pop_browser_storage_key(self, device_id: str, key: str) -> str | None:
        """Remove one key from a browser's storage and return its value.

        The removal is conditional on the key being present, so when two
        requests pop the same key only one of them gets the value.

        Returns:
            The removed value, or None if the key (or device) was absent
        """
        try:
            response = self._get_table("browser-state").update_item(
                Key={"device_id": device_id},
                UpdateExpression="REMOVE #storage.#key",
                ConditionExpression="attribute_exists(#storage.#key)",
                ExpressionAttributeNames={"#storage": "storage", "#key": key},
                ReturnValues="UPDATED_OLD",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise

        value = response.get("Attributes", {}).get("storage", {}).get(key)
        return str(value) if value is not None else None

    # =========================================================================
    # One-time credential claims
    # =========================================================================

    def claim_credential(self, credential_hash: str, expires_at: int) -> bool:
        """Record a credential as consumed, atomically.

        Args:
            credential_hash: SHA-256 hex digest of the credential
            expires_at: Unix epoch for DynamoDB TTL

        Returns:
            True if this call claimed it, False if it was already claimed
        """
        return self.put_item(
            table="consumed-credentials",
            item={
                "credential_hash": credential_hash,
                "claimed_at": datetime.now(timezone.utc).isoformat(),
                "expires_at": expires_at,
            },
            condition_expression="attribute_not_exists(credential_hash)",
        )

    # =========================================================================
    # Profiles, apps and login statistics
    # =========================================================================

    def get_profile(self, user_id: str) -> dict[str, Any] | None:
        return self.get_item(table="profiles", key={"id": user_id})

    def list_active_apps(self) -> list[dict[str, Any]]:
        """Active apps sorted by name."""
        items = self.scan(table="apps", filter_expression=Attr("is_active").eq(True))
        return sorted(items, key=lambda item: str(item.get("name", "")).lower())

    def get_app_by_slug(self, slug: str) -> dict[str, Any] | None:
        results = self.query_by_gsi(
            table="apps",
            index_name="slug-index",
            partition_key_name="slug",
            partition_key_value=slug,
        )
        return results[0] if results else None

    def create_login_stat(self, stat: dict[str, Any]) -> bool:
        return self.put_item(
            table="login-stats",
            item=stat,
            condition_expression="attribute_not_exists(id)",
        )
