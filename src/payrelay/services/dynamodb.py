"""DynamoDB service wrapper for table operations.

One DynamoDBService is constructed at process start (see the API lifespan),
passed explicitly to the services that need it and closed on shutdown.
Every call runs with bounded botocore timeouts; storage failures surface as
PersistenceError so callers can tell them apart from business errors.
"""

from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from payrelay.config import RelaySettings
from payrelay.models.errors import PersistenceError
from payrelay.utils.logging import get_logger

logger = get_logger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


class DynamoDBService:
    """Service for DynamoDB operations with environment-aware table names."""

    def __init__(self, settings: RelaySettings) -> None:
        """Initialize DynamoDB service.

        Args:
            settings: Relay settings (table prefix and timeouts)
        """
        self.name_prefix = settings.table_prefix
        config = Config(
            connect_timeout=settings.dynamodb_connect_timeout,
            read_timeout=settings.dynamodb_read_timeout,
            retries={"max_attempts": settings.dynamodb_max_attempts, "mode": "standard"},
        )
        self._session = boto3.session.Session()
        self._dynamodb = self._session.resource("dynamodb", config=config)
        self._client = self._dynamodb.meta.client
        self._closed = False

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        if not self._closed:
            self._client.close()
            self._closed = True
            logger.info("DynamoDB client closed")

    def _table_name(self, table: str) -> str:
        """Get full table name with prefix."""
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        return self._dynamodb.Table(self._table_name(table))

    # Generic CRUD operations

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

        Raises:
            PersistenceError: If the call fails or times out
        """
        try:
            response = self._get_table(table).get_item(Key=key, ConsistentRead=True)
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"get_item:{table}", str(e)) from e
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

        Raises:
            PersistenceError: If the call fails for any other reason
        """
        try:
            kwargs: dict[str, Any] = {"Item": item}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            self._get_table(table).put_item(**kwargs)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == CONDITIONAL_CHECK_FAILED:
                return False
            raise PersistenceError(f"put_item:{table}", str(e)) from e
        except BotoCoreError as e:
            raise PersistenceError(f"put_item:{table}", str(e)) from e

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Update an item with expressions.

        Args:
            table: Table name without prefix
            key: Primary key dict
            update_expression: DynamoDB update expression
            expression_attribute_values: Values for expression
            expression_attribute_names: Names for expression (for reserved words)
            condition_expression: Optional condition for update

        Returns:
            Updated attributes or None if condition failed

        Raises:
            PersistenceError: If the call fails for any other reason
        """
        try:
            kwargs: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": update_expression,
                "ExpressionAttributeValues": expression_attribute_values,
                "ReturnValues": "ALL_NEW",
            }
            if expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = expression_attribute_names
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            response = self._get_table(table).update_item(**kwargs)
            attrs: dict[str, Any] | None = response.get("Attributes")
            return attrs
        except ClientError as e:
            if e.response["Error"]["Code"] == CONDITIONAL_CHECK_FAILED:
                return None
            raise PersistenceError(f"update_item:{table}", str(e)) from e
        except BotoCoreError as e:
            raise PersistenceError(f"update_item:{table}", str(e)) from e

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        filter_expression: Any | None = None,
        limit: int | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query table or GSI, following pagination.

        DynamoDB applies Limit before FilterExpression, so with a filter the
        limit is enforced client-side after each page.

        Args:
            table: Table name without prefix
            key_condition: Boto3 Key condition
            index_name: GSI name (optional)
            filter_expression: Additional filter (optional)
            limit: Max items to return
            scan_index_forward: Sort order (True=ascending)

        Returns:
            List of items

        Raises:
            PersistenceError: If the call fails or times out
        """
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_index_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        elif limit:
            kwargs["Limit"] = limit

        items: list[dict[str, Any]] = []
        try:
            while True:
                response = self._get_table(table).query(**kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key or (limit and len(items) >= limit):
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"query:{table}", str(e)) from e

        return items[:limit] if limit else items

    def ping(self, table: str) -> bool:
        """Check that a table is reachable.

        Args:
            table: Table name without prefix

        Returns:
            True if DescribeTable succeeded
        """
        try:
            self._client.describe_table(TableName=self._table_name(table))
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning("DynamoDB ping failed for %s: %s", table, e)
            return False
