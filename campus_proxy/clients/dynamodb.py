"""
DynamoDB record store for credential records in hosted deployments.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3

from campus_proxy.core.config import CredentialStoreSettings


class DynamoDBClient:
    """Key-value operations over a table with a (pk, sk) composite key."""

    def __init__(self, settings: CredentialStoreSettings, resource: Any = None) -> None:
        if not settings.dynamodb_table_name:
            raise ValueError("CREDENTIAL_STORE_DYNAMODB_TABLE_NAME must be set.")
        self._settings = settings
        self._resource = resource or boto3.resource(
            "dynamodb", region_name=settings.aws_region
        )
        self._table = self._resource.Table(settings.dynamodb_table_name)

    def put_item(self, item: Dict[str, Any]) -> None:
        """Upsert an item; DynamoDB puts replace any existing item with the same key."""
        self._table.put_item(Item=item)

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        response = self._table.get_item(
            Key={"pk": partition_key, "sk": sort_key},
            ConsistentRead=True,
        )
        return response.get("Item")

    def delete_item(self, *, partition_key: str, sort_key: str) -> None:
        self._table.delete_item(Key={"pk": partition_key, "sk": sort_key})


__all__ = ["DynamoDBClient"]
