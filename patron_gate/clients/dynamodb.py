"""
DynamoDB-backed credential storage.

Records live in a table whose partition key is ``pk`` (``patreon#<id>``).
Both writes are single ``update_item`` calls, so each is atomic per record.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from patron_gate.clients.storage import (
    CREDENTIAL_FIELDS,
    MEMBERSHIP_FIELDS,
    CredentialStoreUnavailableError,
)
from patron_gate.core.config import StorageSettings

logger = logging.getLogger(__name__)


def _partition_key(patreon_id: str) -> str:
    return f"patreon#{patreon_id}"


def _from_dynamo(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: int(value) if isinstance(value, Decimal) else value
        for key, value in item.items()
        if key != "pk"
    }


class DynamoDBCredentialStore:
    """Credential records stored one item per Patreon user."""

    def __init__(self, settings: StorageSettings, table: Any = None) -> None:
        if table is None:
            if not settings.dynamodb_table_name:
                raise ValueError("DYNAMODB_TABLE_NAME is required for the dynamodb backend.")
            resource = boto3.resource("dynamodb", region_name=settings.region_name)
            table = resource.Table(settings.dynamodb_table_name)
        self._table = table

    def get_item(self, patreon_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self._table.get_item(
                Key={"pk": _partition_key(patreon_id)}, ConsistentRead=True
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("DynamoDB get_item failed: %s", exc)
            raise CredentialStoreUnavailableError(str(exc)) from exc
        item = response.get("Item")
        return _from_dynamo(item) if item else None

    def upsert_credentials(
        self, patreon_id: str, fields: Dict[str, Any], *, created_at_ms: int
    ) -> None:
        missing = [name for name in CREDENTIAL_FIELDS if name not in fields]
        if missing:
            raise ValueError(f"Credential write is missing fields: {', '.join(missing)}")

        assignments = [f"#{name} = :{name}" for name in CREDENTIAL_FIELDS]
        assignments.append("#created_at_ms = if_not_exists(#created_at_ms, :created_at_ms)")
        names = {f"#{name}": name for name in (*CREDENTIAL_FIELDS, "created_at_ms", "patreon_id")}
        values = {f":{name}": fields[name] for name in CREDENTIAL_FIELDS}
        values[":created_at_ms"] = created_at_ms
        values[":patreon_id"] = patreon_id
        assignments.append("#patreon_id = :patreon_id")

        try:
            self._table.update_item(
                Key={"pk": _partition_key(patreon_id)},
                UpdateExpression="SET " + ", ".join(assignments),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("DynamoDB credential upsert failed: %s", exc)
            raise CredentialStoreUnavailableError(str(exc)) from exc

    def update_membership(self, patreon_id: str, fields: Dict[str, Any]) -> bool:
        present = [name for name in MEMBERSHIP_FIELDS if fields.get(name) is not None]
        names = {f"#{name}": name for name in present}
        values = {f":{name}": fields[name] for name in present}
        if not present:
            return False
        try:
            self._table.update_item(
                Key={"pk": _partition_key(patreon_id)},
                UpdateExpression="SET " + ", ".join(f"#{name} = :{name}" for name in present),
                ConditionExpression="attribute_exists(pk)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            logger.error("DynamoDB membership update failed: %s", exc)
            raise CredentialStoreUnavailableError(str(exc)) from exc
        except BotoCoreError as exc:
            logger.error("DynamoDB membership update failed: %s", exc)
            raise CredentialStoreUnavailableError(str(exc)) from exc
        return True


__all__ = ["DynamoDBCredentialStore"]
