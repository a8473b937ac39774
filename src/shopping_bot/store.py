"""
Shopping list storage on a single DynamoDB table.

Rows are `{"item": {"S": name}}`; the item name is also the hash key, so
adding the same name twice just overwrites the row.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError, WaiterError

logger = logging.getLogger(__name__)

KEY_ATTR = "item"


def _boto3():
    # Allow tests to monkeypatch module-level `boto3` symbol.
    return globals().get("boto3") or importlib.import_module("boto3")


def _dynamodb_client():
    return _boto3().client("dynamodb")


class TableRecreateError(Exception):
    """The list table is gone and delete-all did not create it again.

    Raised when the drop succeeded but the create did not, and when the table
    was already missing before the drop. Someone has to recreate it by hand,
    from `schema` when it was captured.
    """

    def __init__(self, table_name: str, schema: TableSchema | None, cause: Exception) -> None:
        super().__init__(f"table {table_name!r} is missing and was not recreated: {cause}")
        self.table_name = table_name
        self.schema = schema
        self.cause = cause


@dataclass(frozen=True)
class TableSchema:
    """Key schema plus throughput or billing mode; nothing else survives a recreate
    (indexes, table class, SSE and streams are not carried over)."""

    table_name: str
    attribute_definitions: list[dict[str, Any]]
    key_schema: list[dict[str, Any]]
    billing_mode: str = "PROVISIONED"
    read_capacity_units: int = 0
    write_capacity_units: int = 0

    @classmethod
    def from_description(cls, table: dict[str, Any]) -> TableSchema:
        throughput = table.get("ProvisionedThroughput") or {}
        billing = (table.get("BillingModeSummary") or {}).get("BillingMode") or "PROVISIONED"
        return cls(
            table_name=table["TableName"],
            attribute_definitions=list(table.get("AttributeDefinitions") or []),
            key_schema=list(table.get("KeySchema") or []),
            billing_mode=billing,
            read_capacity_units=int(throughput.get("ReadCapacityUnits") or 0),
            write_capacity_units=int(throughput.get("WriteCapacityUnits") or 0),
        )

    def create_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "TableName": self.table_name,
            "AttributeDefinitions": self.attribute_definitions,
            "KeySchema": self.key_schema,
            "BillingMode": self.billing_mode,
        }
        # on-demand tables report 0/0 throughput and must not send it back
        if self.billing_mode == "PROVISIONED":
            params["ProvisionedThroughput"] = {
                "ReadCapacityUnits": self.read_capacity_units,
                "WriteCapacityUnits": self.write_capacity_units,
            }
        return params


# ----- Row operations -----
def list_items(table_name: str) -> list[str]:
    """Return item names in whatever order the scan yields. Single page only."""
    resp = _dynamodb_client().scan(TableName=table_name)
    names: list[str] = []
    for row in resp.get("Items") or []:
        name = (row.get(KEY_ATTR) or {}).get("S")
        if name is not None:
            names.append(name)
    return names


def add_item(table_name: str, item: str) -> None:
    _dynamodb_client().put_item(TableName=table_name, Item={KEY_ATTR: {"S": item}})


def delete_item(table_name: str, item: str) -> None:
    # DynamoDB does not complain about missing keys
    _dynamodb_client().delete_item(TableName=table_name, Key={KEY_ATTR: {"S": item}})


# ----- Table operations -----
def _not_found(e: ClientError) -> bool:
    return e.response.get("Error", {}).get("Code") == "ResourceNotFoundException"


def describe_table(table_name: str) -> TableSchema:
    resp = _dynamodb_client().describe_table(TableName=table_name)
    return TableSchema.from_description(resp["Table"])


def table_status(table_name: str) -> str | None:
    """`ACTIVE`, `CREATING`, `DELETING`, ... or None when the table does not exist."""
    try:
        resp = _dynamodb_client().describe_table(TableName=table_name)
    except ClientError as e:
        if _not_found(e):
            return None
        raise
    return resp["Table"].get("TableStatus") or "ACTIVE"


def table_exists(table_name: str) -> bool:
    return table_status(table_name) is not None


def delete_all_items(
    table_name: str,
    wait_delay_seconds: int = 5,
    wait_max_attempts: int = 24,
) -> TableSchema:
    """Empty the table by dropping and recreating it.

    Scanning and deleting every row costs read capacity; dropping the table
    does not. The schema is captured first and reused for the new table.

    Raises `TableRecreateError` whenever the table ends up (or already was)
    absent without a new one being created: it is missing up front, it is
    still deleting when the wait gives up, or the create fails. The table
    must then be restored by hand.
    """
    try:
        schema = describe_table(table_name)
    except ClientError as e:
        if _not_found(e):
            logger.critical("delete_all: %s does not exist; it must be recreated by hand", table_name)
            raise TableRecreateError(table_name, None, e) from e
        raise
    logger.info("delete_all: captured schema for %s (%s)", table_name, schema.billing_mode)

    client = _dynamodb_client()
    client.delete_table(TableName=table_name)
    logger.info("delete_all: delete_table issued for %s", table_name)

    waiter = client.get_waiter("table_not_exists")
    try:
        waiter.wait(
            TableName=table_name,
            WaiterConfig={"Delay": wait_delay_seconds, "MaxAttempts": wait_max_attempts},
        )
    except WaiterError as e:
        status = table_status(table_name)
        if status == "DELETING":
            logger.critical(
                "delete_all: gave up waiting while %s is still deleting; it will not be recreated: %s",
                table_name,
                e,
            )
            raise TableRecreateError(table_name, schema, e) from e
        if status is not None:
            # the drop never took effect; rows are still there
            raise
        logger.warning("delete_all: %s disappeared after the wait gave up", table_name)
    logger.info("delete_all: %s no longer exists", table_name)

    try:
        client.create_table(**schema.create_params())
    except Exception as e:
        logger.critical(
            "delete_all: %s was deleted but create_table failed; table is gone: %s",
            table_name,
            e,
        )
        raise TableRecreateError(table_name, schema, e) from e
    logger.info("delete_all: create_table issued for %s", table_name)
    return schema
