"""DynamoDB-backed binding store, shared across gateway instances."""

import asyncio

from keyguard.bindings.models import DeviceBinding, utcnow
from keyguard.bindings.store import BindingStore, Clock
from keyguard.errors import StoreError


class DynamoDBBindingStore(BindingStore):
    """Stores one item per API key (partition key ``api_key``).

    Each mutation is a single-item write, which DynamoDB applies
    atomically, so operations on the same key are serialized by the table.
    """

    def __init__(self, table_name: str, region: str = "us-east-1", clock: Clock = utcnow):
        self._table_name = table_name
        self._region = region
        self._clock = clock
        self._table = None

    def _get_table(self):
        """Lazy-init boto3 Table resource."""
        if self._table is None:
            import boto3

            dynamodb = boto3.resource("dynamodb", region_name=self._region)
            self._table = dynamodb.Table(self._table_name)
        return self._table

    async def _run(self, func, *args):
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return await asyncio.to_thread(func, *args)
        except (BotoCoreError, ClientError) as e:
            raise StoreError(f"DynamoDB {func.__name__} failed: {e}") from e

    async def get(self, api_key: str) -> DeviceBinding | None:
        item = await self._run(self._get_item, api_key)
        return DeviceBinding.from_dict(item) if item else None

    async def save(self, api_key: str, device_id: str, device_type: str, ip: str = "") -> None:
        now = self._clock().isoformat()
        item = {
            "api_key": api_key,
            "device_id": device_id,
            "type": device_type,
            "first_seen": now,
            "last_seen": now,
            "last_ip": ip,
            "banned": False,
            "ban_reason": "",
        }
        await self._run(self._put_item, item)

    async def update_last_seen(self, api_key: str, ip: str) -> None:
        await self._run(
            self._update_existing,
            api_key,
            "SET last_seen = :now, last_ip = :ip",
            {":now": self._clock().isoformat(), ":ip": ip},
        )

    async def ban(self, api_key: str, reason: str) -> None:
        await self._run(
            self._update_existing,
            api_key,
            "SET banned = :banned, ban_reason = :reason, banned_at = :now",
            {":banned": True, ":reason": reason, ":now": self._clock().isoformat()},
        )

    async def unban(self, api_key: str) -> None:
        await self._run(
            self._update_existing,
            api_key,
            "SET banned = :banned, ban_reason = :reason REMOVE banned_at",
            {":banned": False, ":reason": ""},
        )

    async def delete(self, api_key: str) -> bool:
        return await self._run(self._delete_item, api_key)

    async def clear(self) -> None:
        await self._run(self._delete_all)

    async def get_all(self) -> dict[str, DeviceBinding]:
        items = await self._run(self._scan_all)
        return {item["api_key"]: DeviceBinding.from_dict(item) for item in items}

    # Blocking helpers, executed in a worker thread

    def _get_item(self, api_key: str) -> dict | None:
        resp = self._get_table().get_item(Key={"api_key": api_key}, ConsistentRead=True)
        return resp.get("Item")

    def _put_item(self, item: dict) -> None:
        self._get_table().put_item(Item=item)

    def _update_existing(self, api_key: str, expression: str, values: dict) -> None:
        """Apply an update only if the item exists; missing keys are a no-op."""
        from botocore.exceptions import ClientError

        try:
            self._get_table().update_item(
                Key={"api_key": api_key},
                UpdateExpression=expression,
                ConditionExpression="attribute_exists(api_key)",
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return
            raise

    def _delete_item(self, api_key: str) -> bool:
        resp = self._get_table().delete_item(Key={"api_key": api_key}, ReturnValues="ALL_OLD")
        return "Attributes" in resp

    def _scan_all(self, **kwargs) -> list[dict]:
        table = self._get_table()
        resp = table.scan(**kwargs)
        items = list(resp.get("Items", []))
        while "LastEvaluatedKey" in resp:
            resp = table.scan(ExclusiveStartKey=resp["LastEvaluatedKey"], **kwargs)
            items.extend(resp.get("Items", []))
        return items

    def _delete_all(self) -> None:
        keys = self._scan_all(ProjectionExpression="api_key")
        with self._get_table().batch_writer() as batch:
            for item in keys:
                batch.delete_item(Key={"api_key": item["api_key"]})
