from __future__ import annotations

from decimal import Decimal
from typing import Any

import httpx
from redis.exceptions import RedisError

from shipment_batch.core.cache import JsonCache, json_cache
from shipment_batch.core.config import get_settings
from shipment_batch.core.errors import BalanceUnavailable, DdpDeductionFailed
from shipment_batch.core.logging import get_logger
from shipment_batch.services.providers.http_client import CircuitOpen, ServiceClient
from shipment_batch.services.providers.types import DeductionResult

logger = get_logger("balance")


def balance_cache_key(user_id: str) -> str:
    return f"balance:{user_id}"


class BalanceProvider:
    def __init__(self, client: ServiceClient | None = None, cache: JsonCache | None = None) -> None:
        self.settings = get_settings()
        self.client = client or ServiceClient(self.settings.balance_api_base, name="balance")
        self.cache = cache or json_cache

    async def get_balance(self, user_id: str) -> int:
        cache_key = balance_cache_key(user_id)
        try:
            cached = await self.cache.get_json(cache_key)
        except (RedisError, ValueError) as exc:
            logger.warning("balance_cache_read_failed", user_id=user_id, error=str(exc))
            cached = None
        if cached:
            return int(cached["balance"])

        try:
            payload = await self.client.get_json(f"/balance/{user_id}")
            balance = int(payload["balance"])
        except (httpx.HTTPError, ValueError, TypeError, KeyError, CircuitOpen) as exc:
            raise BalanceUnavailable(f"Balance service error: {exc}") from exc

        try:
            await self.cache.set_json(cache_key, {"balance": balance}, self.settings.balance_cache_ttl_seconds)
        except RedisError as exc:
            logger.warning("balance_cache_write_failed", user_id=user_id, error=str(exc))
        return balance

    async def invalidate(self, user_id: str) -> None:
        try:
            await self.cache.delete(balance_cache_key(user_id))
        except RedisError as exc:
            logger.warning("balance_cache_invalidate_failed", user_id=user_id, error=str(exc))

    async def deduct_ddp_balance(
        self,
        user_id: str,
        ddp_amount: Decimal,
        shipment_details: list[dict[str, Any]],
        idempotency_key: str,
    ) -> DeductionResult:
        body = {
            "userId": user_id,
            "ddpAmount": str(ddp_amount),
            "shipmentDetails": shipment_details,
        }
        try:
            payload = await self.client.post_json(
                "/deduct-ddp",
                body,
                headers={"Idempotency-Key": idempotency_key},
                retry=False,
            )
        except (httpx.HTTPError, ValueError, CircuitOpen) as exc:
            raise DdpDeductionFailed(f"Balance service error: {exc}") from exc

        if not payload.get("success"):
            raise DdpDeductionFailed(payload.get("message") or "Balance deduction was rejected")

        new_balance = payload.get("newBalance")
        await self.invalidate(user_id)
        logger.info("ddp_balance_deducted", user_id=user_id, amount=str(ddp_amount), new_balance=new_balance)
        return DeductionResult(
            success=True,
            new_balance=int(new_balance) if new_balance is not None else None,
            message=payload.get("message"),
        )
