from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status

from shipment_batch.services.batch import BatchRegistry, BatchSession, registry
from shipment_batch.services.templates import TemplateStore


async def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_registry() -> BatchRegistry:
    return registry


def get_template_store() -> TemplateStore:
    return TemplateStore()


def get_batch(
    batch_id: str,
    user_id: str = Depends(get_user_id),
    batches: BatchRegistry = Depends(get_registry),
) -> BatchSession:
    return batches.get(batch_id, user_id)
