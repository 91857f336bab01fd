from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from shipment_batch.core.deps import get_template_store, get_user_id
from shipment_batch.schemas.template import DimensionTemplate, DimensionTemplateList
from shipment_batch.services.templates import TemplateStore

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=DimensionTemplateList)
async def list_templates(user_id: str = Depends(get_user_id), store: TemplateStore = Depends(get_template_store)):
    return DimensionTemplateList(templates=await store.list(user_id))


@router.get("/{name}", response_model=DimensionTemplate)
async def get_template(
    name: str, user_id: str = Depends(get_user_id), store: TemplateStore = Depends(get_template_store)
):
    return await store.get(user_id, name)


@router.put("/{name}", response_model=DimensionTemplate)
async def save_template(
    name: str,
    payload: DimensionTemplate,
    user_id: str = Depends(get_user_id),
    store: TemplateStore = Depends(get_template_store),
):
    if payload.name != name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Template name does not match path")
    return await store.save(user_id, payload)


@router.delete("/{name}")
async def delete_template(
    name: str, user_id: str = Depends(get_user_id), store: TemplateStore = Depends(get_template_store)
):
    await store.delete(user_id, name)
    return {"status": "ok"}
