from __future__ import annotations

from shipment_batch.core.cache import JsonCache, json_cache
from shipment_batch.core.config import get_settings
from shipment_batch.core.errors import TemplateNotFound
from shipment_batch.schemas.template import DimensionTemplate


class TemplateStore:
    """Named package dimension presets, one redis hash per user."""

    def __init__(self, cache: JsonCache | None = None) -> None:
        self.cache = cache or json_cache
        self.prefix = get_settings().template_key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self.prefix}:{user_id}"

    async def list(self, user_id: str) -> list[DimensionTemplate]:
        raw = await self.cache.hash_get_all(self._key(user_id))
        templates = [DimensionTemplate.model_validate(payload) for payload in raw.values()]
        return sorted(templates, key=lambda template: template.name.lower())

    async def get(self, user_id: str, name: str) -> DimensionTemplate:
        for template in await self.list(user_id):
            if template.name == name:
                return template
        raise TemplateNotFound(f"Template '{name}' not found")

    async def save(self, user_id: str, template: DimensionTemplate) -> DimensionTemplate:
        await self.cache.hash_set(self._key(user_id), template.name, template.model_dump())
        return template

    async def delete(self, user_id: str, name: str) -> None:
        removed = await self.cache.hash_delete(self._key(user_id), name)
        if not removed:
            raise TemplateNotFound(f"Template '{name}' not found")
