"""Materials (``html_files``) read and write paths.

Reads go through the process-wide ``MaterialsCache``; every write
invalidates it before returning.
"""

from typing import Any

from db_mirror.adapters.base import DatabaseClient
from db_mirror.cache import MaterialsCache, get_materials_cache
from db_mirror.catalog import MATERIALS_TABLE


async def list_materials(
    adapter: DatabaseClient,
    cache: MaterialsCache | None = None,
) -> list[dict]:
    """Return all materials, newest first, served from cache when valid."""
    cache = cache or get_materials_cache()
    rows = cache.get()
    if rows is None:
        rows = await adapter.select(MATERIALS_TABLE, "*", order_by="created_at DESC")
        cache.set(rows)
    return rows


async def create_material(
    adapter: DatabaseClient,
    data: dict[str, Any],
    cache: MaterialsCache | None = None,
) -> dict:
    row = await adapter.insert(MATERIALS_TABLE, data)
    (cache or get_materials_cache()).invalidate()
    return row


async def update_material(
    adapter: DatabaseClient,
    material_id: str,
    data: dict[str, Any],
    cache: MaterialsCache | None = None,
) -> dict:
    """Update one material by id.

    Raises:
        ValueError: If no material has ``material_id``.
    """
    row = await adapter.update(MATERIALS_TABLE, data, filters={"id": material_id})
    (cache or get_materials_cache()).invalidate()
    return row


async def delete_material(
    adapter: DatabaseClient,
    material_id: str,
    cache: MaterialsCache | None = None,
) -> None:
    await adapter.delete(MATERIALS_TABLE, filters={"id": material_id})
    (cache or get_materials_cache()).invalidate()
