from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status

from petro_import.config.loader import ImportConfig, load_config
from petro_import.db.store import RowStore, connect_store
from petro_import.services.entities import EntitySchema, get_schema

"""Dependency injection for the HTTP layer.

Tests swap get_config and get_store through app.dependency_overrides.
"""


@lru_cache
def get_config() -> ImportConfig:
    return load_config()


def get_store(config: Annotated[ImportConfig, Depends(get_config)]) -> Iterator[RowStore]:
    """Yield a store for the duration of one request."""
    with connect_store(config.database) as store:
        yield store


def get_entity_schema(entity: str) -> EntitySchema:
    try:
        return get_schema(entity)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"unknown entity: {entity}") from None


ConfigDep = Annotated[ImportConfig, Depends(get_config)]
StoreDep = Annotated[RowStore, Depends(get_store)]
SchemaDep = Annotated[EntitySchema, Depends(get_entity_schema)]
