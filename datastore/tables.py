from __future__ import annotations
import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.schemas import Distribution, Project
from settings import get_settings

ItemT = TypeVar("ItemT", bound=BaseModel)


class KeyedTable(Generic[ItemT]):
    """In-memory table of pydantic records keyed by one attribute.

    ``put_item`` overwrites any record stored under the same key.
    """

    def __init__(
        self,
        name: str,
        model: Type[ItemT],
        key_attribute: str,
        persistence_path: Optional[Path] = None,
    ) -> None:
        self.name = name
        self.model = model
        self.key_attribute = key_attribute
        self._items: Dict[str, ItemT] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_item(self, item: ItemT) -> None:
        key = getattr(item, self.key_attribute)
        with self._lock:
            previous = self._items.get(key)
            self._items[key] = item.model_copy(deep=True)
            try:
                self._persist()
            except OSError:
                if previous is None:
                    self._items.pop(key, None)
                else:
                    self._items[key] = previous
                raise

    def get_item(self, key: str) -> Optional[ItemT]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def delete_item(self, key: str) -> None:
        with self._lock:
            if self._items.pop(key, None) is not None:
                self._persist()

    def scan(self) -> list[ItemT]:
        """Return deep copies of all stored records."""

        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {key: item.model_dump(mode="json") for key, item in self._items.items()}
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for key, payload in data.items():
            try:
                self._items[key] = self.model.model_validate(payload)
            except ValidationError:
                continue


ProjectTable = KeyedTable[Project]
DistributionTable = KeyedTable[Distribution]


def _table_path(path: Optional[str]) -> Optional[Path]:
    return Path(path) if path else None


@lru_cache
def build_project_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ProjectTable:
    settings = get_settings()
    table_name = settings.project_table_name if name is None else name
    table_path = settings.project_table_path if path is None else path
    return KeyedTable(
        name=table_name,
        model=Project,
        key_attribute="id",
        persistence_path=_table_path(table_path),
    )


@lru_cache
def build_distribution_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> DistributionTable:
    settings = get_settings()
    table_name = settings.distribution_table_name if name is None else name
    table_path = settings.distribution_table_path if path is None else path
    return KeyedTable(
        name=table_name,
        model=Distribution,
        key_attribute="project_id",
        persistence_path=_table_path(table_path),
    )
