"""
Flat-file JSON backend.

Structure:
    <cache_dir>/
    ├── <prefix_>table.json     # {"auto": {field: next_id}, "data": [row, ...]}
    └── ...
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Union

from ..errors import TableNotInitializedError
from .local import LocalConnection, TableData


class FileConnection(LocalConnection):
    """Backend storing one indented JSON document per table."""

    scheme = "file"

    def __init__(self, cache_dir: Union[str, Path], prefix: Optional[str] = None):
        super().__init__(prefix)
        self.cache_dir = Path(cache_dir)

    async def create_connection(self) -> bool:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return True

    async def close(self) -> None:
        self.connection = None

    def _get_cache_file_path(self, table: str) -> Path:
        return self.cache_dir / f"{table}.json"

    def _exists(self, table: str) -> bool:
        return self._get_cache_file_path(table).exists()

    def _load(self, table: str) -> TableData:
        path = self._get_cache_file_path(table)
        if not path.exists():
            raise TableNotInitializedError(table)
        return json.loads(path.read_text(encoding="utf-8"))

    def _save(self, table: str, data: TableData) -> None:
        self._get_cache_file_path(table).write_text(
            json.dumps(data, indent=4), encoding="utf-8"
        )

    def get_uri(self) -> str:
        return f"file://{self.cache_dir}"
