"""
Named data migrations.

Register coroutine functions under a unique name; ``run_migrations`` executes
each one at most once per backend, recording completed names in the
``__migrations__`` table.
"""

import time
from typing import Awaitable, Callable, List, Optional, Tuple

import structlog

from .connections.base import Connection
from .model import Model
from .types import FieldMeta, FieldType

logger = structlog.get_logger()

MIGRATIONS_TABLE = "__migrations__"

MigrationFn = Callable[[], Awaitable[None]]


def migrations_model() -> Model:
    return Model.create(
        table=MIGRATIONS_TABLE,
        fields={
            "migration": {"type": FieldType.STRING, "meta": [FieldMeta.REQUIRED]},
            "createdAt": {"type": FieldType.BIGINT},
        },
    )


class MigrationHandler:
    """Process-wide registry of named migrations."""

    migrations: List[Tuple[str, MigrationFn]] = []

    @classmethod
    def register_migration(cls, name: str, migration: MigrationFn) -> None:
        cls.migrations.append((name, migration))

    @classmethod
    async def run_migrations(cls, connection: Optional[Connection] = None) -> List[str]:
        """Run every migration not yet recorded; returns the names that ran."""
        table = migrations_model()
        await table.init(connection=connection)
        done = {row["migration"] for row in await table.search(connection=connection)}

        ran: List[str] = []
        for name, migration in cls.migrations:
            if name in done:
                continue

            logger.info("migration_started", migration=name)
            await migration()
            logger.info("migration_complete", migration=name)

            await table.insert(
                {"migration": name, "createdAt": int(time.time())},
                connection=connection,
            )
            done.add(name)
            ran.append(name)
        return ran

    @classmethod
    def reset_migrations(cls) -> None:
        cls.migrations = []
