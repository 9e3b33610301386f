"""
Tests for SQL schema reconciliation and data statements.

The backends run against recording fakes: every statement is captured and
canned rows are returned for queries containing a marker string, so no live
database is needed.
"""

from typing import Any, Dict, List, Optional, Sequence

import pytest

from datamapper.connections.mysql import MysqlConnection
from datamapper.connections.postgres import PostgresConnection
from datamapper.connections.sql import check_bind_values
from datamapper.errors import FieldNotFoundForIndexError, UndefinedBindValueError
from datamapper.model import Model
from datamapper.types import FieldMeta, FieldType, IndexSettings
from datamapper.where import from_equality_map


class Recorder:
    def setup_recorder(self, responses: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.queries: List[str] = []
        self.values: List[List[Any]] = []
        self.responses = responses or {}

    def record(self, query: str, values: Optional[Sequence[Any]]) -> List[Dict[str, Any]]:
        check_bind_values(query, values)
        self.queries.append(query)
        self.values.append(list(values or ()))
        for marker, rows in self.responses.items():
            if marker in query:
                return rows
        return []


class RecordingPostgres(Recorder, PostgresConnection):
    def __init__(self, responses=None, prefix=None):
        PostgresConnection.__init__(self, "postgresql://user:pw@localhost/db", prefix)
        self.setup_recorder(responses)

    async def create_connection(self):
        return object()

    async def _query(self, query, values=None):
        return self.record(query, values)


class RecordingMysql(Recorder, MysqlConnection):
    last_id = 7

    def __init__(self, responses=None, prefix=None):
        MysqlConnection.__init__(self, "mysql://user:pw@localhost/db", prefix)
        self.setup_recorder(responses)

    async def create_connection(self):
        return object()

    async def _execute(self, query, values=None):
        return self.record(query, values), self.last_id


parent = Model.create(table="bar", fields={"label": {"type": FieldType.STRING}})

V1_FIELDS = Model.create(
    table="foo",
    fields={
        "name": {"type": FieldType.STRING, "meta": [FieldMeta.REQUIRED], "size": 20},
        "parent": {"type": FieldType.INT, "foreign": {"table": parent}},
    },
).fields

V2_FIELDS = Model.create(
    table="foo",
    fields={
        "name": {"type": FieldType.STRING, "meta": [FieldMeta.REQUIRED], "size": 20},
        "parent": {"type": FieldType.INT, "foreign": {"table": parent}},
        "count": {"type": FieldType.BIGINT},
        "owner": {"type": FieldType.INT, "foreign": {"table": parent}},
    },
    version=2,
).fields


class TestPostgresReconciliation:
    """Tests for the Postgres DDL state machine."""

    @pytest.mark.asyncio
    async def test_creates_missing_table(self):
        conn = RecordingPostgres()
        await conn.initialize_table("foo", V1_FIELDS, 1)

        assert conn.queries == [
            'CREATE TABLE IF NOT EXISTS "table_versions" (name VARCHAR(255), version INT)',
            'SELECT version FROM "table_versions" WHERE name = $1',
            'CREATE TABLE "foo" ("id" SERIAL PRIMARY KEY, "name" VARCHAR(20) NOT NULL, '
            '"parent" INT REFERENCES "bar" ("id"))',
            'INSERT INTO "table_versions" (version, name) VALUES ($1, $2)',
        ]
        assert conn.values[1] == ["foo"]
        assert conn.values[3] == [1, "foo"]

    @pytest.mark.asyncio
    async def test_same_version_is_noop(self):
        conn = RecordingPostgres({"SELECT version": [{"version": 1}]})
        await conn.initialize_table("foo", V1_FIELDS, 1)

        assert len(conn.queries) == 2
        assert not any(q.startswith(("CREATE TABLE \"foo\"", "ALTER")) for q in conn.queries)

    @pytest.mark.asyncio
    async def test_upgrade_adds_missing_columns_and_constraints(self):
        conn = RecordingPostgres(
            {
                "SELECT version": [{"version": 1}],
                "information_schema.columns": [
                    {"column_name": "id"},
                    {"column_name": "name"},
                    {"column_name": "parent"},
                ],
            }
        )
        await conn.initialize_table("foo", V2_FIELDS, 2)

        assert conn.queries[3:] == [
            'ALTER TABLE "foo" ADD COLUMN "count" BIGINT',
            'ALTER TABLE "foo" ADD COLUMN "owner" INT',
            'ALTER TABLE "foo" ADD CONSTRAINT "fk_foo_owner" FOREIGN KEY ("owner") '
            'REFERENCES "bar" ("id")',
            'UPDATE "table_versions" SET version = $1 WHERE name = $2',
        ]
        assert conn.values[-1] == [2, "foo"]

    @pytest.mark.asyncio
    async def test_prefix_and_indexes(self):
        conn = RecordingPostgres(prefix="app")
        indexes = [IndexSettings(fields=["name"], unique=True), IndexSettings(fields=["name", "parent"], name="by_pair")]
        await conn.initialize_table("foo", V1_FIELDS, 1, indexes)

        assert conn.queries[0].startswith('CREATE TABLE IF NOT EXISTS "app_table_versions"')
        assert 'REFERENCES "app_bar" ("id")' in conn.queries[2]
        assert conn.queries[-2:] == [
            'CREATE UNIQUE INDEX IF NOT EXISTS "app_foo_name_idx" ON "app_foo" ("name")',
            'CREATE INDEX IF NOT EXISTS "by_pair" ON "app_foo" ("name", "parent")',
        ]

    @pytest.mark.asyncio
    async def test_index_on_unknown_field_fails_before_ddl(self):
        conn = RecordingPostgres()
        with pytest.raises(FieldNotFoundForIndexError):
            await conn.initialize_table("foo", V1_FIELDS, 1, [IndexSettings(fields=["nope"])])
        assert conn.queries == []


class TestMysqlReconciliation:
    """Tests for the MySQL DDL state machine."""

    @pytest.mark.asyncio
    async def test_creates_missing_table(self):
        conn = RecordingMysql()
        await conn.initialize_table("foo", V1_FIELDS, 1)

        assert conn.queries[1] == "SELECT version FROM `table_versions` WHERE name = %s"
        assert conn.queries[2] == (
            "CREATE TABLE `foo` (`id` INT NOT NULL AUTO_INCREMENT, `name` VARCHAR(20) NOT NULL, "
            "`parent` INT, PRIMARY KEY (`id`), "
            "CONSTRAINT `fk_foo_parent` FOREIGN KEY (`parent`) REFERENCES `bar` (`id`))"
        )
        assert conn.queries[3] == "INSERT INTO `table_versions` (version, name) VALUES (%s, %s)"

    @pytest.mark.asyncio
    async def test_upgrade_uses_describe(self):
        conn = RecordingMysql(
            {
                "SELECT version": [{"version": 1}],
                "DESCRIBE": [{"Field": "id"}, {"Field": "name"}, {"Field": "parent"}],
            }
        )
        await conn.initialize_table("foo", V2_FIELDS, 2)

        assert conn.queries[2] == "DESCRIBE `foo`"
        assert "ALTER TABLE `foo` ADD COLUMN `count` BIGINT" in conn.queries
        assert (
            "ALTER TABLE `foo` ADD CONSTRAINT `fk_foo_owner` FOREIGN KEY (`owner`) REFERENCES `bar` (`id`)"
            in conn.queries
        )
        assert conn.queries[-1] == "UPDATE `table_versions` SET version = %s WHERE name = %s"

    @pytest.mark.asyncio
    async def test_existing_index_is_skipped(self):
        conn = RecordingMysql(
            {"SELECT version": [{"version": 1}], "information_schema.statistics": [{"count": 1}]}
        )
        await conn.initialize_table("foo", V1_FIELDS, 1, [IndexSettings(fields=["name"])])

        assert conn.values[-1] == ["foo", "foo_name_idx"]
        assert not any(q.startswith("CREATE INDEX") for q in conn.queries)

    @pytest.mark.asyncio
    async def test_missing_index_is_created(self):
        conn = RecordingMysql(
            {"SELECT version": [{"version": 1}], "information_schema.statistics": [{"count": 0}]}
        )
        await conn.initialize_table("foo", V1_FIELDS, 1, [IndexSettings(fields=["name"], unique=True)])

        assert conn.queries[-1] == "CREATE UNIQUE INDEX `foo_name_idx` ON `foo` (`name`)"


class TestDataStatements:
    """Tests for insert/update/delete/count statements."""

    @pytest.mark.asyncio
    async def test_postgres_insert_returns_generated_id(self):
        conn = RecordingPostgres({"RETURNING": [{"id": 5}]})
        new_id = await conn.insert("foo", V1_FIELDS, {"name": "x"})

        assert new_id == 5
        assert conn.queries == ['INSERT INTO "foo" ("name") VALUES ($1) RETURNING "id"']

    @pytest.mark.asyncio
    async def test_postgres_insert_without_data(self):
        conn = RecordingPostgres({"RETURNING": [{"id": 1}]})
        await conn.insert("foo", V1_FIELDS, {})
        assert conn.queries == ['INSERT INTO "foo" DEFAULT VALUES RETURNING "id"']

    @pytest.mark.asyncio
    async def test_mysql_insert_returns_last_id(self):
        conn = RecordingMysql()
        assert await conn.insert("foo", V1_FIELDS, {"name": "x", "parent": None}) == 7
        assert conn.queries == ["INSERT INTO `foo` (`name`, `parent`) VALUES (%s, %s)"]

        await conn.insert("foo", V1_FIELDS, {})
        assert conn.queries[-1] == "INSERT INTO `foo` () VALUES ()"

    @pytest.mark.asyncio
    async def test_insert_without_auto_field_returns_supplied_id(self):
        fields = Model.create(
            table="keyed", fields={"id": {"type": FieldType.STRING}, "v": {"type": FieldType.INT}}
        ).fields
        conn = RecordingMysql()
        assert await conn.insert("keyed", fields, {"id": "abc", "v": 1}) == "abc"

    @pytest.mark.asyncio
    async def test_update_numbers_set_list_then_id(self):
        conn = RecordingPostgres()
        assert await conn.update("foo", 3, {"name": "x", "parent": 2}, V1_FIELDS) == 3
        assert conn.queries == ['UPDATE "foo" SET "name" = $1, "parent" = $2 WHERE "id" = $3']
        assert conn.values == [["x", 2, 3]]

    @pytest.mark.asyncio
    async def test_delete(self):
        conn = RecordingMysql()
        await conn.delete("foo", 3)
        assert conn.queries == ["DELETE FROM `foo` WHERE `id` = %s"]
        assert conn.values == [[3]]

    @pytest.mark.asyncio
    async def test_count_returns_int(self):
        conn = RecordingPostgres({"COUNT(*)": [{"count": 4}]})
        assert await conn.count("foo", from_equality_map({"name": "a"})) == 4
        assert conn.queries == ['SELECT COUNT(*) AS "count" FROM "foo" WHERE ("name" = $1)']

    @pytest.mark.asyncio
    async def test_unbindable_value_is_rejected(self):
        conn = RecordingPostgres()
        with pytest.raises(UndefinedBindValueError):
            await conn.search("foo", from_equality_map({"name": object()}))
        assert conn.queries == []


class TestModelOverSql:
    """Tests for the Model façade on a SQL backend."""

    @pytest.mark.asyncio
    async def test_rows_are_post_processed(self):
        model = Model.create(
            table="things",
            fields={
                "flag": {"type": FieldType.BOOLEAN},
                "data": {"type": FieldType.JSON},
            },
        )
        conn = RecordingPostgres(
            {"SELECT *": [{"id": 1, "flag": 0, "data": '{"a": [1, 2]}', "legacy": "x"}]}
        )

        row = await model.get("1", connection=conn)

        assert row == {"id": 1, "flag": False, "data": {"a": [1, 2]}}
        assert conn.values[0] == [1, 1]
