import unittest
from unittest import mock

import psycopg
from psycopg.types.json import Jsonb

from pulsewire.errors import PersistenceError
from pulsewire.storage.postgres_repo import PostgresRepo
from pulsewire.storage.postgres_schema import SCHEMA_STATEMENTS, ensure_postgres_schema


def _patched_connect():
    patcher = mock.patch("pulsewire.storage.postgres_repo.psycopg.connect")
    connect = patcher.start()
    conn = connect.return_value.__enter__.return_value
    cur = conn.cursor.return_value.__enter__.return_value
    return patcher, connect, cur


class TestPostgresRepo(unittest.TestCase):
    def setUp(self):
        self.patcher, self.connect, self.cur = _patched_connect()
        self.addCleanup(self.patcher.stop)
        self.repo = PostgresRepo("dbname=test")

    def test_upsert_is_one_batch(self):
        rows = [
            {"id": "v1", "title": "a", "channel_name": "c"},
            {"id": "v2", "title": "b", "channel_name": "c"},
        ]
        self.assertEqual(self.repo.upsert("youtube_videos", rows, "id"), 2)
        self.cur.executemany.assert_called_once()
        query, params = self.cur.executemany.call_args.args
        self.assertEqual(len(params), 2)
        rendered = repr(query)
        self.assertIn("SQL(') ON CONFLICT ('), Identifier('id')", rendered)
        self.assertIn("Identifier('title'), SQL(' = EXCLUDED.'), Identifier('title')", rendered)

    def test_json_columns_are_wrapped(self):
        self.repo.upsert("articles", [{"url": "u", "title_summary": "t", "summary_lines": ("1. a",)}], "url")
        params = self.cur.executemany.call_args.args[1]
        self.assertIsInstance(params[0]["summary_lines"], Jsonb)

    def test_empty_upsert_skips_connection(self):
        self.assertEqual(self.repo.upsert("tweets", [], "id"), 0)
        self.connect.assert_not_called()

    def test_unknown_table_or_column_rejected(self):
        with self.assertRaises(ValueError):
            self.repo.upsert("users", [{"id": 1}], "id")
        with self.assertRaises(ValueError):
            self.repo.select_existing("articles", "password", ["x"])
        self.connect.assert_not_called()

    def test_select_existing_single_query(self):
        self.cur.fetchall.return_value = [("a",), ("c",)]
        self.assertEqual(self.repo.select_existing("articles", "url", ["a", "b", "c"]), ["a", "c"])
        self.cur.execute.assert_called_once()
        query, params = self.cur.execute.call_args.args
        self.assertIn("= ANY(%s)", repr(query))
        self.assertEqual(params, (["a", "b", "c"],))

    def test_driver_errors_become_persistence_errors(self):
        self.cur.executemany.side_effect = psycopg.OperationalError("connection lost")
        with self.assertRaises(PersistenceError):
            self.repo.upsert("tweets", [{"id": "1", "text": "x"}], "id")


class TestSchema(unittest.TestCase):
    def test_natural_keys_are_unique(self):
        ddl = "\n".join(SCHEMA_STATEMENTS)
        self.assertIn("url TEXT NOT NULL UNIQUE", ddl)
        self.assertIn("CREATE TABLE IF NOT EXISTS tweets (\n      id TEXT PRIMARY KEY", ddl)
        self.assertIn("CREATE TABLE IF NOT EXISTS youtube_videos (\n      id TEXT PRIMARY KEY", ddl)

    def test_ensure_schema_runs_every_statement(self):
        with mock.patch("pulsewire.storage.postgres_schema.psycopg.connect") as connect:
            cur = connect.return_value.__enter__.return_value.cursor.return_value.__enter__.return_value
            ensure_postgres_schema("dbname=test")
        self.assertEqual(cur.execute.call_count, len(SCHEMA_STATEMENTS))


if __name__ == "__main__":
    unittest.main()
