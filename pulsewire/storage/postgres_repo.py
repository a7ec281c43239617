"""Batch-oriented Postgres repository for ingested content.

Two operations, each a single round trip per batch: upsert on a natural key
and "which of these keys already exist". Plain psycopg + SQL.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from pulsewire.errors import PersistenceError

logger = logging.getLogger(__name__)

# table -> columns the pipeline may read or write
TABLE_COLUMNS: Dict[str, tuple] = {
    "articles": (
        "url",
        "title_summary",
        "body",
        "image_urls",
        "summary_lines",
        "details",
        "category",
        "published_at",
        "created_at",
    ),
    "tweets": (
        "id",
        "text",
        "text_ko",
        "is_translated",
        "translation_model",
        "translated_at",
        "author_name",
        "author_username",
        "author_profile_image_url",
        "url",
        "media",
        "category",
        "created_at",
        "scraped_at",
        "is_active",
    ),
    "youtube_videos": (
        "id",
        "title",
        "thumbnail_url",
        "channel_name",
        "published_at",
        "duration",
        "view_count",
        "created_at",
    ),
}


def _check_columns(table: str, columns: Sequence[str]) -> None:
    allowed = TABLE_COLUMNS.get(table)
    if allowed is None:
        raise ValueError(f"Unknown table: {table}")
    unknown = [c for c in columns if c not in allowed]
    if unknown:
        raise ValueError(f"Unknown column(s) for {table}: {', '.join(unknown)}")


def _adapt(value: Any) -> Any:
    if isinstance(value, (list, tuple, dict)):
        return Jsonb(list(value) if isinstance(value, tuple) else value)
    return value


class PostgresRepo:
    def __init__(self, pg_dsn: str):
        self.pg_dsn = pg_dsn

    def upsert(self, table: str, rows: Sequence[Mapping[str, Any]], conflict_key: str) -> int:
        """Insert rows, overwriting on `conflict_key`. Returns rows written."""
        if not rows:
            return 0
        columns = list(rows[0].keys())
        _check_columns(table, columns + [conflict_key])
        if conflict_key not in columns:
            raise ValueError(f"Rows for {table} must include the conflict key {conflict_key}")

        updates = [c for c in columns if c != conflict_key]
        query = sql.SQL("INSERT INTO {table} ({cols}) VALUES ({vals}) ON CONFLICT ({key}) DO UPDATE SET {sets}").format(
            table=sql.Identifier(table),
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            vals=sql.SQL(", ").join(sql.Placeholder(c) for c in columns),
            key=sql.Identifier(conflict_key),
            sets=sql.SQL(", ").join(
                sql.SQL("{c} = EXCLUDED.{c}").format(c=sql.Identifier(c)) for c in updates
            ),
        )
        params = [{c: _adapt(row.get(c)) for c in columns} for row in rows]
        try:
            with psycopg.connect(self.pg_dsn, autocommit=True) as conn:
                with conn.cursor() as cur:
                    cur.executemany(query, params)
        except psycopg.Error as e:
            raise PersistenceError(f"upsert into {table} failed: {e}") from e
        logger.debug(f"Upserted {len(params)} row(s) into {table}")
        return len(params)

    def select_existing(self, table: str, column: str, values: Sequence[str]) -> List[str]:
        """The subset of `values` already present in `table.column`."""
        if not values:
            return []
        _check_columns(table, [column])
        query = sql.SQL("SELECT {col} FROM {table} WHERE {col} = ANY(%s)").format(
            col=sql.Identifier(column),
            table=sql.Identifier(table),
        )
        try:
            with psycopg.connect(self.pg_dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(query, (list(values),))
                    return [str(r[0]) for r in cur.fetchall()]
        except psycopg.Error as e:
            raise PersistenceError(f"existence check on {table}.{column} failed: {e}") from e

    def count(self, table: str) -> int:
        _check_columns(table, [])
        try:
            with psycopg.connect(self.pg_dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql.SQL("SELECT COUNT(*) FROM {table}").format(table=sql.Identifier(table)))
                    return int(cur.fetchone()[0] or 0)
        except psycopg.Error as e:
            raise PersistenceError(f"count on {table} failed: {e}") from e
