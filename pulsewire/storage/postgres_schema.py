"""Postgres schema management for PulseWire.

Schema creation is idempotent (CREATE IF NOT EXISTS); each table carries a
unique natural key that the ingestion upsert conflicts on.
"""

from __future__ import annotations

from typing import Iterable, Optional

import psycopg


SCHEMA_STATEMENTS: list[str] = [
    # Articles, keyed by canonical URL
    """
    CREATE TABLE IF NOT EXISTS articles (
      id BIGSERIAL PRIMARY KEY,
      url TEXT NOT NULL UNIQUE,
      title_summary TEXT NOT NULL,
      body TEXT NOT NULL DEFAULT '',
      image_urls JSONB NOT NULL DEFAULT '[]'::jsonb,
      summary_lines JSONB NOT NULL DEFAULT '[]'::jsonb,
      details JSONB NOT NULL DEFAULT '[]'::jsonb,
      category SMALLINT NOT NULL DEFAULT 5 CHECK (category BETWEEN 1 AND 5),
      published_at TIMESTAMPTZ,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_articles_created_at ON articles (created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_articles_category ON articles (category);",
    # Social posts, keyed by platform id
    """
    CREATE TABLE IF NOT EXISTS tweets (
      id TEXT PRIMARY KEY,
      text TEXT NOT NULL,
      text_ko TEXT,
      is_translated BOOLEAN NOT NULL DEFAULT FALSE,
      translation_model TEXT,
      translated_at TIMESTAMPTZ,
      author_name TEXT NOT NULL,
      author_username TEXT NOT NULL,
      author_profile_image_url TEXT,
      url TEXT NOT NULL,
      media JSONB,
      category SMALLINT NOT NULL DEFAULT 5 CHECK (category BETWEEN 1 AND 5),
      created_at TIMESTAMPTZ NOT NULL,
      scraped_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      is_active BOOLEAN NOT NULL DEFAULT TRUE
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_tweets_created_at ON tweets (created_at DESC);",
    # Videos, keyed by platform id
    """
    CREATE TABLE IF NOT EXISTS youtube_videos (
      id TEXT PRIMARY KEY,
      title TEXT NOT NULL,
      thumbnail_url TEXT,
      channel_name TEXT NOT NULL DEFAULT '',
      published_at TIMESTAMPTZ NOT NULL,
      duration TEXT,
      view_count BIGINT,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_youtube_videos_published_at ON youtube_videos (published_at DESC);",
]


def ensure_postgres_schema(pg_dsn: str, *, statements: Optional[Iterable[str]] = None) -> None:
    """Ensure Postgres schema exists."""
    stmts = list(statements) if statements is not None else SCHEMA_STATEMENTS
    with psycopg.connect(pg_dsn, autocommit=True) as conn:
        with conn.cursor() as cur:
            for s in stmts:
                cur.execute(s)
