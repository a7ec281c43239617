"""Test doubles shared by the pipeline tests."""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Sequence

from pulsewire.enrichment.client import Completion


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.now += max(0.0, seconds)


class MemoryStore:
    """In-memory stand-in for PostgresRepo with the same two operations."""

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.select_calls: List[tuple] = []
        self.upsert_calls = 0
        self.fail_select = False
        self.fail_upsert_keys = set()

    def upsert(self, table: str, rows: Sequence[Dict[str, Any]], conflict_key: str) -> int:
        self.upsert_calls += 1
        for row in rows:
            if row[conflict_key] in self.fail_upsert_keys:
                raise RuntimeError(f"constraint violation on {row[conflict_key]}")
        target = self.tables.setdefault(table, {})
        for row in rows:
            target[row[conflict_key]] = dict(row)
        return len(rows)

    def select_existing(self, table: str, column: str, values: Sequence[str]) -> List[str]:
        self.select_calls.append((table, column, list(values)))
        if self.fail_select:
            raise RuntimeError("database unavailable")
        target = self.tables.get(table, {})
        return [v for v in values if v in target]

    def count(self, table: str) -> int:
        return len(self.tables.get(table, {}))


class ScriptedClient:
    """Enrichment client double: answers prompts by matching a marker in the prompt."""

    model = "test-model"

    def __init__(self, answers=None, fail_on=None):
        self.answers = answers or {}
        self.fail_on = fail_on or []
        self.prompts = []
        self.models = []
        self._lock = threading.Lock()

    def complete(self, prompt, *, max_tokens, temperature=0.3, model=None):
        with self._lock:
            self.prompts.append(prompt)
            self.models.append(model)
        for marker in self.fail_on:
            if marker in prompt:
                raise RuntimeError(f"provider error for {marker!r}")
        for marker, text in self.answers.items():
            if marker in prompt:
                return Completion(text=text, model=model or self.model, total_tokens=25)
        return Completion(text="", model=model or self.model)
