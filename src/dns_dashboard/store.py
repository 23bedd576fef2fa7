"""Durable domain -> AnalysisRecord cache backed by SQLite."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Iterable, Mapping
from pathlib import Path

import structlog
from pydantic import ValidationError

from .errors import StoreUnavailable
from .models import AnalysisRecord

log = structlog.get_logger()

# Stay well under SQLITE_MAX_VARIABLE_NUMBER on older builds (999)
_MAX_PARAMS = 500


class AnalysisStore:
    """One row per domain: `domain` (primary key), `analysis` (JSON), `created_at`.

    Every public method is a coroutine; the blocking sqlite3 work runs in a
    worker thread on its own short-lived connection.
    """

    def __init__(self, db_path: str | Path, timeout: float = 10.0) -> None:
        self._db_path = str(db_path)
        self._timeout = timeout
        self._ensure_db()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_db(self) -> None:
        """Create the domain_analysis table if it doesn't exist."""
        try:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = self._conn()
        except (OSError, sqlite3.Error) as e:
            log.exception("analysis_store_open_failed", db=self._db_path)
            raise StoreUnavailable(f"cannot open analysis cache at {self._db_path}") from e
        try:
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS domain_analysis (
                        domain TEXT PRIMARY KEY,
                        analysis TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                """)
        except sqlite3.Error as e:
            log.exception("analysis_store_init_failed", db=self._db_path)
            raise StoreUnavailable(f"cannot initialise analysis cache at {self._db_path}") from e
        finally:
            conn.close()

    async def get(self, domain: str) -> AnalysisRecord | None:
        found = await self.get_many([domain])
        return found.get(domain)

    async def get_many(self, domains: Iterable[str]) -> dict[str, AnalysisRecord]:
        """Return cached records for the domains that have one; absent domains are omitted."""
        wanted = list(dict.fromkeys(domains))
        if not wanted:
            return {}
        return await asyncio.to_thread(self._get_many, wanted)

    async def put(self, domain: str, record: AnalysisRecord) -> None:
        await self.put_many({domain: record})

    async def put_many(self, records: Mapping[str, AnalysisRecord]) -> None:
        """Upsert all records in a single transaction."""
        if not records:
            return
        await asyncio.to_thread(self._put_many, dict(records))

    def _get_many(self, domains: list[str]) -> dict[str, AnalysisRecord]:
        try:
            conn = self._conn()
        except sqlite3.Error as e:
            log.exception("analysis_store_open_failed", db=self._db_path)
            raise StoreUnavailable(f"cannot open analysis cache at {self._db_path}") from e

        rows: list[sqlite3.Row] = []
        try:
            # One read transaction across all chunks: a concurrent put_many is
            # seen either entirely or not at all.
            conn.execute("BEGIN")
            for i in range(0, len(domains), _MAX_PARAMS):
                chunk = domains[i : i + _MAX_PARAMS]
                placeholders = ",".join("?" * len(chunk))
                rows.extend(conn.execute(
                    f"SELECT domain, analysis FROM domain_analysis WHERE domain IN ({placeholders})",
                    chunk,
                ).fetchall())
        except sqlite3.Error as e:
            log.exception("analysis_store_read_failed", domains=len(domains))
            raise StoreUnavailable("analysis cache read failed") from e
        finally:
            conn.close()

        found: dict[str, AnalysisRecord] = {}
        for row in rows:
            try:
                found[row["domain"]] = AnalysisRecord.model_validate_json(row["analysis"])
            except ValidationError:
                log.warning("analysis_store_bad_row", domain=row["domain"])
        log.debug("analysis_store_read", requested=len(domains), found=len(found))
        return found

    def _put_many(self, records: dict[str, AnalysisRecord]) -> None:
        params = [
            (domain, record.model_dump_json(), record.created_at.isoformat())
            for domain, record in records.items()
        ]
        try:
            conn = self._conn()
        except sqlite3.Error as e:
            log.exception("analysis_store_open_failed", db=self._db_path)
            raise StoreUnavailable(f"cannot open analysis cache at {self._db_path}") from e

        try:
            with conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO domain_analysis (domain, analysis, created_at) "
                    "VALUES (?, ?, ?)",
                    params,
                )
        except sqlite3.Error as e:
            log.exception("analysis_store_write_failed", records=len(params))
            raise StoreUnavailable("analysis cache write failed") from e
        finally:
            conn.close()

        log.info("analysis_store_write", records=len(params))
