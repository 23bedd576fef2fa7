"""SQLite log source: reads Pi-hole's FTL database directly."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone

import structlog

from .errors import SourceUnavailable
from .log_source import LogSource
from .models import LogQuery, LogRecord

log = structlog.get_logger()


class PiholeSQLiteSource(LogSource):
    def __init__(self, db_path: str) -> None:
        self._pihole_db = db_path

    def _pihole_conn(self) -> sqlite3.Connection:
        """Open PiHole FTL DB in read-only mode."""
        conn = sqlite3.connect(f"file:{self._pihole_db}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        return conn

    async def fetch(self, query: LogQuery) -> list[LogRecord]:
        return await asyncio.to_thread(self._fetch, query)

    def _fetch(self, query: LogQuery) -> list[LogRecord]:
        offset = ((query.page or 1) - 1) * query.limit
        sql = "SELECT id, timestamp, domain, client FROM queries"
        params: list[str | int] = []
        if query.client_address:
            sql += " WHERE client = ?"
            params.append(query.client_address)
        sql += " ORDER BY id DESC LIMIT ? OFFSET ?"
        params.extend([query.limit, offset])

        log.info("querying_pihole_sqlite", db=self._pihole_db, client=query.client_address, limit=query.limit)

        try:
            conn = self._pihole_conn()
        except sqlite3.Error as e:
            log.exception("pihole_db_open_failed", db=self._pihole_db)
            raise SourceUnavailable(f"cannot open Pi-hole database {self._pihole_db}") from e

        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            log.exception("pihole_db_query_failed")
            raise SourceUnavailable("Pi-hole query log read failed") from e
        finally:
            conn.close()

        records = [
            LogRecord(
                sequence_id=row["id"],
                timestamp=datetime.fromtimestamp(row["timestamp"], tz=timezone.utc),
                domain=row["domain"] or "",
                client_address=row["client"] or "",
            )
            for row in rows
        ]
        log.info("pihole_sqlite_query_complete", entries=len(records))
        return records
