"""Async SQLite persistence for documents, corrections, settings and tool usage logs."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="seconds")


def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


class ReviewStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return

            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(self.db_path)
            try:
                await conn.execute("PRAGMA journal_mode=WAL;")
                await conn.execute("PRAGMA synchronous=NORMAL;")
                await conn.execute("PRAGMA foreign_keys=ON;")

                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS docs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        filename TEXT NOT NULL,
                        upload_timestamp TEXT NOT NULL,
                        file_size INTEGER NOT NULL DEFAULT 0,
                        page_count INTEGER NOT NULL DEFAULT 0,
                        ocr_json TEXT,
                        type TEXT,
                        confidence REAL,
                        extraction TEXT,
                        corrected INTEGER NOT NULL DEFAULT 0,
                        processing_status TEXT NOT NULL DEFAULT 'pending'
                    )
                    """
                )

                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS corrections (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        doc_id INTEGER NOT NULL,
                        correction_type TEXT NOT NULL,
                        original_value TEXT,
                        corrected_value TEXT NOT NULL,
                        field_name TEXT,
                        corrector_id TEXT,
                        created_at TEXT NOT NULL,
                        is_gold INTEGER NOT NULL DEFAULT 1,
                        FOREIGN KEY(doc_id) REFERENCES docs(id) ON DELETE CASCADE
                    )
                    """
                )

                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS settings (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                    """
                )

                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS tool_usage_logs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        document_id INTEGER NOT NULL,
                        tool_name TEXT NOT NULL,
                        tool_args TEXT NOT NULL,
                        tool_result TEXT NOT NULL,
                        success INTEGER NOT NULL DEFAULT 1,
                        duration INTEGER,
                        timestamp TEXT NOT NULL
                    )
                    """
                )

                await conn.execute("CREATE INDEX IF NOT EXISTS idx_docs_status ON docs(processing_status)")
                await conn.execute("CREATE INDEX IF NOT EXISTS idx_docs_type ON docs(type)")
                await conn.execute("CREATE INDEX IF NOT EXISTS idx_corrections_doc ON corrections(doc_id)")
                await conn.execute("CREATE INDEX IF NOT EXISTS idx_corrections_gold ON corrections(is_gold)")
                await conn.execute("CREATE INDEX IF NOT EXISTS idx_tool_usage_doc ON tool_usage_logs(document_id)")
                await conn.execute("CREATE INDEX IF NOT EXISTS idx_tool_usage_name ON tool_usage_logs(tool_name)")

                await conn.commit()
            finally:
                await conn.close()
            self._initialized = True

    async def _conn(self) -> aiosqlite.Connection:
        await self.init()
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        return conn

    # Documents
    async def insert_document(
        self,
        *,
        filename: str,
        ocr_pages: Any = None,
        file_size: int = 0,
        page_count: int = 0,
        doc_type: Optional[str] = None,
        confidence: Optional[float] = None,
        extraction: Optional[Dict[str, Any]] = None,
    ) -> int:
        conn = await self._conn()
        try:
            cur = await conn.execute(
                """
                INSERT INTO docs (filename, upload_timestamp, file_size, page_count, ocr_json, type, confidence, extraction)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    filename,
                    _utc_now(),
                    file_size,
                    page_count,
                    _dump_json(ocr_pages),
                    doc_type,
                    confidence,
                    _dump_json(extraction),
                ),
            )
            doc_id = cur.lastrowid
            await cur.close()
            await conn.commit()
            return int(doc_id)
        finally:
            await conn.close()

    async def get_document(self, doc_id: int) -> Optional[Dict[str, Any]]:
        conn = await self._conn()
        try:
            cur = await conn.execute("SELECT * FROM docs WHERE id=?", (doc_id,))
            row = await cur.fetchone()
            await cur.close()
            return dict(row) if row else None
        finally:
            await conn.close()

    async def update_classification(self, doc_id: int, doc_type: str, confidence: float) -> None:
        conn = await self._conn()
        try:
            await conn.execute(
                "UPDATE docs SET type=?, confidence=?, processing_status='classified' WHERE id=?",
                (doc_type, confidence, doc_id),
            )
            await conn.commit()
        finally:
            await conn.close()

    async def update_extraction(self, doc_id: int, extraction: Dict[str, Any], *, doc_type: Optional[str] = None) -> None:
        conn = await self._conn()
        try:
            if doc_type is None:
                await conn.execute(
                    "UPDATE docs SET extraction=?, processing_status='extracted' WHERE id=?",
                    (_dump_json(extraction), doc_id),
                )
            else:
                await conn.execute(
                    "UPDATE docs SET extraction=?, type=?, processing_status='extracted' WHERE id=?",
                    (_dump_json(extraction), doc_type, doc_id),
                )
            await conn.commit()
        finally:
            await conn.close()

    # Corrections
    async def insert_correction(
        self,
        *,
        doc_id: int,
        correction_type: str,
        corrected_value: str,
        original_value: Optional[str] = None,
        field_name: Optional[str] = None,
        corrector_id: Optional[str] = None,
        is_gold: bool = True,
    ) -> int:
        conn = await self._conn()
        try:
            cur = await conn.execute(
                """
                INSERT INTO corrections (doc_id, correction_type, original_value, corrected_value, field_name, corrector_id, created_at, is_gold)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    doc_id,
                    correction_type,
                    original_value,
                    corrected_value,
                    field_name,
                    corrector_id,
                    _utc_now(),
                    1 if is_gold else 0,
                ),
            )
            correction_id = cur.lastrowid
            await cur.close()
            await conn.execute("UPDATE docs SET corrected=1 WHERE id=?", (doc_id,))
            await conn.commit()
            return int(correction_id)
        finally:
            await conn.close()

    async def fetch_gold_corrections(
        self,
        doc_type: str,
        *,
        keywords: Sequence[str] = (),
        limit: int = 1,
    ) -> List[Dict[str, Any]]:
        """Random gold corrections for a type, optionally narrowed to OCR text containing any keyword."""
        sql = """
            SELECT c.id, c.doc_id, d.type AS doc_type, d.ocr_json, d.extraction,
                   c.corrected_value, c.field_name, c.created_at
            FROM corrections c
            JOIN docs d ON c.doc_id = d.id
            WHERE d.type = ? AND c.is_gold = 1
        """
        params: List[Any] = [doc_type]
        if keywords:
            sql += " AND (" + " OR ".join("d.ocr_json LIKE ?" for _ in keywords) + ")"
            params.extend(f"%{keyword}%" for keyword in keywords)
        sql += " ORDER BY RANDOM() LIMIT ?"
        params.append(limit)

        conn = await self._conn()
        try:
            cur = await conn.execute(sql, params)
            rows = await cur.fetchall()
            await cur.close()
            return [dict(r) for r in rows]
        finally:
            await conn.close()

    async def count_gold_corrections_by_type(self) -> Dict[str, int]:
        conn = await self._conn()
        try:
            cur = await conn.execute(
                """
                SELECT d.type AS doc_type, COUNT(*) AS count
                FROM corrections c
                JOIN docs d ON c.doc_id = d.id
                WHERE c.is_gold = 1
                GROUP BY d.type
                """
            )
            rows = await cur.fetchall()
            await cur.close()
            return {row["doc_type"]: int(row["count"]) for row in rows if row["doc_type"] is not None}
        finally:
            await conn.close()

    async def set_correction_gold(self, correction_id: int, is_gold: bool) -> bool:
        conn = await self._conn()
        try:
            cur = await conn.execute(
                "UPDATE corrections SET is_gold=? WHERE id=?",
                (1 if is_gold else 0, correction_id),
            )
            updated = cur.rowcount > 0
            await cur.close()
            await conn.commit()
            return updated
        finally:
            await conn.close()

    # Settings
    async def get_setting(self, key: str) -> Optional[str]:
        conn = await self._conn()
        try:
            cur = await conn.execute("SELECT value FROM settings WHERE key=?", (key,))
            row = await cur.fetchone()
            await cur.close()
            return row["value"] if row else None
        finally:
            await conn.close()

    async def set_setting(self, key: str, value: str) -> None:
        conn = await self._conn()
        try:
            await conn.execute(
                """
                INSERT INTO settings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (key, value),
            )
            await conn.commit()
        finally:
            await conn.close()

    async def list_settings(self, prefix: str = "") -> Dict[str, str]:
        conn = await self._conn()
        try:
            cur = await conn.execute(
                "SELECT key, value FROM settings WHERE key LIKE ? ORDER BY key",
                (f"{prefix}%",),
            )
            rows = await cur.fetchall()
            await cur.close()
            return {row["key"]: row["value"] for row in rows}
        finally:
            await conn.close()

    # Tool usage
    async def insert_tool_usage(
        self,
        *,
        document_id: int,
        tool_name: str,
        tool_args: str,
        tool_result: str,
        success: bool,
        duration_ms: Optional[int],
    ) -> int:
        conn = await self._conn()
        try:
            cur = await conn.execute(
                """
                INSERT INTO tool_usage_logs (document_id, tool_name, tool_args, tool_result, success, duration, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (document_id, tool_name, tool_args, tool_result, 1 if success else 0, duration_ms, _utc_now()),
            )
            log_id = cur.lastrowid
            await cur.close()
            await conn.commit()
            return int(log_id)
        finally:
            await conn.close()

    async def fetch_tool_usage(self, document_id: Optional[int] = None, *, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM tool_usage_logs"
        params: List[Any] = []
        if document_id is not None:
            sql += " WHERE document_id=?"
            params.append(document_id)
        sql += " ORDER BY timestamp DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        conn = await self._conn()
        try:
            cur = await conn.execute(sql, params)
            rows = await cur.fetchall()
            await cur.close()
            return [dict(r) for r in rows]
        finally:
            await conn.close()

    async def tool_usage_stats(self) -> List[Dict[str, Any]]:
        conn = await self._conn()
        try:
            cur = await conn.execute(
                """
                SELECT tool_name,
                       COUNT(*) AS total_calls,
                       AVG(CASE WHEN success = 1 THEN 1.0 ELSE 0.0 END) AS success_rate,
                       AVG(duration) AS average_duration
                FROM tool_usage_logs
                GROUP BY tool_name
                ORDER BY tool_name
                """
            )
            rows = await cur.fetchall()
            await cur.close()
            return [dict(r) for r in rows]
        finally:
            await conn.close()

    async def delete_tool_usage_before(self, cutoff_iso: str) -> int:
        conn = await self._conn()
        try:
            cur = await conn.execute("DELETE FROM tool_usage_logs WHERE timestamp < ?", (cutoff_iso,))
            deleted = cur.rowcount
            await cur.close()
            await conn.commit()
            return int(deleted or 0)
        finally:
            await conn.close()

    async def ping(self) -> bool:
        conn = await self._conn()
        try:
            cur = await conn.execute("SELECT 1")
            row = await cur.fetchone()
            await cur.close()
            return bool(row)
        finally:
            await conn.close()
