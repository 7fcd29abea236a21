"""Per-document log of tool calls made by the model."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from ..models import ToolCallRecord

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 10
DEFAULT_DAYS_TO_KEEP = 30


def _row_to_log(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "document_id": row["document_id"],
        "tool_name": row["tool_name"],
        "tool_args": row["tool_args"],
        "tool_result": row["tool_result"],
        "success": bool(row["success"]),
        "duration_ms": row["duration"],
        "timestamp": row["timestamp"],
    }


class ToolUsageLogger:
    def __init__(self, store: Any) -> None:
        self.store = store

    async def log(self, record: ToolCallRecord) -> int:
        return await self.store.insert_tool_usage(
            document_id=record.document_id,
            tool_name=record.tool_name,
            tool_args=json.dumps(record.tool_args),
            tool_result=record.tool_result,
            success=record.success,
            duration_ms=record.duration_ms,
        )

    async def get_logs_for_document(self, document_id: int) -> List[Dict[str, Any]]:
        rows = await self.store.fetch_tool_usage(document_id)
        return [_row_to_log(row) for row in rows]

    async def get_recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[Dict[str, Any]]:
        rows = await self.store.fetch_tool_usage(limit=limit)
        return [_row_to_log(row) for row in rows]

    async def get_stats(self) -> List[Dict[str, Any]]:
        rows = await self.store.tool_usage_stats()
        return [
            {
                "tool_name": row["tool_name"],
                "total_calls": row["total_calls"],
                "success_rate": row["success_rate"],
                "average_duration_ms": row["average_duration"] or 0,
            }
            for row in rows
        ]

    async def clear_old_logs(self, days_to_keep: int = DEFAULT_DAYS_TO_KEEP) -> int:
        cutoff = datetime.now(tz=timezone.utc) - timedelta(days=days_to_keep)
        deleted = await self.store.delete_tool_usage_before(cutoff.isoformat(timespec="seconds"))
        if deleted:
            logger.info(f"Removed {deleted} tool usage log entries older than {days_to_keep} days")
        return deleted
