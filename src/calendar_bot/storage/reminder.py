from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

import aiosqlite

from calendar_bot.datamodel import ReminderRecord, ReminderStatus, partition_key
from calendar_bot.errors import PersistenceError
from calendar_bot.logger import logger
from calendar_bot.utils import to_utc_aware

__all__ = ["ReminderStore", "SqliteReminderStore"]

_COLUMNS = "reminder_id, subject_id, scheduled_at_utc, task, status, created_at_utc, dispatch_handle_id"


class ReminderStore(ABC):
    @abstractmethod
    async def put(self, record: ReminderRecord) -> None:
        """写入提醒记录；失败时抛出 PersistenceError"""


def _row_to_record(row: Any) -> ReminderRecord:
    return ReminderRecord(
        reminder_id=row[0],
        subject_id=row[1],
        scheduled_at_utc=datetime.fromisoformat(row[2]),
        task_text=row[3],
        status=ReminderStatus(row[4]),
        created_at=datetime.fromisoformat(row[5]),
        dispatch_handle_id=row[6],
    )


class SqliteReminderStore(ReminderStore):
    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn

    async def put(self, record: ReminderRecord) -> None:
        scheduled = to_utc_aware(record.scheduled_at_utc)
        try:
            await self.conn.execute(
                f"INSERT INTO reminders (pk, scheduled_at_epoch, {_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.partition_key,
                    int(scheduled.timestamp()),
                    record.reminder_id,
                    record.subject_id,
                    scheduled.isoformat(),
                    record.task_text,
                    record.status.value,
                    to_utc_aware(record.created_at).isoformat(),
                    record.dispatch_handle_id,
                ),
            )
            await self.conn.commit()
        except aiosqlite.Error as e:
            logger.error(f"User {record.subject_id} 保存提醒失败: {e}")
            raise PersistenceError(f"保存提醒失败: {e}") from e
        logger.trace(f"创建提醒: reminder_id={record.reminder_id}, subject_id={record.subject_id}, scheduled_at_utc={scheduled.isoformat()}")

    async def get(self, reminder_id: str) -> ReminderRecord | None:
        async with self.conn.execute(f"SELECT {_COLUMNS} FROM reminders WHERE reminder_id = ?", (reminder_id,)) as cursor:
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def list_by_subject(self, subject_id: str, status: ReminderStatus | None = None) -> list[ReminderRecord]:
        """按计划时间升序列出某个用户的提醒"""
        sql = f"SELECT {_COLUMNS} FROM reminders WHERE pk = ?"
        params: list[Any] = [partition_key(subject_id)]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        sql += " ORDER BY scheduled_at_epoch ASC"
        async with self.conn.execute(sql, tuple(params)) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    def _where(self, subject_id: str | None, status: ReminderStatus | None) -> tuple[str, list[Any]]:
        where_clauses: list[str] = []
        params: list[Any] = []
        if subject_id:
            where_clauses.append("pk = ?")
            params.append(partition_key(subject_id))
        if status is not None:
            where_clauses.append("status = ?")
            params.append(status.value)
        where_sql = ""
        if where_clauses:
            where_sql = "WHERE " + " AND ".join(where_clauses)
        return where_sql, params

    async def list_reminders(
        self,
        subject_id: str | None = None,
        status: ReminderStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ReminderRecord]:
        """按创建顺序倒序 (ULID) 分页列出提醒"""
        where_sql, params = self._where(subject_id, status)
        sql = f"SELECT {_COLUMNS} FROM reminders {where_sql} ORDER BY reminder_id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        async with self.conn.execute(sql, tuple(params)) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def count(self, subject_id: str | None = None, status: ReminderStatus | None = None) -> int:
        where_sql, params = self._where(subject_id, status)
        async with self.conn.execute(f"SELECT COUNT(*) FROM reminders {where_sql}", tuple(params)) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
