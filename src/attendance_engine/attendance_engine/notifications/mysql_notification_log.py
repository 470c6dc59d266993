from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Notification
from .repository import NotificationLog


class MySQLNotificationLog(NotificationLog):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def add(self, notification: Notification) -> Notification:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO notification_logs(recipient_id, notification_type, message, reference, created_at)
                VALUES(%s,%s,%s,%s,%s)
                """,
                (
                    int(notification.recipient_id),
                    notification.type,
                    notification.message,
                    notification.reference,
                    notification.created_at,
                ),
            )
            return replace(notification, notification_id=int(cur.lastrowid))

    def exists(self, *, type: str, recipient_id: Optional[int] = None, reference: Optional[str] = None) -> bool:
        clauses = ["notification_type=%s"]
        params: list[object] = [type]
        if recipient_id is not None:
            clauses.append("recipient_id=%s")
            params.append(int(recipient_id))
        if reference is not None:
            clauses.append("reference=%s")
            params.append(reference)
        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM notification_logs WHERE {where}", tuple(params))
            r = fetchone(cur)
            return bool(r and int(r["n"]) > 0)

    def delete_matching(
        self, *, type: str, recipient_id: int, reference: str, since: Optional[datetime] = None
    ) -> int:
        sql = "DELETE FROM notification_logs WHERE notification_type=%s AND recipient_id=%s AND reference=%s"
        params: list[object] = [type, int(recipient_id), reference]
        if since is not None:
            sql += " AND created_at>=%s"
            params.append(since)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return int(cur.rowcount)

    def list_for_recipient(self, recipient_id: int, *, limit: int = 100) -> Sequence[Notification]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT notification_id, recipient_id, notification_type, message, reference, created_at
                FROM notification_logs
                WHERE recipient_id=%s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (int(recipient_id), int(limit)),
            )
            return [
                Notification(
                    notification_id=int(r["notification_id"]),
                    recipient_id=int(r["recipient_id"]),
                    type=r["notification_type"],
                    message=r.get("message") or "",
                    created_at=r["created_at"],
                    reference=r.get("reference"),
                )
                for r in fetchall(cur)
            ]
