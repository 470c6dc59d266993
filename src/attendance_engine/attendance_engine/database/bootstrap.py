from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional

import mysql.connector

from .connection import DBConfig

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

# Quoted literals are kept whole so a ';' inside them never ends a statement.
_SQL_TOKEN = re.compile(r"""'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*"|;|[^'";]+|['"]""", re.S)


def _strip_create_db_and_use(sql: str) -> str:
    # The target database comes from DB_CONFIG, not from the file.
    sql = re.sub(r"(?im)^\s*CREATE\s+DATABASE\b.*?;\s*$", "", sql)
    sql = re.sub(r"(?im)^\s*USE\b.*?;\s*$", "", sql)
    return sql


def _strip_comments(sql: str) -> str:
    return re.sub(r"(?m)^\s*--.*$", "", sql)


def iter_sql_statements(sql: str) -> Iterable[str]:
    current: List[str] = []
    for match in _SQL_TOKEN.finditer(sql):
        token = match.group(0)
        if token != ";":
            current.append(token)
            continue
        stmt = "".join(current).strip()
        current = []
        if stmt:
            yield stmt

    tail = "".join(current).strip()
    if tail:
        yield tail


def load_schema(schema_path: Optional[str | Path] = None) -> List[str]:
    path = Path(schema_path or DEFAULT_SCHEMA_PATH)
    sql = _strip_comments(_strip_create_db_and_use(path.read_text(encoding="utf-8")))
    return list(iter_sql_statements(sql))


def _connect(target: DBConfig, *, with_database: bool = True):
    params = dict(host=target.host, port=target.port, user=target.user, password=target.password, use_pure=True)
    if with_database:
        params["database"] = target.database
    return mysql.connector.connect(**params)


def ensure_database_exists(db_config: dict) -> None:
    target = DBConfig.from_mapping(db_config)
    conn = _connect(target, with_database=False)
    try:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{target.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;"
        )
        conn.commit()
    finally:
        conn.close()


def apply_schema(db_config: dict, *, schema_path: Optional[str | Path] = None) -> int:
    """Create the database if needed and apply every schema statement.

    All statements are ``CREATE TABLE IF NOT EXISTS`` so re-running on an
    existing database is harmless. Returns the number of statements executed.
    """

    target = DBConfig.from_mapping(db_config)
    ensure_database_exists(db_config)
    statements = load_schema(schema_path)

    conn = _connect(target)
    try:
        cur = conn.cursor()
        for stmt in statements:
            cur.execute(stmt)
        conn.commit()
    finally:
        conn.close()
    logger.info("Applied %s schema statements to %s", len(statements), target.database)
    return len(statements)


def list_tables(db_config: dict) -> List[str]:
    conn = _connect(DBConfig.from_mapping(db_config))
    try:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        return [row[0] for row in cur.fetchall()]
    finally:
        conn.close()
