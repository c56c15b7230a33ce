"""
SQLite 数据库连接管理和初始化。
凭据缓存（access_token、jsapi_ticket）持久化在 token_cache 表中，
使用同步 sqlite3，提供 get_db() 获取连接。
"""

import os
import sqlite3
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DB_PATH = os.getenv("DB_PATH", "data/wxkit.db")


def get_db(db_path: str | None = None) -> sqlite3.Connection:
    """获取 SQLite 数据库连接，启用 WAL 模式。"""
    conn = sqlite3.connect(db_path or DB_PATH, timeout=10.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


# ── 建表 SQL ──────────────────────────────────────────────

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS token_cache (
    name            VARCHAR(64)  PRIMARY KEY,
    value           TEXT         NOT NULL,
    expires_at      REAL         NOT NULL,
    updated_at      DATETIME     NOT NULL DEFAULT (datetime('now'))
);
"""

# ── 索引 SQL ──────────────────────────────────────────────

_CREATE_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_token_cache_expires_at
    ON token_cache(expires_at);
"""


# ── 初始化 ────────────────────────────────────────────────

def init_db(db_path: str | None = None) -> None:
    """创建数据库目录、表和索引。"""
    path = db_path or DB_PATH
    Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = get_db(path)
    try:
        conn.executescript(_CREATE_TABLES)
        conn.executescript(_CREATE_INDEXES)
        conn.commit()
    finally:
        conn.close()


def purge_expired_tokens(now: float, db_path: str | None = None) -> int:
    """删除已过期的缓存行，返回删除行数。"""
    conn = get_db(db_path)
    try:
        cursor = conn.execute(
            "DELETE FROM token_cache WHERE expires_at <= ?", (now,)
        )
        conn.commit()
        return cursor.rowcount
    finally:
        conn.close()
