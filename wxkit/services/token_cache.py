"""
凭据缓存：缓存 access_token、jsapi_ticket 等短期凭据，避免触发微信接口频率限制。

频率限制：单个 appId 调用上限为 4000 次/分钟，2,000,000 次/天。

缓存未命中或过期时调用 fetch 重新获取；fetch 失败时异常直接抛出，
已有缓存保持不变。同名凭据的并发刷新通过按名称加锁串行化。
"""

import logging
import sqlite3
import threading
import time
from typing import Callable, Protocol

from wxkit import database
from wxkit.models.schemas import CachedToken

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int) -> bool: ...


class MemoryCacheStore:
    """进程内缓存，clock 可注入以便测试过期逻辑。"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[str, CachedToken] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.value

    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        entry = CachedToken(
            name=key, value=value, expires_at=self._clock() + ttl_seconds
        )
        with self._lock:
            self._entries[key] = entry
        return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class SqliteCacheStore:
    """基于 token_cache 表的持久化缓存，多进程共享同一数据库文件。"""

    def __init__(self, db_path: str | None = None, clock: Callable[[], float] = time.time):
        self.db_path = db_path
        self._clock = clock

    def get(self, key: str) -> str | None:
        """读取未过期的缓存值，数据库异常按未命中处理。"""
        try:
            db = database.get_db(self.db_path)
            try:
                row = db.execute(
                    "SELECT value, expires_at FROM token_cache WHERE name = ?",
                    (key,),
                ).fetchone()
            finally:
                db.close()
        except sqlite3.Error as e:
            logger.warning("读取凭据缓存失败: name=%s, error=%s", key, e)
            return None

        if not row or row["expires_at"] <= self._clock():
            return None
        return row["value"]

    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        expires_at = self._clock() + ttl_seconds
        db = database.get_db(self.db_path)
        try:
            db.execute(
                """INSERT OR REPLACE INTO token_cache (name, value, expires_at, updated_at)
                   VALUES (?, ?, ?, datetime('now'))""",
                (key, value, expires_at),
            )
            db.commit()
            return True
        except sqlite3.Error as e:
            db.rollback()
            logger.warning("写入凭据缓存失败: name=%s, error=%s", key, e)
            return False
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = database.get_db(self.db_path)
        try:
            db.execute("DELETE FROM token_cache WHERE name = ?", (key,))
            db.commit()
        finally:
            db.close()


class CredentialCache:
    """凭据缓存：命中直接返回，未命中或过期时调用 fetch 刷新。"""

    def __init__(self, store: CacheStore):
        self.store = store
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            return lock

    def get_or_fetch(
        self, name: str, fetch: Callable[[], tuple[str, int]]
    ) -> str:
        """
        获取缓存凭据，不存在或已过期时调用 fetch 获取并写入缓存。

        Args:
            name: 缓存键名，如 access_token、jsapi_ticket。
            fetch: 无参函数，返回 (value, ttl_seconds)。

        Returns:
            凭据值。

        Raises:
            fetch 抛出的异常原样传播，已有缓存不受影响。
        """
        cached = self.store.get(name)
        if cached:
            logger.debug("凭据缓存命中: name=%s", name)
            return cached

        with self._lock_for(name):
            # 等锁期间其他线程可能已完成刷新
            cached = self.store.get(name)
            if cached:
                return cached

            value, ttl_seconds = fetch()
            logger.info("凭据已刷新: name=%s, expires_in=%s", name, ttl_seconds)

            if not self.store.set(name, value, int(ttl_seconds)):
                # 写缓存失败不影响本次返回，下次调用会重新获取
                logger.warning("凭据缓存写入失败，本次仍返回新凭据: name=%s", name)
            return value

    def invalidate(self, name: str) -> None:
        """删除指定缓存，下次访问时强制刷新。"""
        delete = getattr(self.store, "delete", None)
        if delete is not None:
            delete(name)
