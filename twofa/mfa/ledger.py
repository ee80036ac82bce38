"""待验证记录存储

每个 (tenant_id, user_id) 最多保存一条 PendingVerification。
同一用户的 submit / check_and_save 必须在 lock(key) 内串行执行，不同用户互不阻塞。

- InMemoryVerificationLedger: 单实例部署，按 key 分配可重入锁
- RedisVerificationLedger: 多实例部署，JSON + SETEX 保存，使用 Redis 分布式锁

Redis 使用示例:
    import redis

    redis_client = redis.Redis(host='localhost', port=6379, db=0)
    ledger = RedisVerificationLedger(redis_client, prefix="twofa:pending:")

    with ledger.lock((tenant_id, user_id)):
        pending = ledger.get((tenant_id, user_id))
"""

import json
import math
import threading
import weakref
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, ContextManager, Dict, Iterator, Optional, Tuple
from urllib.parse import quote

from twofa.log import get_logger
from .models import PendingVerification
from .stores import Clock, SystemClock

logger = get_logger()

LedgerKey = Tuple[Any, Any]


class _KeyLock:
    """可被弱引用的可重入锁"""
    __slots__ = ("lock", "__weakref__")

    def __init__(self):
        self.lock = threading.RLock()


class VerificationLedger(ABC):
    """待验证记录存储抽象基类"""

    @property
    def clock(self) -> Optional[Clock]:
        """判断过期使用的时间来源，引擎应与之共用同一个时钟"""
        return None

    @abstractmethod
    def lock(self, key: LedgerKey) -> ContextManager:
        """获取单用户互斥锁（同一线程可重入）"""
        pass

    @abstractmethod
    def put(self, key: LedgerKey, pending: PendingVerification) -> None:
        """保存记录，覆盖已有记录"""
        pass

    @abstractmethod
    def get(self, key: LedgerKey) -> Optional[PendingVerification]:
        """读取记录（返回副本），已过期的记录视为不存在"""
        pass

    @abstractmethod
    def record_failure(self, key: LedgerKey) -> int:
        """失败次数加一

        Returns:
            int: 新的失败次数；记录不存在时返回 0
        """
        pass

    @abstractmethod
    def remove(self, key: LedgerKey) -> bool:
        """删除记录

        Returns:
            bool: 记录是否存在
        """
        pass

    @abstractmethod
    def cleanup_expired(self) -> int:
        """清理过期记录

        Returns:
            清理的数量
        """
        pass


class InMemoryVerificationLedger(VerificationLedger):
    """内存待验证记录存储

    适用于单实例部署，重启后数据丢失。
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._records: Dict[LedgerKey, PendingVerification] = {}
        self._records_lock = threading.Lock()
        # 没有线程持有时锁对象自动回收
        self._locks: "weakref.WeakValueDictionary[LedgerKey, Any]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _key_lock(self, key: LedgerKey) -> "_KeyLock":
        with self._locks_guard:
            key_lock = self._locks.get(key)
            if key_lock is None:
                key_lock = _KeyLock()
                self._locks[key] = key_lock
            return key_lock

    @property
    def clock(self) -> Clock:
        return self._clock

    @contextmanager
    def lock(self, key: LedgerKey) -> Iterator[None]:
        key_lock = self._key_lock(key)
        with key_lock.lock:
            yield

    def put(self, key: LedgerKey, pending: PendingVerification) -> None:
        with self._records_lock:
            self._records[key] = pending.copy()

    def get(self, key: LedgerKey) -> Optional[PendingVerification]:
        now = self._clock.now()
        with self._records_lock:
            pending = self._records.get(key)
            if pending is None:
                return None
            if pending.is_expired(now):
                del self._records[key]
                return None
            return pending.copy()

    def record_failure(self, key: LedgerKey) -> int:
        now = self._clock.now()
        with self._records_lock:
            pending = self._records.get(key)
            if pending is None or pending.is_expired(now):
                return 0
            pending.failure_count += 1
            return pending.failure_count

    def remove(self, key: LedgerKey) -> bool:
        with self._records_lock:
            return self._records.pop(key, None) is not None

    def cleanup_expired(self) -> int:
        now = self._clock.now()
        with self._records_lock:
            expired = [k for k, pending in self._records.items() if pending.is_expired(now)]
            for k in expired:
                del self._records[k]
        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired pending verifications")
        return len(expired)


class RedisVerificationLedger(VerificationLedger):
    """Redis 待验证记录存储

    适用于多实例部署。记录的 TTL 与 expires_at 对齐，由 Redis 自动清理。

    Args:
        redis_client: Redis 客户端实例
        clock: 时间来源
        prefix: 键前缀
        lock_timeout: 锁自动释放时间（秒）
        lock_blocking_timeout: 等待锁的最长时间（秒）
    """

    # 系统级作用域标记，quote 总会转义 "*"，不会与租户 ID 冲突
    SYSTEM_SCOPE = "*"

    def __init__(
        self,
        redis_client,
        clock: Optional[Clock] = None,
        prefix: str = "twofa:pending:",
        lock_timeout: int = 10,
        lock_blocking_timeout: float = 5.0,
    ):
        self._redis = redis_client
        self._clock = clock or SystemClock()
        self._prefix = prefix
        self._lock_timeout = lock_timeout
        self._lock_blocking_timeout = lock_blocking_timeout
        # Redis 锁不可重入，按线程记录已持有的 key
        self._held = threading.local()

    @property
    def clock(self) -> Clock:
        return self._clock

    @classmethod
    def _key_part(cls, key: LedgerKey) -> str:
        tenant_id, user_id = key
        tenant_part = cls.SYSTEM_SCOPE if tenant_id is None else quote(str(tenant_id), safe="")
        return f"{tenant_part}:{quote(str(user_id), safe='')}"

    def _record_key(self, key: LedgerKey) -> str:
        return f"{self._prefix}record:{self._key_part(key)}"

    def _lock_key(self, key: LedgerKey) -> str:
        return f"{self._prefix}lock:{self._key_part(key)}"

    def _held_counts(self) -> Dict[LedgerKey, int]:
        counts = getattr(self._held, "counts", None)
        if counts is None:
            counts = {}
            self._held.counts = counts
        return counts

    @contextmanager
    def lock(self, key: LedgerKey) -> Iterator[None]:
        counts = self._held_counts()
        if counts.get(key):
            counts[key] += 1
            try:
                yield
            finally:
                counts[key] -= 1
            return

        # 超时未获取到锁时 redis-py 抛出 LockError
        with self._redis.lock(
            self._lock_key(key),
            timeout=self._lock_timeout,
            blocking_timeout=self._lock_blocking_timeout,
        ):
            counts[key] = 1
            try:
                yield
            finally:
                del counts[key]

    def _write(self, key: LedgerKey, pending: PendingVerification) -> None:
        remaining = (pending.expires_at - self._clock.now()).total_seconds()
        if remaining <= 0:
            self._redis.delete(self._record_key(key))
            return
        self._redis.setex(self._record_key(key), math.ceil(remaining), json.dumps(pending.to_dict()))

    def put(self, key: LedgerKey, pending: PendingVerification) -> None:
        self._write(key, pending)

    def get(self, key: LedgerKey) -> Optional[PendingVerification]:
        data = self._redis.get(self._record_key(key))
        if not data:
            return None
        if isinstance(data, bytes):
            data = data.decode()

        pending = PendingVerification.from_dict(json.loads(data))
        if pending.is_expired(self._clock.now()):
            self._redis.delete(self._record_key(key))
            return None
        return pending

    def record_failure(self, key: LedgerKey) -> int:
        with self.lock(key):
            pending = self.get(key)
            if pending is None:
                return 0
            pending.failure_count += 1
            self._write(key, pending)
            return pending.failure_count

    def remove(self, key: LedgerKey) -> bool:
        return self._redis.delete(self._record_key(key)) > 0

    def cleanup_expired(self) -> int:
        # Redis 自动通过 TTL 清理，这里返回 0
        return 0
