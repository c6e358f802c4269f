"""
Layer 2 – 缓存层
查询顺序：内存（易失） → 文件（持久化）
两级共用同一个 TTL，惰性过期：过期条目视为不存在，但不主动清理。
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Union

from pydantic import ValidationError

from rating_service.models.domain import CacheEntry, StockContext

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _make_key(ticker: str) -> str:
    """生成规范化缓存键（大写代码）"""
    key = ticker.strip().upper()
    if not key:
        raise ValueError("ticker 不能为空")
    return key


class MemoryTier:
    """易失层：进程内字典，加锁保证并发读写安全"""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class FileTier:
    """持久层：每只股票一个 JSON 文件，写入采用临时文件 + 原子替换"""

    def __init__(self, cache_dir: str):
        self.cache_dir = cache_dir

    def path_for(self, key: str) -> str:
        safe = key.replace("/", "_").replace(":", "_")
        return os.path.join(self.cache_dir, f"{safe}.json")

    def read(self, key: str) -> Optional[CacheEntry]:
        path = self.path_for(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                doc = json.load(fh)
            return CacheEntry(
                retrieved_at=doc["retrieved_at"],
                context=StockContext.model_validate(doc["context"]),
            )
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as exc:
            logger.warning(f"文件缓存读取失败（按未命中处理）: {path}: {exc}")
            return None

    def write(self, key: str, entry: CacheEntry) -> None:
        os.makedirs(self.cache_dir, exist_ok=True)
        record = {
            "ticker": key,
            "retrieved_at": entry.retrieved_at.isoformat(),
            "context": entry.context.model_dump(mode="json"),
        }
        fd, tmp_path = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.cache_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record, fh, ensure_ascii=False)
            os.replace(tmp_path, self.path_for(key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def count(self) -> int:
        if not os.path.isdir(self.cache_dir):
            return 0
        return len([f for f in os.listdir(self.cache_dir) if f.endswith(".json")])


class TieredCache:
    """两级缓存：先查内存，未命中再查文件；文件命中时提升到内存并保留原始获取时间"""

    def __init__(
        self,
        cache_dir: str,
        ttl: Union[int, float, timedelta] = 12 * 3600,
        clock: Clock = utc_now,
    ):
        self.ttl = ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)
        self._clock = clock
        self._memory = MemoryTier()
        self._files = FileTier(cache_dir)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.retrieved_at < self.ttl

    async def lookup(self, ticker: str) -> Optional[CacheEntry]:
        key = _make_key(ticker)

        # L1: 内存
        entry = self._memory.get(key)
        if entry is not None and self.is_fresh(entry):
            logger.debug(f"缓存命中（内存）: {key}")
            return entry

        # L2: 文件
        entry = await asyncio.to_thread(self._files.read, key)
        if entry is not None and self.is_fresh(entry):
            logger.info(f"缓存命中（文件）: {key}，提升到内存")
            self._memory.put(key, entry)
            return entry

        return None

    async def store(self, ticker: str, context: StockContext) -> CacheEntry:
        key = _make_key(ticker)
        entry = CacheEntry(retrieved_at=self._clock(), context=context)
        await asyncio.to_thread(self._files.write, key, entry)
        self._memory.put(key, entry)
        logger.debug(f"缓存写入（内存 + 文件）: {key}")
        return entry

    def stats(self) -> dict:
        """返回各缓存层统计信息"""
        return {
            "memory": {"entries": len(self._memory)},
            "file": {"files": self._files.count(), "dir": self._files.cache_dir},
            "ttl_seconds": int(self.ttl.total_seconds()),
        }
