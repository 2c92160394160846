# summarizer_auth/services/auth/rate_limit.py
from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable

from summarizer_auth.schemas.auth import CooldownStatus
from summarizer_auth.services.auth.cooldown_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 60


class EmailRateLimiter:
    """
    驗證信 / 重設密碼信的寄送冷卻控管。

    - 每個 key 各自記錄「最後寄送時間」（毫秒），互不影響
    - 剩餘秒數一律由儲存的時間戳記即時計算，重新啟動後仍然正確
    - 冷卻結束後的紀錄在下一次讀取時才清掉（lazy purge）
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be positive")

        self._store = store
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def remaining(self, key: str) -> int:
        """剩餘冷卻秒數，範圍固定在 [0, cooldown_seconds]。"""
        raw = self._store.get(key)
        if raw is None:
            return 0

        try:
            last_sent_ms = int(raw)
        except ValueError:
            logger.warning("Discarding unreadable cooldown entry for %s", key)
            self._store.delete(key)
            return 0

        now_ms = self._now_ms()
        if last_sent_ms > now_ms:
            # 儲存的時間在未來（時鐘偏移）：改記為現在，從完整冷卻開始倒數
            self._store.set(key, str(now_ms))
            return self.cooldown_seconds

        elapsed = math.floor((now_ms - last_sent_ms) / 1000)
        remaining = self.cooldown_seconds - elapsed

        if remaining <= 0:
            # 冷卻已結束，順便清掉紀錄
            self._store.delete(key)
            return 0

        return remaining

    def can_send(self, key: str) -> bool:
        return self.remaining(key) == 0

    def start(self, key: str) -> int:
        """記錄現在為最後寄送時間；重複呼叫會重新計時，不會累加。"""
        self._store.set(key, str(self._now_ms()))
        return self.cooldown_seconds

    def reset(self, key: str) -> None:
        self._store.delete(key)

    @staticmethod
    def format_time(seconds: int) -> str:
        """秒數轉成 "M:SS"，例如 75 → "1:15"。"""
        seconds = max(0, int(seconds))
        minutes, secs = divmod(seconds, 60)
        return f"{minutes}:{secs:02d}"

    def status(self, key: str) -> CooldownStatus:
        remaining = self.remaining(key)
        return CooldownStatus(
            key=key,
            can_send=remaining == 0,
            time_remaining=remaining,
            is_on_cooldown=remaining > 0,
            formatted=self.format_time(remaining),
        )

    async def countdown(
        self,
        key: str,
        on_tick: Callable[[int], None] | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        每秒回報一次剩餘秒數，直到冷卻結束（最後會回報 0）。

        每次 tick 都重新從儲存讀取，外部呼叫 reset / start 會立即反映。
        呼叫端可以直接 cancel 這個 task。
        """
        remaining = self.remaining(key)
        while remaining > 0:
            if on_tick is not None:
                on_tick(remaining)
            await sleep(1)
            remaining = self.remaining(key)

        # remaining() 在歸零時已經清掉紀錄
        if on_tick is not None:
            on_tick(0)
