# summarizer_auth/services/auth/cooldown_store.py
from __future__ import annotations

from typing import Protocol

from sqlalchemy.orm import Session, sessionmaker

from summarizer_auth.models import ClientStateEntry

# 各用途固定的 key，寫入一律是「設為現在」或「刪除」，不做累加
VERIFICATION_RESEND_KEY = "verification-resend"
PASSWORD_RESET_KEY = "password-reset"
PENDING_EMAIL_KEY = "pending-email"
AUTH_SESSION_KEY = "auth-session"


class KeyValueStore(Protocol):
    """冷卻時間 / 待驗證 Email 等用戶端狀態的儲存介面。"""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryKeyValueStore:
    """只存在記憶體的實作，process 結束就消失（測試、單次執行用）。"""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._data


class SqlKeyValueStore:
    """
    存在 client_state 資料表的實作。

    重新啟動（等同前端重新整理頁面）後狀態仍在；
    呼叫 clear() 等同清除瀏覽器的 session storage。
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> str | None:
        db: Session = self._session_factory()
        try:
            entry = db.get(ClientStateEntry, key)
            return entry.value if entry is not None else None
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        db: Session = self._session_factory()
        try:
            entry = db.get(ClientStateEntry, key)
            if entry is None:
                db.add(ClientStateEntry(key=key, value=value))
            else:
                entry.value = value
            db.commit()
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db: Session = self._session_factory()
        try:
            db.query(ClientStateEntry).filter(ClientStateEntry.key == key).delete(
                synchronize_session=False
            )
            db.commit()
        finally:
            db.close()

    def clear(self) -> None:
        db: Session = self._session_factory()
        try:
            db.query(ClientStateEntry).delete(synchronize_session=False)
            db.commit()
        finally:
            db.close()
