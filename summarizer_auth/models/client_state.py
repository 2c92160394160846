# summarizer_auth/models/client_state.py
from datetime import datetime

from sqlalchemy import String, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from summarizer_auth.models.base import Base


class ClientStateEntry(Base):
    """
    用戶端持久化的 key-value 狀態。

    目前用途：
    - 冷卻時間："verification-resend" / "password-reset" → 最後寄送時間（毫秒）
    - 待驗證 Email："pending-email" → 地址
    - 目前登入 session："auth-session" → JSON
    """
    __tablename__ = "client_state"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
