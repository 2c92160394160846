# summarizer_auth/core/logging.py
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    設定 root logger 的輸出格式與等級。

    只在 app 啟動時呼叫一次；各模組一律使用 logging.getLogger(__name__)。
    注意：不要在任何 log 中印出 token 或密碼。
    """
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("summarizer_auth").setLevel(resolved)
