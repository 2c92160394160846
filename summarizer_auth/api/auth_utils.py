# summarizer_auth/api/auth_utils.py
from fastapi import HTTPException, status


def raise_400(errors: dict[str, str]) -> None:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"errors": errors},
    )


def raise_429(message: str, retry_after: int) -> None:
    # 重要：不要放到 email 欄位，避免前端把輸入框標紅
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"errors": {"_global": message}},
        headers={"Retry-After": str(max(1, int(retry_after)))},
    )


def raise_503(message: str) -> None:
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"errors": {"_global": message}},
    )
