"""
JWT認証ユーティリティ
Bearer Tokenによる認証・認可の依存関係を提供する

トークンにはマネージャーID（sub）とサーバー側セッションID（sid）を入れる。
セッションは SessionRegistry が保持し、認証済みリクエストのたびに
無操作タイマーをリセットする。3分間リクエストがなければセッションは失効する。
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_HOURS
from app.dependencies import get_session_registry
from app.services.session_manager import SessionManager
from app.services.session_registry import SessionRegistry
from app.utils.permissions import Permission

security = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """JWTアクセストークンを生成する"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_session_no_touch(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionManager:
    """
    Authorization: Bearer <token> ヘッダーを検証し、セッションを返す。
    トークンが無効・期限切れ、またはセッションが無操作で失効している場合は 401 を返す。
    無操作タイマーはリセットしない（残り時間の参照・操作通知用）。
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Bejelentkezés szükséges. Kérjük, jelentkezzen be újra",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
        session_id = payload.get("sid")
        if session_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    session = registry.get(session_id)
    if session is None:
        raise credentials_exception
    return session


async def get_current_session(session: SessionManager = Depends(get_session_no_touch)) -> SessionManager:
    """認証済みのセッションを返し、このリクエストを操作として無操作タイマーをリセットする"""
    session.reset_inactivity_timer()
    return session


def require_permission(permission: Permission):
    """指定した権限を要求する依存関係を作る。権限がなければ 403 を返す。"""

    async def _require(session: SessionManager = Depends(get_current_session)) -> SessionManager:
        if not session.has_permission(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Nincs jogosultsága ehhez a művelethez",
            )
        return session

    return _require


async def require_admin(session: SessionManager = Depends(get_current_session)) -> SessionManager:
    """管理者を要求する依存関係。管理者でなければ 403 を返す。"""
    if not session.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Adminisztrátori jogosultság szükséges"
        )
    return session
