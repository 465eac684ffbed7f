import logging
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from app.config import DEBUG, CORS_ORIGINS, VERSION
from app.database import engine, Base
from app.exceptions import RewardError
from app.routes import audit, auth, employees, health, managers, rewards
from app.utils.rate_limiter import api_limiter
# モデルをインポート（テーブル作成のため）
from app.models.record import Record, RecordSetMember
from app.models.audit_log import AuditLog

logging.basicConfig(
    level=logging.DEBUG if DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# テーブル作成
Base.metadata.create_all(bind=engine)

# HTTPセキュリティヘッダーミドルウェア
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # QRスキャナーのためカメラは自サイトのみ許可
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=(self)"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "img-src 'self' data:; "
            "frame-ancestors 'none';"
        )
        if not DEBUG:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# API全体レート制限ミドルウェア（IP単位: 1分間に100リクエストまで）
class APIRateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/api/"):
            ip_address = request.client.host if request.client else "unknown"
            if not api_limiter.is_allowed(ip_address):
                remaining = api_limiter.get_remaining_time(ip_address)
                return JSONResponse(
                    status_code=429,
                    content={"detail": f"Túl sok kérés. Próbálja újra {remaining} másodperc múlva"}
                )
        return await call_next(request)

# DEBUGモード時のみドキュメントエンドポイントを公開
app = FastAPI(
    title="Reward Card API",
    description="Jutalomkártyák kiadása, beváltása és a vezetői jogosultságok kezelése",
    version=VERSION,
    docs_url="/docs" if DEBUG else None,
    redoc_url="/redoc" if DEBUG else None,
    openapi_url="/openapi.json" if DEBUG else None,
)

@app.exception_handler(RewardError)
async def reward_error_handler(request: Request, exc: RewardError):
    """ドメイン例外を {"detail": ...} 形式で返す"""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Váratlan hiba történt"})

# セキュリティヘッダーミドルウェア（CORSより前に登録）
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(APIRateLimitMiddleware)

# CORS設定
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# ルート登録
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(employees.router)
app.include_router(rewards.router)
app.include_router(managers.router)
app.include_router(audit.router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=DEBUG)
