from fastapi import APIRouter, Depends
from app.config import VERSION
from app.dependencies import get_store
from app.exceptions import UpstreamUnavailable
from app.services.record_store import RecordStore

router = APIRouter(prefix="/api", tags=["health"])

@router.get("/health")
def health_check(store: RecordStore = Depends(get_store)):
    """ヘルスチェック"""
    try:
        store_ok = store.ping()
    except UpstreamUnavailable:
        store_ok = False
    return {"status": "ok" if store_ok else "degraded", "store": store_ok, "version": VERSION}
