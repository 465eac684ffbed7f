from collections import Counter
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.audit_log import AuditLog
from app.services.session_manager import SessionManager
from app.utils.audit_logger import log_event
from app.utils.jwt_auth import require_admin
from datetime import datetime, timedelta

router = APIRouter(prefix="/api", tags=["audit"])

@router.get("/admin/audit-logs")
async def get_audit_logs(
    request: Request,
    session: SessionManager = Depends(require_admin),
    event_type: str = Query(None),
    actor_id: str = Query(None),
    days: int = Query(7, ge=1, le=90),
    limit: int = Query(500, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """監査ログを取得（管理者のみ）"""
    log_event(
        event_type="audit_logs_accessed",
        actor=session.identity,
        ip_address=request.client.host if request.client else "unknown",
        resource="/admin/audit-logs",
        action="GET",
        success=True,
    )

    # 指定日数前から現在までのログを取得
    cutoff_date = datetime.utcnow() - timedelta(days=days)
    query = db.query(AuditLog).filter(AuditLog.timestamp >= cutoff_date)

    if event_type:
        query = query.filter(AuditLog.event_type == event_type)
    if actor_id:
        query = query.filter(AuditLog.actor_id == actor_id)

    # 新しいものから順に取得
    logs = query.order_by(AuditLog.timestamp.desc()).limit(limit).all()

    return {
        "logs": [
            {
                "id": log.id,
                "timestamp": log.timestamp.isoformat(),
                "event_type": log.event_type,
                "actor_id": log.actor_id,
                "actor_name": log.actor_name,
                "actor_role": log.actor_role,
                "ip_address": log.ip_address,
                "resource": log.resource,
                "action": log.action,
                "success": log.success,
                "details": log.details,
            }
            for log in logs
        ],
        "total": len(logs),
        "days_lookback": days,
        "limit_used": limit
    }

@router.get("/admin/audit-stats")
async def get_audit_stats(
    session: SessionManager = Depends(require_admin),
    days: int = Query(7, ge=1, le=90),
    db: Session = Depends(get_db)
):
    """イベント種別ごとの件数（管理者のみ）"""
    cutoff_date = datetime.utcnow() - timedelta(days=days)
    rows = db.query(AuditLog.event_type).filter(AuditLog.timestamp >= cutoff_date).all()
    counts = Counter(row[0] for row in rows)

    return {
        "stats": {
            "login_success": counts.get("login_success", 0),
            "login_failure": counts.get("login_failure", 0),
            "rate_limit_exceeded": counts.get("login_rate_limit_exceeded", 0),
            "cards_issued": counts.get("card_issued", 0),
            "cards_redeemed": counts.get("card_redeemed", 0),
            "cards_deleted": counts.get("card_deleted", 0),
        },
        "period_days": days,
        "generated_at": datetime.utcnow().isoformat()
    }
