import logging
from datetime import datetime
from typing import Optional, Dict, Any
import threading

from app.config import AUDIT_LOG_ASYNC

logger = logging.getLogger(__name__)


def log_event(
    event_type: str,
    actor=None,
    ip_address: Optional[str] = None,
    resource: Optional[str] = None,
    action: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    success: bool = False,
    db = None
):
    """イベントを監査ログに記録（AUDIT_LOG_ASYNC 時はバックグラウンドで実行）

    actor は Identity（ログイン中の利用者）または None
    """
    actor_id = getattr(actor, "id", None)
    actor_name = getattr(actor, "name", None)
    actor_role = getattr(actor, "role", None)

    def _log():
        from app.models.audit_log import AuditLog

        if db is None:
            from app.database import SessionLocal
            session = SessionLocal()
            should_close = True
        else:
            session = db
            should_close = False

        try:
            session.add(AuditLog(
                timestamp=datetime.utcnow(),
                event_type=event_type,
                actor_id=actor_id,
                actor_name=actor_name,
                actor_role=actor_role,
                ip_address=ip_address,
                resource=resource,
                action=action,
                details=details or {},
                success=success,
            ))
            session.commit()
            logger.debug("Audit event recorded: %s - %s (%s)", event_type, actor_id, ip_address)
        except Exception as e:
            # 監査ログの失敗で本処理を止めない
            session.rollback()
            logger.warning("Error logging audit event %s (will continue): %s", event_type, e)
        finally:
            if should_close:
                session.close()

    if AUDIT_LOG_ASYNC:
        thread = threading.Thread(target=_log, daemon=True)
        thread.start()
    else:
        _log()
