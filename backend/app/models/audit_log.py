from sqlalchemy import Column, Integer, String, DateTime, JSON, Boolean
from app.database import Base
from datetime import datetime

class AuditLog(Base):
    """監査ログテーブル"""
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
    event_type = Column(String, index=True)  # login_success, login_failure, card_issued, card_redeemed, card_deleted, manager_created, etc.
    actor_id = Column(String, nullable=True)  # 操作した管理者/マネージャーID
    actor_name = Column(String, nullable=True)
    actor_role = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    resource = Column(String, nullable=True)  # 対象 (card:<id> など)
    action = Column(String, nullable=True)  # GET, POST, PUT, DELETE, etc.
    details = Column(JSON, nullable=True)
    success = Column(Boolean, default=False)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, event_type={self.event_type}, actor={self.actor_id}, timestamp={self.timestamp})>"
