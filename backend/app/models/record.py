from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON, PrimaryKeyConstraint
from app.database import Base

class Record(Base):
    """キー付きレコード（employee:<id>, card:<id>, manager:<id>）"""
    __tablename__ = "records"

    key = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    # 楽観的排他制御用のリビジョン（書き込みごとに+1）
    revision = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Record {self.key} rev={self.revision}>"


class RecordSetMember(Base):
    """集合インデックス（employees, cards, managers, employee:<id>:cards）"""
    __tablename__ = "record_set_members"
    __table_args__ = (PrimaryKeyConstraint("set_key", "member"),)

    set_key = Column(String, index=True)
    member = Column(String)
