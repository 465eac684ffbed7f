from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from app.config import DATABASE_URL, SQL_ECHO

if DATABASE_URL.startswith("sqlite"):
    # インメモリSQLiteは全スレッドで同じ接続を共有する
    _pool_args = {"poolclass": StaticPool} if DATABASE_URL in ("sqlite://", "sqlite:///:memory:") else {}
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False}, echo=SQL_ECHO, **_pool_args)
else:
    engine = create_engine(DATABASE_URL, echo=SQL_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
