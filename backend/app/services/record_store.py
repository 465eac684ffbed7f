"""
キー付きレコードストア

employee:<id> / card:<id> / manager:<id> のレコードと、
employees / cards / managers / employee:<id>:cards の集合インデックスを
SQLAlchemy のテーブル上で提供する。

レコードには書き込みごとに増えるリビジョンがあり、
put_if_absent / put_if_revision / delete_record(expected_revision=...) で
条件付き書き込みができる。接続エラーは tenacity で数回リトライし、
それでも失敗した場合は UpstreamUnavailable を送出する。
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError, OperationalError
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import STORE_RETRY_ATTEMPTS
from app.database import SessionLocal
from app.exceptions import UpstreamUnavailable
from app.models.record import Record, RecordSetMember

logger = logging.getLogger(__name__)


def _with_retry(fn):
    """接続エラーを指数バックオフでリトライし、最終的に UpstreamUnavailable に変換する"""
    retrying = retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(STORE_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.05, max=1),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )(fn)

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return retrying(*args, **kwargs)
        except OperationalError as e:
            logger.error("Record store unavailable in %s: %s", fn.__name__, e)
            raise UpstreamUnavailable() from e

    return wrapper


class RecordStore:
    """キー付きレコードと集合インデックスのストア"""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or SessionLocal

    @contextmanager
    def _session(self):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # --- レコード ---------------------------------------------------------

    @_with_retry
    def get_versioned(self, key: str) -> Optional[Tuple[Dict[str, Any], int]]:
        """レコードとリビジョンを取得（存在しなければ None）"""
        with self._session() as db:
            record = db.get(Record, key)
            if record is None:
                return None
            return dict(record.data), record.revision

    def get_record(self, key: str) -> Optional[Dict[str, Any]]:
        found = self.get_versioned(key)
        return found[0] if found else None

    @_with_retry
    def put_record(self, key: str, data: Dict[str, Any]) -> int:
        """無条件で書き込み（上書き）し、新しいリビジョンを返す"""
        with self._session() as db:
            record = db.get(Record, key)
            if record is None:
                record = Record(key=key, data=data, revision=1)
                db.add(record)
            else:
                record.data = data
                record.revision = record.revision + 1
                record.updated_at = datetime.utcnow()
            db.flush()
            return record.revision

    @_with_retry
    def put_if_absent(self, key: str, data: Dict[str, Any]) -> bool:
        """キーが存在しない場合のみ作成する。既に存在すれば False"""
        try:
            with self._session() as db:
                db.add(Record(key=key, data=data, revision=1))
                db.flush()
        except IntegrityError:
            return False
        return True

    @_with_retry
    def put_if_revision(self, key: str, data: Dict[str, Any], expected_revision: int) -> bool:
        """リビジョンが一致する場合のみ書き込む（compare-and-set）"""
        with self._session() as db:
            result = db.execute(
                update(Record)
                .where(Record.key == key, Record.revision == expected_revision)
                .values(data=data, revision=expected_revision + 1, updated_at=datetime.utcnow())
            )
            return result.rowcount == 1

    @_with_retry
    def delete_record(self, key: str, expected_revision: Optional[int] = None) -> bool:
        """レコードを削除する。expected_revision 指定時は一致した場合のみ"""
        with self._session() as db:
            stmt = delete(Record).where(Record.key == key)
            if expected_revision is not None:
                stmt = stmt.where(Record.revision == expected_revision)
            return db.execute(stmt).rowcount == 1

    # --- 集合インデックス ---------------------------------------------------

    @_with_retry
    def add_to_set(self, set_key: str, member: str) -> None:
        """集合にメンバーを追加（重複は無視）"""
        try:
            with self._session() as db:
                if db.get(RecordSetMember, (set_key, member)) is None:
                    db.add(RecordSetMember(set_key=set_key, member=member))
        except IntegrityError:
            # 同時追加で既に存在する
            pass

    @_with_retry
    def remove_from_set(self, set_key: str, member: str) -> None:
        with self._session() as db:
            db.execute(
                delete(RecordSetMember).where(
                    RecordSetMember.set_key == set_key, RecordSetMember.member == member
                )
            )

    @_with_retry
    def list_set(self, set_key: str) -> List[str]:
        with self._session() as db:
            rows = db.execute(
                select(RecordSetMember.member)
                .where(RecordSetMember.set_key == set_key)
                .order_by(RecordSetMember.member)
            )
            return [row[0] for row in rows]

    @_with_retry
    def delete_set(self, set_key: str) -> None:
        with self._session() as db:
            db.execute(delete(RecordSetMember).where(RecordSetMember.set_key == set_key))

    @_with_retry
    def ping(self) -> bool:
        with self._session() as db:
            db.execute(text("SELECT 1"))
        return True


def decode_record(model, data: Optional[Dict[str, Any]], key: str = ""):
    """保存データをスキーマで検証して復元する。不正なデータは存在しないものとして扱う"""
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning("Malformed record %s treated as missing: %s", key, e.errors()[:3])
        return None
