"""
services/store.py

문서 저장소 어댑터 (SQLAlchemy 기반)
- 파티션 경로 단위로 create / update / delete / list 를 제공
- subscribe(path) 로 변경 알림을 받음: 커밋될 때마다 해당 파티션 전체 스냅샷을 전달
- 파티션 2종
  1) /artifacts/{app_id}/users/{uid}/class_grades   → 교사 identity 전용 성적 파티션
  2) /artifacts/{app_id}/public/data/student_pins   → 공용 PIN 파티션
  두 파티션 모두 로그인된 identity가 있어야 읽기/쓰기 가능
"""

import hashlib
import logging
import re
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from database.db import SessionLocal
from models.grades import GradeRecord as GradeModel
from models.student_pins import StudentPin as StudentPinModel
from schemas.grades import Grade as GradeSchema
from schemas.student_pins import StudentPin as StudentPinSchema
from utils.errors import (
    AuthenticationError,
    PermissionDeniedError,
    RecordNotFoundError,
    StoreConflictError,
    StoreReadError,
    StoreWriteError,
)

logger = logging.getLogger(__name__)

Snapshot = List[BaseModel]
Listener = Callable[[Snapshot], None]
ErrorListener = Callable[[Exception], None]


# ==========================================================
# [Identity] 파티션 선택에만 쓰이는 불투명 uid
# ==========================================================
@dataclass(frozen=True)
class Identity:
    uid: str
    is_anonymous: bool = True


class IdentityProvider:
    """
    - custom_token 이 있으면 항상 같은 uid (토큰 해시)
    - 없으면 익명 로그인 (매번 새 uid)
    """

    def sign_in(self, custom_token: Optional[str] = None) -> Identity:
        if custom_token is None:
            return Identity(uid=f"anon-{uuid.uuid4().hex}", is_anonymous=True)
        token = custom_token.strip()
        if not token:
            raise AuthenticationError("인증 토큰이 비어 있습니다.")
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]
        return Identity(uid=f"tok-{digest}", is_anonymous=False)


def grades_path(uid: str, app_id: Optional[str] = None) -> str:
    return f"/artifacts/{app_id or settings.APP_ID}/users/{uid}/class_grades"


def pins_path(app_id: Optional[str] = None) -> str:
    return f"/artifacts/{app_id or settings.APP_ID}/public/data/student_pins"


_GRADES_PATH = re.compile(r"^/artifacts/(?P<app_id>[^/]+)/users/(?P<uid>[^/]+)/class_grades$")
_PINS_PATH = re.compile(r"^/artifacts/(?P<app_id>[^/]+)/public/data/student_pins$")


@dataclass(frozen=True)
class _Collection:
    model: Type[Any]
    schema: Type[BaseModel]
    scope: Dict[str, str]     # 파티션 컬럼 → 값

    @property
    def writable(self) -> set:
        columns = {c.name for c in self.model.__table__.columns}
        return columns - {"id"} - set(self.scope)


class Subscription:
    """subscribe() 반환값. unsubscribe() 호출 전까지 알림 수신"""

    def __init__(self, store: "DocumentStore", path: str, listener: Listener, on_error: Optional[ErrorListener]):
        self._store = store
        self.path = path
        self.listener = listener
        self.on_error = on_error
        self.active = True

    def deliver(self, snapshot: Snapshot):
        if not self.active:
            return
        try:
            self.listener(snapshot)
        except Exception as exc:
            logger.exception("Snapshot listener failed for %s", self.path)
            if self.on_error:
                self.on_error(exc)

    def fail(self, exc: Exception):
        if self.active and self.on_error:
            self.on_error(exc)

    def unsubscribe(self):
        if self.active:
            self.active = False
            self._store._remove(self)


class DocumentStore:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, app_id: Optional[str] = None):
        self._session_factory = session_factory
        self.app_id = app_id or settings.APP_ID
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._lock = threading.RLock()

    # ==========================================================
    # [경로 해석 + 권한 확인]
    # ==========================================================
    def _resolve(self, identity: Optional[Identity], path: str) -> _Collection:
        if identity is None:
            raise PermissionDeniedError("로그인되지 않은 요청은 저장소에 접근할 수 없습니다.")

        m = _GRADES_PATH.match(path)
        if m:
            if m["app_id"] != self.app_id or m["uid"] != identity.uid:
                raise PermissionDeniedError("이 성적 파티션에 접근할 권한이 없습니다.")
            return _Collection(GradeModel, GradeSchema, {"owner_uid": m["uid"]})

        m = _PINS_PATH.match(path)
        if m:
            if m["app_id"] != self.app_id:
                raise PermissionDeniedError("이 PIN 파티션에 접근할 권한이 없습니다.")
            return _Collection(StudentPinModel, StudentPinSchema, {"app_id": m["app_id"]})

        raise PermissionDeniedError(f"알 수 없는 저장소 경로: {path}")

    def _query(self, db: Session, coll: _Collection):
        query = db.query(coll.model)
        for column, value in coll.scope.items():
            query = query.filter(getattr(coll.model, column) == value)
        return query

    def _load(self, coll: _Collection) -> Snapshot:
        db = self._session_factory()
        try:
            rows = self._query(db, coll).order_by(coll.model.id).all()
            return [coll.schema.model_validate(r) for r in rows]
        except SQLAlchemyError as e:
            logger.error(f"Store read failed: {e}")
            raise StoreReadError("데이터를 불러오지 못했습니다.") from e
        finally:
            db.close()

    def _clean(self, coll: _Collection, fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - coll.writable
        if unknown:
            raise ValueError(f"Unknown fields for {coll.model.__tablename__}: {sorted(unknown)}")
        return dict(fields)

    # ==========================================================
    # [읽기]
    # ==========================================================
    def list(self, identity: Optional[Identity], path: str) -> Snapshot:
        return self._load(self._resolve(identity, path))

    # ==========================================================
    # [쓰기] 단일 문서, 재시도 없음
    # ==========================================================
    def create(self, identity: Optional[Identity], path: str, fields: Dict[str, Any]) -> str:
        coll = self._resolve(identity, path)
        data = self._clean(coll, fields)
        db = self._session_factory()
        try:
            doc = coll.model(**data, **coll.scope)
            db.add(doc)
            db.commit()
            doc_id = doc.id
        except IntegrityError as e:
            db.rollback()
            raise StoreConflictError("같은 키의 문서가 이미 존재합니다.") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Store create failed on {path}: {e}")
            raise StoreWriteError("저장에 실패했습니다.") from e
        finally:
            db.close()

        logger.info("Created %s in %s", doc_id, path)
        self._notify(path, coll)
        return doc_id

    def update(self, identity: Optional[Identity], path: str, doc_id: str, fields: Dict[str, Any]):
        coll = self._resolve(identity, path)
        data = self._clean(coll, fields)
        db = self._session_factory()
        try:
            doc = self._query(db, coll).filter(coll.model.id == doc_id).first()
            if doc is None:
                raise RecordNotFoundError("해당 문서를 찾을 수 없습니다.")
            for key, value in data.items():
                setattr(doc, key, value)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise StoreConflictError("같은 키의 문서가 이미 존재합니다.") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Store update failed on {path}/{doc_id}: {e}")
            raise StoreWriteError("수정에 실패했습니다.") from e
        finally:
            db.close()

        logger.info("Updated %s in %s", doc_id, path)
        self._notify(path, coll)

    def delete(self, identity: Optional[Identity], path: str, doc_id: str):
        coll = self._resolve(identity, path)
        db = self._session_factory()
        try:
            doc = self._query(db, coll).filter(coll.model.id == doc_id).first()
            if doc is None:
                raise RecordNotFoundError("해당 문서를 찾을 수 없습니다.")
            db.delete(doc)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Store delete failed on {path}/{doc_id}: {e}")
            raise StoreWriteError("삭제에 실패했습니다.") from e
        finally:
            db.close()

        logger.info("Deleted %s from %s", doc_id, path)
        self._notify(path, coll)

    # ==========================================================
    # [구독] 초기 스냅샷 + 커밋마다 전체 스냅샷
    # ==========================================================
    def subscribe(
        self,
        identity: Optional[Identity],
        path: str,
        listener: Listener,
        on_error: Optional[ErrorListener] = None,
    ) -> Subscription:
        coll = self._resolve(identity, path)
        sub = Subscription(self, path, listener, on_error)
        with self._lock:
            self._subscriptions.setdefault(path, []).append(sub)
            try:
                snapshot = self._load(coll)
            except StoreReadError as e:
                sub.fail(e)
            else:
                sub.deliver(snapshot)
        return sub

    def subscriber_count(self, path: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(path, []))

    def _remove(self, sub: Subscription):
        with self._lock:
            subs = self._subscriptions.get(sub.path, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscriptions.pop(sub.path, None)

    def _notify(self, path: str, coll: _Collection):
        # 락을 잡은 채 읽고 전달해야 같은 경로의 스냅샷이 커밋 순서대로 도착함
        with self._lock:
            subs = list(self._subscriptions.get(path, []))
            if not subs:
                return
            try:
                snapshot = self._load(coll)
            except StoreReadError as e:
                for sub in subs:
                    sub.fail(e)
                return
            for sub in subs:
                sub.deliver(snapshot)
