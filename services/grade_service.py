"""
services/grade_service.py

담임교사의 성적 쓰기 (추가 / 수정 / 삭제)
- (학생, 시험) 조합은 파티션 안에서 1건만 허용 → 중복이면 DuplicateGradeError
- 저장은 두 단계로 순서대로 진행
  1) 성적 문서 저장 (실패하면 그대로 예외)
  2) 처음 보는 학생 이름이면 PIN 발급 (실패해도 1)은 되돌리지 않고 pin_error 로 보고)
- 수정 시 학생 이름은 바꿀 수 없음 → NameImmutableError (PIN 발급은 추가할 때만)
- 저장소 쓰기는 재시도하지 않음
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from schemas.grades import Grade, GradeCreate
from services.credentials import CredentialRegistry, IssuedPin
from services.store import DocumentStore, Identity
from services.sync import SessionMirrors
from utils.errors import (
    DuplicateGradeError,
    NameImmutableError,
    PortalError,
    RecordNotFoundError,
    StoreConflictError,
)

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    grade_id: str
    student_name: str
    pin: Optional[IssuedPin] = None
    pin_error: Optional[str] = None
    is_new: bool = True

    @property
    def message(self) -> str:
        saved = "성적이 추가되었습니다." if self.is_new else "성적이 수정되었습니다."
        if self.pin_error:
            return f"성적은 저장되었지만 PIN 발급에 실패했습니다: {self.pin_error}"
        if self.pin is None:
            return saved
        if self.pin.created:
            return f"{saved} {self.student_name} 학생의 새 PIN: {self.pin.pin}"
        return f"{saved} {self.student_name} 학생의 기존 PIN: {self.pin.pin}"

    def to_dict(self) -> dict:
        return {
            "id": self.grade_id,
            "student_name": self.student_name,
            "pin": self.pin.pin if self.pin else None,
            "pin_created": bool(self.pin and self.pin.created),
            "pin_error": self.pin_error,
        }


class GradeService:
    def __init__(self, store: DocumentStore, identity: Identity, mirrors: SessionMirrors, registry: CredentialRegistry):
        self._store = store
        self._identity = identity
        self._mirror = mirrors.grades
        self._registry = registry

    def list(self) -> List[Grade]:
        return list(self._mirror.snapshot)

    def get(self, grade_id: str) -> Grade:
        for grade in self._mirror.snapshot:
            if grade.id == grade_id:
                return grade
        raise RecordNotFoundError("성적 자료를 찾을 수 없습니다.")

    def _check_duplicate(self, form: GradeCreate, exclude_id: Optional[str] = None):
        for grade in self._mirror.snapshot:
            if grade.id == exclude_id:
                continue
            if grade.student_name == form.student_name and grade.exam_name == form.exam_name:
                raise DuplicateGradeError(
                    f"{form.student_name} 학생의 {form.exam_name} 성적이 이미 있습니다. 기존 자료를 수정하세요."
                )

    def _write(self, fn, *args):
        try:
            return fn(*args)
        except StoreConflictError as e:
            # 미러가 늦게 따라온 경우에도 DB 제약이 중복을 막음
            raise DuplicateGradeError("같은 학생/시험 성적이 이미 있습니다.") from e

    def _issue_pin(self, name: str) -> tuple:
        try:
            return self._registry.issue_if_absent(name), None
        except PortalError as e:
            logger.error(f"PIN issuance failed for {name}: {e.message}")
            return None, e.message

    def create(self, form: GradeCreate) -> SaveResult:
        self._check_duplicate(form)
        grade_id = self._write(self._store.create, self._identity, self._mirror.path, form.model_dump())
        pin, pin_error = self._issue_pin(form.student_name)
        return SaveResult(grade_id=grade_id, student_name=form.student_name, pin=pin, pin_error=pin_error)

    def update(self, grade_id: str, form: GradeCreate) -> SaveResult:
        current = self.get(grade_id)
        # 이름은 추가할 때만 정함 (PIN 연결 고정), 수정은 PIN을 건드리지 않음
        if form.student_name != current.student_name:
            raise NameImmutableError(
                f"성적 수정 시 학생 이름은 바꿀 수 없습니다. ({current.student_name})"
            )
        self._check_duplicate(form, exclude_id=grade_id)
        self._write(self._store.update, self._identity, self._mirror.path, grade_id, form.model_dump())
        return SaveResult(grade_id=grade_id, student_name=form.student_name, is_new=False)

    def delete(self, grade_id: str) -> Grade:
        grade = self.get(grade_id)
        self._store.delete(self._identity, self._mirror.path, grade_id)
        return grade
