"""
services/access_gate.py

세션 역할 분류기: unauthenticated / student / teacher
- 학생: 이름+PIN 일치 AND 성적이 1건 이상 있어야 로그인 성공
- 담임: 배포 시 설정한 고정 관리 PIN (PIN 레지스트리와 무관)
- 로그아웃: 이름, PIN, 캐시된 파생 뷰까지 모두 비움
타임아웃/토큰 갱신 없음
"""

import hmac
import logging
from enum import Enum
from typing import Callable, Iterable, List, Optional

from config.settings import settings
from services.credentials import CredentialRegistry
from utils.errors import AccessDeniedError, AlreadyAuthenticatedError, CredentialMismatchError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    STUDENT = "student"
    TEACHER = "teacher"


class View(str, Enum):
    META = "meta"
    STUDENT_REPORT = "student_report"
    NARRATIVE = "narrative"
    CLASS_OVERVIEW = "class_overview"
    GRADE_TABLE = "grade_table"
    GRADE_WRITE = "grade_write"
    PIN_OVERVIEW = "pin_overview"
    PIN_EXPORT = "pin_export"
    PIN_WRITE = "pin_write"


VIEW_PERMISSIONS = {
    Role.UNAUTHENTICATED: frozenset({View.META}),
    Role.STUDENT: frozenset({View.META, View.STUDENT_REPORT, View.NARRATIVE}),
    Role.TEACHER: frozenset({
        View.META,
        View.CLASS_OVERVIEW,
        View.GRADE_TABLE,
        View.GRADE_WRITE,
        View.PIN_OVERVIEW,
        View.PIN_EXPORT,
        View.PIN_WRITE,
    }),
}


class AccessGate:
    def __init__(self, teacher_pin: Optional[str] = None):
        self._teacher_pin = teacher_pin or settings.TEACHER_PIN
        self.role = Role.UNAUTHENTICATED
        self.student_name: Optional[str] = None
        self.pin: Optional[str] = None
        self._logout_hooks: List[Callable[[], None]] = []

    def on_logout(self, hook: Callable[[], None]):
        self._logout_hooks.append(hook)

    def _ensure_guest(self):
        if self.role is not Role.UNAUTHENTICATED:
            raise AlreadyAuthenticatedError("이미 로그인되어 있습니다. 먼저 로그아웃하세요.")

    def login_student(self, registry: CredentialRegistry, grades: Iterable, name: str, pin: str) -> str:
        self._ensure_guest()
        if registry.authenticate(name, pin) is None:
            logger.info("Student login rejected (name/pin mismatch)")
            raise CredentialMismatchError("이름 또는 PIN이 올바르지 않습니다. 확인 후 다시 시도하세요.")

        if not any(g.student_name == name for g in grades):
            logger.info("Student login rejected (no grade records)")
            raise CredentialMismatchError("해당 학생의 성적 자료가 없습니다. 담임교사에게 문의하세요.")

        self.role = Role.STUDENT
        self.student_name = name
        self.pin = pin
        logger.info("Student %s logged in", name)
        return name

    def login_teacher(self, pin: str):
        self._ensure_guest()
        # 정확한 문자열 일치 (타이밍 안전 비교)
        if not hmac.compare_digest(pin.encode("utf-8"), self._teacher_pin.encode("utf-8")):
            logger.info("Teacher login rejected")
            raise CredentialMismatchError("담임 관리 PIN이 올바르지 않습니다.")
        self.role = Role.TEACHER
        logger.info("Teacher logged in")

    def logout(self):
        self.role = Role.UNAUTHENTICATED
        self.student_name = None
        self.pin = None
        for hook in self._logout_hooks:
            hook()

    def can_view(self, view: View) -> bool:
        return view in VIEW_PERMISSIONS[self.role]

    def require(self, view: View):
        if not self.can_view(view):
            raise AccessDeniedError(f"'{self.role.value}' 권한으로는 요청할 수 없습니다: {view.value}")
