import pytest

from schemas.grades import GradeCreate
from services.access_gate import AccessGate, Role, View
from services.portal import PortalSession
from utils.errors import AccessDeniedError, AlreadyAuthenticatedError, CredentialMismatchError


def form(name, exam="Exam 1", **scores):
    return GradeCreate(student_name=name, exam_name=exam, **scores)


@pytest.fixture
def teacher(store, teacher_identity):
    session = PortalSession("t", teacher_identity, store, teacher_pin="999999")
    session.login_teacher("999999")
    yield session
    session.close()


@pytest.fixture
def student_session(store, teacher_identity):
    # 같은 identity(같은 커스텀 토큰)로 접속한 다른 세션
    session = PortalSession("s", teacher_identity, store, teacher_pin="999999")
    yield session
    session.close()


def test_teacher_pin(store, teacher_identity):
    gate = AccessGate(teacher_pin="999999")
    with pytest.raises(CredentialMismatchError):
        gate.login_teacher("123456")
    assert gate.role is Role.UNAUTHENTICATED
    gate.login_teacher("999999")
    assert gate.role is Role.TEACHER


def test_student_login_requires_grade_records(teacher, student_session):
    # PIN만 있고 성적이 없는 학생 → 로그인 실패
    pin = teacher.registry.issue_if_absent("Ghost").pin
    with pytest.raises(CredentialMismatchError):
        student_session.login_student("Ghost", pin)
    assert student_session.role is Role.UNAUTHENTICATED


def test_student_login_success_and_mismatch(teacher, student_session):
    result = teacher.save_grade(form("Chen", chinese=90))
    pin = result.pin.pin

    with pytest.raises(CredentialMismatchError):
        student_session.login_student("Chen", "000000" if pin != "000000" else "111111")
    assert student_session.role is Role.UNAUTHENTICATED

    assert student_session.login_student("Chen", pin) == "Chen"
    assert student_session.role is Role.STUDENT
    assert student_session.gate.student_name == "Chen"


def test_double_login_rejected(teacher):
    with pytest.raises(AlreadyAuthenticatedError):
        teacher.login_teacher("999999")


def test_logout_clears_session_state(teacher, student_session):
    pin = teacher.save_grade(form("Chen")).pin.pin
    student_session.login_student("Chen", pin)
    student_session.student_report("Exam 1")
    assert len(student_session.mirrors.views) > 0

    student_session.logout()
    assert student_session.role is Role.UNAUTHENTICATED
    assert student_session.gate.student_name is None
    assert student_session.gate.pin is None
    assert len(student_session.mirrors.views) == 0


@pytest.mark.parametrize("role, allowed, denied", [
    (Role.UNAUTHENTICATED, {View.META}, {View.STUDENT_REPORT, View.GRADE_TABLE, View.PIN_EXPORT}),
    (Role.STUDENT, {View.STUDENT_REPORT, View.NARRATIVE}, {View.GRADE_WRITE, View.PIN_OVERVIEW, View.PIN_WRITE, View.CLASS_OVERVIEW}),
    (Role.TEACHER, {View.GRADE_TABLE, View.GRADE_WRITE, View.PIN_EXPORT, View.PIN_WRITE}, {View.STUDENT_REPORT, View.NARRATIVE}),
])
def test_view_permissions(role, allowed, denied):
    gate = AccessGate(teacher_pin="999999")
    gate.role = role
    for view in allowed:
        assert gate.can_view(view)
    for view in denied:
        with pytest.raises(AccessDeniedError):
            gate.require(view)


def test_student_cannot_write(teacher, student_session):
    pin = teacher.save_grade(form("Chen")).pin.pin
    student_session.login_student("Chen", pin)
    with pytest.raises(AccessDeniedError):
        student_session.save_grade(form("Lin"))
    with pytest.raises(AccessDeniedError):
        student_session.pin_export()
    with pytest.raises(AccessDeniedError):
        student_session.delete_pin(teacher.registry.find("Chen").id)
    assert teacher.registry.find("Chen") is not None
