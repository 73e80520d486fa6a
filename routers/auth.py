from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dependencies.portal import SessionHeader, get_portal_session, get_session_manager
from schemas.student_pins import StudentLogin, TeacherLogin
from services.portal import PortalSession, SessionManager

router = APIRouter(prefix="/auth", tags=["인증"])


# ✅ 요청 형식 정의
class SessionRequest(BaseModel):
    custom_token: Optional[str] = None    # 없으면 익명 로그인


# ==========================================================
# [세션] 저장소 identity 확인 + 구독 시작
# ==========================================================
@router.post("/session")
def open_session(
    request: SessionRequest,
    token: SessionHeader = None,
    manager: SessionManager = Depends(get_session_manager),
):
    # 기존 세션 토큰을 보내면 재인증으로 보고 이전 구독을 정리
    session = manager.create(request.custom_token, replaces=token)
    return {
        "success": True,
        "data": {
            "session_token": session.token,
            "uid": session.identity.uid,
            "role": session.role.value,
        },
        "message": "세션이 시작되었습니다.",
    }


@router.delete("/session")
def close_session(token: SessionHeader = None, manager: SessionManager = Depends(get_session_manager)):
    closed = manager.close(token) if token else False
    return {"success": closed, "message": "세션이 종료되었습니다." if closed else "종료할 세션이 없습니다."}


# ==========================================================
# [로그인] 학생 / 담임
# ==========================================================
@router.post("/student-login")
def student_login(request: StudentLogin, session: PortalSession = Depends(get_portal_session)):
    name = session.login_student(request.name, request.pin)
    return {
        "success": True,
        "data": {
            "role": session.role.value,
            "name": name,
            "grades": [g.model_dump() for g in session.own_records()],
        },
        "message": f"학생 {name} 로그인 성공!",
    }


@router.post("/teacher-login")
def teacher_login(request: TeacherLogin, session: PortalSession = Depends(get_portal_session)):
    session.login_teacher(request.pin)
    return {"success": True, "data": {"role": session.role.value}, "message": "담임교사 인증 성공!"}


@router.post("/logout")
def logout(session: PortalSession = Depends(get_portal_session)):
    session.logout()
    return {"success": True, "data": {"role": session.role.value}, "message": "로그아웃되었습니다."}
