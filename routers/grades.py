from fastapi import APIRouter, Depends, Query

from dependencies.portal import get_portal_session
from schemas.grades import ExamName, GradeCreate
from services.portal import PortalSession

router = APIRouter(prefix="/grades", tags=["grades"])


# ==========================================================
# [1단계] 정적 분석/요약 라우터 (담임 전용)
# ==========================================================

# ✅ [TABLE] 시험별 성적표 (석차순)
@router.get("/")
def read_grades(exam: ExamName = Query("Exam 1"), session: PortalSession = Depends(get_portal_session)):
    rows = session.grade_table(exam)
    return {"success": True, "data": rows, "count": len(rows)}


# ✅ [SUMMARY] 반 평균 (과목별 + 가중) / 분포 산점도
@router.get("/summary")
def read_summary(exam: ExamName = Query("Exam 1"), session: PortalSession = Depends(get_portal_session)):
    return {"success": True, "data": session.class_summary(exam)}


# ==========================================================
# [2단계] CRUD 기본 라우터
# ==========================================================

# ✅ [CREATE] 성적 추가 (처음 보는 학생이면 PIN 발급)
@router.post("/", status_code=201)
def create_grade(grade: GradeCreate, session: PortalSession = Depends(get_portal_session)):
    result = session.save_grade(grade)
    return {"success": True, "data": result.to_dict(), "message": result.message}


# ✅ [UPDATE] 성적 수정 (전체 필드 교체)
@router.put("/{grade_id}")
def update_grade(grade_id: str, grade: GradeCreate, session: PortalSession = Depends(get_portal_session)):
    result = session.save_grade(grade, grade_id=grade_id)
    return {"success": True, "data": result.to_dict(), "message": result.message}


# ✅ [DELETE] 성적 삭제
@router.delete("/{grade_id}")
def delete_grade(grade_id: str, session: PortalSession = Depends(get_portal_session)):
    deleted = session.delete_grade(grade_id)
    return {"success": True, "data": {"id": deleted.id}, "message": "성적이 삭제되었습니다."}
