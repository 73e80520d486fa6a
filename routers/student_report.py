from fastapi import APIRouter, Depends, Query

from dependencies.portal import get_portal_session
from schemas.grades import ExamName
from services.portal import PortalSession

router = APIRouter(prefix="/me", tags=["학생 성적 조회"])


# ✅ [REPORT] 본인 성적 + 가중 평균 + 석차 + 반 평균 비교
@router.get("/report")
def read_report(exam: ExamName = Query("Exam 1"), session: PortalSession = Depends(get_portal_session)):
    return {"success": True, "data": session.student_report(exam)}


# ✅ [COMMENTARY] Gemini 성적 코멘트 (실패해도 다른 기능에 영향 없음)
@router.post("/commentary")
async def create_commentary(exam: ExamName = Query("Exam 1"), session: PortalSession = Depends(get_portal_session)):
    result = await session.generate_commentary(exam)
    return {
        "success": result["success"],
        "data": {"commentary": result["commentary"], "cancelled": result["cancelled"], "exam_name": exam},
        "message": result["message"],
    }
