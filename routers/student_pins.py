from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from dependencies.portal import get_portal_session
from services.portal import PortalSession

router = APIRouter(prefix="/pins", tags=["학생 PIN"])


# ✅ [READ] PIN 전체 목록 (담임 전용)
@router.get("/")
def read_pins(session: PortalSession = Depends(get_portal_session)):
    pins = session.pin_overview()
    return {
        "success": True,
        "data": pins,
        "count": len(pins),
        "message": f"총 {len(pins)}건의 학생 PIN 기록이 있습니다.",
    }


# ✅ [EXPORT] 이름,PIN CSV
@router.get("/export")
def export_pins(session: PortalSession = Depends(get_portal_session)):
    if not session.pin_overview():
        return {"success": False, "data": None, "message": "내보낼 학생 PIN 자료가 없습니다."}
    return PlainTextResponse(session.pin_export(), media_type="text/csv; charset=utf-8")


# ✅ [DELETE] 성적이 모두 지워진 학생의 PIN 정리
@router.delete("/{pin_id}")
def delete_pin(pin_id: str, session: PortalSession = Depends(get_portal_session)):
    record = session.delete_pin(pin_id)
    return {"success": True, "data": {"id": record.id, "name": record.name}, "message": "PIN 기록이 삭제되었습니다."}
