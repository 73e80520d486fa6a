from typing import Annotated, Optional

from fastapi import Depends, Header

from services.llm.llm_gemini import GeminiNarrativeClient
from services.portal import PortalSession, SessionManager
from services.store import DocumentStore

SessionHeader = Annotated[Optional[str], Header(alias="X-Session-Token")]

_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    # 앱 전체에서 하나 (저장소 구독 목록을 공유해야 변경 알림이 모든 세션에 전달됨)
    global _manager
    if _manager is None:
        _manager = SessionManager(DocumentStore(), narrative_client=GeminiNarrativeClient())
    return _manager


def get_portal_session(
    token: SessionHeader = None,
    manager: SessionManager = Depends(get_session_manager),
) -> PortalSession:
    return manager.get(token)
