"""
services/portal.py

세션 컨텍스트
- PortalSession: identity / 미러 / 접근 게이트 / PIN 레지스트리 / 성적 쓰기 / 코멘트 작업을 한 곳에 묶음
  (전역 상태 대신 요청마다 이 객체를 넘겨 사용)
- SessionManager: 세션 토큰 → PortalSession
  세션 생성 시 구독 시작, 종료(또는 재인증) 시 구독 해제
"""

import asyncio
import logging
import secrets
import threading
from typing import Dict, Optional

from config.settings import settings
from schemas.grades import Grade, GradeCreate
from services.access_gate import AccessGate, Role, View
from services.credentials import CredentialRegistry, export_pins_csv
from services.grade_service import GradeService, SaveResult
from services.grading import (
    SUBJECT_KEYS,
    SUBJECT_LABELS,
    SUBJECT_WEIGHTS,
    ExamAggregate,
    calculate_class_averages,
    calculate_rank,
    compare_to_class,
    radar_points,
    rank_exam,
    scatter_points,
    simple_average,
    subject_scores,
)
from services.llm.base import NarrativeClient, NarrativeRequest
from services.store import DocumentStore, Identity, IdentityProvider
from services.sync import SessionMirrors
from utils.errors import NarrativeError, PinInUseError, SessionNotFoundError

logger = logging.getLogger(__name__)


class PortalSession:
    def __init__(
        self,
        token: str,
        identity: Identity,
        store: DocumentStore,
        narrative_client: Optional[NarrativeClient] = None,
        teacher_pin: Optional[str] = None,
    ):
        self.token = token
        self.identity = identity
        self.mirrors = SessionMirrors(store, identity)
        self.mirrors.open()
        self.registry = CredentialRegistry(store, identity, self.mirrors.pins)
        self.grades = GradeService(store, identity, self.mirrors, self.registry)
        self.gate = AccessGate(teacher_pin)
        self.narrative_client = narrative_client
        self._narrative_task: Optional[asyncio.Task] = None

        self.gate.on_logout(self.cancel_narrative)
        self.gate.on_logout(self.mirrors.views.invalidate)

    @property
    def role(self) -> Role:
        return self.gate.role

    @property
    def grade_records(self):
        return self.mirrors.grades.snapshot

    # ==========================================================
    # [로그인/로그아웃]
    # ==========================================================
    def login_student(self, name: str, pin: str) -> str:
        return self.gate.login_student(self.registry, self.grade_records, name, pin)

    def login_teacher(self, pin: str):
        self.gate.login_teacher(pin)

    def logout(self):
        self.gate.logout()

    # ==========================================================
    # [파생 뷰] 미러 버전 기준 캐시
    # ==========================================================
    def class_averages(self, exam_name: str) -> Optional[ExamAggregate]:
        return self.mirrors.views.get(
            ("class_averages", exam_name),
            lambda: calculate_class_averages(self.grade_records, exam_name),
        )

    def rank_table(self, exam_name: str):
        return self.mirrors.views.get(
            ("rank_table", exam_name),
            lambda: rank_exam(self.grade_records, exam_name),
        )

    def rank_of(self, student_name: str, exam_name: str) -> Optional[int]:
        return self.mirrors.views.get(
            ("rank", exam_name, student_name),
            lambda: calculate_rank(self.grade_records, exam_name, student_name),
        )

    def own_records(self):
        return [g for g in self.grade_records if g.student_name == self.gate.student_name]

    def own_record(self, exam_name: str) -> Optional[Grade]:
        return next((g for g in self.own_records() if g.exam_name == exam_name), None)

    def student_report(self, exam_name: str) -> dict:
        self.gate.require(View.STUDENT_REPORT)
        name = self.gate.student_name
        own = self.own_record(exam_name)
        scores = subject_scores(own) if own else {}
        aggregate = self.class_averages(exam_name)
        return {
            "student_name": name,
            "exam_name": exam_name,
            "has_record": own is not None,
            "exams_taken": [g.exam_name for g in self.own_records()],
            "scores": scores,
            "weights": {s: SUBJECT_WEIGHTS.get(s, 0) for s in SUBJECT_KEYS},
            "labels": SUBJECT_LABELS,
            "weighted_average": own.weighted_average if own else 0.0,
            "simple_average": simple_average(scores) if own else 0.0,
            "rank": self.rank_of(name, exam_name) if own else None,
            "total_students": aggregate.total_students if aggregate else 0,
            "class_averages": dict(aggregate.subject_averages) if aggregate else None,
            "class_weighted_average": aggregate.class_average if aggregate else None,
            "comparison": compare_to_class(scores, aggregate) if own else {s: None for s in SUBJECT_KEYS},
            "radar": radar_points(scores, aggregate) if own else [],
            "scatter": scatter_points(self.grade_records, exam_name, highlight=name),
        }

    def grade_table(self, exam_name: str) -> list:
        self.gate.require(View.GRADE_TABLE)
        return [
            {**ranked.record.model_dump(), "rank": ranked.rank}
            for ranked in self.rank_table(exam_name)
        ]

    def class_summary(self, exam_name: str) -> dict:
        self.gate.require(View.CLASS_OVERVIEW)
        aggregate = self.class_averages(exam_name)
        return {
            "exam_name": exam_name,
            "aggregate": aggregate.to_dict() if aggregate else None,
            "subject_bars": [
                {"subject": SUBJECT_LABELS[s], "average": round(aggregate.subject_averages[s], 1)}
                for s in SUBJECT_WEIGHTS
            ] if aggregate else [],
            "scatter": [
                {"name": r.record.student_name, "avg": r.weighted_average}
                for r in self.rank_table(exam_name)
            ],
            "pin_count": len(self.mirrors.pins.snapshot),
        }

    def pin_overview(self) -> list:
        self.gate.require(View.PIN_OVERVIEW)
        return [p.model_dump() for p in self.registry.list_pins()]

    def pin_export(self) -> str:
        self.gate.require(View.PIN_EXPORT)
        return export_pins_csv(self.registry.list_pins())

    # ==========================================================
    # [쓰기]
    # ==========================================================
    def save_grade(self, form: GradeCreate, grade_id: Optional[str] = None) -> SaveResult:
        self.gate.require(View.GRADE_WRITE)
        if grade_id is None:
            return self.grades.create(form)
        return self.grades.update(grade_id, form)

    def delete_grade(self, grade_id: str) -> Grade:
        self.gate.require(View.GRADE_WRITE)
        return self.grades.delete(grade_id)

    def delete_pin(self, pin_id: str):
        self.gate.require(View.PIN_WRITE)
        record = next((p for p in self.registry.list_pins() if p.id == pin_id), None)
        # 성적이 남아 있는 학생의 PIN은 지울 수 없음
        if record is not None and any(g.student_name == record.name for g in self.grade_records):
            raise PinInUseError(f"{record.name} 학생의 성적이 남아 있어 PIN을 삭제할 수 없습니다.")
        return self.registry.delete(pin_id)

    # ==========================================================
    # [성적 코멘트] 시험을 바꾸거나 로그아웃하면 진행 중인 호출 취소
    # ==========================================================
    def cancel_narrative(self):
        task = self._narrative_task
        self._narrative_task = None
        if task is None or task.done():
            return
        loop = task.get_loop()
        if loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            task.cancel()
        else:
            loop.call_soon_threadsafe(task.cancel)

    async def generate_commentary(self, exam_name: str) -> dict:
        self.gate.require(View.NARRATIVE)
        own = self.own_record(exam_name)
        if own is None:
            return {"success": False, "cancelled": False, "commentary": None,
                    "message": f"{exam_name} 성적 자료가 없습니다."}
        if self.narrative_client is None:
            return {"success": False, "cancelled": False, "commentary": None,
                    "message": "성적 코멘트 기능이 설정되지 않았습니다."}

        request = NarrativeRequest(
            student_name=own.student_name,
            scores=subject_scores(own),
            weighted_average=own.weighted_average,
        )
        self.cancel_narrative()
        task = asyncio.ensure_future(self.narrative_client.generate(request))
        self._narrative_task = task
        try:
            text = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # 다른 요청이 이 호출을 대체함
            return {"success": False, "cancelled": True, "commentary": None,
                    "message": "코멘트 생성이 취소되었습니다."}
        except NarrativeError as e:
            return {"success": False, "cancelled": False, "commentary": None, "message": e.message}
        finally:
            if self._narrative_task is task:
                self._narrative_task = None
        return {"success": True, "cancelled": False, "commentary": text, "message": "성적 코멘트가 생성되었습니다."}

    def close(self):
        self.cancel_narrative()
        self.mirrors.close()


class SessionManager:
    def __init__(
        self,
        store: DocumentStore,
        identity_provider: Optional[IdentityProvider] = None,
        narrative_client: Optional[NarrativeClient] = None,
        teacher_pin: Optional[str] = None,
        max_sessions: Optional[int] = None,
    ):
        self.store = store
        self.identity_provider = identity_provider or IdentityProvider()
        self.narrative_client = narrative_client
        self.teacher_pin = teacher_pin
        self.max_sessions = max_sessions or settings.MAX_SESSIONS
        # 생성 순서 유지 (dict) → 상한 초과 시 가장 오래된 세션부터 종료
        # 종료되지 않은 세션은 구독 2개를 계속 잡고, 쓰기마다 전체 스냅샷을 받음
        self._sessions: Dict[str, PortalSession] = {}
        self._lock = threading.Lock()

    def create(self, custom_token: Optional[str] = None, replaces: Optional[str] = None) -> PortalSession:
        identity = self.identity_provider.sign_in(custom_token)
        if replaces:
            self.close(replaces)
        token = secrets.token_urlsafe(24)
        session = PortalSession(token, identity, self.store, self.narrative_client, self.teacher_pin)
        evicted = []
        with self._lock:
            self._sessions[token] = session
            while len(self._sessions) > self.max_sessions:
                oldest = next(iter(self._sessions))
                evicted.append(self._sessions.pop(oldest))
        for old in evicted:
            old.close()
            logger.warning("Session limit (%d) reached, closed oldest session for %s",
                           self.max_sessions, old.identity.uid)
        logger.info("Session opened for %s", identity.uid)
        return session

    def get(self, token: Optional[str]) -> PortalSession:
        with self._lock:
            session = self._sessions.get(token) if token else None
        if session is None:
            raise SessionNotFoundError("세션이 없거나 만료되었습니다. 다시 접속하세요.")
        return session

    def close(self, token: str) -> bool:
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is None:
            return False
        session.close()
        logger.info("Session closed for %s", session.identity.uid)
        return True

    def close_all(self):
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    def __len__(self):
        return len(self._sessions)
