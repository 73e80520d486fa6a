from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config.settings import settings
from database.db import init_db

# ✅ 로깅 설정 (LOG_LEVEL 환경변수 기준)
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# HTTP 라이브러리 디버그 로그 비활성화
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


# ✅ 미들웨어 임포트
from middlewares.timing import TimingMiddleware
from middlewares.error_handler import add_error_handlers

# ✅ 라우터 임포트
from routers import auth, grades, meta, student_pins, student_report
from dependencies.portal import get_session_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ✅ 테이블 준비 후 요청 수신
    init_db()
    yield
    # ✅ 종료 시 모든 세션 구독 해제
    get_session_manager().close_all()


app = FastAPI(
    title=settings.APP_TITLE,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# ✅ CORS 설정 (프론트엔드 연동)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ✅ 요청 지연 측정 미들웨어 (응답 헤더 X-Latency-Ms 추가)
app.add_middleware(TimingMiddleware)

# ✅ 전역 에러 핸들러 등록 (일관된 JSON 에러 포맷)
add_error_handlers(app)

# ✅ /v1 프리픽스 라우터 등록
app.include_router(auth.router,           prefix="/v1")
app.include_router(meta.router,           prefix="/v1")
app.include_router(grades.router,         prefix="/v1")   # 담임: 성적 입력/석차/반 평균
app.include_router(student_pins.router,   prefix="/v1")   # 담임: 학생 PIN 관리
app.include_router(student_report.router, prefix="/v1")   # 학생: 본인 성적 조회


# ✅ 헬스체크 엔드포인트
@app.get("/health")
def health_check():
    return {"status": "ok", "message": "API is running"}


# ✅ 루트 엔드포인트
@app.get("/")
def root():
    return {"message": "Class Grade Portal API"}
