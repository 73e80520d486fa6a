"""
config/settings.py

- .env에 정의한 환경변수를 읽어 애플리케이션 전역 설정으로 제공합니다.
- pydantic v2 / pydantic-settings v2 사용.
- DATABASE_URL(성적/PIN 저장소 접속 정보)은 필수값입니다.
  누락되면 Settings() 생성 시점에 ValidationError가 발생하여 서버가 세션을 받기 전에 종료됩니다.
"""

from typing import List, Literal
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # =========================
    # 앱/런타임
    # =========================
    ENV: Literal["dev", "stage", "prod"] = "dev"
    APP_TITLE: str = "Class Grade Portal API"
    APP_DESCRIPTION: str = "시험별 성적 입력 · 학생 성적 조회 백엔드 API"
    APP_VERSION: str = "1.0.0"

    # =========================
    # CORS
    # =========================
    # 콤마(,)로 구분된 문자열 → List[str] 로 파싱
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, v):
        if isinstance(v, str):
            # "a,b , c" → ["a","b","c"]
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    # =========================
    # 저장소 (Grade / PIN 문서 저장소)
    # =========================
    DATABASE_URL: str  # 필수
    # 파티션 경로 접두어: /artifacts/{APP_ID}/...
    APP_ID: str = "default-app-id"

    # =========================
    # 접근 제어
    # =========================
    # 담임교사 고정 관리 PIN. 배포 시 설정, 정확히 6자리 숫자
    TEACHER_PIN: str = "999999"
    # 동시에 유지할 세션 수 상한 (세션마다 저장소 구독 2개). 넘으면 가장 오래된 세션부터 종료
    MAX_SESSIONS: int = 200

    @field_validator("TEACHER_PIN")
    @classmethod
    def _check_teacher_pin(cls, v: str) -> str:
        if len(v) != 6 or not v.isdigit():
            raise ValueError("TEACHER_PIN must be exactly 6 digits")
        return v

    # =========================
    # LLM (Gemini 성적 코멘트, 선택 기능)
    # =========================
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_API_KEY: str = ""
    GEMINI_API_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    LLM_TIMEOUT: int = 25
    LLM_TEMPERATURE: float = 0.2
    LLM_MAX_TOKENS: int = 1024
    LLM_MAX_RETRIES: int = 5

    # =========================
    # Logging
    # =========================
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # =========================
    # BaseSettings Config
    # =========================
    model_config = SettingsConfigDict(
        env_file=".env",               # .env에서 값 로드
        env_file_encoding="utf-8",
        case_sensitive=False,          # 환경변수 대소문자 비구분
        extra="ignore",                # 정의되지 않은 키는 무시
    )


# ✅ settings 객체를 통해 어디서든 접근 가능
settings = Settings()
