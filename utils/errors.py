"""
utils/errors.py

포털 전역에서 사용하는 예외 계층.
- 각 예외는 에러 코드 / HTTP 상태코드 / 사용자에게 보여줄 메시지를 가집니다.
- middlewares/error_handler.py 에서 공통 JSON 포맷으로 변환됩니다.
- 설정 누락(DATABASE_URL 등)은 여기 포함되지 않습니다. Settings() 생성 시 바로 실패합니다.
"""


class PortalError(Exception):
    code = "PORTAL_ERROR"
    status_code = 400

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class AuthenticationError(PortalError):
    """저장소 identity 확인 실패 (세션 생성 불가)"""
    code = "AUTHENTICATION_FAILED"
    status_code = 401


class SessionNotFoundError(PortalError):
    code = "SESSION_NOT_FOUND"
    status_code = 401


class CredentialMismatchError(PortalError):
    """이름/PIN 불일치, 또는 PIN은 맞지만 성적이 없는 경우"""
    code = "CREDENTIAL_MISMATCH"
    status_code = 401


class AccessDeniedError(PortalError):
    """현재 역할로 요청할 수 없는 화면/데이터"""
    code = "ACCESS_DENIED"
    status_code = 403


class PermissionDeniedError(PortalError):
    """저장소가 현재 identity의 읽기/쓰기를 거부"""
    code = "PERMISSION_DENIED"
    status_code = 403


class RecordNotFoundError(PortalError):
    code = "NOT_FOUND"
    status_code = 404


class DuplicateGradeError(PortalError):
    code = "DUPLICATE_GRADE"
    status_code = 409


class StoreWriteError(PortalError):
    """저장/삭제 실패. 재시도하지 않고 호출자에게 전달"""
    code = "WRITE_FAILED"
    status_code = 500


class NarrativeError(PortalError):
    """성적 코멘트 생성 실패 (재시도 소진 또는 즉시 실패)"""
    code = "NARRATIVE_FAILED"
    status_code = 502


class AlreadyAuthenticatedError(PortalError):
    """이미 로그인된 세션에서 다시 로그인 시도 (먼저 로그아웃 필요)"""
    code = "ALREADY_AUTHENTICATED"
    status_code = 409


class StoreConflictError(StoreWriteError):
    """저장소 유일성 제약 위반 (같은 키의 문서가 이미 있음)"""
    code = "CONFLICT"
    status_code = 409


class StoreReadError(PortalError):
    code = "READ_FAILED"
    status_code = 503


class PinInUseError(PortalError):
    """성적이 남아 있는 학생의 PIN 삭제 시도"""
    code = "PIN_IN_USE"
    status_code = 409


class NameImmutableError(PortalError):
    """성적 수정 시 학생 이름 변경 시도 (PIN 연결이 바뀌면 안 됨)"""
    code = "NAME_IMMUTABLE"
    status_code = 409
