from pydantic import BaseModel, ConfigDict, Field


# ✅ 학생 로그인 요청
class StudentLogin(BaseModel):
    name: str = Field(..., min_length=1)
    pin: str = Field(..., min_length=1, max_length=6)


# ✅ 담임 로그인 요청
class TeacherLogin(BaseModel):
    pin: str = Field(..., min_length=1, max_length=6)


# ✅ 저장소 스냅샷/출력용
class StudentPin(BaseModel):
    id: str
    name: str
    pin: str

    model_config = ConfigDict(from_attributes=True, frozen=True)
