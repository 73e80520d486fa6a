from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from typing import Literal

from services.grading import calculate_weighted_average, subject_scores

ExamName = Literal["Exam 1", "Exam 2", "Exam 3"]


# ✅ 입력용 (POST/PUT, 전체 필드 교체)
class GradeCreate(BaseModel):
    student_name: str = Field(..., min_length=1, max_length=100)   # 학생 이름
    exam_name: ExamName                                             # 시험명
    chinese: int = Field(0, ge=0, le=100)                           # 국어 (*5)
    math: int = Field(0, ge=0, le=100)                              # 수학 (*4)
    english: int = Field(0, ge=0, le=100)                           # 영어 (*3)
    science: int = Field(0, ge=0, le=100)                           # 과학 (*3)
    social: int = Field(0, ge=0, le=100)                            # 사회 (*3)
    essay: int = Field(0, ge=0, le=100)                             # 작문 (가중 평균 제외)

    @field_validator("student_name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("student_name must not be blank")
        return v


# ✅ 저장소 스냅샷/출력용 (가중 평균은 읽을 때 계산, 저장하지 않음)
class Grade(GradeCreate):
    id: str

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @computed_field  # type: ignore[misc]
    @property
    def weighted_average(self) -> float:
        return calculate_weighted_average(subject_scores(self))
