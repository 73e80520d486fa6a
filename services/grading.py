"""
services/grading.py

성적 계산 엔진 (순수 함수 모음)
- 가중 평균: 국어5 / 수학4 / 영어3 / 과학3 / 사회3, 작문은 제외
- 시험별 반 평균(과목별 평균 + 반 가중 평균)
- 시험별 석차 (가중 평균 내림차순, 동점은 입력 순서 유지)

모든 함수는 입력을 변경하지 않으며 상태를 갖지 않습니다.
레코드는 속성(student_name, exam_name, chinese ...)을 가진 객체 또는 dict 모두 허용합니다.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

# ==========================================================
# [고정 열거값]
# ==========================================================
EXAM_OPTIONS = ("Exam 1", "Exam 2", "Exam 3")

SUBJECT_WEIGHTS = {
    "chinese": 5,
    "math": 4,
    "english": 3,
    "science": 3,
    "social": 3,
}

# 작문(essay)은 가중치 없음
SUBJECT_KEYS = ("chinese", "math", "english", "science", "social", "essay")

SUBJECT_LABELS = {
    "chinese": "Chinese",
    "math": "Math",
    "english": "English",
    "science": "Science",
    "social": "Social Studies",
    "essay": "Essay",
}


def _field(record: Any, name: str, default=None):
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def subject_scores(record: Any) -> Dict[str, int]:
    """레코드에서 과목 점수만 추출 (없는 과목은 제외)"""
    scores = {}
    for subject in SUBJECT_KEYS:
        value = _field(record, subject)
        if value is not None:
            scores[subject] = value
    return scores


# ==========================================================
# [가중 평균]
# ==========================================================
def calculate_weighted_average(scores: Mapping[str, Optional[int]]) -> float:
    """
    Σ(점수×가중치) / Σ(가중치)
    - 입력에 없는 과목은 0점이 아니라 계산에서 제외
    - 가중 과목이 하나도 없으면 0
    """
    total_score = 0
    total_weight = 0
    for subject, weight in SUBJECT_WEIGHTS.items():
        value = scores.get(subject)
        if value is None:
            continue
        total_score += value * weight
        total_weight += weight
    return total_score / total_weight if total_weight > 0 else 0.0


def simple_average(scores: Mapping[str, Optional[int]]) -> float:
    """6과목 단순 평균 (작문 포함, 없는 과목은 0점)"""
    return sum(scores.get(s) or 0 for s in SUBJECT_KEYS) / len(SUBJECT_KEYS)


# ==========================================================
# [반 평균]
# ==========================================================
@dataclass(frozen=True)
class ExamAggregate:
    exam_name: str
    subject_averages: Dict[str, float] = field(default_factory=dict)
    class_average: float = 0.0
    total_students: int = 0

    def to_dict(self) -> dict:
        return {
            "exam_name": self.exam_name,
            "subject_averages": dict(self.subject_averages),
            "class_average": self.class_average,
            "total_students": self.total_students,
        }


def filter_exam(records: Iterable[Any], exam_name: str) -> List[Any]:
    return [r for r in records if _field(r, "exam_name") == exam_name]


def calculate_class_averages(records: Iterable[Any], exam_name: str) -> Optional[ExamAggregate]:
    """
    시험 한 건의 반 평균
    - 과목별 산술 평균(작문 포함), 과목 누락 레코드는 해당 과목 0점으로 합산
    - 반 가중 평균은 과목별 평균 벡터에 가중치를 적용해서 계산
    - 해당 시험 레코드가 없으면 None
    """
    exam_records = filter_exam(records, exam_name)
    if not exam_records:
        return None

    count = len(exam_records)
    subject_averages = {
        subject: sum(_field(r, subject) or 0 for r in exam_records) / count
        for subject in SUBJECT_KEYS
    }
    return ExamAggregate(
        exam_name=exam_name,
        subject_averages=subject_averages,
        class_average=calculate_weighted_average(subject_averages),
        total_students=count,
    )


def calculate_all_class_averages(records: Iterable[Any]) -> Dict[str, ExamAggregate]:
    records = list(records)
    results = {}
    for exam in EXAM_OPTIONS:
        aggregate = calculate_class_averages(records, exam)
        if aggregate is not None:
            results[exam] = aggregate
    return results


# ==========================================================
# [석차]
# ==========================================================
@dataclass(frozen=True)
class RankedRecord:
    rank: int
    weighted_average: float
    record: Any


def rank_exam(records: Iterable[Any], exam_name: str) -> List[RankedRecord]:
    """
    시험별 석차표 (1..N)
    sorted()는 안정 정렬이므로 동점자는 입력 순서대로 서로 다른 등수를 받음
    """
    scored = [
        (calculate_weighted_average(subject_scores(r)), r)
        for r in filter_exam(records, exam_name)
    ]
    ordered = sorted(scored, key=lambda item: item[0], reverse=True)
    return [
        RankedRecord(rank=idx, weighted_average=avg, record=r)
        for idx, (avg, r) in enumerate(ordered, start=1)
    ]


def calculate_rank(records: Iterable[Any], exam_name: str, student_name: str) -> Optional[int]:
    """해당 시험에서 학생의 첫 번째 레코드 등수, 없으면 None (N/A)"""
    for ranked in rank_exam(records, exam_name):
        if _field(ranked.record, "student_name") == student_name:
            return ranked.rank
    return None


# ==========================================================
# [비교/차트용 파생 데이터]
# ==========================================================
def compare_to_class(scores: Mapping[str, Optional[int]], aggregate: Optional[ExamAggregate]) -> Dict[str, Optional[str]]:
    """과목별 반 평균 대비 above / below (반 평균이 없으면 None)"""
    result = {}
    for subject in SUBJECT_KEYS:
        if aggregate is None:
            result[subject] = None
            continue
        score = scores.get(subject) or 0
        result[subject] = "above" if score >= aggregate.subject_averages[subject] else "below"
    return result


def radar_points(scores: Mapping[str, Optional[int]], aggregate: Optional[ExamAggregate]) -> List[dict]:
    if aggregate is None:
        return []
    return [
        {
            "subject": SUBJECT_LABELS[subject],
            "student": scores.get(subject) or 0,
            "class": aggregate.subject_averages[subject],
            "full_mark": 100,
        }
        for subject in SUBJECT_WEIGHTS
    ]


def scatter_points(records: Iterable[Any], exam_name: str, highlight: Optional[str] = None) -> List[dict]:
    return [
        {
            "name": _field(r, "student_name"),
            "avg": calculate_weighted_average(subject_scores(r)),
            "is_student": highlight is not None and _field(r, "student_name") == highlight,
        }
        for r in filter_exam(records, exam_name)
    ]


# ==========================================================
# [입력 보조]
# ==========================================================
def clamp_score(value: Any) -> int:
    """숫자가 아니면 0, 그 외엔 0~100 범위로 자름"""
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, number))


def blank_grade_form() -> dict:
    """새 성적 입력 폼 기본값"""
    form = {"student_name": "", "exam_name": EXAM_OPTIONS[0]}
    form.update({subject: 0 for subject in SUBJECT_KEYS})
    return form
