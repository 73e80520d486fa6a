import pytest

from services.grading import (
    EXAM_OPTIONS,
    SUBJECT_KEYS,
    blank_grade_form,
    calculate_all_class_averages,
    calculate_class_averages,
    calculate_rank,
    calculate_weighted_average,
    clamp_score,
    compare_to_class,
    radar_points,
    rank_exam,
    scatter_points,
    simple_average,
    subject_scores,
)


def record(name, exam="Exam 1", **scores):
    base = {"student_name": name, "exam_name": exam}
    base.update(scores)
    return base


A = record("A", chinese=90, math=80, english=70, science=60, social=50, essay=100)
B = record("B", chinese=70, math=70, english=70, science=70, social=70, essay=70)


# ==========================================================
# 가중 평균
# ==========================================================
def test_weighted_average_worked_example():
    assert calculate_weighted_average(subject_scores(A)) == pytest.approx(1310 / 18)
    assert round(calculate_weighted_average(subject_scores(A)), 2) == 72.78
    assert calculate_weighted_average(subject_scores(B)) == 70.0


def test_weighted_average_ignores_essay():
    assert calculate_weighted_average({"chinese": 80, "essay": 0}) == 80.0
    assert calculate_weighted_average({"chinese": 80, "essay": 100}) == 80.0


def test_weighted_average_skips_absent_subjects_instead_of_zero():
    # 국어(5)와 수학(4)만 있음 → (100*5 + 50*4) / 9
    assert calculate_weighted_average({"chinese": 100, "math": 50}) == pytest.approx(700 / 9)
    assert calculate_weighted_average({"chinese": 100, "math": None}) == 100.0


def test_weighted_average_without_weighted_subjects_is_zero():
    assert calculate_weighted_average({}) == 0
    assert calculate_weighted_average({"essay": 95}) == 0


@pytest.mark.parametrize("scores", [
    {"chinese": 0, "math": 0, "english": 0, "science": 0, "social": 0},
    {"chinese": 100, "math": 100, "english": 100, "science": 100, "social": 100},
    {"math": 37, "social": 99},
    {"science": 1},
])
def test_weighted_average_stays_in_range(scores):
    assert 0 <= calculate_weighted_average(scores) <= 100


def test_simple_average_counts_all_six_subjects():
    assert simple_average(subject_scores(A)) == pytest.approx(450 / 6)
    assert simple_average({"chinese": 60}) == 10


# ==========================================================
# 반 평균
# ==========================================================
def test_class_averages_worked_example():
    agg = calculate_class_averages([A, B], "Exam 1")
    assert agg.total_students == 2
    assert agg.subject_averages == {
        "chinese": 80, "math": 75, "english": 70, "science": 65, "social": 60, "essay": 85,
    }
    # (80*5 + 75*4 + 70*3 + 65*3 + 60*3) / 18
    assert agg.class_average == pytest.approx(1285 / 18)
    assert agg.class_average == pytest.approx((1310 / 18 + 70) / 2)


def test_class_average_uses_subject_means():
    records = [
        A, B,
        record("C", chinese=55, math=100, english=13, science=88, social=42, essay=0),
        record("D", exam="Exam 2", chinese=100, math=100, english=100, science=100, social=100),
    ]
    agg = calculate_class_averages(records, "Exam 1")
    assert agg.class_average == pytest.approx(calculate_weighted_average(agg.subject_averages))
    assert agg.total_students == 3


def test_class_averages_for_exam_without_records_is_none():
    assert calculate_class_averages([A, B], "Exam 3") is None


def test_all_class_averages_only_lists_exams_with_records():
    c = record("C", exam="Exam 2", chinese=10)
    result = calculate_all_class_averages([A, B, c])
    assert set(result) == {"Exam 1", "Exam 2"}
    assert result["Exam 2"].subject_averages["chinese"] == 10
    # 누락 과목은 0점으로 평균에 포함
    assert result["Exam 2"].subject_averages["math"] == 0


# ==========================================================
# 석차
# ==========================================================
def test_rank_worked_example():
    assert calculate_rank([B, A], "Exam 1", "A") == 1
    assert calculate_rank([B, A], "Exam 1", "B") == 2


def test_rank_not_available_without_record():
    assert calculate_rank([A, B], "Exam 2", "A") is None
    assert calculate_rank([A, B], "Exam 1", "Nobody") is None


def test_ties_get_distinct_ranks_in_input_order():
    x = record("X", chinese=80, math=80, english=80, science=80, social=80)
    y = record("Y", chinese=80, math=80, english=80, science=80, social=80)
    assert calculate_rank([x, y], "Exam 1", "X") == 1
    assert calculate_rank([x, y], "Exam 1", "Y") == 2
    assert calculate_rank([y, x], "Exam 1", "Y") == 1


def test_rank_exam_covers_one_to_n():
    records = [A, B, record("C", chinese=10), record("D", chinese=100), record("E", exam="Exam 2")]
    table = rank_exam(records, "Exam 1")
    assert [r.rank for r in table] == [1, 2, 3, 4]
    assert [r.record["student_name"] for r in table] == ["D", "A", "B", "C"]
    averages = [r.weighted_average for r in table]
    assert averages == sorted(averages, reverse=True)


def test_rank_does_not_mutate_input():
    records = [B, A]
    rank_exam(records, "Exam 1")
    assert records == [B, A]


# ==========================================================
# 비교/차트 데이터
# ==========================================================
def test_compare_to_class():
    agg = calculate_class_averages([A, B], "Exam 1")
    result = compare_to_class(subject_scores(A), agg)
    assert result["chinese"] == "above"
    assert result["social"] == "below"
    assert result["essay"] == "above"
    assert compare_to_class(subject_scores(A), None) == {s: None for s in SUBJECT_KEYS}


def test_radar_and_scatter_points():
    agg = calculate_class_averages([A, B], "Exam 1")
    radar = radar_points(subject_scores(A), agg)
    assert len(radar) == 5
    assert radar[0] == {"subject": "Chinese", "student": 90, "class": 80, "full_mark": 100}

    scatter = scatter_points([A, B], "Exam 1", highlight="B")
    assert [p["is_student"] for p in scatter] == [False, True]
    assert scatter[1]["avg"] == 70.0


def test_clamp_score_and_blank_form():
    assert clamp_score("105") == 100
    assert clamp_score(-3) == 0
    assert clamp_score("abc") == 0
    assert clamp_score(None) == 0
    assert clamp_score("88.6") == 88

    form = blank_grade_form()
    assert form["student_name"] == ""
    assert form["exam_name"] == EXAM_OPTIONS[0]
    assert all(form[s] == 0 for s in SUBJECT_KEYS)
