from fastapi import APIRouter

from services.grading import EXAM_OPTIONS, SUBJECT_KEYS, SUBJECT_LABELS, SUBJECT_WEIGHTS, blank_grade_form

router = APIRouter(prefix="/meta", tags=["Meta"])


@router.get("/options")
def options():
    return {
        "success": True,
        "data": {
            "exams": list(EXAM_OPTIONS),
            "subjects": list(SUBJECT_KEYS),
            "labels": SUBJECT_LABELS,
            "weights": SUBJECT_WEIGHTS,
            "blank_form": blank_grade_form(),
        },
    }
