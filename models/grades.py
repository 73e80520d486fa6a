import uuid

from sqlalchemy import Column, Integer, String, UniqueConstraint
from database.db import Base


def new_doc_id() -> str:
    # 저장소가 부여하는 불투명 문서 ID
    return uuid.uuid4().hex


class GradeRecord(Base):
    __tablename__ = "class_grades"  # 학생별·시험별 성적 테이블
    __table_args__ = (
        # 같은 파티션에서 (학생, 시험) 조합은 1건만 허용
        UniqueConstraint("owner_uid", "student_name", "exam_name", name="uq_grade_student_exam"),
    )

    id = Column(String(32), primary_key=True, default=new_doc_id)   # 문서 ID (Primary Key)
    owner_uid = Column(String(128), nullable=False, index=True)     # 파티션 소유자(교사 identity)
    student_name = Column(String(100), nullable=False)              # 학생 이름 (파티션 내 자연키)
    exam_name = Column(String(20), nullable=False)                  # 시험명 (Exam 1/2/3)
    chinese = Column(Integer, nullable=False, default=0)            # 국어 (가중치 5)
    math = Column(Integer, nullable=False, default=0)               # 수학 (가중치 4)
    english = Column(Integer, nullable=False, default=0)            # 영어 (가중치 3)
    science = Column(Integer, nullable=False, default=0)            # 과학 (가중치 3)
    social = Column(Integer, nullable=False, default=0)             # 사회 (가중치 3)
    essay = Column(Integer, nullable=False, default=0)              # 작문 (가중 평균 제외)
