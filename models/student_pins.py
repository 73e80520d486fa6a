from sqlalchemy import Column, String, UniqueConstraint
from database.db import Base
from models.grades import new_doc_id


class StudentPin(Base):
    __tablename__ = "student_pins"  # 학생 조회용 PIN 테이블 (공용 파티션)
    __table_args__ = (
        # 이름당 PIN 1건, 한 번 발급되면 변경 없음
        UniqueConstraint("app_id", "name", name="uq_student_pin_name"),
    )

    id = Column(String(32), primary_key=True, default=new_doc_id)   # 문서 ID (Primary Key)
    app_id = Column(String(128), nullable=False, index=True)        # 공용 파티션 구분자
    name = Column(String(100), nullable=False)                      # 학생 이름 (GradeRecord.student_name과 동일)
    pin = Column(String(6), nullable=False)                         # 6자리 숫자 PIN
