import csv
import sys

from pydantic import ValidationError

from database.db import init_db
from schemas.grades import GradeCreate
from services.credentials import CredentialRegistry
from services.grade_service import GradeService
from services.grading import SUBJECT_KEYS, clamp_score
from services.store import DocumentStore, IdentityProvider
from services.sync import SessionMirrors
from utils.errors import PortalError

CSV_PATH = "data/grades.csv"  # ✅ 파일 경로 (student_name, exam_name, chinese, math, english, science, social, essay)


def migrate_grades(custom_token: str, csv_path: str = CSV_PATH):
    init_db()
    store = DocumentStore()
    identity = IdentityProvider().sign_in(custom_token)   # 담임과 같은 토큰이어야 같은 파티션
    mirrors = SessionMirrors(store, identity)
    mirrors.open()
    registry = CredentialRegistry(store, identity, mirrors.pins)
    service = GradeService(store, identity, mirrors, registry)

    created, updated, skipped = 0, 0, 0
    try:
        with open(csv_path, newline="", encoding="utf-8-sig") as csvfile:
            reader = csv.DictReader(csvfile)
            for line_no, row in enumerate(reader, start=2):
                try:
                    form = GradeCreate(
                        student_name=row.get("student_name") or "",
                        exam_name=(row.get("exam_name") or "").strip(),
                        **{subject: clamp_score(row.get(subject)) for subject in SUBJECT_KEYS},  # 범위 밖 점수는 0~100으로 보정
                    )
                except ValidationError as e:
                    print(f"⚠️ {line_no}행 건너뜀: {e}")
                    skipped += 1
                    continue

                # 이미 있는 (학생, 시험) 조합은 덮어쓰기
                existing = next(
                    (g for g in service.list()
                     if g.student_name == form.student_name and g.exam_name == form.exam_name),
                    None,
                )
                try:
                    if existing:
                        service.update(existing.id, form)
                        updated += 1
                    else:
                        result = service.create(form)
                        created += 1
                        if result.pin_error:
                            print(f"⚠️ {form.student_name} PIN 발급 실패: {result.pin_error}")
                except PortalError as e:
                    print(f"⚠️ {line_no}행 저장 실패: {e.message}")
                    skipped += 1
    finally:
        mirrors.close()

    print(f"✅ 성적 CSV → DB 마이그레이션 완료 (추가 {created}, 수정 {updated}, 건너뜀 {skipped})")
    return created, updated, skipped


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("사용법: python -m scripts.import_grades <custom_token> [csv_path]")
        sys.exit(1)
    migrate_grades(sys.argv[1], *sys.argv[2:3])
