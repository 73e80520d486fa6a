"""
services/credentials.py

학생 조회용 PIN 발급/인증
- 이름당 PIN은 한 번만 발급되고 이후 바뀌지 않음 (issue_if_absent는 멱등)
- 새 PIN은 100000~999999 균등 난수, 이미 쓰인 PIN과 겹치면 다시 뽑음
- 인증은 이름 + PIN 정확히 일치 (해시/횟수 제한 없음)
"""

import csv
import io
import logging
import random
import threading
from dataclasses import dataclass
from typing import List, Optional

from schemas.student_pins import StudentPin
from services.store import DocumentStore, Identity
from services.sync import CollectionMirror
from utils.errors import RecordNotFoundError, StoreConflictError, StoreWriteError

logger = logging.getLogger(__name__)

PIN_MIN = 100000
PIN_MAX = 999999
MAX_PIN_ATTEMPTS = 50

# 같은 프로세스의 모든 세션이 공유 (동시 저장 시 이중 발급 방지)
_issue_lock = threading.Lock()


def generate_pin(rng: random.Random = random) -> str:
    return str(rng.randint(PIN_MIN, PIN_MAX))


@dataclass(frozen=True)
class IssuedPin:
    name: str
    pin: str
    created: bool


class CredentialRegistry:
    def __init__(
        self,
        store: DocumentStore,
        identity: Identity,
        mirror: CollectionMirror,
        rng: Optional[random.Random] = None,
    ):
        self._store = store
        self._identity = identity
        self._mirror = mirror
        self._rng = rng or random.Random()

    def list_pins(self) -> List[StudentPin]:
        return list(self._mirror.snapshot)

    def find(self, name: str) -> Optional[StudentPin]:
        for record in self._mirror.snapshot:
            if record.name == name:
                return record
        return None

    def _new_pin(self) -> str:
        taken = {record.pin for record in self._mirror.snapshot}
        for _ in range(MAX_PIN_ATTEMPTS):
            pin = generate_pin(self._rng)
            if pin not in taken:
                return pin
        raise StoreWriteError("사용 가능한 PIN을 생성하지 못했습니다.")

    def issue_if_absent(self, name: str) -> IssuedPin:
        with _issue_lock:
            existing = self.find(name)
            if existing is not None:
                return IssuedPin(name=name, pin=existing.pin, created=False)

            pin = self._new_pin()
            try:
                self._store.create(self._identity, self._mirror.path, {"name": name, "pin": pin})
            except StoreConflictError:
                # 다른 프로세스가 먼저 발급함 → 그 PIN을 그대로 사용
                for record in self._store.list(self._identity, self._mirror.path):
                    if record.name == name:
                        return IssuedPin(name=name, pin=record.pin, created=False)
                raise

            logger.info("Issued new PIN for student %s", name)
            return IssuedPin(name=name, pin=pin, created=True)

    def authenticate(self, name: str, pin: str) -> Optional[StudentPin]:
        for record in self._mirror.snapshot:
            if record.name == name and record.pin == pin:
                return record
        return None

    def delete(self, pin_id: str) -> StudentPin:
        record = next((r for r in self._mirror.snapshot if r.id == pin_id), None)
        if record is None:
            raise RecordNotFoundError("PIN 기록을 찾을 수 없습니다.")
        self._store.delete(self._identity, self._mirror.path, pin_id)
        logger.info("Deleted PIN record for student %s", record.name)
        return record


def export_pins_csv(records: List[StudentPin]) -> str:
    """이름,PIN 2열 CSV (헤더 포함)"""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(["name", "pin"])
    for record in records:
        writer.writerow([record.name, record.pin])
    return buf.getvalue()
