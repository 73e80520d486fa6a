from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class NarrativeRequest:
    student_name: str
    scores: Dict[str, int]        # 과목 → 점수 (파생 필드 제외)
    weighted_average: float


class NarrativeClient(ABC):
    @abstractmethod
    async def generate(self, request: NarrativeRequest) -> str: ...
