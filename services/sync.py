"""
services/sync.py

저장소 변경 스트림 → 세션별 메모리 미러
- 알림이 올 때마다 스냅샷을 통째로 교체 (부분 패치 없음)
- 교체될 때마다 파생 뷰(석차표, 반 평균 등) 캐시를 무효화하고 다음 조회 시 다시 계산
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from services.store import DocumentStore, Identity, Subscription, grades_path, pins_path

logger = logging.getLogger(__name__)


class CollectionMirror:
    def __init__(self, store: DocumentStore, identity: Identity, path: str):
        self._store = store
        self._identity = identity
        self.path = path
        self.snapshot: Tuple[Any, ...] = ()
        self.version = 0
        self.last_error: Optional[Exception] = None
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Callable[["CollectionMirror"], None]] = []
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def open(self):
        if self.is_open:
            return
        self._subscription = self._store.subscribe(
            self._identity, self.path, self._on_snapshot, self._on_error
        )

    def close(self):
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def add_listener(self, callback: Callable[["CollectionMirror"], None]):
        self._listeners.append(callback)

    def _on_snapshot(self, snapshot):
        with self._lock:
            self.snapshot = tuple(snapshot)
            self.version += 1
            self.last_error = None
        logger.debug("Mirror %s -> v%d (%d docs)", self.path, self.version, len(self.snapshot))
        for callback in list(self._listeners):
            callback(self)

    def _on_error(self, exc: Exception):
        # 미러는 마지막으로 받은 스냅샷을 유지
        self.last_error = exc
        logger.warning("Mirror %s stream error: %s", self.path, exc)


class DerivedViews:
    """미러 버전 기준 메모이제이션. 버전이 바뀌면 다시 계산"""

    def __init__(self, version: Callable[[], Tuple[int, ...]]):
        self._version = version
        self._cache: Dict[Any, Tuple[Tuple[int, ...], Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Any, compute: Callable[[], Any]) -> Any:
        version = self._version()
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None and cached[0] == version:
                return cached[1]
        value = compute()
        with self._lock:
            self._cache[key] = (version, value)
        return value

    def invalidate(self, *_):
        with self._lock:
            self._cache.clear()

    def __len__(self):
        return len(self._cache)


class SessionMirrors:
    """세션 하나가 보는 두 컬렉션(성적, PIN)의 미러 묶음"""

    def __init__(self, store: DocumentStore, identity: Identity):
        self.grades = CollectionMirror(store, identity, grades_path(identity.uid, store.app_id))
        self.pins = CollectionMirror(store, identity, pins_path(store.app_id))
        self.views = DerivedViews(lambda: (self.grades.version, self.pins.version))
        self.grades.add_listener(self.views.invalidate)
        self.pins.add_listener(self.views.invalidate)

    def open(self):
        self.pins.open()
        self.grades.open()

    def close(self):
        self.grades.close()
        self.pins.close()
        self.views.invalidate()
