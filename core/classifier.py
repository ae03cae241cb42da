"""스캔 분류 로직"""

import logging
from typing import Callable, List, Optional

from core.model_registry import ModelRegistry
from core.models import (ClassificationResult, DuplicateAlertEvent, ScanResult,
                         ScanSession, normalize_barcode)


logger = logging.getLogger(__name__)

AlertListener = Callable[[DuplicateAlertEvent], None]


class ScanClassifier:
    """바코드 한 건을 OK / 중복 / 모델 불일치로 분류합니다.

    저장은 하지 않습니다. 호출자가 결과를 ScanStore에 저장하고 작업 목록에 추가합니다.
    중복일 때는 등록된 리스너에 DuplicateAlertEvent를 전달하며, 리스너의 완료를 기다리지 않습니다.
    """

    def __init__(self, registry: ModelRegistry):
        self.registry = registry
        self._listeners: List[AlertListener] = []

    def add_listener(self, listener: AlertListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: AlertListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def classify(self, raw_barcode: Optional[str], session: ScanSession,
                 start_value: int = 1) -> Optional[ClassificationResult]:
        if raw_barcode is None or not raw_barcode.strip():
            return None

        barcode = raw_barcode.strip()
        normalized = normalize_barcode(barcode)
        sequence_number = start_value + session.working_set_size
        in_working_set = session.in_working_set(barcode)

        matched, model = self.registry.try_match_model(normalized)
        if not matched:
            result = ScanResult.INVALID
        elif in_working_set or not self.registry.claim_scanned(session, normalized):
            result = ScanResult.DUPLICATE
            self._emit(DuplicateAlertEvent(barcode=barcode, sequence_number=sequence_number))
        else:
            result = ScanResult.OK

        return ClassificationResult(
            barcode=barcode,
            normalized=normalized,
            result=result,
            sequence_number=sequence_number,
            model=model,
            in_working_set=in_working_set,
        )

    def _emit(self, event: DuplicateAlertEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                # 경고 장치 오류로 스캔 작업이 멈추면 안 됨
                logger.error(f"중복 경고 전달 실패: {e}")
