"""바코드 모델 레지스트리"""

import csv
import logging
import os
import threading
from typing import List, Optional, Tuple

from core.models import Model, ScanSession, normalize_barcode


logger = logging.getLogger(__name__)


class ModelRegistry:
    """등록된 모델과 세션별 스캔 여부를 조회합니다.

    이미 스캔된 바코드 집합은 레지스트리가 아니라 호출자가 소유한 ScanSession에 보관합니다.
    """

    CSV_FIELDS = ['Model Code', 'Model Name', 'Pattern']
    ENCODINGS = ['utf-8-sig', 'cp1258', 'utf-8']

    def __init__(self, models: Optional[List[Model]] = None):
        self._models: List[Model] = []
        self._lock = threading.Lock()
        for model in models or []:
            self.add_model(model)

    @property
    def models(self) -> List[Model]:
        with self._lock:
            return list(self._models)

    def add_model(self, model: Model) -> bool:
        """모델을 추가합니다. 같은 코드가 이미 있으면 추가하지 않습니다."""
        code = normalize_barcode(model.code)
        if not code and not model.pattern:
            return False
        with self._lock:
            if any(normalize_barcode(m.code) == code for m in self._models):
                return False
            self._models.append(model)
        return True

    def remove_model(self, code: str) -> bool:
        lookup = normalize_barcode(code)
        with self._lock:
            before = len(self._models)
            self._models = [m for m in self._models if normalize_barcode(m.code) != lookup]
            return len(self._models) != before

    def clear(self):
        with self._lock:
            self._models = []

    def try_match_model(self, barcode: str) -> Tuple[bool, Optional[Model]]:
        normalized = normalize_barcode(barcode)
        if not normalized:
            return False, None
        for model in self.models:
            if model.matches(normalized):
                return True, model
        return False, None

    @staticmethod
    def is_barcode_scanned(session: ScanSession, barcode: str) -> bool:
        normalized = normalize_barcode(barcode)
        with session.lock:
            return normalized in session.scanned_barcodes

    @staticmethod
    def mark_scanned(session: ScanSession, barcode: str):
        normalized = normalize_barcode(barcode)
        if not normalized:
            return
        with session.lock:
            session.scanned_barcodes.add(normalized)

    @staticmethod
    def claim_scanned(session: ScanSession, barcode: str) -> bool:
        """처음 스캔된 바코드면 표시하고 True, 이미 스캔된 바코드면 False."""
        normalized = normalize_barcode(barcode)
        if not normalized:
            return False
        with session.lock:
            if normalized in session.scanned_barcodes:
                return False
            session.scanned_barcodes.add(normalized)
            return True

    def load_from_csv(self, path: str) -> int:
        """CSV 파일에서 모델을 읽어 추가합니다. 추가된 모델 수를 반환합니다."""
        if not path or not os.path.exists(path):
            logger.warning(f"모델 파일 없음: {path}")
            return 0

        for encoding in self.ENCODINGS:
            try:
                with open(path, 'r', encoding=encoding, newline='') as file:
                    rows = list(csv.DictReader(file))
            except UnicodeDecodeError:
                continue
            except OSError as e:
                logger.error(f"모델 파일 읽기 오류: {e}")
                return 0

            added = 0
            for row in rows:
                model = Model(
                    code=(row.get('Model Code') or '').strip(),
                    name=(row.get('Model Name') or '').strip(),
                    pattern=(row.get('Pattern') or '').strip(),
                )
                if self.add_model(model):
                    added += 1
            logger.info(f"모델 {added}개 로드: {path} ({encoding})")
            return added

        logger.error(f"모델 파일의 인코딩을 알 수 없습니다: {path}")
        return 0

    def save_to_csv(self, path: str) -> bool:
        try:
            with open(path, 'w', encoding='utf-8-sig', newline='') as file:
                writer = csv.DictWriter(file, fieldnames=self.CSV_FIELDS)
                writer.writeheader()
                for model in self.models:
                    writer.writerow({'Model Code': model.code, 'Model Name': model.name, 'Pattern': model.pattern})
            return True
        except OSError as e:
            logger.error(f"모델 파일 저장 오류: {e}")
            return False
