"""데이터 모델 정의 모듈"""

import datetime
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set


def normalize_barcode(barcode: Optional[str]) -> str:
    """바코드 비교용 정규화: 앞뒤 공백 제거 후 대문자로 변환합니다."""
    return (barcode or "").strip().upper()


class ScanResult(str, Enum):
    """분류 결과. 값은 화면/DB에 그대로 기록되는 문자열입니다."""
    OK = "OK"
    DUPLICATE = "Trùng barcode"
    INVALID = "Sai model"


@dataclass
class ScanRecord:
    """한 번의 스캔 기록 (ScanRecords 테이블의 한 행)"""
    sequence_number: int = 0
    barcode: str = ""
    timestamp_display: str = ""
    result: str = ""
    shift: str = ""
    id: Optional[int] = None
    scan_time: Optional[datetime.datetime] = None

    def to_row(self) -> List[str]:
        """작업 목록/내보내기용 값 목록 (STT, Barcode, Ngày giờ, Kết quả, Ca)"""
        return [str(self.sequence_number), self.barcode, self.timestamp_display, self.result, self.shift]


@dataclass
class Model:
    """허용된 바코드 모델. pattern이 있으면 정규식 전체 일치, 없으면 코드 포함 여부로 판단합니다."""
    code: str
    name: str = ""
    pattern: str = ""

    def matches(self, normalized_barcode: str) -> bool:
        if self.pattern:
            try:
                return re.fullmatch(self.pattern, normalized_barcode, re.IGNORECASE) is not None
            except re.error:
                return False
        code = normalize_barcode(self.code)
        return bool(code) and code in normalized_barcode


@dataclass
class ScanSession:
    """한 작업 세션의 스캔 상태를 관리합니다.

    scanned_barcodes: 이번 세션에서 OK 처리된 바코드 (정규화 값)
    working_set: 현재 목록에 표시 중인 행들의 바코드 (최신 순, 원본 값)
    """
    scanned_barcodes: Set[str] = field(default_factory=set)
    working_set: List[str] = field(default_factory=list)
    started_at: datetime.datetime = field(default_factory=datetime.datetime.now)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def working_set_size(self) -> int:
        return len(self.working_set)

    def in_working_set(self, barcode: str) -> bool:
        lookup = normalize_barcode(barcode)
        with self.lock:
            return any(normalize_barcode(b) == lookup for b in self.working_set)

    def add_to_working_set(self, barcode: str):
        """새 행을 목록 맨 위에 추가합니다."""
        with self.lock:
            self.working_set.insert(0, barcode or "")

    def remove_from_working_set(self, barcode: str) -> bool:
        """같은 바코드의 가장 최근 행 하나를 목록에서 제거합니다."""
        with self.lock:
            try:
                self.working_set.remove(barcode or "")
                return True
            except ValueError:
                return False

    def replace_working_set(self, barcodes: List[str]):
        with self.lock:
            self.working_set = [b or "" for b in barcodes]


@dataclass
class ClassificationResult:
    """스캔 한 건의 분류 결과"""
    barcode: str
    normalized: str
    result: ScanResult
    sequence_number: int
    model: Optional[Model] = None
    in_working_set: bool = False

    @property
    def is_ok(self) -> bool:
        return self.result == ScanResult.OK


@dataclass
class DuplicateAlertEvent:
    """중복 바코드 경고 이벤트"""
    barcode: str
    sequence_number: int
    occurred_at: datetime.datetime = field(default_factory=datetime.datetime.now)
