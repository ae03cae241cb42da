"""스캔 기록 SQLite 저장소

모든 작업은 예외를 호출자에게 전달하지 않습니다. 실패하면 로그를 남기고
빈 목록 / 0 / False / None 을 반환하며, 마지막 오류는 last_error 에 보관합니다.
"""

import datetime
import logging
import os
import sqlite3
import threading
from typing import List, Optional, Tuple

from core.models import ScanRecord
from utils.exceptions import StorageError
from utils.file_handler import ensure_directory_exists, get_app_data_dir


logger = logging.getLogger(__name__)

TIME_FORMAT = '%Y-%m-%d %H:%M:%S'

SELECT_COLUMNS = "SELECT Id, STT, Barcode, NgayGio, KetQua, Ca, ScanTime FROM ScanRecords"

SCHEMA = """
    CREATE TABLE IF NOT EXISTS ScanRecords (
        Id INTEGER PRIMARY KEY AUTOINCREMENT,
        STT INTEGER NOT NULL,
        Barcode TEXT NOT NULL,
        NgayGio TEXT NOT NULL,
        KetQua TEXT NOT NULL,
        Ca TEXT,
        ScanTime DATETIME DEFAULT (datetime('now', 'localtime'))
    );

    CREATE INDEX IF NOT EXISTS idx_barcode ON ScanRecords(Barcode);
    CREATE INDEX IF NOT EXISTS idx_scantime ON ScanRecords(ScanTime);
"""


# 인자 변환 중 발생할 수 있는 오류. 저장소 밖으로 전달하지 않음
ARGUMENT_ERRORS = (ValueError, TypeError, AttributeError, OverflowError)


def format_scan_time(value: datetime.datetime) -> str:
    return value.strftime(TIME_FORMAT)


def coerce_scan_time(value) -> datetime.datetime:
    """저장할 ScanTime 값을 초 단위 datetime으로 맞춥니다. 날짜만 있으면 자정으로 봅니다."""
    if value is None:
        value = datetime.datetime.now()
    elif not isinstance(value, datetime.datetime):
        if not isinstance(value, datetime.date):
            raise TypeError(f"ScanTime 형식 오류: {value!r}")
        value = datetime.datetime.combine(value, datetime.time())
    return value.replace(microsecond=0)


def parse_scan_time(value) -> Optional[datetime.datetime]:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value
    try:
        return datetime.datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _escape_like(text: str) -> str:
    return text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


class ScanStore:
    """ScanRecords 테이블에 대한 저장/조회/삭제를 담당합니다."""

    DEFAULT_FILE_NAME = "scans.db"

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or os.path.join(get_app_data_dir(), self.DEFAULT_FILE_NAME)
        self.last_error: Optional[Exception] = None
        self._initialized = False
        self._degraded = False
        self._write_lock = threading.Lock()

    @property
    def is_available(self) -> bool:
        return self._initialized and not self._degraded

    def initialize(self) -> bool:
        """폴더와 테이블, 인덱스를 만듭니다. 여러 번 호출해도 안전합니다."""
        if self._degraded:
            return False
        try:
            folder = os.path.dirname(os.path.abspath(self.db_path))
            if not ensure_directory_exists(folder):
                raise StorageError(f"데이터 폴더를 만들 수 없습니다: {folder}")
            with self._write_lock:
                conn = self._connect()
                try:
                    conn.executescript(SCHEMA)
                    conn.commit()
                finally:
                    conn.close()
            self._initialized = True
            self.last_error = None
            logger.info(f"스캔 DB 준비 완료: {self.db_path}")
            return True
        except (StorageError, OSError, sqlite3.Error) as e:
            self._degraded = True
            self._fail(e, "initialization")
            return False

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _ready(self) -> bool:
        if not self._initialized and not self._degraded:
            self.initialize()
        return self.is_available

    @staticmethod
    def _row_to_record(row) -> ScanRecord:
        return ScanRecord(
            id=row[0],
            sequence_number=row[1],
            barcode=row[2] or "",
            timestamp_display=row[3] or "",
            result=row[4] or "",
            shift=row[5] or "",
            scan_time=parse_scan_time(row[6]),
        )

    def _fail(self, error: Exception, action: str):
        self.last_error = error
        logger.error(f"Database {action} error: {error}")

    def _query(self, sql: str, params: tuple, action: str) -> List[ScanRecord]:
        if not self._ready():
            return []
        try:
            conn = self._connect()
            try:
                rows = conn.execute(sql, params).fetchall()
            finally:
                conn.close()
            return [self._row_to_record(row) for row in rows]
        except (sqlite3.Error,) + ARGUMENT_ERRORS as e:
            self._fail(e, action)
            return []

    def _execute(self, sql: str, params: tuple, action: str) -> Optional[Tuple[int, Optional[int]]]:
        """쓰기 문장을 실행하고 (영향받은 행 수, 마지막 Id)를 반환합니다. 실패하면 None."""
        if not self._ready():
            return None
        try:
            with self._write_lock:
                conn = self._connect()
                try:
                    cursor = conn.execute(sql, params)
                    conn.commit()
                    return cursor.rowcount, cursor.lastrowid
                finally:
                    conn.close()
        except (sqlite3.Error,) + ARGUMENT_ERRORS as e:
            self._fail(e, action)
            return None

    def save(self, record: ScanRecord) -> Optional[int]:
        """기록 한 건을 추가하고 새 Id를 반환합니다. 실패하면 None."""
        try:
            scan_time = coerce_scan_time(record.scan_time)
            params = (
                int(record.sequence_number or 0),
                str(record.barcode or ""),
                str(record.timestamp_display or ""),
                str(record.result or ""),
                str(record.shift or ""),
                format_scan_time(scan_time),
            )
        except ARGUMENT_ERRORS as e:
            self._fail(e, "save")
            return None

        outcome = self._execute(
            """
            INSERT INTO ScanRecords (STT, Barcode, NgayGio, KetQua, Ca, ScanTime)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            params,
            "save",
        )
        if outcome is None:
            return None
        record.id = outcome[1]
        record.scan_time = scan_time
        return record.id

    def get_recent(self, limit: int = 1000) -> List[ScanRecord]:
        return self._query(
            f"{SELECT_COLUMNS} ORDER BY Id DESC LIMIT ?",
            (limit,),
            "read",
        )

    def get_by_date_range(self, from_date: datetime.date, to_date: datetime.date,
                          limit: int = 100000) -> List[ScanRecord]:
        """from_date ~ to_date (날짜 기준, 양 끝 포함) 기록을 반환합니다."""
        try:
            bounds = (from_date.strftime('%Y-%m-%d'), to_date.strftime('%Y-%m-%d'))
        except ARGUMENT_ERRORS as e:
            self._fail(e, "query")
            return []
        return self._query(
            f"""{SELECT_COLUMNS}
            WHERE DATE(ScanTime) BETWEEN DATE(?) AND DATE(?)
            ORDER BY Id DESC
            LIMIT ?""",
            bounds + (limit,),
            "query",
        )

    def get_by_month(self, year: int, month: int, limit: int = 1000000) -> List[ScanRecord]:
        try:
            start = datetime.datetime(year, month, 1)
            end = datetime.datetime(year + 1, 1, 1) if month == 12 else datetime.datetime(year, month + 1, 1)
        except ARGUMENT_ERRORS as e:
            self._fail(e, "query")
            return []
        return self._query(
            f"""{SELECT_COLUMNS}
            WHERE ScanTime >= ? AND ScanTime < ?
            ORDER BY ScanTime DESC
            LIMIT ?""",
            (format_scan_time(start), format_scan_time(end), limit),
            "query",
        )

    def search_by_barcode(self, search_text: str, limit: int = 1000) -> List[ScanRecord]:
        """바코드 부분 일치 검색 (대소문자 무시)"""
        return self._query(
            f"""{SELECT_COLUMNS}
            WHERE Barcode LIKE ? ESCAPE '\\'
            ORDER BY ScanTime DESC
            LIMIT ?""",
            (f"%{_escape_like(str(search_text or ''))}%", limit),
            "search",
        )

    def count(self) -> int:
        if not self._ready():
            return 0
        try:
            conn = self._connect()
            try:
                result = conn.execute("SELECT COUNT(*) FROM ScanRecords").fetchone()
            finally:
                conn.close()
            return int(result[0]) if result else 0
        except sqlite3.Error as e:
            self._fail(e, "count")
            return 0

    def delete_old_records(self, days_to_keep: int = 90) -> int:
        """보관 기간이 지난 기록을 삭제하고 삭제된 행 수를 반환합니다."""
        try:
            cutoff = datetime.datetime.now() - datetime.timedelta(days=days_to_keep)
        except ARGUMENT_ERRORS as e:
            self._fail(e, "delete")
            return 0
        outcome = self._execute(
            "DELETE FROM ScanRecords WHERE ScanTime < ?",
            (format_scan_time(cutoff),),
            "delete",
        )
        if outcome is None:
            return 0
        deleted = max(outcome[0], 0)
        if deleted:
            logger.info(f"{days_to_keep}일 이전 기록 {deleted}건 삭제")
        return deleted

    def delete_by_natural_key(self, barcode: str, timestamp_display: str, result: str) -> bool:
        """(Barcode, NgayGio, KetQua)가 같은 기록 중 가장 최근 것 하나만 삭제합니다.

        ScanTime이 같으면 Id가 큰 쪽(나중에 저장된 기록)을 삭제합니다.
        """
        params = (barcode or "", timestamp_display or "", result or "")
        outcome = self._execute(
            """
            DELETE FROM ScanRecords
            WHERE Id = (
                SELECT Id FROM ScanRecords
                WHERE Barcode = ?
                AND NgayGio = ?
                AND KetQua = ?
                ORDER BY ScanTime DESC, Id DESC
                LIMIT 1
            )
            """,
            params,
            "delete",
        )
        return outcome is not None and outcome[0] > 0
