import datetime
import logging
import os
import sys
from typing import Iterable, List, Optional

from core.classifier import ScanClassifier
from core.model_registry import ModelRegistry
from core.models import ClassificationResult, ScanRecord, ScanResult, ScanSession
from core.scan_store import ScanStore
from utils.alerts import DuplicateAlertSink
from utils.config_manager import ConfigManager
from utils.exceptions import ExportError, ValidationError
from utils.exporter import export_records, month_file_name, month_sheet_name
from utils.file_handler import get_app_data_dir, resolve_output_path, resource_path
from utils.logger import EventLogger, setup_logging


logger = logging.getLogger(__name__)


# #####################################################################
# # 스캔 작업 프로그램
# #####################################################################

class ScannerProgram:
    """바코드 검증 작업을 처리하는 메인 클래스입니다.

    화면 없이 동작하며, 입력 이벤트(바코드, STT 시작값, 작업 Ca)를 받아
    분류 -> 저장 -> 작업 목록 갱신 순서로 처리합니다.
    """

    EVENT_BY_RESULT = {
        ScanResult.OK: 'SCAN_OK',
        ScanResult.DUPLICATE: 'SCAN_FAIL_DUPLICATE',
        ScanResult.INVALID: 'SCAN_FAIL_MODEL',
    }

    def __init__(self, config: ConfigManager, store: Optional[ScanStore] = None,
                 registry: Optional[ModelRegistry] = None,
                 alert_sink: Optional[DuplicateAlertSink] = None,
                 event_logger: Optional[EventLogger] = None):
        self.config = config
        self.store = store or ScanStore(self._database_path())
        self.store.initialize()

        self.registry = registry if registry is not None else ModelRegistry()
        if registry is None:
            models_file = self.config.resolve_path('models.file', 'models.csv')
            self.registry.load_from_csv(models_file)

        self.classifier = ScanClassifier(self.registry)
        self.alert_sink = alert_sink
        if self.alert_sink is not None:
            self.classifier.add_listener(self.alert_sink.handle)

        self.event_logger = event_logger
        self.session = ScanSession()
        self.records: List[ScanRecord] = []

    def _database_path(self) -> str:
        folder = self.config.get('database.folder') or get_app_data_dir()
        file_name = self.config.get('database.file_name', ScanStore.DEFAULT_FILE_NAME)
        return os.path.join(os.path.expanduser(folder), file_name)

    def _log_event(self, event_type: str, detail: Optional[dict] = None, shift: str = ""):
        if self.event_logger is not None:
            self.event_logger.log_event(event_type, detail, shift=shift)

    # ----- 입력 검증 -----

    def validate_start_value(self, start_text) -> int:
        if isinstance(start_text, int):
            return start_text
        try:
            return int(str(start_text).strip())
        except (TypeError, ValueError):
            raise ValidationError("STT 시작값은 정수여야 합니다.")

    def validate_shift(self, shift: Optional[str]) -> str:
        shift = (shift or "").strip()
        if not shift and self.config.get('scanning.require_shift', True):
            raise ValidationError("스캔 전에 작업 Ca를 선택해주세요.")
        shifts = self.config.get('scanning.shifts') or []
        if shift and shifts and shift not in shifts:
            raise ValidationError(f"등록되지 않은 작업 Ca입니다: {shift} (가능: {', '.join(shifts)})")
        return shift

    # ----- 스캔 처리 -----

    def process_scan(self, raw_barcode: Optional[str], start_text, shift: Optional[str]) -> Optional[ScanRecord]:
        start = self.validate_start_value(start_text)
        shift = self.validate_shift(shift)

        classification = self.classifier.classify(raw_barcode, self.session, start)
        if classification is None:
            return None

        record = self._build_record(classification, shift)
        if self.store.save(record) is None:
            logger.warning(f"스캔 기록 저장 실패: {record.barcode}")

        self.session.add_to_working_set(record.barcode)
        self.records.insert(0, record)
        self._log_event(self.EVENT_BY_RESULT[classification.result], detail={
            'barcode': record.barcode,
            'stt': record.sequence_number,
            'model': classification.model.code if classification.model else None,
        }, shift=shift)
        return record

    def _build_record(self, classification: ClassificationResult, shift: str) -> ScanRecord:
        now = datetime.datetime.now()
        display_format = self.config.get('scanning.timestamp_format', '%d/%m/%Y %H:%M')
        return ScanRecord(
            sequence_number=classification.sequence_number,
            barcode=classification.barcode,
            timestamp_display=now.strftime(display_format),
            result=classification.result.value,
            shift=shift,
            scan_time=now,
        )

    # ----- 목록 / 조회 -----

    def _show_records(self, records: List[ScanRecord]):
        self.records = list(records)
        self.session.replace_working_set([r.barcode for r in self.records])

    def load_recent(self) -> List[ScanRecord]:
        """저장된 최근 기록을 작업 목록으로 불러옵니다. (시작 시 호출)"""
        limit = self.config.get('database.recent_limit', 10000)
        records = self.store.get_recent(limit)
        self._show_records(records)
        self._log_event('RECORDS_LOADED', detail={'count': len(records)})
        return records

    def search(self, search_text: Optional[str]) -> List[ScanRecord]:
        search_text = (search_text or "").strip()
        if not search_text:
            raise ValidationError("검색할 바코드를 입력해주세요.")
        limit = self.config.get('database.search_limit', 1000)
        records = self.store.search_by_barcode(search_text, limit)
        self._show_records(records)
        return records

    def delete_records(self, records: Iterable[ScanRecord]) -> int:
        """선택한 행을 DB와 작업 목록에서 삭제합니다. DB에서 삭제된 건수를 반환합니다."""
        deleted_count = 0
        for record in list(records):
            if self.store.delete_by_natural_key(record.barcode, record.timestamp_display, record.result):
                deleted_count += 1
            if record in self.records:
                self.records.remove(record)
            self.session.remove_from_working_set(record.barcode)
        if deleted_count:
            self._log_event('RECORDS_DELETED', detail={'count': deleted_count})
        return deleted_count

    def prune_old_records(self, days_to_keep: Optional[int] = None) -> int:
        if days_to_keep is None:
            days_to_keep = self.config.get('database.retention_days', 90)
        deleted = self.store.delete_old_records(days_to_keep)
        self._log_event('RECORDS_PRUNED', detail={'days_to_keep': days_to_keep, 'count': deleted})
        return deleted

    def reset_session(self):
        self.session = ScanSession()
        self.records = []

    def title(self) -> str:
        return f"Scanner - Tổng số record trong database: {self.store.count():,}"

    # ----- 내보내기 -----

    def export_month(self, year: int, month: int, path: Optional[str] = None) -> Optional[str]:
        """해당 월의 기록을 엑셀로 저장합니다. 기록이 없으면 None."""
        records = self.store.get_by_month(year, month)
        if not records:
            return None
        if path is None:
            path = resolve_output_path(self.config.get('export.folder'), month_file_name(year, month))
        export_records(records, path, month_sheet_name(year, month))
        self._log_event('MONTH_EXPORTED', detail={'year': year, 'month': month, 'count': len(records), 'path': path})
        return path

    def export_working_set(self, path: str) -> str:
        export_records(self.records, path, "Scans")
        self._log_event('LIST_EXPORTED', detail={'count': len(self.records), 'path': path})
        return path

    def close(self):
        if self.alert_sink is not None:
            self.alert_sink.stop()
        if self.event_logger is not None:
            self.event_logger.stop_logger()


# #####################################################################
# # 콘솔 실행
# #####################################################################

def _parse_month(text: str):
    year_text, _, month_text = text.strip().partition('-')
    return int(year_text), int(month_text)


def handle_command(program: ScannerProgram, line: str) -> bool:
    """':'로 시작하는 명령을 처리합니다. 종료 명령이면 False."""
    command, _, argument = line[1:].strip().partition(' ')
    command = command.lower()
    if command in ('quit', 'exit', 'q'):
        return False
    if command == 'load':
        records = program.load_recent()
        print(f"최근 기록 {len(records)}건을 불러왔습니다. {program.title()}")
    elif command == 'search':
        records = program.search(argument)
        if not records:
            print(f"'{argument}'를 포함하는 바코드가 없습니다.")
        for record in records:
            print(" | ".join(record.to_row()))
    elif command == 'export':
        year, month = _parse_month(argument)
        path = program.export_month(year, month)
        print(f"저장 완료: {path}" if path else f"{month:02d}/{year} 데이터가 없습니다.")
    elif command == 'prune':
        days = int(argument) if argument.strip() else None
        print(f"{program.prune_old_records(days)}건 삭제")
    elif command == 'reset':
        program.reset_session()
        print("세션을 초기화했습니다.")
    else:
        print("명령: :load, :search TEXT, :export YYYY-MM, :prune [DAYS], :reset, :quit")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    config = ConfigManager()

    if config.get('logging.enabled', True):
        setup_logging(
            config.resolve_path('logging.app_log_file', 'scanner.log'),
            max_bytes=config.get('logging.max_log_size', 1048576),
            backups=config.get('logging.backups', 3),
        )
    event_logger = None
    if config.get('logging.enabled', True):
        event_logger = EventLogger(config.resolve_path('logging.event_log_file', 'scan_events.csv'))

    alert_sink = DuplicateAlertSink(
        sound_file=resource_path(config.get('alert.sound_file', 'assets/error.wav')),
        sound_enabled=config.get('alert.sound_enabled', True),
        signal_light_url=config.get('alert.signal_light_url', ''),
        timeout=config.get('alert.timeout', 3),
    )
    program = ScannerProgram(config, alert_sink=alert_sink, event_logger=event_logger)

    start_text = argv[0] if len(argv) > 0 else str(config.get('scanning.default_start', 1))
    shift = argv[1] if len(argv) > 1 else ""
    program.load_recent()
    print(program.title())

    try:
        for line in sys.stdin:
            line = line.rstrip('\r\n')
            try:
                if line.startswith(':'):
                    if not handle_command(program, line):
                        break
                    continue
                record = program.process_scan(line, start_text, shift)
                if record is not None:
                    print(" | ".join(record.to_row()))
            except (ValidationError, ExportError, ValueError) as e:
                print(f"오류: {e}")
    except KeyboardInterrupt:
        pass
    finally:
        program.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
