"""통합 테스트 - 스캔 프로그램 전체 흐름"""

import datetime
import io
import os
import shutil
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import MagicMock

# 상위 디렉토리의 모듈들을 import 하기 위해 경로 추가
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Barcode_scanner import ScannerProgram, handle_command
from core.model_registry import ModelRegistry
from core.models import Model, ScanRecord, ScanResult
from utils.config_manager import ConfigManager
from utils.exceptions import ValidationError
from utils.logger import EventLogger


class TestScannerProgram(unittest.TestCase):
    """ScannerProgram 스캔/저장/조회 흐름 테스트"""

    def setUp(self):
        """테스트 시작 전 설정"""
        self.temp_dir = tempfile.mkdtemp()
        self.config = ConfigManager("config.json", config_dir=self.temp_dir)
        self.config.set('database.folder', os.path.join(self.temp_dir, "db"))
        self.config.set('export.folder', os.path.join(self.temp_dir, "exports"))
        self.registry = ModelRegistry([Model(code="ABC")])
        self.alert_sink = MagicMock()
        self.program = ScannerProgram(self.config, registry=self.registry, alert_sink=self.alert_sink)

    def tearDown(self):
        """테스트 종료 후 정리"""
        self.program.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_store_is_created_in_configured_folder(self):
        """설정한 폴더에 DB 생성"""
        self.assertTrue(self.program.store.is_available)
        self.assertTrue(os.path.exists(os.path.join(self.temp_dir, "db", "scans.db")))

    def test_scan_sequence_is_saved(self):
        """OK -> 중복 -> 모델 불일치 흐름과 저장"""
        first = self.program.process_scan("ABC123", "100", "Ca 1")
        second = self.program.process_scan("abc123", "100", "Ca 1")
        third = self.program.process_scan("ZZZ999", "100", "Ca 1")

        self.assertEqual((first.result, first.sequence_number), (ScanResult.OK.value, 100))
        self.assertEqual((second.result, second.sequence_number), (ScanResult.DUPLICATE.value, 101))
        self.assertEqual((third.result, third.sequence_number), (ScanResult.INVALID.value, 102))

        self.assertEqual(self.program.store.count(), 3)
        stored = self.program.store.get_recent(10)
        self.assertEqual([r.barcode for r in stored], ["ZZZ999", "abc123", "ABC123"])
        self.assertEqual(stored[0].shift, "Ca 1")
        self.assertEqual([r.barcode for r in self.program.records], ["ZZZ999", "abc123", "ABC123"])
        self.alert_sink.handle.assert_called_once()

    def test_saved_record_is_first_in_recent(self):
        """저장 직후 최근 목록 맨 앞"""
        for i in range(5):
            self.program.process_scan(f"ABC{i}", 1, "Ca 2")
        record = self.program.process_scan("ABC999", 1, "Ca 2")
        self.assertEqual(self.program.store.get_recent(3)[0].id, record.id)

    def test_invalid_start_value_is_rejected(self):
        """STT 시작값이 정수가 아니면 거부, 기록 없음"""
        for start in ("", "abc", "1.5", None):
            with self.assertRaises(ValidationError):
                self.program.process_scan("ABC123", start, "Ca 1")
        self.assertEqual(self.program.store.count(), 0)
        self.assertEqual(self.program.session.scanned_barcodes, set())

    def test_missing_shift_is_rejected_when_required(self):
        """작업 Ca 미선택 시 거부"""
        with self.assertRaises(ValidationError):
            self.program.process_scan("ABC123", "1", "  ")
        self.assertEqual(self.program.store.count(), 0)

    def test_unknown_shift_is_rejected(self):
        """설정에 없는 작업 Ca는 거부"""
        with self.assertRaises(ValidationError):
            self.program.process_scan("ABC123", "1", "Ca 9")
        self.assertEqual(self.program.store.count(), 0)

        self.config.set('scanning.shifts', [])
        self.assertEqual(self.program.process_scan("ABC123", "1", "Ca 9").shift, "Ca 9")

    def test_shift_optional_when_not_required(self):
        """설정으로 Ca 없이 스캔 허용"""
        self.config.set('scanning.require_shift', False)
        record = self.program.process_scan("ABC123", "1", None)
        self.assertEqual(record.shift, "")
        self.assertEqual(self.program.store.get_recent(1)[0].shift, "")

    def test_empty_barcode_produces_no_record(self):
        """빈 바코드는 기록하지 않음"""
        self.assertIsNone(self.program.process_scan("   ", "1", "Ca 1"))
        self.assertEqual(self.program.store.count(), 0)
        self.assertEqual(self.program.session.working_set, [])

    def test_timestamp_display_uses_configured_format(self):
        """표시용 시간 형식"""
        self.config.set('scanning.timestamp_format', '%Y/%m/%d')
        record = self.program.process_scan("ABC123", "1", "Ca 1")
        self.assertEqual(record.timestamp_display, datetime.datetime.now().strftime('%Y/%m/%d'))

    def test_load_recent_feeds_duplicate_check(self):
        """불러온 기록에 있는 바코드는 중복 처리, STT 이어짐"""
        self.program.process_scan("ABC123", "1", "Ca 1")
        self.program.process_scan("ABC124", "1", "Ca 1")

        restarted = ScannerProgram(self.config, registry=self.registry)
        loaded = restarted.load_recent()
        self.assertEqual(len(loaded), 2)
        self.assertEqual(restarted.session.working_set_size, 2)

        record = restarted.process_scan("abc124", "1", "Ca 1")
        self.assertEqual(record.result, ScanResult.DUPLICATE.value)
        self.assertEqual(record.sequence_number, 3)

    def test_load_recent_respects_limit(self):
        """최근 기록 개수 제한"""
        for i in range(4):
            self.program.process_scan(f"ABC{i}", "1", "Ca 1")
        self.config.set('database.recent_limit', 2)
        self.assertEqual([r.barcode for r in self.program.load_recent()], ["ABC3", "ABC2"])

    def test_delete_records(self):
        """선택 행 삭제 시 DB와 목록에서 제거"""
        self.program.process_scan("ABC123", "1", "Ca 1")
        duplicate = self.program.process_scan("ABC123", "1", "Ca 1")

        deleted = self.program.delete_records([duplicate])

        self.assertEqual(deleted, 1)
        self.assertEqual(self.program.store.count(), 1)
        self.assertEqual(self.program.store.get_recent(1)[0].result, ScanResult.OK.value)
        self.assertEqual(self.program.session.working_set, ["ABC123"])
        self.assertEqual(len(self.program.records), 1)

    def test_delete_unknown_record_returns_zero(self):
        """DB에 없는 행 삭제"""
        ghost = ScanRecord(sequence_number=1, barcode="NOPE", timestamp_display="x", result="OK")
        self.assertEqual(self.program.delete_records([ghost]), 0)

    def test_search(self):
        """바코드 검색은 목록을 검색 결과로 교체"""
        self.program.process_scan("ABC123", "1", "Ca 1")
        self.program.process_scan("ZZZ999", "1", "Ca 1")

        results = self.program.search("abc")
        self.assertEqual([r.barcode for r in results], ["ABC123"])
        self.assertEqual(self.program.session.working_set, ["ABC123"])

        with self.assertRaises(ValidationError):
            self.program.search("  ")

    def test_export_month(self):
        """월별 엑셀 내보내기"""
        self.assertIsNone(self.program.export_month(2024, 3))

        self.program.store.save(ScanRecord(sequence_number=1, barcode="ABC123", timestamp_display="01/03/2024 08:00",
                                           result="OK", shift="Ca 1",
                                           scan_time=datetime.datetime(2024, 3, 1, 8, 0, 0)))
        path = self.program.export_month(2024, 3)
        self.assertEqual(os.path.basename(path), "ScanData_2024_03.xlsx")
        self.assertTrue(os.path.exists(path))

        custom = os.path.join(self.temp_dir, "march.xlsx")
        self.assertEqual(self.program.export_month(2024, 3, custom), custom)

    def test_export_working_set_csv(self):
        """현재 목록 CSV 내보내기"""
        self.program.process_scan("ABC123", "1", "Ca 1")
        path = self.program.export_working_set(os.path.join(self.temp_dir, "list.csv"))
        with open(path, 'r', encoding='utf-8-sig') as f:
            lines = f.read().splitlines()
        self.assertEqual(len(lines), 2)
        self.assertIn("ABC123", lines[1])

    def test_prune_uses_configured_retention(self):
        """보관 기간 설정으로 오래된 기록 삭제"""
        old = datetime.datetime.now() - datetime.timedelta(days=40)
        self.program.store.save(ScanRecord(sequence_number=1, barcode="OLD", scan_time=old))
        self.program.process_scan("ABC123", "1", "Ca 1")

        self.assertEqual(self.program.prune_old_records(), 0)
        self.config.set('database.retention_days', 30)
        self.assertEqual(self.program.prune_old_records(), 1)
        self.assertEqual(self.program.store.count(), 1)

    def test_title_and_reset(self):
        """제목 표시 및 세션 초기화"""
        self.program.process_scan("ABC123", "1", "Ca 1")
        self.assertEqual(self.program.title(), "Scanner - Tổng số record trong database: 1")

        self.program.reset_session()
        self.assertEqual(self.program.session.working_set, [])
        record = self.program.process_scan("ABC123", "1", "Ca 1")
        self.assertEqual(record.result, ScanResult.OK.value)

    def test_degraded_store_keeps_scanning(self):
        """DB를 쓸 수 없어도 스캔은 계속"""
        blocker = os.path.join(self.temp_dir, "blocker")
        with open(blocker, 'w') as f:
            f.write("x")
        self.config.set('database.folder', blocker)
        program = ScannerProgram(self.config, registry=self.registry)

        self.assertFalse(program.store.is_available)
        record = program.process_scan("ABC123", "1", "Ca 1")
        self.assertEqual(record.result, ScanResult.OK.value)
        self.assertIsNone(record.id)
        self.assertEqual(program.load_recent(), [])
        self.assertEqual(program.title(), "Scanner - Tổng số record trong database: 0")

    def test_models_loaded_from_configured_file(self):
        """설정 파일의 모델 CSV 로드"""
        with open(os.path.join(self.temp_dir, "models.csv"), 'w', encoding='utf-8-sig') as f:
            f.write("Model Code,Model Name,Pattern\nQX7,Model Q,\n")
        program = ScannerProgram(self.config)
        self.assertEqual([m.code for m in program.registry.models], ["QX7"])
        self.assertEqual(program.process_scan("qx7-001", "1", "Ca 1").result, ScanResult.OK.value)


class TestCommands(unittest.TestCase):
    """콘솔 명령 처리 테스트"""

    def setUp(self):
        """테스트 시작 전 설정"""
        self.temp_dir = tempfile.mkdtemp()
        config = ConfigManager("config.json", config_dir=self.temp_dir)
        config.set('database.folder', self.temp_dir)
        config.set('export.folder', self.temp_dir)
        self.program = ScannerProgram(config, registry=ModelRegistry([Model(code="ABC")]))

    def tearDown(self):
        """테스트 종료 후 정리"""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _run(self, line):
        output = io.StringIO()
        with redirect_stdout(output):
            keep_running = handle_command(self.program, line)
        return keep_running, output.getvalue()

    def test_quit(self):
        self.assertFalse(self._run(":quit")[0])

    def test_search_command(self):
        self.program.process_scan("ABC123", "1", "Ca 1")
        keep_running, output = self._run(":search abc")
        self.assertTrue(keep_running)
        self.assertIn("ABC123", output)

    def test_export_command_without_data(self):
        keep_running, output = self._run(":export 2024-03")
        self.assertTrue(keep_running)
        self.assertIn("03/2024", output)

    def test_unknown_command_prints_help(self):
        self.assertIn(":search", self._run(":help")[1])


class TestEventLogger(unittest.TestCase):
    """CSV 이벤트 로그 테스트"""

    def setUp(self):
        """테스트 시작 전 설정"""
        self.temp_dir = tempfile.mkdtemp()
        self.log_path = os.path.join(self.temp_dir, "scan_events.csv")
        self.event_logger = EventLogger(self.log_path)

    def tearDown(self):
        """테스트 종료 후 정리"""
        self.event_logger.stop_logger()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_scan_events_are_written(self):
        """스캔 이벤트 기록 및 오늘 로그 조회"""
        config = ConfigManager("config.json", config_dir=self.temp_dir)
        config.set('database.folder', self.temp_dir)
        program = ScannerProgram(config, registry=ModelRegistry([Model(code="ABC")]),
                                 event_logger=self.event_logger)
        program.process_scan("ABC123", "1", "Ca 3")
        program.process_scan("ABC123", "1", "Ca 3")
        program.process_scan("ZZZ999", "1", "Ca 3")
        self.event_logger.flush()

        logs = self.event_logger.get_todays_logs()
        self.assertEqual([log['event'] for log in logs], ['SCAN_OK', 'SCAN_FAIL_DUPLICATE', 'SCAN_FAIL_MODEL'])
        self.assertEqual(logs[0]['shift'], "Ca 3")
        self.assertEqual(logs[0]['detail']['barcode'], "ABC123")
        self.assertEqual(logs[0]['detail']['model'], "ABC")
        self.assertIsNone(logs[2]['detail']['model'])

    def test_no_log_file_returns_empty(self):
        """로그 파일이 없으면 빈 목록"""
        self.assertEqual(self.event_logger.get_todays_logs(), [])


if __name__ == '__main__':
    unittest.main()
