"""로깅 유틸리티 모듈"""

import csv
import json
import datetime
import logging
import logging.handlers
import os
import queue
import threading
from typing import Dict, Any, Optional, List


LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(log_file: Optional[str] = None, max_bytes: int = 1048576,
                  backups: int = 3, level: int = logging.INFO) -> logging.Logger:
    """애플리케이션 로그를 설정합니다. (파일 로그는 용량 기준으로 회전)"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        try:
            os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max(max_bytes, 1024),
                backupCount=max(backups, 0),
                encoding='utf-8',
            ))
        except OSError as e:
            print(f"로그 파일을 열 수 없습니다: {e}")

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)
    return root


class EventLogger:
    """스캔 이벤트를 CSV 파일에 기록하는 클래스"""

    FIELDNAMES = ['timestamp', 'shift', 'event', 'detail']

    def __init__(self, log_file_path: str):
        self.log_file_path = log_file_path
        self.log_queue: queue.Queue = queue.Queue()
        self.log_writer_running = True
        self._log_thread = self._start_log_writer_thread()

    def _start_log_writer_thread(self) -> threading.Thread:
        """로그 작성 스레드를 시작합니다."""
        log_thread = threading.Thread(target=self._event_log_writer, daemon=True)
        log_thread.start()
        return log_thread

    def _event_log_writer(self):
        """이벤트 로그를 파일에 작성하는 스레드 함수"""
        while self.log_writer_running:
            try:
                log_entry = self.log_queue.get(timeout=1)
            except queue.Empty:
                continue

            if log_entry is None:
                self.log_queue.task_done()
                break

            try:
                file_exists = os.path.exists(self.log_file_path) and os.stat(self.log_file_path).st_size > 0
                with open(self.log_file_path, mode='a', newline='', encoding='utf-8-sig') as csvfile:
                    writer = csv.DictWriter(csvfile, fieldnames=self.FIELDNAMES)
                    if not file_exists:
                        writer.writeheader()
                    writer.writerow(log_entry)
                    csvfile.flush()
            except OSError as e:
                logging.getLogger(__name__).error(f"이벤트 로그 작성 오류: {e}")
            finally:
                self.log_queue.task_done()

    def log_event(self, event_type: str, detail: Optional[Dict] = None, shift: str = ""):
        """이벤트를 로그에 기록합니다."""
        log_entry = {
            'timestamp': datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            'shift': shift or "",
            'event': event_type,
            'detail': json.dumps(detail, ensure_ascii=False) if detail else ""
        }
        self.log_queue.put(log_entry)

    def flush(self):
        """대기 중인 로그가 모두 기록될 때까지 기다립니다."""
        self.log_queue.join()

    def get_todays_logs(self) -> List[Dict[str, Any]]:
        """오늘 날짜의 모든 로그를 반환합니다."""
        today = datetime.date.today().strftime('%Y-%m-%d')
        logs: List[Dict[str, Any]] = []

        if not os.path.exists(self.log_file_path):
            return logs

        try:
            with open(self.log_file_path, mode='r', encoding='utf-8-sig') as csvfile:
                reader = csv.DictReader(csvfile)
                for row in reader:
                    if row['timestamp'].startswith(today):
                        try:
                            detail = json.loads(row['detail']) if row['detail'] else {}
                        except json.JSONDecodeError:
                            continue
                        logs.append({
                            'timestamp': row['timestamp'],
                            'shift': row.get('shift', ''),
                            'event': row['event'],
                            'detail': detail
                        })
            return logs
        except OSError as e:
            logging.getLogger(__name__).error(f"로그 파일 읽기 오류: {e}")
            return logs

    def stop_logger(self, timeout: float = 2.0):
        """로깅을 중지합니다."""
        self.log_queue.put(None)  # 종료 신호
        if self._log_thread.is_alive():
            self._log_thread.join(timeout=timeout)
        self.log_writer_running = False
