"""중복 바코드 경고 처리 (경고음 + 신호등)"""

import logging
import queue
import threading
from typing import Optional

import pygame
import requests

from core.models import DuplicateAlertEvent


logger = logging.getLogger(__name__)


class DuplicateAlertSink:
    """DuplicateAlertEvent를 받아 별도 스레드에서 경고를 발생시킵니다.

    handle()은 이벤트를 큐에 넣기만 하므로 스캔 처리를 막지 않습니다.
    경고음은 pygame.mixer로 재생하고, signal_light_url이 설정되어 있으면
    신호등 장치에 HTTP GET 요청을 보냅니다.
    """

    def __init__(self, sound_file: Optional[str] = None, sound_enabled: bool = True,
                 signal_light_url: str = "", timeout: float = 3.0, start: bool = True):
        self.sound_file = sound_file
        self.sound_enabled = sound_enabled
        self.signal_light_url = signal_light_url or ""
        self.timeout = timeout
        self.error_sound = None
        self.alert_queue: queue.Queue = queue.Queue()
        self.handled_count = 0
        self._thread: Optional[threading.Thread] = None

        if self.sound_enabled and self.sound_file:
            self._load_sound()
        if start:
            self.start()

    def _load_sound(self):
        try:
            pygame.mixer.init()
            self.error_sound = pygame.mixer.Sound(self.sound_file)
        except (pygame.error, OSError) as e:
            logger.warning(f"경고음 파일을 로드할 수 없습니다: {e}")
            self.error_sound = None

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._alert_worker, daemon=True)
        self._thread.start()

    def handle(self, event: DuplicateAlertEvent):
        """분류기 리스너. 이벤트를 큐에 넣고 바로 반환합니다."""
        self.alert_queue.put(event)

    __call__ = handle

    def _alert_worker(self):
        while True:
            event = self.alert_queue.get()
            if event is None:
                self.alert_queue.task_done()
                break
            try:
                self.fire(event)
            except Exception as e:
                # 경고 한 건이 실패해도 다음 이벤트는 계속 처리
                logger.error(f"중복 경고 처리 오류 ({event.barcode}): {e}")
            finally:
                self.alert_queue.task_done()

    def fire(self, event: DuplicateAlertEvent) -> bool:
        """경고를 즉시 발생시킵니다. 모든 장치가 성공하면 True."""
        ok = True
        if self.error_sound:
            try:
                self.error_sound.play()
            except pygame.error as e:
                logger.error(f"경고음 재생 실패: {e}")
                ok = False
        if self.signal_light_url:
            ok = self._trigger_signal_light(event) and ok
        self.handled_count += 1
        return ok

    def _trigger_signal_light(self, event: DuplicateAlertEvent) -> bool:
        try:
            response = requests.get(
                self.signal_light_url,
                params={'barcode': event.barcode, 'stt': event.sequence_number},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.error(f"신호등 경고 실패 ({event.barcode}): {e}")
            return False

    def wait_idle(self):
        """큐에 쌓인 경고가 모두 처리될 때까지 기다립니다."""
        self.alert_queue.join()

    def stop(self, timeout: float = 2.0):
        if self._thread and self._thread.is_alive():
            self.alert_queue.put(None)
            self._thread.join(timeout=timeout)
        if self.error_sound:
            self.error_sound.stop()
