"""설정 관리 모듈"""

import copy
import json
import logging
import os
import sys
from typing import Any, Dict, Optional

from utils.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "app": {
        "name": "Barcode Scanner",
        "version": "v1.0.0",
        "description": "바코드 모델 검증 시스템"
    },
    "database": {
        "folder": "",
        "file_name": "scans.db",
        "recent_limit": 10000,
        "search_limit": 1000,
        "retention_days": 90
    },
    "scanning": {
        "default_start": 1,
        "require_shift": True,
        "shifts": ["Ca 1", "Ca 2", "Ca 3"],
        "timestamp_format": "%d/%m/%Y %H:%M"
    },
    "models": {
        "file": "models.csv"
    },
    "alert": {
        "sound_enabled": True,
        "sound_file": "assets/error.wav",
        "signal_light_url": "",
        "timeout": 3
    },
    "logging": {
        "enabled": True,
        "event_log_file": "scan_events.csv",
        "app_log_file": "scanner.log",
        "max_log_size": 1048576,
        "backups": 3
    },
    "export": {
        "folder": ""
    }
}


def get_application_path() -> str:
    """실행 파일(또는 스크립트)이 있는 폴더를 반환합니다."""
    if getattr(sys, 'frozen', False):
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class ConfigManager:
    """애플리케이션 설정을 관리하는 클래스"""

    def __init__(self, config_file: str = "config.json", config_dir: Optional[str] = None):
        self.config_file = config_file
        self.config_dir = config_dir or get_application_path()
        self.config = self._load_config()

    @property
    def config_path(self) -> str:
        if os.path.isabs(self.config_file):
            return self.config_file
        return os.path.join(self.config_dir, self.config_file)

    def _load_config(self) -> Dict[str, Any]:
        """설정 파일을 로드합니다. 없는 키는 기본값으로 채웁니다."""
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
                if not isinstance(loaded, dict):
                    raise ConfigurationError(f"설정 파일 형식 오류: {self.config_path}")
                return self._merge_defaults(loaded)
            else:
                # 기본 설정 생성
                return self._create_default_config()
        except (OSError, json.JSONDecodeError, ConfigurationError) as e:
            logger.warning(f"설정 파일 로드 오류: {e}")
            return copy.deepcopy(DEFAULT_CONFIG)

    @staticmethod
    def _merge_defaults(loaded: Dict[str, Any]) -> Dict[str, Any]:
        merged = copy.deepcopy(DEFAULT_CONFIG)
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = values
        return merged

    def _create_default_config(self) -> Dict[str, Any]:
        """기본 설정을 생성합니다."""
        default_config = copy.deepcopy(DEFAULT_CONFIG)
        self.save_config(default_config)
        return default_config

    def get(self, key_path: str, default=None):
        """점 표기법으로 설정값을 가져옵니다. 예: 'database.file_name'"""
        keys = key_path.split('.')
        value = self.config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key_path: str, value):
        """점 표기법으로 설정값을 설정합니다."""
        keys = key_path.split('.')
        config = self.config

        for key in keys[:-1]:
            if key not in config or not isinstance(config[key], dict):
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

    def save_config(self, config_data=None) -> bool:
        """설정을 파일로 저장합니다."""
        data = config_data if config_data is not None else self.config
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.config_path)), exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=4)
            return True
        except OSError as e:
            logger.error(f"설정 파일 저장 오류: {e}")
            return False

    def resolve_path(self, key_path: str, default: str = "") -> str:
        """설정에 저장된 상대 경로를 설정 폴더 기준의 절대 경로로 바꿉니다."""
        value = self.get(key_path, default) or default
        if not value:
            return ""
        value = os.path.expanduser(os.path.expandvars(str(value)))
        if os.path.isabs(value):
            return value
        return os.path.join(self.config_dir, value)
