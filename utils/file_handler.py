"""파일 처리 유틸리티 모듈"""

import os
import sys
from typing import Optional


APP_FOLDER_NAME = "Scanner"


def resource_path(relative_path: str) -> str:
    """ PyInstaller로 패키징했을 때의 리소스 경로를 가져옵니다. """
    try:
        base_path = sys._MEIPASS
    except AttributeError:
        # 메인 스크립트의 디렉토리를 기준으로 설정
        base_path = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(base_path, relative_path)


def get_app_data_dir(app_name: str = APP_FOLDER_NAME) -> str:
    """사용자별 애플리케이션 데이터 폴더 경로를 반환합니다. (생성하지 않음)"""
    if sys.platform.startswith('win'):
        base = os.environ.get('APPDATA') or os.path.join(os.path.expanduser('~'), 'AppData', 'Roaming')
    else:
        base = os.environ.get('XDG_DATA_HOME') or os.path.join(os.path.expanduser('~'), '.local', 'share')
    return os.path.join(base, app_name)


def ensure_directory_exists(directory_path: str) -> bool:
    """디렉토리가 없으면 생성합니다."""
    try:
        if not os.path.exists(directory_path):
            os.makedirs(directory_path, exist_ok=True)
        return os.path.isdir(directory_path)
    except OSError as e:
        print(f"디렉토리 생성 실패: {e}")
        return False


def get_safe_filename(filename: str) -> str:
    """파일명에서 안전하지 않은 문자를 제거합니다."""
    import re
    # 파일명에 사용할 수 없는 문자들을 언더스코어로 대체
    safe_name = re.sub(r'[<>:"/\\|?*]', '_', filename)
    return safe_name.strip()


def resolve_output_path(folder: Optional[str], filename: str) -> str:
    """내보내기 파일의 전체 경로를 만듭니다. 폴더가 없으면 현재 작업 폴더를 사용합니다."""
    safe_name = get_safe_filename(filename)
    if not folder:
        return os.path.abspath(safe_name)
    ensure_directory_exists(folder)
    return os.path.join(folder, safe_name)
