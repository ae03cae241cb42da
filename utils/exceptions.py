"""커스텀 예외 클래스들"""


class ScannerError(Exception):
    """스캐너 시스템의 기본 예외 클래스"""
    pass


class ConfigurationError(ScannerError):
    """설정 관련 오류"""
    pass


class StorageError(ScannerError):
    """스캔 기록 저장소 관련 오류"""
    pass


class ValidationError(ScannerError):
    """입력값 검증 관련 오류"""
    pass


class ExportError(ScannerError):
    """엑셀/CSV 내보내기 관련 오류"""
    pass
