"""스캔 기록 엑셀/CSV 내보내기"""

import csv
import os
from typing import Iterable, List

import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from core.models import ScanRecord
from utils.exceptions import ExportError


EXPORT_HEADERS = ['STT', 'Barcode', 'Ngày giờ', 'Kết quả', 'Ca', 'Thời gian quét']
HEADER_FILL = PatternFill(start_color='ADD8E6', end_color='ADD8E6', fill_type='solid')


def month_sheet_name(year: int, month: int) -> str:
    return f"Thang {month:02d}-{year}"


def month_file_name(year: int, month: int) -> str:
    return f"ScanData_{year}_{month:02d}.xlsx"


def _record_values(record: ScanRecord) -> List:
    scan_time = record.scan_time.strftime('%Y-%m-%d %H:%M:%S') if record.scan_time else ""
    return [record.sequence_number, record.barcode, record.timestamp_display,
            record.result, record.shift, scan_time]


def records_to_dataframe(records: Iterable[ScanRecord]) -> pd.DataFrame:
    return pd.DataFrame([_record_values(r) for r in records], columns=EXPORT_HEADERS)


def export_records_to_excel(records: Iterable[ScanRecord], path: str, sheet_name: str = "Scans") -> str:
    df = records_to_dataframe(records)
    try:
        with pd.ExcelWriter(path, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            ws = writer.sheets[sheet_name]
            for cell in ws[1]:
                cell.font = Font(bold=True)
                cell.fill = HEADER_FILL
                cell.alignment = Alignment(horizontal='center')
            # 열 너비를 내용 길이에 맞춤
            for idx, column in enumerate(df.columns, start=1):
                longest = max([len(str(column))] + [len(str(v)) for v in df[column].tolist()])
                ws.column_dimensions[get_column_letter(idx)].width = longest + 2
    except (OSError, ValueError) as e:
        raise ExportError(f"엑셀 파일 저장 실패: {e}") from e
    return path


def export_records_to_csv(records: Iterable[ScanRecord], path: str) -> str:
    try:
        with open(path, 'w', newline='', encoding='utf-8-sig') as f:
            writer = csv.writer(f)
            writer.writerow(EXPORT_HEADERS)
            for record in records:
                writer.writerow(_record_values(record))
    except OSError as e:
        raise ExportError(f"CSV 파일 저장 실패: {e}") from e
    return path


def export_records(records: Iterable[ScanRecord], path: str, sheet_name: str = "Scans") -> str:
    """확장자에 따라 xlsx 또는 csv로 저장합니다."""
    extension = os.path.splitext(path)[1].lower()
    if extension == '.xlsx':
        return export_records_to_excel(records, path, sheet_name)
    if extension == '.csv':
        return export_records_to_csv(records, path)
    raise ExportError(f"지원하지 않는 파일 형식입니다: {extension or path}")
