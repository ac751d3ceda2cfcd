"""
Upload parsers module.
"""

from parsers.csv_parser import (
    parse_csv,
    parse_excel,
    parse_upload,
    CsvParseResult,
    CsvRow,
    SAMPLE_CSV,
    SAMPLE_CSV_FILENAME,
)

__all__ = [
    "parse_csv",
    "parse_excel",
    "parse_upload",
    "CsvParseResult",
    "CsvRow",
    "SAMPLE_CSV",
    "SAMPLE_CSV_FILENAME",
]
