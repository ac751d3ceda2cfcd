"""
CSV/Excel parser for app import uploads.

First line holds the headers; every cell is read as a trimmed string and
missing cells become "". Quoted fields containing commas are honoured
(pandas CSV reader), unlike a plain split on commas.
"""

from dataclasses import dataclass, field
from io import BytesIO, StringIO
from pathlib import Path
from typing import Optional, Union
import structlog

import pandas as pd

from exceptions import CsvParseError

logger = structlog.get_logger(__name__)

EXCEL_EXTENSIONS = {".xlsx", ".xlsm"}


@dataclass
class CsvRow:
    """One data row, keyed by header. cells is edited in place by inline correction."""
    original_index: int
    cells: dict[str, str]


@dataclass
class CsvParseResult:
    """Result of parsing an upload."""
    headers: list[str] = field(default_factory=list)
    rows: list[CsvRow] = field(default_factory=list)
    filename: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)


def _decode(content: bytes) -> str:
    """Decode upload bytes, tolerating a BOM and legacy encodings."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("csv_not_utf8_falling_back_to_latin1")
        return content.decode("latin-1")


def _frame_to_result(
    df: pd.DataFrame,
    filename: Optional[str],
    drop_empty_rows: bool = False
) -> CsvParseResult:
    """Convert a string-typed DataFrame to headers and rows."""
    headers = [str(column).strip() for column in df.columns]
    df.columns = headers
    df = df.fillna("")

    rows = []
    for record in df.to_dict(orient="records"):
        cells = {header: str(record.get(header, "")).strip() for header in headers}
        if drop_empty_rows and not any(cells.values()):
            continue
        rows.append(CsvRow(original_index=len(rows), cells=cells))

    logger.info(
        "upload_parsed",
        filename=filename,
        headers=len(headers),
        rows=len(rows)
    )

    return CsvParseResult(headers=headers, rows=rows, filename=filename)


def parse_csv(
    content: Union[bytes, str],
    filename: Optional[str] = None
) -> CsvParseResult:
    """
    Parse comma-delimited text.

    Args:
        content: Raw file bytes or already-decoded text
        filename: Original filename, for logging only

    Returns:
        CsvParseResult with headers and rows in file order

    Raises:
        CsvParseError: If the file is empty or malformed
    """
    text = _decode(content) if isinstance(content, bytes) else content

    if not text.strip():
        raise CsvParseError("File is empty", details={"filename": filename})

    try:
        df = pd.read_csv(
            StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
            index_col=False,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.error("csv_read_failed", filename=filename, error=str(e))
        raise CsvParseError(
            message="Failed to read CSV file",
            details={"filename": filename, "original_error": str(e)}
        ) from e

    return _frame_to_result(df, filename)


def parse_excel(
    content: bytes,
    filename: Optional[str] = None
) -> CsvParseResult:
    """
    Parse the first sheet of an Excel workbook with the same rules as CSV.

    Raises:
        CsvParseError: If the workbook cannot be read
    """
    try:
        df = pd.read_excel(
            BytesIO(content),
            dtype=str,
            keep_default_na=False,
            engine="openpyxl",
        )
    except Exception as e:
        logger.error("excel_read_failed", filename=filename, error=str(e))
        raise CsvParseError(
            message="Failed to read Excel file",
            details={"filename": filename, "original_error": str(e)}
        ) from e

    # Formatted-but-empty rows at the bottom of a sheet are common
    return _frame_to_result(df, filename, drop_empty_rows=True)


def parse_upload(content: bytes, filename: Optional[str] = None) -> CsvParseResult:
    """
    Parse an uploaded file, choosing the reader by extension.

    .xlsx/.xlsm go through openpyxl; anything else is read as CSV.
    """
    extension = Path(filename or "").suffix.lower()
    if extension in EXCEL_EXTENSIONS:
        return parse_excel(content, filename)
    return parse_csv(content, filename)


# Downloadable example matching the expected column layout
SAMPLE_CSV_FILENAME = "test_apps.csv"
SAMPLE_CSV = """App Name,App ID,Developer,Category,Company Website,Company LinkedIn URL,Sensor Tower ID,Google Play ID,Developer ID
Deepstash: Smarter Every Day!,1445023295,Deepstash,Education,https://deepstash.com/,https://www.linkedin.com/company/deepstash/,12345,com.deepstash.app,20600008385014
LogicLike: Kids Learning Games,1565113819,LogicLike,Education,https://logiclike.com,https://www.linkedin.com/company/logiclike/,67890,com.logiclike.app,388641449
Moshi Kids: Sleep Relax Play,1306719339,Mind Candy,Education,https://www.moshikids.com/,https://www.linkedin.com/company/moshi-kids/,54321,com.moshikids.app,1536338699
Smart Tales: Play & Learn 2-11,1452196861,Marshmallow Games,Education,https://www.marshmallow-games.com/,https://www.linkedin.com/company/marshmallow-games/,98765,com.marshmallow.smarttales,1464656258
Vocal Image: AI Voice Coach,1535324205,Vocal Image,Education,https://www.vocalimage.app/,https://www.linkedin.com/company/vocal-image/,24680,com.vocalimage.app,823443086
"""
