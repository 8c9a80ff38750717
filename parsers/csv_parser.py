"""
Delimited-text and spreadsheet reader for bulk imports.

Turns an uploaded file into a ParsedTable: first non-blank row is the
header, every other non-blank row is a data row, all cells raw text.

Quoted fields may contain the delimiter, newlines and doubled quotes.
"""

import csv
from io import BytesIO, StringIO
from typing import Optional
import structlog

import pandas as pd

from exceptions import MalformedInputError, UnsupportedFileTypeError
from models.imports import ParsedTable

logger = structlog.get_logger(__name__)


DEFAULT_DELIMITER = ","
SNIFF_DELIMITERS = ",;\t|"

TEXT_EXTENSIONS = (".csv", ".tsv", ".txt")
SPREADSHEET_EXTENSIONS = (".xlsx",)

# Tried in order after the caller's encoding
FALLBACK_ENCODINGS = ["utf-8-sig", "cp1252", "latin-1"]


# ===================
# TEXT
# ===================

def decode_upload(content: bytes, encoding: str = "utf-8-sig") -> str:
    """
    Decode uploaded bytes to text.

    Exports from older spreadsheet tools are often cp1252; latin-1 accepts
    any byte sequence so it is the last resort.
    """
    encodings_to_try = list(dict.fromkeys([encoding, *FALLBACK_ENCODINGS]))

    for enc in encodings_to_try:
        try:
            text = content.decode(enc)
            if enc != encoding:
                logger.info("import_file_decoded_with_fallback", encoding=enc)
            return text
        except UnicodeDecodeError:
            continue

    # latin-1 never fails, kept for completeness
    raise MalformedInputError(
        message="File is not readable text",
        details={"encodings_tried": encodings_to_try}
    )


def sniff_delimiter(text: str) -> str:
    """Guess the delimiter from the first lines; falls back to comma."""
    sample = "\n".join(text.splitlines()[:20])
    if not sample:
        return DEFAULT_DELIMITER
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=SNIFF_DELIMITERS)
        return dialect.delimiter
    except csv.Error:
        return DEFAULT_DELIMITER


def _is_blank(row: list[str]) -> bool:
    return all(not cell.strip() for cell in row)


def _build_table(raw_rows: list[list[str]], source: str) -> ParsedTable:
    """Split raw rows into header + data, dropping blank rows."""
    rows = [row for row in raw_rows if not _is_blank(row)]

    if not rows:
        logger.warning("import_file_empty", source=source)
        raise MalformedInputError(
            message="File is empty",
            details={"source": source}
        )

    headers = tuple(cell.strip() for cell in rows[0])
    data_rows = tuple(tuple(row) for row in rows[1:])

    if not data_rows:
        logger.warning("import_file_has_no_data_rows", source=source, header_count=len(headers))
        raise MalformedInputError(
            message="File has a header row but no data rows",
            details={"source": source, "headers": list(headers)}
        )

    return ParsedTable(headers=headers, rows=data_rows)


def parse_delimited_text(text: str, delimiter: str = DEFAULT_DELIMITER) -> ParsedTable:
    """
    Parse delimited text into a ParsedTable.

    Args:
        text: Full file content
        delimiter: Single-character field separator

    Returns:
        ParsedTable with headers and data rows

    Raises:
        MalformedInputError: If the text cannot be tokenized or has no data rows
    """
    if len(delimiter) != 1:
        raise MalformedInputError(
            message="Delimiter must be a single character",
            details={"delimiter": delimiter}
        )

    if text.startswith("\ufeff"):
        text = text[1:]

    reader = csv.reader(
        StringIO(text, newline=""),
        delimiter=delimiter,
        quotechar='"',
        doublequote=True,
    )

    try:
        raw_rows = list(reader)
    except csv.Error as e:
        logger.error("import_csv_tokenize_failed", error=str(e), line=reader.line_num)
        raise MalformedInputError(
            message=f"Could not read file near line {reader.line_num}: {e}",
            details={"line": reader.line_num, "original_error": str(e)}
        )

    table = _build_table(raw_rows, source="text")

    logger.info(
        "import_csv_parsed",
        columns=len(table.headers),
        rows=table.row_count,
        delimiter=delimiter
    )

    return table


def serialize_table(table: ParsedTable, delimiter: str = DEFAULT_DELIMITER) -> str:
    """Write a ParsedTable back to delimited text (header first)."""
    output = StringIO()
    writer = csv.writer(output, delimiter=delimiter, quotechar='"', lineterminator="\n")
    writer.writerow(table.headers)
    writer.writerows(table.rows)
    return output.getvalue()


# ===================
# SPREADSHEETS
# ===================

def parse_spreadsheet(content: bytes) -> ParsedTable:
    """
    Read the first sheet of an .xlsx workbook as text cells.

    Raises:
        MalformedInputError: If the workbook cannot be read or has no data rows
    """
    try:
        df = pd.read_excel(
            BytesIO(content),
            sheet_name=0,
            header=None,
            dtype=str,
            na_filter=False,
            engine="openpyxl",
        )
    except Exception as e:
        logger.error("import_spreadsheet_read_failed", error=str(e), error_type=type(e).__name__)
        raise MalformedInputError(
            message=f"Failed to read spreadsheet: {e}",
            details={"original_error": str(e)}
        )

    raw_rows = [[str(cell) for cell in row] for row in df.itertuples(index=False, name=None)]

    table = _build_table(raw_rows, source="spreadsheet")

    logger.info("import_spreadsheet_parsed", columns=len(table.headers), rows=table.row_count)

    return table


# ===================
# DISPATCH
# ===================

def parse_upload(
    content: bytes,
    filename: Optional[str] = None,
    delimiter: Optional[str] = None,
) -> ParsedTable:
    """
    Parse an uploaded file by extension.

    Args:
        content: Raw upload bytes
        filename: Original filename (decides text vs spreadsheet)
        delimiter: Explicit delimiter; sniffed when None (tab for .tsv)

    Raises:
        UnsupportedFileTypeError: Unknown extension
        MalformedInputError: Unreadable or empty file
    """
    lower_name = (filename or "").lower()

    logger.info("parsing_import_file", filename=filename, size_bytes=len(content))

    if lower_name.endswith(SPREADSHEET_EXTENSIONS):
        return parse_spreadsheet(content)

    if filename and not lower_name.endswith(TEXT_EXTENSIONS):
        raise UnsupportedFileTypeError(filename)

    text = decode_upload(content)

    if delimiter is None:
        delimiter = "\t" if lower_name.endswith(".tsv") else sniff_delimiter(text)

    return parse_delimited_text(text, delimiter=delimiter)
