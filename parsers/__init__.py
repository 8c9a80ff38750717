"""
Upload, column detection and per-entity row parsers.
"""

from parsers.csv_parser import (
    parse_upload,
    parse_delimited_text,
    parse_spreadsheet,
    serialize_table,
    decode_upload,
    sniff_delimiter,
)
from parsers.column_detector import (
    detect_fields,
    detect_lead_fields,
    score_header,
)

__all__ = [
    "parse_upload",
    "parse_delimited_text",
    "parse_spreadsheet",
    "serialize_table",
    "decode_upload",
    "sniff_delimiter",
    "detect_fields",
    "detect_lead_fields",
    "score_header",
]
