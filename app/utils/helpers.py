# EquipTrack - Equipment Inventory and Calibration Tracking
# Copyright (C) 2025 EquipTrack contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


"""Utility helper functions."""

import csv
import io
import re
import secrets
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter


def generate_token(length: int = 32) -> str:
    """Generate a secure random token.

    Args:
        length: Length of the token in bytes (will be URL-safe encoded).

    Returns:
        URL-safe random token string.
    """
    return secrets.token_urlsafe(length)


def sanitize_input(text: Optional[str], max_length: Optional[int] = None) -> str:
    """Sanitize user input by stripping HTML tags and limiting length.

    Args:
        text: Input text to sanitize.
        max_length: Maximum allowed length (truncates if exceeded).

    Returns:
        Sanitized string.
    """
    if text is None:
        return ""

    # Remove HTML tags
    clean = re.sub(r"<[^>]+>", "", str(text))

    # Normalize whitespace
    clean = " ".join(clean.split())

    if max_length and len(clean) > max_length:
        clean = clean[:max_length]

    return clean


def clean_optional(text: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """Sanitize optional text, mapping blank values to None."""
    clean = sanitize_input(text, max_length)
    return clean or None


def is_valid_email(email: str) -> bool:
    """Validate email format."""
    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    return bool(re.match(pattern, email))


def serialize_value(value):
    """Convert a column value into something JSON can hold."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def model_snapshot(obj, exclude: Iterable[str] = ()) -> dict:
    """Capture the column values of a model instance as a plain dict."""
    skip = set(exclude)
    return {
        column.name: serialize_value(getattr(obj, column.key, None))
        for column in obj.__table__.columns
        if column.name not in skip
    }


def generate_csv(headers: List[str], rows: list, filename: str) -> StreamingResponse:
    """Generate a CSV file response."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    writer.writerows(rows)

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def generate_xlsx(
    headers: List[str],
    rows: list,
    filename: str,
    sheet_title: str,
    cell_fills: Optional[Dict[str, Dict[str, str]]] = None,
) -> StreamingResponse:
    """Generate an Excel workbook response.

    Args:
        headers: Column headings, written bold on a grey row.
        rows: Data rows.
        filename: Download file name.
        sheet_title: Worksheet name.
        cell_fills: Optional ``{header: {value: "RRGGBB"}}`` colouring for
            cells of a column whose value matches.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]

    ws.append(headers)
    header_fill = PatternFill(start_color="E0E0E0", end_color="E0E0E0", fill_type="solid")
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = header_fill

    for row in rows:
        ws.append(list(row))

    for header, colours in (cell_fills or {}).items():
        if header not in headers:
            continue
        column = headers.index(header) + 1
        for row_idx in range(2, ws.max_row + 1):
            cell = ws.cell(row=row_idx, column=column)
            colour = colours.get(cell.value)
            if colour:
                cell.fill = PatternFill(start_color=colour, end_color=colour, fill_type="solid")

    for column in ws.columns:
        longest = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
        ws.column_dimensions[get_column_letter(column[0].column)].width = min(longest + 2, 50)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)

    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
