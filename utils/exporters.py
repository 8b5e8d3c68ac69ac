"""
CSV and Excel renderings of expense rows for the admin export download
"""
import io
from typing import Any, Dict, Iterable, List

from defusedcsv import csv
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter

from models import decode_receipt_urls
from utils.security import CSVSanitizer

CSV_HEADERS = [
    'Date',
    'Driver',
    'Category',
    'Amount (₹)',
    'Total Revenue (₹)',
    'Uber Revenue (₹)',
    'Rapido Revenue (₹)',
    'Note',
]

EXCEL_HEADERS = [
    'Date',
    'Driver',
    'Vehicle Number',
    'Category',
    'Amount (₹)',
    'Total Revenue (₹)',
    'Uber Revenue (₹)',
    'Rapido Revenue (₹)',
    'Note',
    'Receipts',
    'Uber Proof',
    'Rapido Proof',
]

EXCEL_COLUMN_WIDTHS = [12, 20, 15, 15, 12, 15, 15, 15, 30, 40, 40, 40]

CSV_MIMETYPE = 'text/csv; charset=utf-8'
XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _money(value: Any) -> str:
    return f"{float(value or 0):.2f}"


def expenses_to_csv(expenses: Iterable[Dict[str, Any]]) -> str:
    """
    Render expense dicts as CSV text.

    The header row is always written. Every cell is quoted and passed
    through CSVSanitizer before the defusedcsv writer, so spreadsheet apps
    never evaluate a cell as a formula.
    """
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(CSV_HEADERS)

    for expense in expenses:
        writer.writerow(CSVSanitizer.sanitize_csv_row([
            expense.get('date'),
            expense.get('driver_name') or expense.get('driver_id') or '',
            expense.get('category'),
            _money(expense.get('amount')),
            _money(expense.get('total_revenue')),
            _money(expense.get('uber_revenue')),
            _money(expense.get('rapido_revenue')),
            expense.get('note') or '',
        ]))

    return output.getvalue()


def _excel_row(expense: Dict[str, Any]) -> List[Any]:
    row = [
        expense.get('date'),
        expense.get('driver_name') or expense.get('driver_id') or 'N/A',
        expense.get('vehicle_number') or 'N/A',
        expense.get('category'),
        float(expense.get('amount') or 0),
        float(expense.get('total_revenue') or 0),
        float(expense.get('uber_revenue') or 0),
        float(expense.get('rapido_revenue') or 0),
        expense.get('note') or '',
        '; '.join(decode_receipt_urls(expense.get('receipt_url'))),
        expense.get('uber_proof_url') or '',
        expense.get('rapido_proof_url') or '',
    ]
    # Text cells are neutralised the same way as in the CSV export
    return [CSVSanitizer.sanitize_csv_cell(value) if isinstance(value, str) else value for value in row]


def expenses_to_excel(expenses: Iterable[Dict[str, Any]]) -> bytes:
    """Render expense dicts as an .xlsx workbook with a single 'Expenses' sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Expenses"

    for col, header in enumerate(EXCEL_HEADERS, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = Font(bold=True)
        cell.fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        cell.alignment = Alignment(horizontal="center")

    for row, expense in enumerate(expenses, 2):
        for col, value in enumerate(_excel_row(expense), 1):
            ws.cell(row=row, column=col, value=value)

    for col, width in enumerate(EXCEL_COLUMN_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
