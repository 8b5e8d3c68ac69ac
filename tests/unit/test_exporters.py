"""
Unit tests for the CSV and Excel expense exports
"""

import csv
import io
import json

from openpyxl import load_workbook

from utils.exporters import (expenses_to_csv, expenses_to_excel, CSV_HEADERS,
                             EXCEL_HEADERS, EXCEL_COLUMN_WIDTHS)
from utils.security import CSVSanitizer


def _expense(**overrides):
    expense = {
        'date': '2024-03-05',
        'driver_id': 'd-1',
        'driver_name': 'Ravi Kumar',
        'vehicle_number': 'KA01AB1234',
        'category': 'fuel',
        'amount': 1200,
        'total_revenue': 3500.5,
        'uber_revenue': 2000,
        'rapido_revenue': 1500.5,
        'note': 'CNG refill',
        'receipt_url': None,
        'uber_proof_url': None,
        'rapido_proof_url': None,
    }
    expense.update(overrides)
    return expense


class TestCSVExport:

    def test_header_always_written(self):
        content = expenses_to_csv([])
        assert content == ','.join(f'"{h}"' for h in CSV_HEADERS) + '\n'

    def test_every_cell_quoted_and_money_formatted(self):
        content = expenses_to_csv([_expense()])
        line = content.splitlines()[1]
        assert line == ('"2024-03-05","Ravi Kumar","fuel","1200.00","3500.50",'
                        '"2000.00","1500.50","CNG refill"')

    def test_driver_falls_back_to_id(self):
        content = expenses_to_csv([_expense(driver_name=None)])
        row = list(csv.reader(io.StringIO(content)))[1]
        assert row[1] == 'd-1'

    def test_formula_cells_neutralised(self):
        content = expenses_to_csv([_expense(note='=HYPERLINK("http://evil")')])
        row = list(csv.reader(io.StringIO(content)))[1]
        assert row[7] == '\'=HYPERLINK("http://evil")'

    def test_percent_prefix_escaped_by_writer(self):
        content = expenses_to_csv([_expense(note='%SYSTEMROOT%')])
        row = list(csv.reader(io.StringIO(content)))[1]
        assert row[7].startswith("'")

    def test_sanitizer_prefixes(self):
        for prefix in CSVSanitizer.INJECTION_PREFIXES:
            assert CSVSanitizer.sanitize_csv_cell(f'{prefix}1').startswith("'")
        assert CSVSanitizer.sanitize_csv_cell('plain') == 'plain'
        assert CSVSanitizer.sanitize_csv_cell(None) == ''


class TestExcelExport:

    def _sheet(self, expenses):
        return load_workbook(io.BytesIO(expenses_to_excel(expenses)))['Expenses']

    def test_headers_and_widths(self):
        ws = self._sheet([])
        assert [cell.value for cell in ws[1]] == EXCEL_HEADERS
        assert ws['A1'].font.bold
        assert ws.column_dimensions['A'].width == EXCEL_COLUMN_WIDTHS[0]
        assert ws.column_dimensions['J'].width == EXCEL_COLUMN_WIDTHS[9]

    def test_row_values(self):
        receipts = json.dumps(['https://x/r1.jpg', 'https://x/r2.jpg'])
        ws = self._sheet([_expense(receipt_url=receipts, vehicle_number=None,
                                   uber_proof_url='https://x/u.png')])
        row = [cell.value for cell in ws[2]]
        assert row[1] == 'Ravi Kumar'
        assert row[2] == 'N/A'
        assert row[4] == 1200
        assert row[9] == 'https://x/r1.jpg; https://x/r2.jpg'
        assert row[10] == 'https://x/u.png'

    def test_legacy_single_receipt_url(self):
        ws = self._sheet([_expense(receipt_url='https://x/only.jpg')])
        assert ws['J2'].value == 'https://x/only.jpg'

    def test_text_cells_neutralised(self):
        receipts = json.dumps(['=IMPORTXML("http://evil")', 'https://x/r.jpg'])
        ws = self._sheet([_expense(driver_name='=HYPERLINK("http://evil")',
                                   vehicle_number='=1+1',
                                   note='@SUM(A1)',
                                   receipt_url=receipts,
                                   rapido_proof_url='+cmd')])
        row = [cell.value for cell in ws[2]]
        assert row[1] == '\'=HYPERLINK("http://evil")'
        assert row[2] == "'=1+1"
        assert row[8] == "'@SUM(A1)"
        assert row[9] == '\'=IMPORTXML("http://evil"); https://x/r.jpg'
        assert row[11] == "'+cmd"
        assert ws['B2'].data_type == 's'
