"""
Export service for transaction data.

Provides functionality to export a user's transactions to XLSX and CSV formats.
"""

import csv
import io
from datetime import date, datetime, time
from enum import Enum
from typing import Optional, cast

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from castar.db.models import Transaction
from castar.db.repository import LocalStore
from castar.models.dto import TransactionFilters
from castar.models.types import TransactionType

from .periods import from_ms, to_ms

HEADERS = [
    "ID",
    "Date",
    "Time",
    "Type",
    "Amount",
    "Currency",
    "Category",
    "Account",
    "Description",
]

TYPE_FILLS = {
    TransactionType.INCOME: "C6EFCE",
    TransactionType.EXPENSE: "FFC7CE",
    TransactionType.TRANSFER: "FFEB9C",
}


class ExportFormat(str, Enum):
    """Supported export formats."""

    CSV = "csv"
    XLSX = "xlsx"


class ExportService:
    """Service for exporting transactions to various formats."""

    def __init__(self, store: LocalStore):
        """
        Initialize the export service.

        Args:
            store: Local store with all repositories
        """
        self.store = store

    def export(
        self,
        user_id: str,
        format: ExportFormat,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> io.BytesIO:
        if ExportFormat(format) is ExportFormat.CSV:
            return self.export_to_csv(user_id, start_date, end_date)
        return self.export_to_xlsx(user_id, start_date, end_date)

    def export_to_csv(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> io.BytesIO:
        """
        Export transactions to CSV format.

        Args:
            user_id: Owner of the transactions
            start_date: Optional first day to include
            end_date: Optional last day to include

        Returns:
            BytesIO buffer containing the CSV data
        """
        buffer = io.BytesIO()
        text_buffer = io.StringIO()

        writer = csv.writer(text_buffer)
        writer.writerow(HEADERS)
        for row in self._rows(user_id, start_date, end_date):
            writer.writerow(row)

        buffer.write(text_buffer.getvalue().encode("utf-8-sig"))  # BOM for Excel
        buffer.seek(0)

        return buffer

    def export_to_xlsx(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> io.BytesIO:
        """
        Export transactions to XLSX format with formatting.

        Args:
            user_id: Owner of the transactions
            start_date: Optional first day to include
            end_date: Optional last day to include

        Returns:
            BytesIO buffer containing the XLSX data
        """
        transactions = self._get_transactions(user_id, start_date, end_date)
        rows = self._rows(user_id, start_date, end_date, transactions)

        wb = Workbook()
        ws = cast(Worksheet, wb.active)
        ws.title = "Transactions"

        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(
            start_color="4472C4", end_color="4472C4", fill_type="solid"
        )
        type_fills = {
            transaction_type: PatternFill(
                start_color=color, end_color=color, fill_type="solid"
            )
            for transaction_type, color in TYPE_FILLS.items()
        }

        for col, header in enumerate(HEADERS, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

        for row_idx, (transaction, values) in enumerate(zip(transactions, rows), 2):
            fill = type_fills[transaction.type]
            for col, value in enumerate(values, 1):
                cell = ws.cell(row=row_idx, column=col, value=value)
                cell.fill = fill
            ws.cell(row=row_idx, column=5).number_format = "#,##0.00"

        column_widths = [38, 12, 10, 10, 15, 10, 25, 20, 40]
        for col, width in enumerate(column_widths, 1):
            ws.column_dimensions[get_column_letter(col)].width = width

        ws.freeze_panes = "A2"

        self._add_summary_sheet(wb, transactions)

        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        return buffer

    def _add_summary_sheet(self, wb: Workbook, transactions: list[Transaction]):
        """Add a summary sheet to the workbook."""
        ws = wb.create_sheet(title="Summary")

        header_font = Font(bold=True)
        title_font = Font(bold=True, size=14)

        ws.cell(row=1, column=1, value="Transaction Summary").font = title_font
        ws.cell(
            row=2,
            column=1,
            value=f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}",
        )

        summary_start = 4
        ws.cell(row=summary_start, column=1, value="Type").font = header_font
        ws.cell(row=summary_start, column=2, value="Count").font = header_font
        ws.cell(row=summary_start, column=3, value="Total").font = header_font

        totals = {}
        for offset, transaction_type in enumerate(TransactionType, 1):
            matching = [t for t in transactions if t.type is transaction_type]
            totals[transaction_type] = sum(t.amount for t in matching)
            ws.cell(
                row=summary_start + offset,
                column=1,
                value=transaction_type.value.capitalize(),
            )
            ws.cell(row=summary_start + offset, column=2, value=len(matching))
            ws.cell(
                row=summary_start + offset,
                column=3,
                value=totals[transaction_type],
            )

        net = totals[TransactionType.INCOME] - totals[TransactionType.EXPENSE]
        ws.cell(row=summary_start + 5, column=1, value="Net").font = header_font
        ws.cell(row=summary_start + 5, column=3, value=net)

        for row in range(summary_start + 1, summary_start + 6):
            ws.cell(row=row, column=3).number_format = "#,##0.00"

        ws.column_dimensions["A"].width = 15
        ws.column_dimensions["B"].width = 10
        ws.column_dimensions["C"].width = 18

    def _get_transactions(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Transaction]:
        filters = TransactionFilters()
        if start_date:
            filters.date_from = to_ms(datetime.combine(start_date, time.min))
        if end_date:
            filters.date_to = to_ms(datetime.combine(end_date, time.max))
        return self.store.transactions.find_by_filters(user_id, filters)

    def _rows(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        transactions: Optional[list[Transaction]] = None,
    ) -> list[list]:
        """Flatten transactions into export rows, resolving names."""
        if transactions is None:
            transactions = self._get_transactions(user_id, start_date, end_date)
        categories = {c.id: c.name for c in self.store.categories.find_by_user(user_id)}
        accounts = {
            a.id: a.name
            for a in self.store.accounts.find_by_user(user_id, include_archived=True)
        }

        rows = []
        for transaction in transactions:
            moment = from_ms(transaction.date)
            rows.append(
                [
                    transaction.id,
                    moment.strftime("%Y-%m-%d"),
                    moment.strftime("%H:%M:%S"),
                    transaction.type.value,
                    transaction.amount,
                    transaction.currency,
                    categories.get(transaction.category_id, ""),
                    accounts.get(transaction.account_id, ""),
                    transaction.description or "",
                ]
            )
        return rows

    def get_filename(
        self,
        format: ExportFormat,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> str:
        """
        Generate a filename for the export.

        Args:
            format: Export format
            start_date: Optional start date
            end_date: Optional end date

        Returns:
            Suggested filename
        """
        date_str = datetime.now().strftime("%Y%m%d")

        if start_date and end_date:
            date_range = (
                f"_{start_date.strftime('%Y%m%d')}-{end_date.strftime('%Y%m%d')}"
            )
        else:
            date_range = ""

        return f"castar_transactions_{date_str}{date_range}.{ExportFormat(format).value}"
