"""
Report exporter: lays out resolved notes and products as tabular sheets.

Sheets hold plain cell values (str, int, Decimal, datetime); rendering them
to a spreadsheet file is left to the caller. Note figures always come from
the stored line snapshots, never from the live product price.
"""
import csv
import io
from dataclasses import dataclass, field
from typing import Any, Iterable, List

from delivery_notes.models import Note, Product
from delivery_notes.utils.formatters import cell_text


@dataclass
class Sheet:
    """A named grid of cells, row by row."""
    name: str
    rows: List[List[Any]] = field(default_factory=list)

    def append(self, *cells):
        self.rows.append(list(cells))

    def to_text(self, separator: str = '\t') -> str:
        """
        Delimited text of the sheet, one record per row.

        Cells holding the separator, quotes or newlines are quoted, so
        multi-line cells read back as a single record with csv.reader.
        """
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=separator, lineterminator='\n')
        for row in self.rows:
            writer.writerow([cell_text(c) for c in row])
        return buffer.getvalue().rstrip('\n')


NOTE_LINE_HEADER = ['Product Name', 'Product Code', 'Quantity', 'Unit Price', 'Subtotal']
NOTES_SUMMARY_HEADER = [
    'Note Code', 'Created By', 'Customer', 'Customer Address',
    'Reason', 'Date Created', 'Status', 'Products and Quantity', 'Total'
]
PRODUCTS_HEADER = ['Product Name', 'Price', 'Quantity', 'Product Code', 'Warehouse']


def note_detail_sheet(note: Note) -> Sheet:
    """
    Detail sheet of one note.

    Layout: title, header block (label/value pairs), blank row, line table,
    total row.
    """
    sheet = Sheet(name=f'Note {note.code}')
    sheet.append('Delivery Note')
    sheet.append('Note Code', note.code)
    sheet.append('Created By', note.creator_name)
    sheet.append('Customer', note.customer_name)
    sheet.append('Customer Address', note.customer_address)
    sheet.append('Reason', note.reason)
    sheet.append('Date Created', note.created_at)
    sheet.append('Status', note.status.name)
    sheet.append()
    sheet.append(*NOTE_LINE_HEADER)

    for line in note.lines:
        sheet.append(
            line.product.name,
            line.product.code,
            line.quantity,
            line.unit_price,
            line.subtotal
        )

    sheet.append('', '', '', 'Total of Note:', note.total)
    return sheet


def notes_summary_sheet(notes: Iterable[Note]) -> Sheet:
    """One row per note, products listed as 'name: quantity' lines."""
    sheet = Sheet(name='Notes')
    sheet.append(*NOTES_SUMMARY_HEADER)

    for note in notes:
        products = '\n'.join(f'{line.product.name}: {line.quantity}' for line in note.lines)
        sheet.append(
            note.code,
            note.creator_name,
            note.customer_name,
            note.customer_address,
            note.reason,
            note.created_at,
            note.status.name,
            products,
            note.total
        )
    return sheet


def products_sheet(products: Iterable[Product]) -> Sheet:
    """Catalog listing with current price and quantity on hand."""
    sheet = Sheet(name='Products')
    sheet.append(*PRODUCTS_HEADER)

    for product in products:
        sheet.append(
            product.name,
            product.price,
            product.quantity,
            product.code,
            product.warehouse.name if product.warehouse else None
        )
    return sheet
