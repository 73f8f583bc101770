"""
Flask CLI commands for the note ledger.

Commands:
- flask init-db: Create the tables
- flask create-warehouse / list-warehouses: Warehouses
- flask create-product / update-product / delete-product / list-products: Products
- flask create-note: Record a delivery note (--line PRODUCT_ID:QTY, repeatable)
- flask note-status / delete-note: Note lifecycle
- flask show-note / list-notes / export-notes / note-stats: Reads and exports
"""

import click
from flask import current_app
from delivery_notes.database import get_session, create_all
from delivery_notes.exceptions import NoteLedgerError
from delivery_notes.models import NoteStatus
from delivery_notes.services import catalog_service, note_service, note_query_service, report_service
from delivery_notes.utils.formatters import money, datetime_fmt


def _parse_line(ctx, param, values):
    """Turn 'PRODUCT_ID:QTY' options into (product_id, quantity) pairs."""
    lines = []
    for raw in values:
        product_id, sep, quantity = raw.partition(':')
        if not sep:
            raise click.BadParameter(f"'{raw}' is not PRODUCT_ID:QTY")
        try:
            lines.append((int(product_id), int(quantity)))
        except ValueError:
            raise click.BadParameter(f"'{raw}' is not PRODUCT_ID:QTY")
    return lines


def _fail(error: NoteLedgerError):
    click.echo(click.style(f'Error: {error.message}', fg='red'), err=True)
    raise SystemExit(1)


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-warehouse')
    @click.argument('name')
    @click.option('--address', default=None, help='Warehouse address')
    def create_warehouse(name, address):
        """Register a warehouse."""
        try:
            warehouse = catalog_service.create_warehouse(get_session(), name, address)
        except NoteLedgerError as e:
            _fail(e)
        click.echo(click.style(f'Warehouse {warehouse.id} created: {warehouse.name}', fg='green'))

    @app.cli.command('create-product')
    @click.option('--warehouse-id', type=int, required=True)
    @click.option('--code', required=True)
    @click.option('--name', required=True)
    @click.option('--price', required=True)
    @click.option('--quantity', type=int, default=0, show_default=True)
    def create_product(warehouse_id, code, name, price, quantity):
        """Register a product with its opening quantity."""
        try:
            product = catalog_service.create_product(get_session(), warehouse_id, code, name, price, quantity)
        except NoteLedgerError as e:
            _fail(e)
        click.echo(click.style(f'Product {product.id} created: {product.code} (qty {product.quantity})', fg='green'))

    @app.cli.command('update-product')
    @click.argument('product_id', type=int)
    @click.option('--code', default=None)
    @click.option('--name', default=None)
    @click.option('--price', default=None)
    @click.option('--quantity', type=int, default=None, help='New quantity on hand (restock)')
    @click.option('--warehouse-id', type=int, default=None)
    def update_product(product_id, code, name, price, quantity, warehouse_id):
        """Edit a product. Recorded notes keep their prices."""
        try:
            product = catalog_service.update_product(
                get_session(), product_id,
                code=code, name=name, price=price, quantity=quantity, warehouse_id=warehouse_id
            )
        except NoteLedgerError as e:
            _fail(e)
        click.echo(click.style(
            f'Product {product.id} updated: {product.code} (price {money(product.price)}, qty {product.quantity})',
            fg='green'
        ))

    @app.cli.command('delete-product')
    @click.argument('product_id', type=int)
    @click.confirmation_option(prompt='Delete the product?')
    def delete_product(product_id):
        """Delete a product that no note references."""
        try:
            catalog_service.delete_product(get_session(), product_id)
        except NoteLedgerError as e:
            _fail(e)
        click.echo(click.style(f'Product {product_id} deleted', fg='yellow'))

    @app.cli.command('list-warehouses')
    def list_warehouses():
        """Print every warehouse with its product count."""
        for warehouse in catalog_service.list_warehouses(get_session()):
            click.echo(f'{warehouse.id}\t{warehouse.name}\t{warehouse.address or "-"}\t{len(warehouse.products)} products')

    @app.cli.command('list-products')
    @click.option('--search', default=None, help='Part of the product name')
    @click.option('--low-stock', is_flag=True, help='Only products below LOW_STOCK_THRESHOLD')
    def list_products(search, low_stock):
        """Print the catalog."""
        products = catalog_service.list_products(get_session(), search=search, low_stock=low_stock)
        click.echo(report_service.products_sheet(products).to_text())

    @app.cli.command('create-note')
    @click.option('--code', required=True, help='Note code')
    @click.option('--creator', required=True, help='Name of whoever issues the note')
    @click.option('--customer', required=True)
    @click.option('--address', required=True, help='Customer address')
    @click.option('--reason', required=True)
    @click.option('--line', 'lines', multiple=True, required=True, callback=_parse_line,
                  help='PRODUCT_ID:QTY, repeat for every product')
    def create_note(code, creator, customer, address, reason, lines):
        """Record a delivery note and take its products out of stock."""
        header = note_service.NoteHeader(
            code=code,
            creator_name=creator,
            customer_name=customer,
            customer_address=address,
            reason=reason
        )
        try:
            note_id = note_service.create_note(get_session(), header, lines)
        except NoteLedgerError as e:
            _fail(e)

        note = note_service.get_note_with_lines(get_session(), note_id)
        click.echo(click.style(f'Note {note.id} created: {note.code}', fg='green', bold=True))
        click.echo(f'   Lines: {len(note.lines)}')
        click.echo(f'   Total: {money(note.total)}')

    @app.cli.command('note-status')
    @click.argument('note_id', type=int)
    @click.argument('status')
    @click.option('--actor', default=None)
    def note_status(note_id, status, actor):
        """Set a note status (CREATED, PROCESSING, SHIPPED, CLOSED or 1-4)."""
        try:
            new_status = note_service.update_status(get_session(), note_id, status, actor=actor)
        except NoteLedgerError as e:
            _fail(e)
        click.echo(click.style(f'Note {note_id} is now {new_status.name}', fg='green'))

    @app.cli.command('delete-note')
    @click.argument('note_id', type=int)
    @click.option('--actor', default=None)
    @click.confirmation_option(prompt='Delete the note? Stock is not restored.')
    def delete_note(note_id, actor):
        """Delete a note and its lines (stock is not restored)."""
        try:
            note_service.delete_note(get_session(), note_id, actor=actor)
        except NoteLedgerError as e:
            _fail(e)
        click.echo(click.style(f'Note {note_id} deleted', fg='yellow'))

    @app.cli.command('show-note')
    @click.argument('note_id', type=int)
    def show_note(note_id):
        """Print a note with its lines."""
        note = note_service.get_note_with_lines(get_session(), note_id)
        if note is None:
            click.echo(click.style(f'Note {note_id} not found', fg='red'), err=True)
            raise SystemExit(1)
        click.echo(report_service.note_detail_sheet(note).to_text())

    @app.cli.command('list-notes')
    @click.option('--search', default=None, help='Part of the note code')
    @click.option('--from', 'date_from', type=click.DateTime(formats=['%Y-%m-%d']), default=None)
    @click.option('--to', 'date_to', type=click.DateTime(formats=['%Y-%m-%d']), default=None)
    @click.option('--sort', type=click.Choice([note_query_service.SORT_NEWEST, note_query_service.SORT_OLDEST]),
                  default=None)
    @click.option('--page', type=int, default=1, show_default=True)
    def list_notes(search, date_from, date_to, sort, page):
        """Print one page of notes."""
        result = note_query_service.list_notes(
            get_session(),
            code_contains=search,
            created_from=date_from.date() if date_from else None,
            created_to=date_to.date() if date_to else None,
            sort=sort,
            page=page
        )
        for note in result.items:
            click.echo(
                f'{note.id}\t{note.code}\t{datetime_fmt(note.created_at)}\t'
                f'{note.status.name}\t{note.customer_name}\t{money(note.total)}'
            )
        click.echo(f'Page {result.page}/{result.total_pages} ({result.total} notes)')

    @app.cli.command('export-notes')
    @click.option('--from', 'date_from', type=click.DateTime(formats=['%Y-%m-%d']), required=True)
    @click.option('--to', 'date_to', type=click.DateTime(formats=['%Y-%m-%d']), required=True)
    def export_notes(date_from, date_to):
        """Print the summary sheet of every note created in a date range."""
        notes = note_query_service.list_all_notes(get_session(), date_from.date(), date_to.date())
        click.echo(report_service.notes_summary_sheet(notes).to_text())

    @app.cli.command('note-stats')
    def note_stats():
        """Print note counts per status and the low stock count."""
        session = get_session()
        for status in NoteStatus:
            click.echo(f'{status.name}: {note_query_service.count_by_status(session, status)}')
        shipped_or_closed = note_query_service.any_status_in(session, [NoteStatus.SHIPPED, NoteStatus.CLOSED])
        click.echo(f'Shipped or closed notes: {"yes" if shipped_or_closed else "no"}')
        threshold = current_app.config.get('LOW_STOCK_THRESHOLD')
        click.echo(f'Products below {threshold}: {catalog_service.count_low_stock(session)}')
