"""Command-line interface for Rental Tax Ledger."""

import argparse
import asyncio
import json
import mimetypes
import os
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

from rental_tax_ledger import __version__
from rental_tax_ledger.config import Settings, get_settings
from rental_tax_ledger.container import Container
from rental_tax_ledger.domain.value_objects import Category, quantize_money
from rental_tax_ledger.exceptions import RentalTaxLedgerError
from rental_tax_ledger.logging_config import configure_logging
from rental_tax_ledger.services.interfaces import ImportSummary, InvoiceFields

T = TypeVar("T")

CLI_ERRORS = (RentalTaxLedgerError, ValueError, OSError)


def get_default_db_path() -> Path:
    """Get the default database path in user's home directory."""
    return get_settings().sqlite_path


def _db_path(args: argparse.Namespace) -> Path:
    return Path(args.database) if args.database else get_default_db_path()


def _settings(args: argparse.Namespace) -> Settings:
    return get_settings().model_copy(update={"sqlite_path": _db_path(args)})


def _container(args: argparse.Namespace) -> Container:
    return Container(settings=_settings(args))


def _require_db(args: argparse.Namespace) -> bool:
    db_path = _db_path(args)
    if not db_path.exists():
        print(f"Error: Database not found at {db_path}")
        print("Run 'rtl init' to create a new database")
        return False
    return True


def _tax_year_arg(args: argparse.Namespace) -> str:
    return args.tax_year or get_settings().default_tax_year.value


def _run_async(container: Container, action: Callable[[], Awaitable[T]]) -> T:
    async def _main() -> T:
        try:
            return await action()
        finally:
            await container.aclose()

    return asyncio.run(_main())


def _print_summary(summary: ImportSummary) -> None:
    print(summary.message)
    for txn in summary.transactions:
        print(
            f"  {txn.date.isoformat()}  {txn.description[:40]:<40} "
            f"{quantize_money(txn.amount):>12}  {txn.category.value}"
        )


def _split_ids(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize a new ledger database."""
    db_path = _db_path(args)

    if db_path.exists() and not args.force:
        print(f"Database already exists at {db_path}")
        print("Use --force to reinitialize (WARNING: will delete existing data)")
        return 1

    if db_path.exists() and args.force:
        db_path.unlink()

    with _container(args) as container:
        _ = container.store
    print(f"Initialized database at {db_path}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show ledger status."""
    if not _require_db(args):
        return 1

    with _container(args) as container:
        snapshot = container.reconciliation_service.load()
        problems = container.reconciliation_service.check_link_symmetry()

    print(f"Database: {_db_path(args)}")
    print(f"Properties: {len(snapshot.properties)}")
    print(f"Transactions: {len(snapshot.transactions)}")
    print(f"Invoices: {len(snapshot.invoices)}")
    if problems:
        print(f"Link problems: {len(problems)}")
        for problem in problems:
            print(f"  - {problem}")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    print(f"Rental Tax Ledger v{__version__}")
    return 0


def cmd_property_add(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            prop = container.reconciliation_service.add_property(
                args.name, args.address or "", args.keywords
            )
        print(f"Property created: {prop.id}")
        print(f"  Name: {prop.name}")
        if prop.address:
            print(f"  Address: {prop.address}")
        if prop.keywords:
            print(f"  Keywords: {', '.join(prop.keywords)}")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_property_list(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    with _container(args) as container:
        properties = container.reconciliation_service.list_properties()

    print(f"{'ID':<34} {'Name':<25} {'Address':<30}")
    print("-" * 91)
    for prop in properties:
        print(f"{prop.id:<34} {prop.name[:23]:<25} {prop.address[:28]:<30}")
    print(f"\nTotal: {len(properties)} propert{'y' if len(properties) == 1 else 'ies'}")
    return 0


def cmd_property_delete(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            unassigned = container.reconciliation_service.delete_property(args.id)
        print(f"Property deleted: {args.id}")
        print(f"  Transactions unassigned: {unassigned}")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_import_rows(args: argparse.Namespace) -> int:
    """Import bank rows from a JSON file (a list, or {"transactions": [...]})."""
    if not _require_db(args):
        return 1
    try:
        data = json.loads(Path(args.file).read_text(encoding="utf-8"))
        rows = data.get("transactions", []) if isinstance(data, dict) else data
        if not isinstance(rows, list):
            print("Error: expected a JSON list of rows")
            return 1
        container = _container(args)
        summary = _run_async(
            container, lambda: container.ingestion_service.import_rows(rows)
        )
        _print_summary(summary)
        return 0
    except json.JSONDecodeError as e:
        print(f"Error: invalid JSON: {e}")
        return 1
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_import_statement(args: argparse.Namespace) -> int:
    """Import a bank statement document through the document extractor."""
    if not _require_db(args):
        return 1
    try:
        path = Path(args.file)
        payload = path.read_bytes()
        mime_type = args.mime_type or mimetypes.guess_type(path.name)[0] or "text/csv"
        container = _container(args)
        summary = _run_async(
            container,
            lambda: container.ingestion_service.import_statement(payload, mime_type),
        )
        _print_summary(summary)
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_txn_list(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            transactions = container.reconciliation_service.list_transactions(
                tax_year=args.tax_year,
                property_id=args.property_id,
                category=args.category,
                status=args.status,
            )
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1

    print(
        f"{'Date':<11} {'Description':<34} {'Amount':>11} {'Category':<15} "
        f"{'Status':<11} {'Tag':<3} {'ID'}"
    )
    print("-" * 120)
    for txn in transactions:
        print(
            f"{txn.date.isoformat():<11} {txn.description[:32]:<34} "
            f"{quantize_money(txn.amount):>11} {txn.category.value:<15} "
            f"{txn.status.value:<11} {(txn.tag.value if txn.tag else '-'):<3} {txn.id}"
        )
    print(f"\nTotal: {len(transactions)} transaction(s)")
    return 0


def cmd_txn_add(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            txn = container.ingestion_service.add_manual_transaction(
                args.date,
                args.description,
                args.amount,
                category=args.category,
                property_id=args.property_id,
                tag=args.tag,
                status=args.status,
            )
        print(f"Transaction created: {txn.id}")
        print(f"  {txn.date.isoformat()} {txn.description} {quantize_money(txn.amount)}")
        print(f"  Category: {txn.category.label}")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_txn_tag(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    tag = None if args.tag.lower() == "none" else args.tag.upper()
    try:
        with _container(args) as container:
            tagged = container.reconciliation_service.apply_tag(_split_ids(args.ids), tag)
        print(f"Tagged {len(tagged)} transaction(s) with {tag or 'no tag'}")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_txn_delete(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            deleted = container.reconciliation_service.delete_transactions(
                _split_ids(args.ids)
            )
        print(f"Deleted {deleted} transaction(s)")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_txn_toggle(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            txn = container.reconciliation_service.toggle_reconciled(args.id)
        print(f"Transaction {txn.id} is now {txn.status.value}")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_txn_flag(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            txn = container.reconciliation_service.flag_transaction(args.id)
        print(f"Transaction {txn.id} flagged for review")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_txn_categorize(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            txn = container.reconciliation_service.recategorize(args.id, args.category)
        print(f"Transaction {txn.id} categorized as {txn.category.label}")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_txn_assign(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    property_id = None if args.property_id.lower() == "none" else args.property_id
    try:
        with _container(args) as container:
            txn = container.reconciliation_service.assign_property(args.id, property_id)
        print(f"Transaction {txn.id} assigned to {txn.property_id or 'no property'}")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_invoice_add(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        fields = InvoiceFields(
            date=args.date,
            vendor=args.vendor,
            amount=args.amount,
            description=args.description or "",
        )
        with _container(args) as container:
            outcome = container.reconciliation_service.ingest_invoice(
                fields, args.tax_year
            )
        print(f"Invoice created: {outcome.invoice.id}")
        if outcome.transaction is not None:
            print(f'  Matched with "{outcome.transaction.description}"')
        else:
            print("  No matching bank transaction found")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_invoice_upload(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        path = Path(args.file)
        payload = path.read_bytes()
        mime_type = args.mime_type or mimetypes.guess_type(path.name)[0] or "image/jpeg"
        container = _container(args)
        outcome = _run_async(
            container,
            lambda: container.ingestion_service.ingest_invoice_document(
                payload, mime_type, args.tax_year
            ),
        )
        invoice = outcome.invoice
        print(f"Invoice created: {invoice.id}")
        print(f"  {invoice.date.isoformat()} {invoice.vendor} {quantize_money(invoice.amount)}")
        if outcome.transaction is not None:
            print(f'  Matched with "{outcome.transaction.description}"')
        else:
            print("  No matching bank transaction found")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_invoice_list(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    with _container(args) as container:
        invoices = container.reconciliation_service.list_invoices(args.status)

    print(f"{'Date':<11} {'Vendor':<28} {'Amount':>10} {'Status':<10} {'ID'}")
    print("-" * 95)
    for invoice in invoices:
        print(
            f"{invoice.date.isoformat():<11} {invoice.vendor[:26]:<28} "
            f"{quantize_money(invoice.amount):>10} {invoice.status.value:<10} {invoice.id}"
        )
    print(f"\nTotal: {len(invoices)} invoice(s)")
    return 0


def cmd_invoice_delete(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            invoice = container.reconciliation_service.delete_invoice(args.id)
        print(f"Invoice deleted: {invoice.id}")
        if invoice.matched_transaction_id:
            print(f"  Transaction {invoice.matched_transaction_id} reset to pending")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_tax_estimate(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            estimate = container.tax_service.estimate(
                _tax_year_arg(args), args.supplemental_income
            )
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1

    figures = estimate.to_dict()
    rows = [
        ("Gross income", figures["gross_income"]),
        ("Deductible expenses", figures["deductible_expenses"]),
        ("Finance costs", figures["finance_costs"]),
        ("Taxable profit", figures["taxable_profit"]),
        ("Net cash flow", figures["net_cash_flow"]),
        ("Supplemental income", figures["supplemental_income"]),
        ("Total income", figures["total_income"]),
        ("Personal allowance", figures["personal_allowance"]),
        ("Net taxable income", figures["net_taxable_income"]),
        ("Basic rate tax", figures["breakdown"]["basic_rate_tax"]),
        ("Higher rate tax", figures["breakdown"]["higher_rate_tax"]),
        ("Additional rate tax", figures["breakdown"]["additional_rate_tax"]),
        ("Tax before relief", figures["tax_before_relief"]),
        ("Finance cost relief", figures["finance_cost_relief"]),
        ("Final tax", figures["final_tax"]),
    ]
    print(f"Tax estimate for {_tax_year_arg(args)}")
    print("-" * 40)
    for label, value in rows:
        print(f"{label:<24} {value:>15}")
    print(f"{'Effective rate':<24} {figures['effective_rate'] * 100:>14.2f}%")
    return 0


def cmd_report_summary(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            report = container.reporting_service.dashboard_summary(_tax_year_arg(args))
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1

    data = report["data"]
    print(f"{report['report_name']} ({report['label']})")
    print(f"  Income:        {data['income']:>12}")
    print(f"  Expenses:      {data['expenses']:>12}")
    print(f"  Profit:        {data['profit']:>12}")
    print(f"  Uncategorized: {data['uncategorized_count']:>12}")
    return 0


def cmd_report_checklist(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            checklist = container.reconciliation_service.receipt_checklist(
                _tax_year_arg(args)
            )
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1

    for item in checklist.items:
        txn = item.transaction
        mark = "x" if item.is_done else " "
        print(
            f"[{mark}] {txn.date.isoformat()} {txn.description[:34]:<36} "
            f"{quantize_money(txn.amount):>10}"
        )
    print(
        f"\n{checklist.completed}/{checklist.total} done "
        f"({checklist.progress * 100:.0f}%), "
        f"{quantize_money(checklist.missing_amount)} without receipts"
    )
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    if not _require_db(args):
        return 1
    try:
        with _container(args) as container:
            service = container.reporting_service
            tax_year = _tax_year_arg(args)
            output = args.output or service.default_filename(args.kind, tax_year)
            service.export(args.kind, tax_year, output)
        print(f"Exported {args.kind} to {output}")
        return 0
    except CLI_ERRORS as e:
        print(f"Error: {e}")
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API against the selected database."""
    import uvicorn

    settings = _settings(args)
    # The app builds its own container from the environment
    os.environ["RTL_SQLITE_PATH"] = str(settings.sqlite_path)
    get_settings.cache_clear()

    host = args.host or settings.api_host
    port = args.port or settings.api_port
    print(f"Serving Rental Tax Ledger API on http://{host}:{port}")
    uvicorn.run("rental_tax_ledger.api.app:app", host=host, port=port)
    return 0


def _add_tax_year(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tax-year", help="Tax year, e.g. 2025-2026 or 2025/26 (default from settings)"
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="rtl",
        description="Rental Tax Ledger - landlord bookkeeping, receipts and tax estimates",
    )
    parser.add_argument(
        "--database",
        "-d",
        help="Path to SQLite database file",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize a new database")
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Force reinitialization (deletes existing data)",
    )
    init_parser.set_defaults(func=cmd_init)

    # status command
    status_parser = subparsers.add_parser("status", help="Show ledger status")
    status_parser.set_defaults(func=cmd_status)

    # version command
    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    # property command group
    property_parser = subparsers.add_parser("property", help="Property commands")
    property_subparsers = property_parser.add_subparsers(
        dest="property_command", help="Property subcommands"
    )

    property_add_parser = property_subparsers.add_parser("add", help="Add a property")
    property_add_parser.add_argument("--name", required=True, help="Display name")
    property_add_parser.add_argument("--address", help="Address")
    property_add_parser.add_argument(
        "--keywords", help="Comma-separated keywords (tenant names, street, agent)"
    )
    property_add_parser.set_defaults(func=cmd_property_add)

    property_list_parser = property_subparsers.add_parser("list", help="List properties")
    property_list_parser.set_defaults(func=cmd_property_list)

    property_delete_parser = property_subparsers.add_parser(
        "delete", help="Delete a property"
    )
    property_delete_parser.add_argument("--id", required=True, help="Property ID")
    property_delete_parser.set_defaults(func=cmd_property_delete)

    # import command group
    import_parser = subparsers.add_parser("import", help="Bank import commands")
    import_subparsers = import_parser.add_subparsers(
        dest="import_command", help="Import subcommands"
    )

    import_rows_parser = import_subparsers.add_parser(
        "rows", help="Import rows from a JSON file of {date, description, amount}"
    )
    import_rows_parser.add_argument("file", help="JSON file")
    import_rows_parser.set_defaults(func=cmd_import_rows)

    import_statement_parser = import_subparsers.add_parser(
        "statement", help="Import a statement document (CSV, PDF or image)"
    )
    import_statement_parser.add_argument("file", help="Statement file")
    import_statement_parser.add_argument("--mime-type", help="Override detected MIME type")
    import_statement_parser.set_defaults(func=cmd_import_statement)

    # txn command group
    txn_parser = subparsers.add_parser("txn", help="Transaction commands")
    txn_subparsers = txn_parser.add_subparsers(
        dest="txn_command", help="Transaction subcommands"
    )

    txn_list_parser = txn_subparsers.add_parser("list", help="List transactions")
    _add_tax_year(txn_list_parser)
    txn_list_parser.add_argument("--property-id", help="Filter by property")
    txn_list_parser.add_argument(
        "--category", choices=[c.value for c in Category], help="Filter by category"
    )
    txn_list_parser.add_argument(
        "--status", choices=["pending", "reconciled", "flagged"], help="Filter by status"
    )
    txn_list_parser.set_defaults(func=cmd_txn_list)

    txn_add_parser = txn_subparsers.add_parser("add", help="Add a manual transaction")
    txn_add_parser.add_argument("--date", required=True, help="Date (YYYY-MM-DD)")
    txn_add_parser.add_argument("--description", required=True, help="Description")
    txn_add_parser.add_argument(
        "--amount", required=True, help="Signed amount; negative for expenses"
    )
    txn_add_parser.add_argument(
        "--category",
        choices=[c.value for c in Category],
        default=Category.UNCATEGORIZED.value,
        help="Category code",
    )
    txn_add_parser.add_argument("--property-id", help="Property ID")
    txn_add_parser.add_argument("--tag", choices=["D", "J"], help="Owner tag")
    txn_add_parser.add_argument(
        "--status",
        choices=["pending", "reconciled", "flagged"],
        default="reconciled",
        help="Initial status (default: reconciled)",
    )
    txn_add_parser.set_defaults(func=cmd_txn_add)

    txn_tag_parser = txn_subparsers.add_parser("tag", help="Tag transactions with an owner")
    txn_tag_parser.add_argument("--ids", required=True, help="Comma-separated IDs")
    txn_tag_parser.add_argument(
        "--tag", required=True, choices=["D", "J", "none"], help="Owner tag or 'none'"
    )
    txn_tag_parser.set_defaults(func=cmd_txn_tag)

    txn_delete_parser = txn_subparsers.add_parser("delete", help="Delete transactions")
    txn_delete_parser.add_argument("--ids", required=True, help="Comma-separated IDs")
    txn_delete_parser.set_defaults(func=cmd_txn_delete)

    txn_toggle_parser = txn_subparsers.add_parser(
        "toggle", help="Toggle reconciled/pending for a transaction without a receipt"
    )
    txn_toggle_parser.add_argument("--id", required=True, help="Transaction ID")
    txn_toggle_parser.set_defaults(func=cmd_txn_toggle)

    txn_flag_parser = txn_subparsers.add_parser("flag", help="Flag a transaction for review")
    txn_flag_parser.add_argument("--id", required=True, help="Transaction ID")
    txn_flag_parser.set_defaults(func=cmd_txn_flag)

    txn_categorize_parser = txn_subparsers.add_parser(
        "categorize", help="Set a transaction's category"
    )
    txn_categorize_parser.add_argument("--id", required=True, help="Transaction ID")
    txn_categorize_parser.add_argument(
        "--category", required=True, choices=[c.value for c in Category], help="Category"
    )
    txn_categorize_parser.set_defaults(func=cmd_txn_categorize)

    txn_assign_parser = txn_subparsers.add_parser(
        "assign", help="Assign a transaction to a property"
    )
    txn_assign_parser.add_argument("--id", required=True, help="Transaction ID")
    txn_assign_parser.add_argument(
        "--property-id", required=True, help="Property ID or 'none'"
    )
    txn_assign_parser.set_defaults(func=cmd_txn_assign)

    # invoice command group
    invoice_parser = subparsers.add_parser("invoice", help="Receipt commands")
    invoice_subparsers = invoice_parser.add_subparsers(
        dest="invoice_command", help="Invoice subcommands"
    )

    invoice_add_parser = invoice_subparsers.add_parser(
        "add", help="Add a receipt from known fields and try to match it"
    )
    invoice_add_parser.add_argument("--date", required=True, help="Date (YYYY-MM-DD)")
    invoice_add_parser.add_argument("--vendor", required=True, help="Vendor")
    invoice_add_parser.add_argument("--amount", required=True, help="Total amount")
    invoice_add_parser.add_argument("--description", help="Description")
    _add_tax_year(invoice_add_parser)
    invoice_add_parser.set_defaults(func=cmd_invoice_add)

    invoice_upload_parser = invoice_subparsers.add_parser(
        "upload", help="Read a receipt document and try to match it"
    )
    invoice_upload_parser.add_argument("file", help="Receipt image or PDF")
    invoice_upload_parser.add_argument("--mime-type", help="Override detected MIME type")
    _add_tax_year(invoice_upload_parser)
    invoice_upload_parser.set_defaults(func=cmd_invoice_upload)

    invoice_list_parser = invoice_subparsers.add_parser("list", help="List receipts")
    invoice_list_parser.add_argument(
        "--status", choices=["unmatched", "matched", "processing"], help="Filter by status"
    )
    invoice_list_parser.set_defaults(func=cmd_invoice_list)

    invoice_delete_parser = invoice_subparsers.add_parser("delete", help="Delete a receipt")
    invoice_delete_parser.add_argument("--id", required=True, help="Invoice ID")
    invoice_delete_parser.set_defaults(func=cmd_invoice_delete)

    # tax command group
    tax_parser = subparsers.add_parser("tax", help="Tax estimation commands")
    tax_subparsers = tax_parser.add_subparsers(
        dest="tax_command", help="Tax subcommands"
    )

    tax_estimate_parser = tax_subparsers.add_parser(
        "estimate", help="Estimate property income tax for a tax year"
    )
    _add_tax_year(tax_estimate_parser)
    tax_estimate_parser.add_argument(
        "--supplemental-income",
        default="0",
        help="Other taxable income (salary, pensions) for the year",
    )
    tax_estimate_parser.set_defaults(func=cmd_tax_estimate)

    # report command group
    report_parser = subparsers.add_parser("report", help="Reporting commands")
    report_subparsers = report_parser.add_subparsers(
        dest="report_command", help="Report subcommands"
    )

    report_summary_parser = report_subparsers.add_parser(
        "summary", help="Income, expenses and profit for a tax year"
    )
    _add_tax_year(report_summary_parser)
    report_summary_parser.set_defaults(func=cmd_report_summary)

    report_checklist_parser = report_subparsers.add_parser(
        "checklist", help="Expenses still needing a receipt"
    )
    _add_tax_year(report_checklist_parser)
    report_checklist_parser.set_defaults(func=cmd_report_checklist)

    # export command
    export_parser = subparsers.add_parser("export", help="Export CSV files")
    export_parser.add_argument(
        "kind", choices=["journals", "bridging", "itemized"], help="Export type"
    )
    _add_tax_year(export_parser)
    export_parser.add_argument("--output", "-o", help="Output file path")
    export_parser.set_defaults(func=cmd_export)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default from settings)")
    serve_parser.add_argument("--port", type=int, help="Port (default from settings)")
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    groups = {
        "property": (property_parser, "property_command"),
        "import": (import_parser, "import_command"),
        "txn": (txn_parser, "txn_command"),
        "invoice": (invoice_parser, "invoice_command"),
        "tax": (tax_parser, "tax_command"),
        "report": (report_parser, "report_command"),
    }
    if args.command in groups:
        group_parser, dest = groups[args.command]
        if getattr(args, dest, None) is None:
            group_parser.print_help()
            return 0

    configure_logging(_settings(args))
    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
