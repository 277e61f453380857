#!/usr/bin/env python
"""Main CLI interface for the bank statement importer."""
import argparse
import io
import logging
import sys
from pathlib import Path

# Fix Unicode encoding issues on Windows
if sys.platform == 'win32':
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

from extrato.config import config
from extrato.exceptions import ImportAbortedError
from extrato.pipeline import StatementImportPipeline
from extrato.queries import TransactionFilter
from extrato.storage.document_store import JsonFileDocumentStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bank statement importer - extraction, deduplication and company sync"
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to config file (default: config.yaml)"
    )
    parser.add_argument(
        "--store",
        type=str,
        help="Path to the JSON data store (default from config)"
    )
    parser.add_argument(
        "--mode",
        choices=["auto", "remote", "local"],
        help="Extraction path (default from config)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    import_cmd = subparsers.add_parser("import", help="Import statement files (PDF or image)")
    import_cmd.add_argument("files", nargs="+", help="Statement files, processed in order")

    duplicates_cmd = subparsers.add_parser("duplicates", help="List transactions flagged as duplicates")
    duplicates_cmd.add_argument("--cnpj", help="Only this owner tax id")

    subparsers.add_parser("companies", help="List the company directory")

    summary_cmd = subparsers.add_parser("summary", help="Totals for a period")
    summary_cmd.add_argument("--cnpj", help="Only this owner tax id")
    summary_cmd.add_argument("--start", help="First day, YYYY-MM-DD")
    summary_cmd.add_argument("--end", help="Last day, YYYY-MM-DD")
    summary_cmd.add_argument(
        "--finalize",
        action="store_true",
        help="Close the day: store these totals as a dashboard record"
    )

    return parser


def run_import(pipeline: StatementImportPipeline, files) -> int:
    for path in files:
        if not Path(path).exists():
            print(f"Error: Input file not found: {path}")
            return 1

    try:
        report = pipeline.import_files(files)
    except ImportAbortedError as e:
        committed = e.report.accepted_transactions if e.report else 0
        print(f"Error: {e}")
        print(f"{committed} transaction(s) from earlier files were kept.")
        return 1

    print("\n" + "=" * 50)
    print("Import Summary")
    print("=" * 50)
    for outcome in report.files:
        if outcome.status == "duplicate":
            print(f"{outcome.filename}: DUPLICATE - file already imported, skipped")
        else:
            print(f"{outcome.filename}: {outcome.transactions} transaction(s) - {outcome.owner_name}")
            for name in outcome.companies_created:
                print(f"  + new company: {name}")
    print(f"Transactions accepted: {report.accepted_transactions}")
    print("=" * 50)
    return 0


def main():
    """Main CLI entry point."""
    args = build_parser().parse_args()

    if args.config:
        config.reload(args.config)

    logging.basicConfig(
        level=config.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    store = JsonFileDocumentStore(args.store or config.storage_path)
    pipeline = StatementImportPipeline(store=store, extraction_mode=args.mode)

    if args.command == "import":
        sys.exit(run_import(pipeline, args.files))

    if args.command == "duplicates":
        view = TransactionFilter(owner_tax_id=args.cnpj)
        rows = [r for r in pipeline.snapshot(view) if r["duplicate"]]
        for row in rows:
            print(f"{row['id']}  {row['date']}  {row['amount']:>12}  {row['type']:<8} "
                  f"{row['owner_bank']}  {row['counterparty_name']}")
        print(f"{len(rows)} duplicate row(s)")

    elif args.command == "companies":
        for company in pipeline.directory.companies:
            hidden = " (oculta)" if company.hidden else ""
            print(f"{company.id}  {company.name}{hidden}  CNPJ: {company.tax_id or '-'}")
            if company.original_name and company.original_name != company.name:
                print(f"    Anteriormente: {company.original_name}")
            for alt in company.alternative_names:
                print(f"    aka {alt}")

    elif args.command == "summary":
        view = TransactionFilter(owner_tax_id=args.cnpj, start_date=args.start, end_date=args.end)
        summary = pipeline.summary(view)
        print(f"Entradas:   {summary.total_inflow}")
        print(f"Saídas:     {summary.total_outflow}")
        print(f"Saldo:      {summary.balance}")
        print(f"Transações: {summary.transaction_count}")
        if summary.payment_methods:
            print("\nMétodos de pagamento:")
            for method, count in sorted(summary.payment_methods.items()):
                print(f"  {method:<8} {count}")
        if summary.daily:
            print("\nEvolução diária:")
            for day, totals in summary.daily.items():
                print(f"  {day}  +{totals.inflow:>12}  -{totals.outflow:>12}")
        if args.finalize:
            record = pipeline.finalize_day(view)
            print(f"\nDia finalizado: registro {record['id']}")

    sys.exit(0)


if __name__ == "__main__":
    main()
