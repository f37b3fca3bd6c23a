#!/usr/bin/env python3
"""
Command line entry point for migrating legacy materials to products
"""
import argparse
import signal
import sys

from tqdm import tqdm

from config import Config
from errors import ConfigurationError, MaterialLookupError, MigrationError
from logger import cleanup_old_logs, set_console_level, setup_logger, LOGS_DIR
from migration_engine import MigrationEngine

logger = setup_logger("migration", Config.LOG_LEVEL)

def build_parser():
    parser = argparse.ArgumentParser(
        description="Migrate legacy materials to the BaseProduct / ProductVariant model"
    )
    parser.add_argument("--user-id", help="ID of the user performing the migration (audit)")
    parser.add_argument("--material-id", help="Migrate a single material")
    parser.add_argument("--ids", nargs="+", metavar="MATERIAL_ID",
                        help="Materials to migrate in bulk (default: all materials)")
    parser.add_argument("--batch-size", type=int, default=Config.BATCH_SIZE)
    parser.add_argument("--workers", type=int, default=Config.MAX_WORKERS,
                        help="Concurrent migrations per batch (capped at the batch size)")
    parser.add_argument("--skip-validation", action="store_true",
                        help="Skip validation checks (trusted re-runs)")
    parser.add_argument("--force", action="store_true",
                        help="Migrate despite failed validation, recording warnings")
    parser.add_argument("--stop-on-error", action="store_true",
                        help="Abort the bulk run at the first failed material")
    parser.add_argument("--check-connections", action="store_true",
                        help="Only test connectivity to both catalogs")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings and errors to the console")
    return parser

def check_connections(engine):
    legacy_ok = engine.material_reader.test_connection()
    product_ok = engine.migrator.products.test_connection()

    logger.info("=== Connection Test Results ===")
    logger.info(f"Legacy catalog: {'SUCCESS' if legacy_ok else 'FAILED'}")
    logger.info(f"Product catalog: {'SUCCESS' if product_ok else 'FAILED'}")
    return legacy_ok and product_ok

def run_single(engine, args):
    result = engine.migrate_material_to_product_variant(
        args.material_id, args.user_id,
        skip_validation=args.skip_validation,
        force_migration=args.force
    )
    try:
        result.raise_for_status()
    except MigrationError as e:
        logger.error(f"Migration of material {args.material_id} failed ({type(e).__name__}): {e}")
        return False

    logger.info(f"Material {result.material_id} -> BaseProduct {result.base_product_id}, "
                f"ProductVariant {result.product_variant_id}")
    if result.warnings:
        logger.warning(result.error_message)
    return True

def run_bulk(engine, args):
    progress = tqdm(desc="Migrating materials", unit="material")

    def on_progress(done, total, message):
        progress.total = total
        progress.n = done
        progress.set_postfix_str(message)
        progress.refresh()

    engine.progress_callback = on_progress

    # First Ctrl+C stops gracefully, in-flight items still finish
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: engine.stop_migration())
    try:
        result = engine.bulk_migrate_materials_to_product_variants(
            material_ids=args.ids,
            user_id=args.user_id,
            batch_size=args.batch_size,
            skip_validation=args.skip_validation,
            continue_on_error=not args.stop_on_error,
            force_migration=args.force,
            max_workers=args.workers
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        progress.close()

    summary = result.summary()
    print(f"\nProcessed: {summary['total_processed']}  "
          f"Successful: {summary['successful_migrations']}  "
          f"Failed: {summary['failed_migrations']}  "
          f"({summary['success_rate']}% success)")
    return result.failed_migrations == 0 and not result.cancelled

def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.quiet:
        set_console_level("WARNING")

    try:
        Config.validate()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    engine = MigrationEngine.from_config(report_dir=LOGS_DIR)

    if args.check_connections:
        return 0 if check_connections(engine) else 1

    if not args.user_id:
        logger.error("--user-id is required to run a migration")
        return 2

    try:
        if args.material_id:
            success = run_single(engine, args)
        else:
            success = run_bulk(engine, args)
    except MaterialLookupError as e:
        logger.error(str(e))
        return 1
    except ValueError as e:
        logger.error(f"Invalid options: {e}")
        return 2
    finally:
        cleanup_old_logs()

    return 0 if success else 1

if __name__ == "__main__":
    sys.exit(main())
