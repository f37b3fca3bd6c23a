"""
Bulk migration of legacy materials to BaseProduct / ProductVariant
"""
import json
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from aggregator import ResultAggregator
from catalog_client import LegacyCatalogClient, ProductCatalogClient
from config import Config
from errors import MaterialLookupError
from event_publisher import create_event_publisher
from logger import setup_logger
from migrator import MaterialMigrator
from models import MigrationOptions, MigrationResult
from validation import ValidationGate

class MigrationEngine:
    """Drives single and bulk migrations against the catalog collaborators.

    material_reader provides get_material / get_all_material_ids,
    product_writer provides create_base_product / create_product_variant /
    delete_base_product, reference_checker provides category_exists /
    find_unit_of_measure and event_publisher provides publish.
    """

    def __init__(self, material_reader, product_writer, reference_checker, event_publisher,
                 progress_callback=None, log_callback=None, report_dir=None):
        self.logger = setup_logger("migration_engine", Config.LOG_LEVEL)
        self.progress_callback = progress_callback
        self.log_callback = log_callback
        self.report_dir = report_dir
        self.material_reader = material_reader
        self.migrator = MaterialMigrator(
            material_reader,
            product_writer,
            ValidationGate(reference_checker),
            event_publisher,
        )
        self._stop_event = threading.Event()

    @classmethod
    def from_config(cls, config=Config, **kwargs):
        """Build an engine talking to the REST catalogs named in the configuration"""
        legacy = LegacyCatalogClient(
            config.LEGACY_CATALOG_URL, config.LEGACY_CATALOG_TOKEN,
            max_retries=config.MAX_RETRIES,
            delay=config.DELAY_BETWEEN_REQUESTS,
            timeout=config.REQUEST_TIMEOUT
        )
        products = ProductCatalogClient(
            config.PRODUCT_CATALOG_URL, config.PRODUCT_CATALOG_TOKEN,
            max_retries=config.MAX_RETRIES,
            delay=config.DELAY_BETWEEN_REQUESTS,
            timeout=config.REQUEST_TIMEOUT
        )
        publisher = create_event_publisher(config.EVENT_WEBHOOK_URL)
        return cls(legacy, products, products, publisher, **kwargs)

    def log(self, message, level='INFO'):
        """Log message and send to callback if available"""
        if level == 'INFO':
            self.logger.info(message)
        elif level == 'ERROR':
            self.logger.error(message)
        elif level == 'WARNING':
            self.logger.warning(message)
        elif level == 'DEBUG':
            self.logger.debug(message)

        if self.log_callback:
            self.log_callback(f"[{level}] {message}")

    def update_progress(self, done, total, message):
        """Update progress if callback is available"""
        if self.progress_callback:
            self.progress_callback(done, total, message)

    def stop_migration(self):
        """Request migration to stop gracefully"""
        self._stop_event.set()
        self.log("STOP REQUESTED - Migration will halt after in-flight items", 'WARNING')

    @property
    def stop_requested(self):
        return self._stop_event.is_set()

    def migrate_material_to_product_variant(self, material_id, user_id, skip_validation=False, force_migration=False):
        """Migrate a single material. Call raise_for_status() on the result for the exception form."""
        self.log(f"Starting migration of material {material_id} by user {user_id}")
        return self.migrator.migrate_one(
            material_id, user_id,
            skip_validation=skip_validation,
            force_migration=force_migration
        )

    def bulk_migrate_materials_to_product_variants(self, material_ids=None, user_id=None, batch_size=10,
                                                   skip_validation=False, continue_on_error=True,
                                                   force_migration=False, max_workers=None):
        options = MigrationOptions(
            batch_size=batch_size,
            skip_validation=skip_validation,
            continue_on_error=continue_on_error,
            force_migration=force_migration,
            max_workers=max_workers
        )
        return self.migrate_bulk(material_ids, user_id, options)

    def migrate_bulk(self, material_ids, user_id, options=None, cancel_event=None):
        """Migrate materials in batches and return the aggregated result.

        An empty or missing material_ids migrates every material known to the
        legacy catalog at call time. Per-item failures never raise; only a
        failure to resolve the material set does (MaterialLookupError).

        A stop_migration() made before the call cancels this run; the stop
        flag is cleared once the run ends.
        """
        options = options or MigrationOptions()

        def cancelled():
            return self._stop_event.is_set() or (cancel_event is not None and cancel_event.is_set())

        self.log(
            f"Starting bulk migration by user {user_id}. Batch size: {options.batch_size}, "
            f"Continue on error: {options.continue_on_error}"
        )

        ids = self._resolve_material_ids(material_ids)
        total = len(ids)
        self.log(f"Found {total} materials to migrate")

        aggregator = ResultAggregator()
        aborted = False
        processed = 0

        for batch_start in range(0, total, options.batch_size):
            if cancelled():
                break

            batch = ids[batch_start:batch_start + options.batch_size]
            batch_number = batch_start // options.batch_size + 1

            if options.continue_on_error:
                batch_results = self._run_batch_concurrently(batch, batch_start, user_id, options, aggregator, cancelled)
            else:
                batch_results = self._run_batch_until_failure(batch, batch_start, user_id, options, aggregator, cancelled)

            processed += len(batch_results)
            successful = sum(1 for r in batch_results if r.success)
            failed = len(batch_results) - successful
            self.log(f"Processed batch {batch_number}: {successful} successful, {failed} failed")
            self.update_progress(processed, total, f"Batch {batch_number} done")

            if not options.continue_on_error and failed:
                self.log("Stopping bulk migration due to errors in batch", 'WARNING')
                aborted = True
                break

        was_cancelled = cancelled() and processed < total
        # a stop request is consumed by the run it stopped
        self._stop_event.clear()
        if was_cancelled:
            self.log("Bulk migration cancelled", 'WARNING')

        result = aggregator.finalize(cancelled=was_cancelled, aborted=aborted)
        self._generate_migration_report(result)
        return result

    def _resolve_material_ids(self, material_ids):
        """Snapshot the ids to migrate, dropping duplicates but keeping order"""
        if not material_ids:
            try:
                material_ids = self.material_reader.get_all_material_ids()
            except Exception as e:
                raise MaterialLookupError(f"Failed to resolve materials to migrate: {e}") from e

        ids = []
        seen = set()
        for material_id in material_ids:
            material_id = str(material_id)
            if material_id in seen:
                self.log(f"Material {material_id} listed more than once, migrating it once", 'WARNING')
                continue
            seen.add(material_id)
            ids.append(material_id)
        return ids

    def _migrate_safely(self, material_id, user_id, options):
        try:
            return self.migrator.migrate_one(
                material_id, user_id,
                skip_validation=options.skip_validation,
                force_migration=options.force_migration
            )
        except Exception as e:
            self.logger.exception(f"Error migrating material {material_id} in batch")
            return MigrationResult.failed(material_id, e)

    def _run_batch_concurrently(self, batch, offset, user_id, options, aggregator, cancelled):
        """Migrate a batch on a bounded pool. Items not started before a cancel are skipped."""

        def work(position, material_id):
            if cancelled():
                return None
            result = self._migrate_safely(material_id, user_id, options)
            aggregator.record(result, position)
            return result

        with ThreadPoolExecutor(max_workers=options.worker_count, thread_name_prefix="migrate") as executor:
            futures = [
                executor.submit(work, offset + index, material_id)
                for index, material_id in enumerate(batch)
            ]
            results = [future.result() for future in futures]

        return [r for r in results if r is not None]

    def _run_batch_until_failure(self, batch, offset, user_id, options, aggregator, cancelled):
        """Migrate a batch one item at a time, stopping at the first failure"""
        results = []
        for index, material_id in enumerate(batch):
            if cancelled():
                break
            result = self._migrate_safely(material_id, user_id, options)
            aggregator.record(result, offset + index)
            results.append(result)
            if not result.success:
                break
        return results

    def _generate_migration_report(self, result):
        """Log the summary and, when a report directory is set, save the JSON report"""
        mode = "CANCELLED" if result.cancelled else "ABORTED" if result.aborted else "COMPLETED"
        self.log(f"=== BULK MIGRATION {mode} ===")
        self.log(f"Duration: {result.duration_seconds:.2f} seconds")
        self.log(
            f"Total: {result.total_processed}, Successful: {result.successful_migrations}, "
            f"Failed: {result.failed_migrations} ({result.success_rate:.1f}% success)"
        )
        for failure in result.failures:
            self.log(f"  {failure.material_id}: {failure.error_message}", 'WARNING')
        if result.orphaned_base_product_ids:
            self.log(
                f"Orphaned base products needing cleanup: {', '.join(result.orphaned_base_product_ids)}",
                'ERROR'
            )

        if not self.report_dir:
            return None

        os.makedirs(self.report_dir, exist_ok=True)
        report_file = os.path.join(
            self.report_dir,
            f"migration_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        )
        with open(report_file, 'w', encoding='utf-8') as f:
            json.dump(result.to_dict(), f, indent=2, default=str)
        self.log(f"Report saved to: {report_file}")
        return report_file
