"""
Tests for bulk migration: batching, error policy, ordering and cancellation.
"""
import json
import random
import threading
import time
from decimal import Decimal

import pytest

from conftest import make_material
from errors import MaterialLookupError
from migration_engine import MigrationEngine
from models import MigrationOptions


def material_ids(count):
    return [f"m{n:02d}" for n in range(1, count + 1)]


@pytest.fixture
def twenty_five(material_store):
    """25 materials where #7 and #19 fail validation."""
    ids = material_ids(25)
    for position, material_id in enumerate(ids, start=1):
        if position in (7, 19):
            material_store.add(make_material(material_id, unit_value=Decimal("0")))
        else:
            material_store.add(make_material(material_id))
    return ids


class TestBulkMigration:

    def test_twenty_five_with_two_failures(self, engine, twenty_five):
        result = engine.bulk_migrate_materials_to_product_variants(
            material_ids=twenty_five, user_id="user-1", batch_size=10, continue_on_error=True,
        )

        assert result.total_processed == 25
        assert result.successful_migrations == 23
        assert result.failed_migrations == 2
        assert [r.material_id for r in result.results] == twenty_five
        assert [r.material_id for r in result.failures] == ["m07", "m19"]
        assert not result.cancelled
        assert not result.aborted

    def test_counts_invariant(self, engine, twenty_five):
        result = engine.migrate_bulk(twenty_five, "user-1", MigrationOptions(batch_size=4))

        assert result.total_processed == len(twenty_five)
        assert result.successful_migrations + result.failed_migrations == result.total_processed

    def test_stop_on_first_failure(self, engine, twenty_five, product_catalog):
        result = engine.bulk_migrate_materials_to_product_variants(
            material_ids=twenty_five, user_id="user-1", batch_size=10, continue_on_error=False,
        )

        assert result.total_processed == 7
        assert result.successful_migrations == 6
        assert result.failed_migrations == 1
        assert result.results[-1].material_id == "m07"
        assert result.aborted
        assert len(product_catalog.base_products) == 6

    def test_stop_on_error_without_failures_runs_everything(self, engine, material_store):
        ids = material_ids(12)
        for material_id in ids:
            material_store.add(make_material(material_id))

        result = engine.migrate_bulk(ids, "user-1", MigrationOptions(batch_size=5, continue_on_error=False))

        assert result.total_processed == 12
        assert not result.aborted

    def test_all_materials_resolved_when_no_ids_given(self, engine, twenty_five):
        result = engine.bulk_migrate_materials_to_product_variants(user_id="user-1")

        assert result.total_processed == 25
        assert [r.material_id for r in result.results] == twenty_five

    def test_empty_list_means_all_materials(self, engine, twenty_five):
        result = engine.migrate_bulk([], "user-1")

        assert result.total_processed == 25

    def test_lookup_failure_propagates(self, engine, material_store):
        material_store.fail_listing = True

        with pytest.raises(MaterialLookupError):
            engine.migrate_bulk(None, "user-1")

    def test_unknown_material_does_not_abort_batch(self, engine, material_store):
        material_store.add(make_material("m01"))
        material_store.add(make_material("m03"))

        result = engine.migrate_bulk(["m01", "m02", "m03"], "user-1")

        assert result.total_processed == 3
        assert result.results[1].error_kind == "not_found"
        assert result.successful_migrations == 2

    def test_duplicate_ids_processed_once(self, engine, material_store, product_catalog):
        material_store.add(make_material("m01"))
        material_store.add(make_material("m02"))

        result = engine.migrate_bulk(["m01", "m02", "m01"], "user-1")

        assert [r.material_id for r in result.results] == ["m01", "m02"]
        assert len(product_catalog.base_products) == 2

    def test_results_follow_submission_order_under_concurrency(self, engine, material_store, product_catalog):
        ids = material_ids(30)
        for material_id in ids:
            material_store.add(make_material(material_id))
        product_catalog.before_create = lambda base_product: time.sleep(random.random() / 100)

        result = engine.migrate_bulk(ids, "user-1", MigrationOptions(batch_size=10, max_workers=5))

        assert [r.material_id for r in result.results] == ids
        assert result.successful_migrations == 30

    def test_worker_pool_bounded(self, engine, material_store, product_catalog):
        ids = material_ids(12)
        for material_id in ids:
            material_store.add(make_material(material_id))
        lock = threading.Lock()
        active = {"now": 0, "peak": 0}

        def track(base_product):
            with lock:
                active["now"] += 1
                active["peak"] = max(active["peak"], active["now"])
            time.sleep(0.01)
            with lock:
                active["now"] -= 1

        product_catalog.before_create = track

        engine.migrate_bulk(ids, "user-1", MigrationOptions(batch_size=6, max_workers=3))

        assert active["peak"] <= 3

    def test_unexpected_error_becomes_failed_result(self, engine, material_store):
        material_store.add(make_material("m01"))
        material_store.add(make_material("m02"))
        original = engine.migrator.migrate_one

        def flaky(material_id, user_id, **kwargs):
            if material_id == "m01":
                raise RuntimeError("boom")
            return original(material_id, user_id, **kwargs)

        engine.migrator.migrate_one = flaky

        result = engine.migrate_bulk(["m01", "m02"], "user-1")

        assert result.total_processed == 2
        assert result.results[0].error_kind == "unexpected"
        assert result.results[0].error_message == "boom"
        assert result.results[1].success

    def test_invalid_batch_size(self, engine):
        with pytest.raises(ValueError):
            engine.bulk_migrate_materials_to_product_variants(material_ids=["m01"], user_id="u", batch_size=0)

    def test_progress_reported_per_batch(self, material_store, product_catalog, publisher, twenty_five):
        calls = []
        engine = MigrationEngine(
            material_store, product_catalog, product_catalog, publisher,
            progress_callback=lambda done, total, message: calls.append((done, total)),
        )

        engine.migrate_bulk(twenty_five, "user-1", MigrationOptions(batch_size=10))

        assert calls == [(10, 25), (20, 25), (25, 25)]

    def test_report_saved(self, material_store, product_catalog, publisher, twenty_five, tmp_path):
        engine = MigrationEngine(material_store, product_catalog, product_catalog, publisher, report_dir=str(tmp_path))

        engine.migrate_bulk(twenty_five, "user-1")

        reports = list(tmp_path.glob("migration_report_*.json"))
        assert len(reports) == 1
        report = json.loads(reports[0].read_text(encoding="utf-8"))
        assert report["total_processed"] == 25
        assert report["failed_migrations"] == 2
        assert len(report["results"]) == 25


class TestCancellation:

    def test_cancel_after_twelve(self, engine, twenty_five, publisher, material_store):
        # make every item succeed so "12 completed" means 12 publishes
        for material_id in twenty_five:
            material_store.add(make_material(material_id))
        cancel = threading.Event()

        def cancel_at_twelve(event, count):
            if count == 12:
                cancel.set()

        publisher.on_publish = cancel_at_twelve

        result = engine.migrate_bulk(
            twenty_five, "user-1", MigrationOptions(batch_size=10, max_workers=1), cancel_event=cancel,
        )

        assert result.total_processed == 12
        assert result.cancelled
        assert [r.material_id for r in result.results] == twenty_five[:12]

    def test_stop_migration_from_another_thread(self, engine, material_store, publisher):
        ids = material_ids(25)
        for material_id in ids:
            material_store.add(make_material(material_id))

        def stop_at_twelve(event, count):
            if count == 12:
                engine.stop_migration()

        publisher.on_publish = stop_at_twelve

        result = engine.migrate_bulk(ids, "user-1", MigrationOptions(batch_size=10, max_workers=1))

        assert result.total_processed == 12
        assert result.cancelled
        assert not engine.stop_requested

    def test_stop_before_run_cancels_it(self, engine, material_store, product_catalog):
        material_store.add(make_material("m01"))
        engine.stop_migration()

        result = engine.migrate_bulk(["m01"], "user-1")

        assert result.total_processed == 0
        assert result.cancelled
        assert product_catalog.base_products == {}

    def test_stop_flag_cleared_for_next_run(self, engine, material_store):
        material_store.add(make_material("m01"))
        engine.stop_migration()
        engine.migrate_bulk(["m01"], "user-1")

        result = engine.migrate_bulk(["m01"], "user-1")

        assert result.total_processed == 1
        assert not result.cancelled
