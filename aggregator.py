"""
Result aggregation for bulk migrations
"""
import queue

from logger import setup_logger
from models import BulkMigrationResult, utcnow

logger = setup_logger(__name__)

class ResultAggregator:
    """Collects MigrationResults from worker threads.

    Workers only call record(), which puts the result on a queue. The thread
    that owns the aggregator drains the queue in finalize(), so the counters
    and the result list are never touched concurrently.
    """

    def __init__(self):
        self._inbox = queue.Queue()
        self._results = {}
        self._next_position = 0
        self.started_at = utcnow()

    def record(self, result, position=None):
        """Queue a result. position is the item's index in submission order."""
        self._inbox.put((position, result))

    def _drain(self):
        while True:
            try:
                position, result = self._inbox.get_nowait()
            except queue.Empty:
                return
            if position is None:
                position = self._next_position
            self._next_position = max(self._next_position, position + 1)
            if position in self._results:
                logger.warning(f"Result for position {position} recorded twice, keeping the first")
                continue
            self._results[position] = result

    @property
    def recorded(self):
        """Results recorded so far, in submission order"""
        self._drain()
        return [self._results[p] for p in sorted(self._results)]

    def finalize(self, cancelled=False, aborted=False):
        """Build the immutable BulkMigrationResult from everything recorded"""
        results = []
        seen = set()
        for result in self.recorded:
            if result.material_id in seen:
                logger.warning(f"Material {result.material_id} recorded more than once, keeping the first result")
                continue
            seen.add(result.material_id)
            results.append(result)

        successful = sum(1 for r in results if r.success)
        orphaned = tuple(r.base_product_id for r in results if not r.success and r.base_product_id)

        return BulkMigrationResult(
            total_processed=len(results),
            successful_migrations=successful,
            failed_migrations=len(results) - successful,
            results=tuple(results),
            migrated_at=utcnow(),
            started_at=self.started_at,
            cancelled=cancelled,
            aborted=aborted,
            orphaned_base_product_ids=orphaned,
        )
