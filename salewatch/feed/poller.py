"""
Ingestion poller service.

Fetches the most recent sales of each partition, stores new asset sales
exactly once and alerts on the ones that meet the configured threshold.
"""

from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salewatch.db.repository import StoreUnavailableError
from salewatch.db.unit_of_work import UnitOfWork
from salewatch.feed.clients.base import (
    BaseFeedClient,
    FeedError,
    FeedParseError,
    RawSale,
    is_asset_entry,
)
from salewatch.feed.clients.mock_client import MockFeedClient
from salewatch.feed.clients.roblox_client import RobloxFeedClient
from salewatch.feed.config import PollerConfig, get_poller_config
from salewatch.feed.metrics import PollerMetrics, PollRunMetrics, PollStatus
from salewatch.notify.base import BaseNotifier
from salewatch.notify.models import SaleAlert
from salewatch.scheduler.state import IngestionState, SeenCache

logger = structlog.get_logger(__name__)


def build_feed_client(config: PollerConfig) -> BaseFeedClient:
    """Create the feed client named by the config."""
    if config.client_type == "mock":
        return MockFeedClient()
    return RobloxFeedClient(
        base_url=config.api_base_url,
        timeout=config.api_timeout,
        cookie=config.cookie,
    )


class IngestionPoller:
    """
    Polls one partition at a time.

    Concurrency markers live in an IngestionState owned by the scheduler;
    a partition that is already being polled is skipped, not queued.
    """

    def __init__(
        self,
        notifier: BaseNotifier,
        client: Optional[BaseFeedClient] = None,
        config: Optional[PollerConfig] = None,
        state: Optional[IngestionState] = None,
        session: Optional[AsyncSession] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        """
        Initialize the poller.

        Args:
            notifier: Receives alerts for newly stored sales
            client: Feed client (defaults to the one named by config)
            config: Poller configuration (defaults to loaded settings)
            state: Shared in-flight markers (defaults to a private one)
            session: Optional database session for testing
            session_factory: Session factory used per poll
        """
        self.config = config or get_poller_config()
        self.client = client or build_feed_client(self.config)
        self.notifier = notifier
        self.state = state or IngestionState(seen=SeenCache(self.config.seen_ttl_seconds))
        self.metrics = PollerMetrics(history_size=self.config.history_size)
        self._session = session
        self._session_factory = session_factory

        logger.info(
            "poller.initialized",
            source=self.client.get_source_name(),
            group_ids=self.config.group_ids,
            interval_seconds=self.config.poll_interval_seconds,
            alert_min_amount=self.config.alert_min_amount,
        )

    async def poll_partition(self, group_id: int) -> Dict[str, Any]:
        """
        Run a single poll for one partition.

        Feed errors abort the poll for this partition only; records stored
        before a failure are kept.

        Returns:
            Dictionary with the run's counters and status
        """
        run = self.metrics.start_run(group_id)
        log = logger.bind(run_id=run.run_id, group_id=group_id)

        if not self.state.try_acquire(group_id):
            log.info("poll.skipped_in_flight")
            self.metrics.end_run(run, PollStatus.SKIPPED)
            return run.to_dict()

        try:
            log.debug("poll.started")
            try:
                entries = await self.client.fetch_entries(group_id, limit=self.config.batch_size)
            except FeedError as exc:
                log.warning("poll.feed_error", error=str(exc), error_type=type(exc).__name__)
                run.record_error(str(exc))
                self.metrics.end_run(run, PollStatus.FAILED)
                return run.to_dict()

            run.fetched = len(entries)
            # Feed is newest first; alerts go out oldest first
            await self._store_entries(group_id, reversed(entries), run)

            status = PollStatus.PARTIAL if run.failed else PollStatus.SUCCESS
            self.metrics.end_run(run, status)
            log.info(
                "poll.completed",
                status=status.value,
                fetched=run.fetched,
                new=run.new,
                duplicate=run.duplicate,
                suppressed=run.suppressed,
                notified=run.notified,
                failed=run.failed,
            )
            return run.to_dict()

        except StoreUnavailableError as exc:
            log.error("poll.store_unavailable", error=str(exc))
            run.record_error(str(exc))
            self.metrics.end_run(run, PollStatus.FAILED)
            return run.to_dict()

        except Exception as exc:
            log.error(
                "poll.failed",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            run.record_error(str(exc))
            self.metrics.end_run(run, PollStatus.FAILED)
            return run.to_dict()

        finally:
            self.state.release(group_id)

    async def poll_all(self) -> List[Dict[str, Any]]:
        """Poll every configured partition one after another."""
        return [await self.poll_partition(group_id) for group_id in self.config.group_ids]

    async def _store_entries(
        self, group_id: int, entries: Iterable[Any], run: PollRunMetrics
    ) -> None:
        """
        Insert each asset sale; commit per record so progress survives failures.

        Entries of other types are skipped before any validation. A malformed
        asset entry is abandoned on its own without aborting the batch.
        """
        async with UnitOfWork(
            session=self._session, session_factory=self._session_factory
        ) as uow:
            for entry in entries:
                if not is_asset_entry(entry):
                    run.non_asset += 1
                    continue

                try:
                    sale = RawSale.from_feed(entry)
                except FeedParseError as exc:
                    run.failed += 1
                    run.record_error(str(exc))
                    logger.warning("storage.malformed_entry", group_id=group_id, error=str(exc))
                    continue

                if self.state.seen.seen_recently(sale.id_hash):
                    run.suppressed += 1
                    logger.debug("storage.recently_seen", id_hash=sale.id_hash)
                    continue
                self.state.seen.mark(sale.id_hash)

                try:
                    inserted = await uow.sales.insert_if_absent(**sale.to_record(group_id))
                    await uow.commit()
                except StoreUnavailableError:
                    await uow.rollback()
                    raise
                except SQLAlchemyError as exc:
                    await uow.rollback()
                    run.failed += 1
                    run.record_error(f"Store failed: {exc}")
                    logger.error("storage.failed", id_hash=sale.id_hash, error=str(exc))
                    continue

                if not inserted:
                    run.duplicate += 1
                    logger.debug("storage.duplicate", id_hash=sale.id_hash)
                    continue

                run.new += 1
                logger.debug("storage.stored", id_hash=sale.id_hash, amount=sale.amount)

                if sale.amount >= self.config.alert_min_amount:
                    await self._notify(group_id, sale, run)

    async def _notify(self, group_id: int, sale: RawSale, run: PollRunMetrics) -> None:
        record = sale.to_record(group_id)
        alert = SaleAlert(
            item=record["item"],
            amount=sale.amount,
            group_id=group_id,
            occurred_at=record["occurred_at"],
            buyer_name=sale.buyer_name,
            buyer_id=sale.buyer_id,
            id_hash=sale.id_hash,
        )
        try:
            await self.notifier.send_sale(alert)
            run.notified += 1
        except Exception as exc:
            run.record_error(f"Notify failed: {exc}")
            logger.error(
                "notify.failed",
                id_hash=sale.id_hash,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    def get_status(self) -> Dict[str, Any]:
        last_run = self.metrics.get_last_run()
        return {
            "source": self.client.get_source_name(),
            "group_ids": self.config.group_ids,
            "busy_partitions": sorted(self.state.busy_partitions),
            "recently_seen": len(self.state.seen),
            "active_runs": [r.to_dict() for r in self.metrics.get_active_runs()],
            "last_run": last_run.to_dict() if last_run else None,
            "metrics_24h": self.metrics.get_aggregate_metrics(hours=24).to_dict(),
            "recent_runs": [r.to_dict() for r in self.metrics.get_history(limit=10)],
        }

    async def aclose(self) -> None:
        await self.client.aclose()
