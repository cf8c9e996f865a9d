"""Main pipeline orchestrator for the Solana Whale Tracker.

This module provides the Pipeline class that wires together ingestion,
detection, premium gating and alerting, and manages their background loops.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from redis.asyncio import Redis

from solana_whale_tracker.alerter.dispatcher import AlertDispatcher, LoggingSink, NotificationSink
from solana_whale_tracker.chain.rpc import SolanaRpcClient
from solana_whale_tracker.config import Settings, get_settings
from solana_whale_tracker.detector.cluster import ClusterDetector
from solana_whale_tracker.detector.matcher import AlertMatcher
from solana_whale_tracker.detector.models import AlertType
from solana_whale_tracker.ingestor.checkpoint import CheckpointStore
from solana_whale_tracker.ingestor.dedup import DedupCache
from solana_whale_tracker.ingestor.models import (
    NormalizedSwapEvent,
    SignatureSource,
    TransactionParser,
)
from solana_whale_tracker.ingestor.queue import BackpressureQueue, QueueStats
from solana_whale_tracker.ingestor.signature_ingestor import SignatureIngestor
from solana_whale_tracker.ingestor.sources import RpcSignatureSource
from solana_whale_tracker.lifecycle import ActivationStatus, ProcessLifecycleManager
from solana_whale_tracker.premium.gate import PremiumAccessResult, PremiumGate
from solana_whale_tracker.premium.oracle import BalanceOracle
from solana_whale_tracker.premium.revalidator import BalanceRevalidator
from solana_whale_tracker.storage.database import DatabaseManager
from solana_whale_tracker.storage.models import FEED_KOL, FEED_WHALE
from solana_whale_tracker.storage.repos import AlertSubscriptionRepository, TrackedWalletRepository

logger = logging.getLogger(__name__)

LOOP_WHALE_FEED = "whale-feed"
LOOP_KOL_FEED = "kol-feed"
LOOP_CONSUMER = "queue-consumer"
LOOP_CLUSTER_PRUNE = "cluster-prune"
LOOP_SUBSCRIPTION_SYNC = "subscription-sync"
LOOP_PREMIUM_REVALIDATION = "premium-revalidation"
LOOP_QUEUE_STATS = "queue-stats"

CONSUMER_POLL_SECONDS = 1.0


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    events_processed: int = 0
    clusters_detected: int = 0
    matches_found: int = 0
    alerts_sent: int = 0
    subscription_syncs: int = 0
    errors: int = 0
    last_event_time: datetime | None = None
    last_error: str | None = None


@dataclass(frozen=True)
class _LoopSpec:
    process_type: str
    description: str
    tick: Callable[[], Awaitable[object]]
    interval_seconds: float


class Pipeline:
    """Main pipeline orchestrator for the Solana Whale Tracker.

    Pipeline flow:
        Signature feeds → Dedup → Backpressure queue → Cluster detector
        → Alert matcher → Premium gate → Notification sink

    Example:
        ```python
        from solana_whale_tracker.config import get_settings
        from solana_whale_tracker.pipeline import Pipeline

        pipeline = Pipeline(get_settings(), parser=my_parser, sink=my_sink)

        await pipeline.start()
        # Pipeline runs until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        parser: TransactionParser | None = None,
        sink: NotificationSink | None = None,
        source: SignatureSource | None = None,
        dry_run: bool | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            parser: Transaction parser turning signatures into swap events.
                Required to start.
            sink: Notification sink. Ignored in dry-run mode.
            source: Signature source. Defaults to the Solana RPC source.
            dry_run: If True, log alerts instead of delivering them.
                Overrides settings.dry_run.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run
        self._parser = parser
        self._source = source

        if self._dry_run or sink is None:
            if not self._dry_run:
                logger.warning("No notification sink configured, alerts will only be logged")
            self._sink: NotificationSink = LoggingSink()
        else:
            self._sink = sink

        self._premium_alert_types = tuple(
            AlertType(t) for t in self._settings.alerts.premium_alert_types
        )

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        # In-memory components
        self._queue: BackpressureQueue[NormalizedSwapEvent] = BackpressureQueue(
            high_water_mark=self._settings.queue.high_water_mark,
            low_water_mark=self._settings.queue.low_water_mark,
        )
        self._dedup = DedupCache(
            retention_seconds=self._settings.dedup.retention_seconds,
            max_entries=self._settings.dedup.max_entries,
        )
        self._matcher = AlertMatcher()
        self._cluster_detector = ClusterDetector(
            window_minutes=self._settings.cluster.window_minutes,
            subscriptions=lambda: self._matcher.subscriptions_for(AlertType.WHALE_CLUSTER),
        )
        self._dispatcher = AlertDispatcher(
            self._sink,
            premium_alert_types=self._premium_alert_types,
        )
        self._lifecycle = ProcessLifecycleManager()
        self._whale_addresses: list[str] = []
        self._kol_addresses: list[str] = []

        # Components (initialized in start())
        self._redis: Redis | None = None
        self._db_manager: DatabaseManager | None = None
        self._rpc_client: SolanaRpcClient | None = None
        self._oracle: BalanceOracle | None = None
        self._gate: PremiumGate | None = None
        self._revalidator: BalanceRevalidator | None = None
        self._ingestors: dict[str, SignatureIngestor] = {}
        self._loops: dict[str, _LoopSpec] = {}

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    @property
    def lifecycle(self) -> ProcessLifecycleManager:
        return self._lifecycle

    async def start(self) -> None:
        """Start the pipeline.

        Initializes all components, loads the subscription snapshot and
        activates every background loop.

        Raises:
            RuntimeError: If the pipeline is not stopped, was already used,
                or has no transaction parser.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")
        if self._lifecycle.is_shutting_down:
            raise RuntimeError("Pipeline cannot be restarted after stop")
        if self._parser is None:
            raise RuntimeError("A transaction parser is required to start the pipeline")

        self._state = PipelineState.STARTING
        logger.info("Starting pipeline...")

        try:
            await self._initialize_components()
            await self._sync_subscriptions()
            await self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._lifecycle.shutdown(timeout=self._settings.shutdown_timeout_seconds)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        New events are refused, queued events are drained and in-flight
        ticks finish before resources are released.
        """
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        self._queue.begin_shutdown()
        await self._lifecycle.shutdown(timeout=self._settings.shutdown_timeout_seconds)
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def _initialize_components(self) -> None:
        """Initialize all pipeline components."""
        settings = self._settings

        # Initialize Redis
        logger.debug("Initializing Redis connection...")
        self._redis = Redis.from_url(settings.redis.url)

        # Initialize Database Manager
        logger.debug("Initializing database manager...")
        self._db_manager = DatabaseManager(settings.database.url)

        # Initialize Solana client
        logger.debug("Initializing Solana RPC client...")
        self._rpc_client = SolanaRpcClient(
            settings.solana.rpc_url,
            fallback_rpc_url=settings.solana.fallback_rpc_url,
            request_timeout_seconds=settings.solana.request_timeout_seconds,
            max_requests_per_second=settings.solana.max_requests_per_second,
            max_retries=settings.solana.max_retries,
        )

        if settings.dedup.persist:
            self._dedup = DedupCache(
                retention_seconds=settings.dedup.retention_seconds,
                max_entries=settings.dedup.max_entries,
                redis=self._redis,
            )

        # Initialize premium gate
        logger.debug("Initializing premium gate...")
        self._oracle = BalanceOracle(
            self._rpc_client,
            mint=settings.premium.token_mint,
            default_decimals=settings.premium.token_decimals,
            timeout_seconds=settings.premium.oracle_timeout_seconds,
        )
        self._gate = PremiumGate(
            self._oracle,
            threshold=settings.premium.balance_threshold,
            redis=self._redis,
            cache_ttl_seconds=settings.premium.cache_ttl_seconds,
        )
        self._dispatcher = AlertDispatcher(
            self._sink,
            gate=self._gate,
            premium_alert_types=self._premium_alert_types,
        )
        self._revalidator = BalanceRevalidator(
            self._gate,
            self._db_manager.get_async_session,
            batch_size=settings.premium.revalidation_batch_size,
            on_revoked=self._matcher.invalidate_user,
            notifier=self._dispatcher.notify_revoked,
        )

        # Initialize ingestors
        if self._parser is None:
            raise RuntimeError("A transaction parser is required to start the pipeline")
        source = self._source or RpcSignatureSource(
            self._rpc_client,
            signatures_per_address=settings.ingestion.signatures_per_address,
            max_pages_per_address=settings.ingestion.max_pages_per_address,
        )
        checkpoints = CheckpointStore(self._redis)
        feeds: list[tuple[str, bool, Callable[[], Awaitable[list[str]]]]] = [
            (FEED_WHALE, settings.ingestion.whale_feed_enabled, self._get_whale_addresses),
            (FEED_KOL, settings.ingestion.kol_feed_enabled, self._get_kol_addresses),
        ]
        for feed, enabled, provider in feeds:
            if not enabled:
                logger.info("Feed %s disabled", feed)
                continue
            ingestor = SignatureIngestor(
                feed,
                source=source,
                parser=self._parser,
                dedup=self._dedup,
                queue=self._queue,
                address_provider=provider,
                checkpoints=checkpoints,
            )
            await ingestor.restore_checkpoint()
            self._ingestors[feed] = ingestor

        self._loops = self._build_loop_specs()

    def _build_loop_specs(self) -> dict[str, _LoopSpec]:
        settings = self._settings
        loops: dict[str, _LoopSpec] = {}

        if FEED_WHALE in self._ingestors:
            loops[LOOP_WHALE_FEED] = _LoopSpec(
                "ingestion",
                "Whale wallet signature polling",
                self._ingestors[FEED_WHALE].tick,
                settings.ingestion.interval_seconds,
            )
        if FEED_KOL in self._ingestors:
            loops[LOOP_KOL_FEED] = _LoopSpec(
                "ingestion",
                "KOL wallet signature polling",
                self._ingestors[FEED_KOL].tick,
                settings.ingestion.interval_seconds,
            )
        loops[LOOP_CLUSTER_PRUNE] = _LoopSpec(
            "maintenance",
            "Expired cluster window pruning",
            self._prune_clusters,
            settings.cluster.prune_interval_seconds,
        )
        loops[LOOP_SUBSCRIPTION_SYNC] = _LoopSpec(
            "maintenance",
            "Alert subscription snapshot refresh",
            self._sync_subscriptions,
            settings.alerts.subscription_sync_interval_seconds,
        )
        if self._revalidator is not None:
            loops[LOOP_PREMIUM_REVALIDATION] = _LoopSpec(
                "premium",
                "Premium balance revalidation",
                self._revalidator.run_once,
                settings.premium.revalidation_interval_seconds,
            )
        loops[LOOP_QUEUE_STATS] = _LoopSpec(
            "observability",
            "Queue statistics logging",
            self._log_queue_stats,
            settings.queue.stats_log_interval_seconds,
        )
        return loops

    async def _start_background_services(self) -> None:
        """Start the queue consumer and every periodic loop."""
        logger.debug("Starting queue consumer...")
        consumer = asyncio.create_task(self._run_consumer(), name=LOOP_CONSUMER)
        await self._lifecycle.register_interval(
            LOOP_CONSUMER,
            "consumer",
            "Swap event consumer",
            consumer,
        )

        for loop_id in self._loops:
            logger.debug("Starting %s loop...", loop_id)
            await self.activate(loop_id)

    async def activate(self, loop_id: str) -> ActivationStatus:
        """Start a named loop unless it is already running.

        Returns:
            ACTIVE if the loop was already running, INITIALIZING otherwise.
            The loop runs asynchronously after the acknowledgment.

        Raises:
            KeyError: If the loop id is unknown.
            ShutdownInProgressError: If the pipeline is stopping.
        """
        spec = self._loops.get(loop_id)
        if spec is None:
            raise KeyError(f"Unknown loop: {loop_id}")
        return await self._lifecycle.start_periodic(
            loop_id,
            spec.process_type,
            spec.description,
            spec.tick,
            interval_seconds=spec.interval_seconds,
        )

    async def _get_whale_addresses(self) -> list[str]:
        return list(self._whale_addresses)

    async def _get_kol_addresses(self) -> list[str]:
        return list(self._kol_addresses)

    async def _sync_subscriptions(self) -> None:
        """Reload subscriptions and tracked wallets from storage."""
        if not self._db_manager:
            return

        async with self._db_manager.get_async_session() as session:
            subscriptions = await AlertSubscriptionRepository(session).list_active_subscriptions()
            wallets = TrackedWalletRepository(session)
            whales = await wallets.list_addresses(FEED_WHALE)
            kols = await wallets.list_kols()

        self._matcher.replace_subscriptions(subscriptions)
        self._matcher.set_kols(kols)
        self._whale_addresses = whales
        self._kol_addresses = [kol.address for kol in kols]
        self._stats.subscription_syncs += 1
        logger.info(
            "Synced %d subscriptions, %d whale wallets, %d KOL wallets",
            len(subscriptions),
            len(whales),
            len(kols),
        )

    async def _prune_clusters(self) -> None:
        self._cluster_detector.prune()

    async def _log_queue_stats(self) -> None:
        stats = self.get_queue_stats()
        logger.info(
            "Queue stats: depth=%d dedup=%d processed=%d dropped=%d backpressure=%s",
            stats.queue_size,
            stats.dedup_cache_size,
            stats.messages_processed,
            stats.messages_dropped,
            stats.is_in_backpressure,
        )

    async def _run_consumer(self) -> None:
        """Feed queued events downstream until shutdown and the queue is drained."""
        stop_event = self._lifecycle.shutdown_event
        while not (stop_event.is_set() and self._queue.depth == 0):
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=CONSUMER_POLL_SECONDS)
            except TimeoutError:
                continue

            try:
                await self.process_event(event)
            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = str(e)
                logger.exception("Error processing event %s", event.signature)
            finally:
                self._queue.mark_processed()

        logger.debug("Queue consumer drained")

    async def process_event(self, event: NormalizedSwapEvent) -> int:
        """Run one swap event through detection and alerting.

        Returns:
            Number of alerts delivered.
        """
        self._stats.events_processed += 1
        self._stats.last_event_time = event.timestamp

        matches = self._matcher.evaluate(event)
        cluster = self._cluster_detector.observe(event)
        if cluster is not None:
            self._stats.clusters_detected += 1
            matches.extend(self._matcher.evaluate(cluster))

        if not matches:
            return 0

        self._stats.matches_found += len(matches)
        sent = await self._dispatcher.dispatch(matches)
        self._stats.alerts_sent += sent
        return sent

    def get_queue_stats(self) -> QueueStats:
        return self._queue.stats(dedup_cache_size=self._dedup.size())

    def get_process_status(self) -> dict[str, Any]:
        return self._lifecycle.get_status()

    async def check_access(self, wallet_address: str) -> PremiumAccessResult:
        """Check a wallet's premium access.

        Raises:
            RuntimeError: If the pipeline has not been started.
        """
        if self._gate is None:
            raise RuntimeError("Pipeline not started")
        return await self._gate.check_access(wallet_address)

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._rpc_client:
            await self._rpc_client.aclose()
            self._rpc_client = None

        # Close database connections
        if self._db_manager:
            await self._db_manager.dispose_async()
            self._db_manager = None

        # Close Redis connection
        if self._redis:
            await self._redis.aclose()
            self._redis = None

        logger.debug("Resources cleaned up")

    async def run(self) -> None:
        """Start the pipeline and run until cancelled or stopped."""
        await self.start()

        try:
            await self._lifecycle.shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
