"""
Service wiring. Everything is constructed once per app and injected, so tests
can swap any collaborator (network signal, API client, queue) for a fake.
"""
from dataclasses import dataclass
from typing import Any

from flask import current_app

from attendance_sync.network.signal import NetworkSignal
from attendance_sync.offline.failed_items import FailedItemSet
from attendance_sync.offline.projection_cache import ProjectionCache
from attendance_sync.offline.queue_store import QueueStore
from attendance_sync.remote.api import AttendanceAPI
from attendance_sync.remote.resolution import ResolutionFeed
from attendance_sync.services.submission_gateway import SubmissionGateway
from attendance_sync.services.sync_event_logger import SyncEventLogger
from attendance_sync.services.sync_orchestrator import SyncOrchestrator
from attendance_sync.sync_lock import DatabaseLease, SyncLock

EXTENSION_KEY = "attendance_sync"


@dataclass
class SyncServices:
    queue_store: QueueStore
    failed_items: FailedItemSet
    cache: ProjectionCache
    network_signal: NetworkSignal
    api: Any
    resolution_feed: ResolutionFeed
    event_logger: SyncEventLogger
    gateway: SubmissionGateway
    orchestrator: SyncOrchestrator


def build_services(app, api=None, network_signal=None):
    """Construct the service graph from app config and attach it to the app."""
    cfg = app.config

    if api is None:
        api = AttendanceAPI(
            cfg["API_BASE_URL"],
            token=cfg.get("API_TOKEN"),
            submit_timeout=cfg["SUBMIT_TIMEOUT_SECONDS"],
            resolution_timeout=cfg["RESOLUTION_TIMEOUT_SECONDS"],
            probe_timeout=cfg["CONNECTIVITY_TIMEOUT_SECONDS"],
        )
    if network_signal is None:
        network_signal = NetworkSignal(
            initial_status=cfg["ASSUME_ONLINE"],
            health_url=getattr(api, "health_url", None),
            probe_timeout=cfg["CONNECTIVITY_TIMEOUT_SECONDS"],
        )

    queue_store = QueueStore()
    failed_items = FailedItemSet()
    cache = ProjectionCache()
    resolution_feed = ResolutionFeed(api, overlap_seconds=cfg["RESOLUTION_OVERLAP_SECONDS"])
    event_logger = SyncEventLogger(
        api,
        network_signal=network_signal,
        cache=cache,
        dedup_seconds=cfg["ERROR_LOG_DEDUP_SECONDS"],
    )
    gateway = SubmissionGateway(api, network_signal, queue_store)
    orchestrator = SyncOrchestrator(
        queue_store,
        failed_items,
        network_signal,
        api,
        resolution_feed,
        event_logger=event_logger,
        cache=cache,
        app=app,
        settle_delay=cfg["SETTLE_DELAY_SECONDS"],
        retention_days=cfg["SYNCED_RETENTION_DAYS"],
        auto_sync=cfg["AUTO_SYNC_ENABLED"],
        lock=SyncLock(lease=DatabaseLease(ttl_seconds=cfg["SYNC_LEASE_SECONDS"])),
    )

    services = SyncServices(
        queue_store=queue_store,
        failed_items=failed_items,
        cache=cache,
        network_signal=network_signal,
        api=api,
        resolution_feed=resolution_feed,
        event_logger=event_logger,
        gateway=gateway,
        orchestrator=orchestrator,
    )
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> SyncServices:
    return current_app.extensions[EXTENSION_KEY]
