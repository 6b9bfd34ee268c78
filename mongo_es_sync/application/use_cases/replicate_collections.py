from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ...infrastructure.logging import get_correlation_id
from ..ports.checkpoint_store import DumpProgressStorePort, ResumeTokenStorePort
from ..ports.data_source import DataSourcePort
from ..ports.indexing_sink import IndexingSinkPort
from ..ports.progress_reporter import ProgressReporterPort
from ..services.pause_gate import PauseGate
from ..services.replication_orchestrator import ReplicationOrchestrator

logger = logging.getLogger(__name__)


async def run_replication(
    collections: Sequence[str],
    data_source: DataSourcePort,
    sink: IndexingSinkPort,
    dump_progress: DumpProgressStorePort,
    token_store: ResumeTokenStorePort,
    force_bootstrap: bool = False,
    pause_gate: PauseGate | None = None,
    progress_reporter: ProgressReporterPort | None = None,
) -> list[ReplicationOrchestrator]:
    """
    Start one orchestrator per collection, concurrently.

    A collection whose start fails (e.g. the index is unreachable during the
    dump) is logged and left out of the returned list; the others keep running.

    Args:
        collections: Source collection names
        data_source: DataSourcePort shared by all orchestrators
        sink: IndexingSinkPort shared by all orchestrators
        dump_progress: Shared dump progress store (each orchestrator gets a scoped handle)
        token_store: ResumeTokenStorePort shared by all orchestrators
        force_bootstrap: Re-dump every collection from the first document
        pause_gate: Pause latch (defaults to the process-wide gate)
        progress_reporter: Optional progress reporter for dumps

    Returns:
        Orchestrators that started successfully, with their feeds attached
    """
    correlation_id = get_correlation_id()
    logger.info(
        f"Starting replication for {len(collections)} collections",
        extra={"correlation_id": correlation_id, "collections": list(collections)},
    )

    orchestrators = [
        ReplicationOrchestrator(
            collection=name,
            data_source=data_source,
            sink=sink,
            dump_progress=dump_progress.scoped(name),
            token_store=token_store,
            pause_gate=pause_gate,
            progress_reporter=progress_reporter,
        )
        for name in collections
    ]

    results = await asyncio.gather(
        *(orchestrator.start(force_bootstrap=force_bootstrap) for orchestrator in orchestrators),
        return_exceptions=True,
    )

    started: list[ReplicationOrchestrator] = []
    for orchestrator, result in zip(orchestrators, results):
        if isinstance(result, BaseException):
            logger.error(
                f"Failed to start replication for {orchestrator.collection}: {result}",
                extra={"correlation_id": correlation_id},
                exc_info=result,
            )
            await orchestrator.stop()
        else:
            started.append(orchestrator)
    return started


async def stop_replication(orchestrators: Sequence[ReplicationOrchestrator]) -> None:
    """Stop every orchestrator, persisting resume tokens."""
    await asyncio.gather(*(orchestrator.stop() for orchestrator in orchestrators))
