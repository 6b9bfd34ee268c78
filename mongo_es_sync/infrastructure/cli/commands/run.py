"""Run replication for configured collections until interrupted."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import uuid

import typer
from elasticsearch import AsyncElasticsearch
from pymongo.errors import PyMongoError
from rich.console import Console

from mongo_es_sync.application.ports.checkpoint_store import ResumeTokenStorePort
from mongo_es_sync.application.services.pause_gate import pause_all_bootstraps, resume_all_bootstraps
from mongo_es_sync.application.services.replication_orchestrator import ReplicationOrchestrator
from mongo_es_sync.application.use_cases.replicate_collections import run_replication, stop_replication
from mongo_es_sync.domain.errors import ConfigurationError
from mongo_es_sync.infrastructure.adapters.dump_progress_store import JsonDumpProgressStore
from mongo_es_sync.infrastructure.adapters.elasticsearch_sink import ElasticsearchSink
from mongo_es_sync.infrastructure.adapters.mongo_data_source import MotorDataSource
from mongo_es_sync.infrastructure.adapters.resume_token_store import (
    CollectionResumeTokenStore,
    FileResumeTokenStore,
)
from mongo_es_sync.infrastructure.adapters.rich_progress_reporter import RichProgressReporterAdapter
from mongo_es_sync.infrastructure.config.settings import Settings
from mongo_es_sync.infrastructure.logging import configure_logging, set_correlation_id

console = Console()
logger = logging.getLogger(__name__)


def load_settings(config_path: str | None) -> Settings:
    """Load settings or exit with a readable error."""
    try:
        return Settings.from_toml(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        raise typer.Exit(1)


def build_token_store(settings: Settings, data_source: MotorDataSource) -> ResumeTokenStorePort:
    """Token collection when ``[mongo].resume_token_collection`` is set, else one file per collection."""
    if settings.mongo.resume_token_collection:
        return CollectionResumeTokenStore(data_source.database, settings.mongo.resume_token_collection)
    return FileResumeTokenStore(settings.checkpoints.resume_token_dir)


def build_elasticsearch_client(settings: Settings) -> AsyncElasticsearch:
    es = settings.elasticsearch
    return AsyncElasticsearch(
        es.url,
        api_key=es.api_key or None,
        request_timeout=es.request_timeout,
    )


def run(
    collection: list[str] | None = typer.Option(
        None,
        "--collection",
        "-c",
        help="Collection to replicate (repeatable; defaults to every configured collection)",
    ),
    force_bootstrap: bool = typer.Option(
        False,
        "--force-bootstrap",
        help="Dump every collection again from its first document",
    ),
    config_path: str | None = typer.Option(
        None,
        "--config",
        help="Path to mongo-es-sync.toml configuration file",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug and driver logs"),
) -> None:
    """
    Dump each collection into Elasticsearch, then follow its change stream.

    Runs until SIGINT/SIGTERM. Send SIGUSR1 to pause every running dump
    and SIGUSR2 to resume.

    Examples:
        mongo-es-sync run
        mongo-es-sync run --collection users --collection orders
        mongo-es-sync run --force-bootstrap --config prod.toml
    """
    configure_logging(level=logging.DEBUG if verbose else logging.INFO, verbose=verbose)
    settings = load_settings(config_path)

    names = collection or settings.collection_names()
    if not names:
        console.print("[yellow]No collections configured. Nothing to replicate.[/yellow]")
        raise typer.Exit(1)

    try:
        for name in names:
            settings.get_collection(name)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    exit_code = asyncio.run(_replicate(settings, names, force_bootstrap))
    raise typer.Exit(exit_code)


async def _replicate(settings: Settings, names: list[str], force_bootstrap: bool) -> int:
    set_correlation_id(str(uuid.uuid4()))

    data_source = MotorDataSource.from_url(settings.mongo.url, settings.mongo.database)
    client = build_elasticsearch_client(settings)
    sink = ElasticsearchSink(
        client,
        bulk_size=settings.elasticsearch.bulk_size,
        collection_mappings=settings.collection_mappings(),
    )
    dump_progress = JsonDumpProgressStore(settings.checkpoints.dump_progress_path)
    token_store = build_token_store(settings, data_source)
    reporter = RichProgressReporterAdapter()

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    handled_signals = {
        signal.SIGINT: stop_requested.set,
        signal.SIGTERM: stop_requested.set,
        signal.SIGUSR1: pause_all_bootstraps,
        signal.SIGUSR2: resume_all_bootstraps,
    }
    for signum, callback in handled_signals.items():
        loop.add_signal_handler(signum, callback)

    orchestrators: list[ReplicationOrchestrator] = []
    stopper = asyncio.create_task(stop_requested.wait())
    try:
        try:
            await data_source.ping()
        except PyMongoError as e:
            logger.error(f"Could not connect to MongoDB at {settings.mongo.url}: {e}")
            return 1

        starting = asyncio.create_task(
            run_replication(
                names,
                data_source=data_source,
                sink=sink,
                dump_progress=dump_progress,
                token_store=token_store,
                force_bootstrap=force_bootstrap,
                progress_reporter=reporter,
            )
        )
        done, _ = await asyncio.wait({starting, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if starting not in done:
            logger.info("Stop requested during startup")
            starting.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await starting
            return 0

        orchestrators = starting.result()
        if not orchestrators:
            logger.error("No collection could be started")
            return 1

        logger.info(f"Replicating {len(orchestrators)} collections, waiting for changes")
        await stopper
        logger.info("Stop requested, closing change streams")
        return 0
    finally:
        stopper.cancel()
        await stop_replication(orchestrators)
        await dump_progress.wait_pending()
        reporter.cleanup()
        for signum in handled_signals:
            loop.remove_signal_handler(signum)
        await client.close()
        data_source.close()
