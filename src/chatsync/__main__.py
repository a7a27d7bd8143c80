"""Application entry point for chatsync."""

import argparse
import asyncio
import signal
import sys
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from chatsync.application.handlers.job_handlers import (
    JobHandlerRegistry,
    PurgeEmbeddingsJobHandler,
    VectorizeJobHandler,
)
from chatsync.application.services import (
    JobRunner,
    ReplyGenerator,
    SemanticRetrievalEngine,
    VectorizationPipeline,
)
from chatsync.config import (
    AppConfig,
    ConfigError,
    ConfigFileNotFoundError,
    load_config,
)
from chatsync.domain.entities.job import Job, JobType, VectorizeJob
from chatsync.domain.entities.message_record import MessageRecord
from chatsync.infrastructure import Database, JobQueue
from chatsync.infrastructure.embedding import create_embedding_service
from chatsync.infrastructure.logging import get_logger, setup_logging
from chatsync.infrastructure.persistence import (
    EmbeddingRow,
    SqliteMessageRepository,
    SqliteSimilarityIndex,
)
from chatsync.infrastructure.tracing import setup_tracing
from chatsync.presentation.http import BrokerHub, HTTPServer

# Shutdown timeout in seconds
SHUTDOWN_TIMEOUT = 30


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Command line arguments. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="chatsync - realtime chat sync and style-matched retrieval"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a configuration value, e.g. --set server.port=9000",
    )
    return parser.parse_args(args)


def create_databases(config: AppConfig) -> list[Database]:
    """Create the primary store and, when configured apart, the index store.

    Returns:
        One database holding both tables, or the primary database followed
        by the index database.
    """
    if config.index_url == config.database.url:
        return [Database(config.database.url)]
    return [
        Database(config.database.url, tables=[MessageRecord]),
        Database(config.index_url, tables=[EmbeddingRow]),
    ]


async def run_vectorize_ticker(
    job_queue: JobQueue, interval: float, logger: BoundLogger
) -> None:
    """Enqueue a vectorization job every ``interval`` seconds."""
    while True:
        await asyncio.sleep(interval)
        logger.debug("Scheduling periodic vectorization")
        await job_queue.enqueue(VectorizeJob(source="ticker"))


async def run_main_loop(
    job_queue: JobQueue,
    job_runner: JobRunner,
    shutdown_event: asyncio.Event,
    running_check: Callable[[], bool],
    logger: BoundLogger,
) -> None:
    """Run the main job processing loop.

    Args:
        job_queue: JobQueue instance for retrieving jobs.
        job_runner: JobRunner instance for processing jobs.
        shutdown_event: Event that signals shutdown.
        running_check: Callable that returns whether the loop should continue.
        logger: Logger instance.
    """
    while running_check():
        dequeue_task = asyncio.create_task(job_queue.dequeue())
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        try:
            done, pending = await asyncio.wait(
                [dequeue_task, shutdown_task],
                return_when=asyncio.FIRST_COMPLETED,
            )

            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

            # A job dequeued together with the shutdown signal still runs
            if dequeue_task in done:
                await _process_job(dequeue_task.result(), job_runner, job_queue, logger)
            if shutdown_task in done:
                break

        except asyncio.CancelledError:
            for task in (dequeue_task, shutdown_task):
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            raise


async def _process_job(
    job: Job,
    job_runner: JobRunner,
    job_queue: JobQueue,
    logger: BoundLogger,
) -> None:
    """Process a single job. A failing job never stops the main loop."""
    try:
        await job_runner.process(job)
    except Exception as e:
        logger.error("Error processing job", job_id=job.id, error=str(e))
    finally:
        job_queue.mark_done(job)


async def main_async(
    config_path: Path,
    overrides: list[str] | None = None,
    shutdown_timeout: float = SHUTDOWN_TIMEOUT,
) -> int:
    """Async main function.

    Args:
        config_path: Path to configuration file.
        overrides: ``KEY=VALUE`` configuration overrides.
        shutdown_timeout: Maximum time in seconds to wait for graceful shutdown.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    # 1. Load configuration
    config = load_config(config_path, overrides=overrides)

    # 2. Initialize logging
    setup_logging(config.logging)
    logger = get_logger(__name__)
    logger.info("Starting chatsync", config_path=str(config_path))

    # 3. Initialize tracing (if OTEL endpoint is configured)
    telemetry = setup_tracing()
    if telemetry:
        logger.info("Tracing enabled")

    # 4. Initialize stores
    databases = create_databases(config)
    for database in databases:
        await database.initialize()
    repository = SqliteMessageRepository(databases[0])
    embeddings = create_embedding_service(config.embedding)
    index = SqliteSimilarityIndex(databases[-1], dimension=embeddings.dimension)

    # 5. Initialize services
    pipeline = VectorizationPipeline(
        repository=repository,
        embeddings=embeddings,
        index=index,
        logger=get_logger("pipeline"),
        timeout=config.vectorization.timeout,
    )
    retrieval = SemanticRetrievalEngine(
        embeddings=embeddings,
        index=index,
        logger=get_logger("retrieval"),
        timeout=config.retrieval.timeout,
    )
    reply_generator = None
    if config.generation is not None:
        reply_generator = ReplyGenerator(
            config=config.generation,
            retrieval=retrieval,
            logger=get_logger("reply_generator"),
            top_k=config.retrieval.top_k,
        )

    registry = JobHandlerRegistry()
    registry.register(
        JobType.VECTORIZE,
        VectorizeJobHandler(pipeline, config.vectorization.min_threshold),
    )
    registry.register(JobType.PURGE_EMBEDDINGS, PurgeEmbeddingsJobHandler(pipeline))
    job_runner = JobRunner(registry=registry, logger=get_logger("job_runner"))
    job_queue = JobQueue()

    hub = BrokerHub(logger=get_logger("broker_hub"), heartbeat=config.broker.heartbeat)
    http_server = HTTPServer(
        config=config.server,
        job_queue=job_queue,
        repository=repository,
        retrieval=retrieval,
        hub=hub,
        logger=get_logger("http_server"),
        reply_generator=reply_generator,
        top_k=config.retrieval.top_k,
    )

    # 6. Setup shutdown handling
    running = True
    shutdown_event = asyncio.Event()

    def is_running() -> bool:
        return running

    def signal_handler(sig: signal.Signals) -> None:
        nonlocal running
        logger.info("Received signal, initiating shutdown", signal=sig.name)
        running = False
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    ticker: asyncio.Task[None] | None = None
    try:
        # 7. Start HTTP server and schedule vectorization
        await http_server.start()
        if config.vectorization.run_on_startup:
            await job_queue.enqueue(VectorizeJob(source="startup"))
        if config.vectorization.interval_seconds is not None:
            ticker = asyncio.create_task(
                run_vectorize_ticker(
                    job_queue, config.vectorization.interval_seconds, logger
                )
            )
        logger.info("chatsync started successfully")

        # 8. Run main loop
        await run_main_loop(
            job_queue=job_queue,
            job_runner=job_runner,
            shutdown_event=shutdown_event,
            running_check=is_running,
            logger=logger,
        )

    except asyncio.CancelledError:
        logger.info("Main loop cancelled")

    finally:
        # 9. Shutdown
        logger.info("Shutting down")
        if ticker is not None:
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass
        try:
            await asyncio.wait_for(http_server.stop(), timeout=shutdown_timeout)
        except TimeoutError:
            logger.warning(
                "Shutdown timed out, forcing termination",
                timeout_seconds=shutdown_timeout,
            )
        await job_queue.close()
        for database in databases:
            await database.close()
        logger.info("chatsync stopped")

    return 0


def main() -> None:
    """Main entry point."""
    args = parse_args()
    config_path = args.config

    try:
        exit_code = asyncio.run(main_async(config_path, overrides=args.overrides))
        sys.exit(exit_code)
    except ConfigFileNotFoundError:
        print(f"Error: {config_path} not found", file=sys.stderr)
        sys.exit(1)
    except ConfigError as e:
        print(f"Error: Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValidationError as e:
        print(f"Error: Configuration validation error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
