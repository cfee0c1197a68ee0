"""Server command for running the scheduler."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Run the task scheduler until interrupted."""
        try:
            asyncio.run(_run_server(config))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nScheduler stopped")


async def _run_server(config_path: Path | None = None) -> None:
    """Run the scheduler asynchronously."""
    import signal as signal_module

    from chime.config import load_config
    from chime.logging import configure_logging
    from chime.scheduling import (
        CompositeNotifier,
        JSONLNotifier,
        LogNotifier,
        TaskScheduler,
        TaskStore,
    )
    from chime.scheduling.types import Notifier
    from chime.tools import build_registry

    chime_config = load_config(config_path)

    # Rich console output plus JSONL log files
    configure_logging(
        level=chime_config.logging.level,
        use_rich=True,
        log_to_file=chime_config.logging.log_to_file,
    )

    scheduler_config = chime_config.scheduler
    store = TaskStore(scheduler_config.tasks_dir, scheduler_config.default_offset)
    tools = build_registry(chime_config)
    logger.debug(f"Tools: {', '.join(tools.names)}")

    notifiers: list[Notifier] = [LogNotifier()]
    if scheduler_config.events_file is not None:
        notifiers.append(JSONLNotifier(scheduler_config.events_file))

    scheduler = TaskScheduler(
        store,
        tools,
        CompositeNotifier(notifiers),
        rescan_interval=scheduler_config.rescan_interval,
        shutdown_timeout=scheduler_config.shutdown_timeout,
        summary_limit=scheduler_config.summary_limit,
        stamp_prompt_tools=scheduler_config.stamp_prompt_tools,
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal_module.SIGTERM, signal_module.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    logger.info(f"Watching {store.directory}")
    await scheduler.start()
    try:
        await shutdown_event.wait()
    finally:
        logger.info("Shutting down")
        await scheduler.stop()
