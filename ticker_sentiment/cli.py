"""Command-line interface for the ticker sentiment pipeline."""

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

import typer
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError
from typing_extensions import Annotated

from ticker_sentiment.collector.errors import ConfigurationError
from ticker_sentiment.config.settings import DEFAULT_CONFIG_PATH, Settings
from ticker_sentiment.pipeline.runtime import Runtime, build_runtime, validate_proxies
from ticker_sentiment.utils.logging_utils import setup_logging, mask_secret

app = typer.Typer(help="Ticker Sentiment - discover, fetch and score Reddit discussion of stock tickers")

logger = logging.getLogger(__name__)

ConfigOption = Annotated[str, typer.Option("--config", "-c", help="Path to YAML configuration file")]
EnvFileOption = Annotated[Optional[str], typer.Option("--env-file", "-e", help="Path to a .env file to load first")]
LogLevelOption = Annotated[Optional[str], typer.Option("--loglevel", "-l", help="Logging level override")]


def load_settings(config: str, env_file: Optional[str], loglevel: Optional[str]) -> Settings:
    if env_file:
        if not Path(env_file).exists():
            typer.echo(f"Environment file not found: {env_file}", err=True)
            sys.exit(1)
        load_dotenv(env_file, override=True)

    try:
        settings = Settings.load_from_yaml(config)
    except (ValidationError, yaml.YAMLError) as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(1)
    setup_logging(settings.LOGGING_CONFIG_PATH, log_level=loglevel or settings.LOG_LEVEL)
    logger.info(
        f"Starting {settings.APP_NAME} v{settings.APP_VERSION} "
        f"(scorer={settings.SCORER_BACKEND}, openai_key={mask_secret(settings.OPENAI_API_KEY)})"
    )
    return settings


def run_with_runtime(settings: Settings, action: Callable[[Runtime], Awaitable[None]], validate: Optional[bool] = None) -> None:
    """
    Build the runtime, run one action, and map failures to exit codes.

    Handled per-item failures inside a sweep do not change the exit code;
    configuration and unhandled errors exit with 1.
    """
    async def _main() -> None:
        async with build_runtime(settings, validate=validate) as runtime:
            await action(runtime)

    try:
        asyncio.run(_main())
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.critical(f"Unhandled exception: {str(e)}", exc_info=True)
        sys.exit(1)


@app.command("freshness-sweep")
def freshness_sweep(
    config: ConfigOption = str(DEFAULT_CONFIG_PATH),
    env_file: EnvFileOption = None,
    loglevel: LogLevelOption = None,
) -> None:
    """Re-fetch content and comments for every post that is due."""
    settings = load_settings(config, env_file, loglevel)

    async def action(runtime: Runtime) -> None:
        stats = await runtime.orchestrator.run_freshness_sweep()
        typer.echo(stats.summary())

    run_with_runtime(settings, action)


@app.command("scoring-sweep")
def scoring_sweep(
    config: ConfigOption = str(DEFAULT_CONFIG_PATH),
    env_file: EnvFileOption = None,
    loglevel: LogLevelOption = None,
) -> None:
    """Score a batch of unscored comments."""
    settings = load_settings(config, env_file, loglevel)

    async def action(runtime: Runtime) -> None:
        stats = await runtime.orchestrator.run_scoring_sweep()
        typer.echo(stats.summary())

    run_with_runtime(settings, action, validate=False)


@app.command("subreddit-discovery")
def subreddit_discovery(
    config: ConfigOption = str(DEFAULT_CONFIG_PATH),
    env_file: EnvFileOption = None,
    loglevel: LogLevelOption = None,
) -> None:
    """Pull new posts from every stock's official subreddit."""
    settings = load_settings(config, env_file, loglevel)

    async def action(runtime: Runtime) -> None:
        stats = await runtime.orchestrator.run_subreddit_discovery()
        typer.echo(stats.summary())

    run_with_runtime(settings, action)


@app.command()
def discover(
    ticker: Annotated[str, typer.Argument(help="Ticker symbol, e.g. TSLA")],
    config: ConfigOption = str(DEFAULT_CONFIG_PATH),
    env_file: EnvFileOption = None,
    loglevel: LogLevelOption = None,
) -> None:
    """Search Reddit for a ticker and fetch any newly discovered posts."""
    settings = load_settings(config, env_file, loglevel)

    async def action(runtime: Runtime) -> None:
        result = await runtime.orchestrator.discover_ticker(ticker)
        # Runtime teardown waits for the background refresh of new posts.
        typer.echo(json.dumps({
            "ticker": result.stock.symbol,
            "searched": result.searched,
            "posts": len(result.posts),
            "new_posts": len(result.new_post_ids),
            "official_subreddit": result.stock.official_subreddit,
        }))

    run_with_runtime(settings, action)


@app.command("search-symbols")
def search_symbols(
    query: Annotated[str, typer.Argument(help="Free-text symbol or company query")],
    config: ConfigOption = str(DEFAULT_CONFIG_PATH),
    env_file: EnvFileOption = None,
    loglevel: LogLevelOption = None,
) -> None:
    """Refresh the stocks table from a Finnhub symbol search."""
    settings = load_settings(config, env_file, loglevel)

    async def action(runtime: Runtime) -> None:
        count = await runtime.orchestrator.refresh_symbols(query)
        typer.echo(f"Upserted {count} stocks for {query!r}")

    run_with_runtime(settings, action, validate=False)


@app.command("validate-proxies")
def validate_proxies_command(
    config: ConfigOption = str(DEFAULT_CONFIG_PATH),
    env_file: EnvFileOption = None,
    loglevel: LogLevelOption = None,
) -> None:
    """Probe every configured proxy once and report how many are healthy."""
    settings = load_settings(config, env_file, loglevel)

    async def action(runtime: Runtime) -> None:
        passed = await validate_proxies(settings, runtime.proxy_pool, runtime.fetcher, runtime.prometheus_exporter)
        typer.echo(f"{passed}/{len(runtime.proxy_pool)} proxies healthy")

    run_with_runtime(settings, action, validate=False)


@app.command()
def daemon(
    config: ConfigOption = str(DEFAULT_CONFIG_PATH),
    env_file: EnvFileOption = None,
    loglevel: LogLevelOption = None,
) -> None:
    """Run the scheduled sweeps until SIGINT or SIGTERM."""
    settings = load_settings(config, env_file, loglevel)

    async def action(runtime: Runtime) -> None:
        shutdown = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown.set)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(shutdown.set))

        scheduler = runtime.build_scheduler()
        scheduler.start()
        await shutdown.wait()
        logger.info("Shutdown signal received, stopping job scheduler")
        await scheduler.stop()
        for job_status in scheduler.status():
            logger.info(f"Job status: {job_status}")

    run_with_runtime(settings, action)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
