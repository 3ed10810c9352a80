import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

import psycopg
import typer

from .cleanup import cleanup_current_pid, cleanup_stale_files, register_cleanup_handlers
from .config import Config, ConfigurationError
from .config_loader import load_config
from .dump_manager import DumpManager
from .errors import FenceError, PartialExportFailure
from .lifecycle import TableManager
from .pipeline.export import Exporter
from .pipeline.load import Loader
from .store import FenceStore
from .utils import format_duration, setup_logging

app = typer.Typer(
    help="Fence table manager: sync PostGIS fences with per-region GeoJSON files",
    add_completion=False,
)


@dataclass
class Runtime:
    """Components wired from one configuration."""
    config: Config
    store: FenceStore
    exporter: Exporter
    loader: Loader
    tables: TableManager
    dumps: DumpManager


@dataclass
class Options:
    verbose: bool = False
    config_path: Optional[str] = None
    log_to_file: bool = False


def build_runtime(config_path: Optional[str] = None) -> Runtime:
    """Load configuration and construct every component around one store."""
    config = load_config(config_path)
    store = FenceStore(config)
    loader = Loader(config, store)
    tables = TableManager(config, store, loader=loader)
    return Runtime(
        config=config,
        store=store,
        exporter=Exporter(config, store),
        loader=loader,
        tables=tables,
        dumps=DumpManager(config, tables),
    )


@contextmanager
def operation(ctx: typer.Context, command: str) -> Iterator[Runtime]:
    """
    Run one subcommand: set up logging and cleanup, build the runtime, and
    turn reported failures into exit status 1.
    """
    options: Options = ctx.obj or Options()
    setup_logging(options.verbose, command, options.log_to_file)
    register_cleanup_handlers()
    cleanup_stale_files()

    start = time.time()
    logging.info(f"Command: {' '.join(sys.argv)}")

    try:
        runtime = build_runtime(options.config_path)
        logging.debug(f"Configuration: {runtime.config.get_summary()}")
        yield runtime
    except PartialExportFailure as e:
        report = e.report
        logging.error(f"{command} finished with failures: {len(report.written)} written, {len(report.failed)} failed")
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)
    except (FenceError, ConfigurationError, FileNotFoundError, psycopg.Error) as e:
        logging.error(f"{command} failed after {format_duration(time.time() - start)}")
        logging.error(f"Error type: {type(e).__name__}")
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)
    else:
        logging.info(f"{command} completed in {format_duration(time.time() - start)}")
    finally:
        cleanup_current_pid()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
    config: Annotated[Optional[str], typer.Option("--config", "-c", help="YAML override file")] = None,
    log_to_file: Annotated[bool, typer.Option("--log-to-file", help="Write a timestamped log under logs/")] = False,
):
    """Manage the fence table and its region-file directory."""
    ctx.obj = Options(verbose=verbose, config_path=config, log_to_file=log_to_file)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help(), err=True)
        raise typer.Exit(1)


@app.command("create")
def create(ctx: typer.Context):
    """Drop (if exists) and create the empty fence table."""
    with operation(ctx, "create") as rt:
        rt.tables.create()


@app.command("index")
def index(ctx: typer.Context):
    """Build code, adcode and spatial indexes (slow on large tables)."""
    with operation(ctx, "index") as rt:
        rt.tables.index()


@app.command("order")
def order(ctx: typer.Context):
    """Rewrite the adcode table in (rank, code) order."""
    with operation(ctx, "order") as rt:
        rt.tables.reorder()


@app.command("drop")
def drop(ctx: typer.Context):
    """Drop the fence table."""
    with operation(ctx, "drop") as rt:
        rt.tables.drop()


@app.command("trunc")
def trunc(ctx: typer.Context):
    """Remove all rows from the fence table."""
    with operation(ctx, "trunc") as rt:
        rt.tables.truncate()


@app.command("clean")
def clean(ctx: typer.Context):
    """Remove the region-file directory."""
    with operation(ctx, "clean") as rt:
        rt.tables.clean()


@app.command("dump")
def dump(
    ctx: typer.Context,
    codes: Annotated[Optional[list[str]], typer.Argument(help="6-digit adcodes; all aggregates if omitted")] = None,
):
    """Export fences to <data_dir>/<adcode>.json."""
    with operation(ctx, "dump") as rt:
        report = rt.exporter.export(codes)
        typer.echo(f"Exported {len(report.written)} fences to {report.output_dir}")


@app.command("load")
def load(
    ctx: typer.Context,
    codes: Annotated[Optional[list[str]], typer.Argument(help="6-digit adcodes; every region file if omitted")] = None,
):
    """Upsert region files into the fence table in one transaction."""
    with operation(ctx, "load") as rt:
        report = rt.loader.load(codes)
        typer.echo(f"Loaded {report.count} fences from {report.source_dir}")


@app.command("backup")
def backup(
    ctx: typer.Context,
    path: Annotated[Optional[Path], typer.Option("--path", "-p", help="Archive path")] = None,
):
    """Dump the fence table with pg_dump."""
    with operation(ctx, "backup") as rt:
        target = rt.dumps.backup(path)
        typer.echo(f"Backup written to {target}")


@app.command("restore")
def restore(
    ctx: typer.Context,
    path: Annotated[Optional[Path], typer.Option("--path", "-p", help="Archive path")] = None,
):
    """Drop the fence table and restore it from a backup archive."""
    with operation(ctx, "restore") as rt:
        rt.dumps.restore(path)


@app.command("check")
def check(ctx: typer.Context):
    """Verify code = adcode * 1000000 and references to the adcode table."""
    with operation(ctx, "check") as rt:
        report = rt.tables.check()
        typer.echo(
            f"rows={report.total} invalid={report.invalid_keys} orphans={report.orphans}"
        )
    if not report.ok:
        raise typer.Exit(1)


@app.command("reload")
def reload(ctx: typer.Context):
    """truncate + load + check"""
    with operation(ctx, "reload") as rt:
        rt.tables.reload()


@app.command("reset")
def reset(ctx: typer.Context):
    """drop + create"""
    with operation(ctx, "reset") as rt:
        rt.tables.reset()


@app.command("setup")
def setup(ctx: typer.Context):
    """create + load + index"""
    with operation(ctx, "setup") as rt:
        rt.tables.setup()


@app.command("usage")
def usage(ctx: typer.Context):
    """Show usage."""
    typer.echo(ctx.parent.get_help() if ctx.parent else ctx.get_help())


if __name__ == "__main__":
    app()
