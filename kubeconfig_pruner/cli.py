"""Typer CLI entry point for kubeconfig-pruner."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console

from kubeconfig_pruner import __version__
from kubeconfig_pruner.config import build_options, resolve_kubeconfig_path
from kubeconfig_pruner.engine import prune_kubeconfig
from kubeconfig_pruner.ignore import DEFAULT_IGNORE_FILE, load_ignore_file
from kubeconfig_pruner.kubeconfig import (
    backup_file,
    load_kubeconfig,
    redact,
    to_document,
    write_yaml,
)
from kubeconfig_pruner.output import OUTPUT_FORMATS, print_summary, render
from kubeconfig_pruner.probe import KubeProber

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

app = typer.Typer(
    name="kubeconfig-pruner",
    help="Probe every context in a kubeconfig and drop the ones that cannot be reached.",
    no_args_is_help=False,
)
console = Console(stderr=True)


def version_callback(value: bool):
    if value:
        console.print(f"kubeconfig-pruner v{__version__}")
        raise typer.Exit()


@app.command()
def main(
    kubeconfig: Annotated[
        str | None,
        typer.Option("--kubeconfig", help="Kubeconfig to prune (default: $KUBECONFIG or ~/.kube/config)"),
    ] = None,
    timeout: Annotated[
        int | None,
        typer.Option("--timeout", "-t", help="Seconds to wait for each API server (default: 10)"),
    ] = None,
    clusters: Annotated[
        bool,
        typer.Option("--clusters", help="Remove cluster entries not used by any context"),
    ] = False,
    users: Annotated[
        bool,
        typer.Option("--users", help="Remove user entries not used by any context"),
    ] = False,
    raw: Annotated[
        bool,
        typer.Option("--raw", help="Print certificate data and secrets unredacted"),
    ] = False,
    print_removed: Annotated[
        bool,
        typer.Option("--print-removed", help="Print the removed entries instead of the kept ones"),
    ] = False,
    output: Annotated[
        str,
        typer.Option("--output", "-o", help=f"Output format: {', '.join(OUTPUT_FORMATS)}"),
    ] = "yaml",
    ignore_file: Annotated[
        Path,
        typer.Option("--ignore-file", help="ConfigMap listing contexts that are never removed"),
    ] = DEFAULT_IGNORE_FILE,
    ignore: Annotated[
        list[str] | None,
        typer.Option("--ignore", help="Context to keep without probing (repeatable)"),
    ] = None,
    max_workers: Annotated[
        int | None,
        typer.Option("--max-workers", help="Concurrent probes (default: 25)"),
    ] = None,
    exec_timeout: Annotated[
        int | None,
        typer.Option(
            "--exec-timeout",
            help=(
                "Seconds an exec credential plugin may run before its context is removed; "
                "counted separately from --timeout (default: 30)"
            ),
        ),
    ] = None,
    write: Annotated[
        bool,
        typer.Option("--write", help="Back up the kubeconfig and overwrite it with the kept entries"),
    ] = False,
    summary: Annotated[
        bool,
        typer.Option("--summary", help="Print a kept/removed summary to stderr"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log every probe failure"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only log warnings and errors"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option("--version", callback=version_callback, is_eager=True),
    ] = False,
) -> None:
    """Probe every context and print the kubeconfig that is left."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif quiet:
        logging.getLogger().setLevel(logging.WARNING)

    if output not in OUTPUT_FORMATS:
        console.print(f"[red]Unsupported output format: {output}[/red]")
        raise typer.Exit(1)

    try:
        ignored = load_ignore_file(ignore_file.expanduser()) | frozenset(ignore or [])
        options = build_options(
            timeout_seconds=timeout,
            max_workers=max_workers,
            exec_timeout_seconds=exec_timeout,
            cleanup_clusters=clusters,
            cleanup_users=users,
            print_removed=print_removed,
            print_raw=raw,
            ignore_contexts=ignored,
        )

        path = resolve_kubeconfig_path(kubeconfig)
        if not path.is_file():
            console.print(f"[red]Missing kubeconfig file: {path}[/red]")
            raise typer.Exit(1)
        source = load_kubeconfig(path)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1) from exc

    logger.info("Testing %d contexts from %s", len(source.contexts), path)
    try:
        prober = KubeProber(
            timeout=options.timeout_seconds,
            exec_timeout=options.exec_timeout_seconds,
        )
        result = prune_kubeconfig(source, prober, options)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)

    if summary:
        print_summary(result)

    if write:
        backup_path = backup_file(path)
        console.print(f"[dim]Backup saved: {backup_path}[/dim]")
        write_yaml(path, to_document(result.kept))
        console.print(f"[green]Updated {path}[/green]")

    selected = result.selected(options.print_removed)
    # An empty kubeconfig is never printed.
    if selected.is_empty():
        return

    if not options.print_raw:
        selected = redact(selected)
    typer.echo(render(selected, output), nl=False)


if __name__ == "__main__":
    app()
