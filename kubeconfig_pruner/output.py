"""Rendering of the selected document and the run summary."""

from __future__ import annotations

import json

import yaml
from rich.console import Console
from rich.table import Table

from kubeconfig_pruner.engine import PartitionResult
from kubeconfig_pruner.kubeconfig import KubeConfig, to_document

OUTPUT_FORMATS = ("yaml", "json", "name")

console = Console(stderr=True)


def render(config: KubeConfig, fmt: str = "yaml") -> str:
    """Render a kubeconfig as yaml, json, or one context name per line."""
    if fmt == "name":
        return "".join(f"{name}\n" for name in config.contexts)
    document = to_document(config)
    if fmt == "json":
        return json.dumps(document, indent=4) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(
            document,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    raise ValueError(f"Unsupported output format: {fmt} (expected one of {', '.join(OUTPUT_FORMATS)})")


def print_summary(result: PartitionResult) -> None:
    """Print kept/removed counts per section to stderr."""
    table = Table(title="Kubeconfig Prune Summary", show_header=True, header_style="bold cyan")
    table.add_column("Section")
    table.add_column("Kept", justify="right", style="green")
    table.add_column("Removed", justify="right", style="red")

    kept, removed = result.kept, result.removed
    table.add_row("contexts", str(len(kept.contexts)), str(len(removed.contexts)))
    table.add_row("clusters", str(len(kept.clusters)), str(len(removed.clusters)))
    table.add_row("users", str(len(kept.auth_infos)), str(len(removed.auth_infos)))
    console.print(table)

    if removed.contexts:
        console.print(f"[dim]Removed contexts: {', '.join(removed.contexts)}[/dim]")
