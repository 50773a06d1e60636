"""CLI entry point for coview."""

from __future__ import annotations

import json
import logging
import sys
import warnings
from typing import IO, Any

import click
import pandas as pd
from pydantic import ValidationError

from coview.concurrence import (
    aggregate_by_actor,
    compute_overlap_flags,
    compute_overlap_flags_naive,
    compute_overlap_flags_sharded,
    pairwise_overlap_table,
    time_of_day_overlap_distribution,
)
from coview.config import (
    DEFAULT_BUCKET_MINUTES,
    DEFAULT_MAX_PAIRS,
    DEFAULT_SEED,
    DEFAULT_WORKERS,
    AnalysisSettings,
)
from coview.errors import CapacityExceededWarning, EmptyDatasetError
from coview.interest import build_interest_graph, layout, shared_title_table
from coview.reporting import format_hours, format_pct, pair_matrix
from coview.sessions import SessionStore


def read_rows(stream: IO[str]) -> list[dict[str, Any]]:
    """Read JSONL rows, warning about and skipping lines that are not JSON objects."""
    rows: list[dict[str, Any]] = []
    for line_number, line in enumerate(stream, 1):
        stripped = line.strip()
        if not stripped:
            continue
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError as e:
            click.echo(f"Warning: line {line_number}: invalid JSON: {e}", err=True)
            continue
        if not isinstance(data, dict):
            click.echo(f"Warning: line {line_number}: expected a JSON object", err=True)
            continue
        rows.append(data)
    return rows


def load_store(stream: IO[str], input_format: str, primary_only: bool) -> SessionStore:
    """Load sessions from JSONL or CSV input and report rejected rows.

    Exits with code 1 when no session survives loading.
    """
    if input_format == "csv":
        try:
            frame = pd.read_csv(stream)
        except pd.errors.EmptyDataError:
            store = SessionStore()
        else:
            store = SessionStore.from_frame(frame, primary_only=primary_only)
    else:
        store = SessionStore.from_rows(read_rows(stream), primary_only=primary_only)

    for error in store.rejected:
        click.echo(f"Warning: {error}", err=True)

    try:
        store.require_sessions()
    except EmptyDatasetError as e:
        click.echo(str(e), err=True)
        sys.exit(1)
    return store


def make_settings(**values: Any) -> AnalysisSettings:
    try:
        return AnalysisSettings(**values)
    except ValidationError as e:
        click.echo(f"Invalid settings: {e}", err=True)
        sys.exit(1)


input_option = click.option(
    "--input",
    "input_file",
    type=click.File("r", encoding="utf-8"),
    default="-",
    help="Input rows (default: stdin)",
)
format_option = click.option(
    "--format",
    "input_format",
    type=click.Choice(["jsonl", "csv"]),
    default="jsonl",
    help="Input format",
)
all_rows_option = click.option(
    "--all-rows",
    is_flag=True,
    help="Keep rows with a supplemental video type (trailers, recaps)",
)
json_option = click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output as JSON",
)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Co-viewing analysis for streaming activity logs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command("overlap")
@input_option
@format_option
@all_rows_option
@click.option(
    "--algorithm",
    type=click.Choice(["sweep", "naive", "sharded"]),
    default="sweep",
    help="Overlap detection algorithm",
)
@click.option(
    "--workers",
    type=int,
    default=DEFAULT_WORKERS,
    envvar="COVIEW_WORKERS",
    help="Worker processes for the sharded algorithm",
)
@click.option(
    "--bucket-minutes",
    type=int,
    default=DEFAULT_BUCKET_MINUTES,
    help="Time-of-day bucket width in minutes",
)
@json_option
def overlap_command(
    input_file: IO[str],
    input_format: str,
    all_rows: bool,
    algorithm: str,
    workers: int,
    bucket_minutes: int,
    output_json: bool,
) -> None:
    """Show how much viewing ran concurrently with other profiles.

    Reads one JSON row per line (profile_name, title, start_time, duration),
    or a CSV with the same columns or the raw export headers.

    Example:
        coview overlap < rows.jsonl
        coview overlap --input ViewingActivity.csv --format csv --json
    """
    settings = make_settings(workers=workers, bucket_minutes=bucket_minutes)
    store = load_store(input_file, input_format, primary_only=not all_rows)
    sessions = store.sessions

    if algorithm == "naive":
        flags = compute_overlap_flags_naive(sessions)
    elif algorithm == "sharded":
        flags = compute_overlap_flags_sharded(sessions, workers=settings.workers)
    else:
        flags = compute_overlap_flags(sessions)

    by_actor = aggregate_by_actor(sessions, flags)
    pairs = pairwise_overlap_table(sessions)
    distribution = time_of_day_overlap_distribution(
        sessions, flags, bucket_minutes=settings.bucket_minutes
    )

    if output_json:
        output = {
            "sessions": len(sessions),
            "overlapping_sessions": sum(flags.values()),
            "by_actor": [by_actor[actor].model_dump() for actor in sorted(by_actor)],
            "pairs": [stat.model_dump() for stat in pairs],
            "time_of_day": {label.strftime("%H:%M"): share for label, share in distribution.items()},
        }
        click.echo(json.dumps(output, indent=2))
        return

    click.echo(f"Sessions: {len(sessions)} ({sum(flags.values())} overlapping)")
    click.echo()
    click.echo("By Profile:")
    click.echo("                    Concurrent      Total    Share")
    for actor in sorted(by_actor):
        stat = by_actor[actor]
        display = actor if len(actor) <= 20 else actor[:17] + "..."
        click.echo(
            f"  {display:<20} {format_hours(stat.concurrent_hours):>9} "
            f"{format_hours(stat.total_hours):>10} {format_pct(stat.pct):>8}"
        )

    if len(by_actor) > 1:
        click.echo()
        click.echo("Pairwise (row watched alongside column):")
        matrix = pair_matrix(pairs).map(format_pct)
        for line in matrix.to_string().splitlines():
            click.echo(f"  {line}")


@main.command("interest")
@input_option
@format_option
@all_rows_option
@click.option(
    "--max-pairs",
    type=int,
    default=DEFAULT_MAX_PAIRS,
    envvar="COVIEW_MAX_PAIRS",
    help="Cap on title pairs before sampling",
)
@click.option(
    "--seed",
    type=int,
    default=DEFAULT_SEED,
    envvar="COVIEW_SEED",
    help="Seed for sampling and layout",
)
@click.option(
    "--layout",
    "with_layout",
    is_flag=True,
    help="Include 2-D node positions in JSON output",
)
@json_option
def interest_command(
    input_file: IO[str],
    input_format: str,
    all_rows: bool,
    max_pairs: int,
    seed: int,
    with_layout: bool,
    output_json: bool,
) -> None:
    """Show shared titles between profiles and the title co-occurrence graph.

    Example:
        coview interest < rows.jsonl
        coview interest --max-pairs 500000 --layout --json < rows.jsonl
    """
    settings = make_settings(max_pairs=max_pairs, seed=seed)
    store = load_store(input_file, input_format, primary_only=not all_rows)
    titles_by_actor = store.titles_by_actor()

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", CapacityExceededWarning)
        graph = build_interest_graph(titles_by_actor, max_pairs=settings.max_pairs, seed=settings.seed)
    approximate = any(issubclass(w.category, CapacityExceededWarning) for w in caught)
    table = shared_title_table(titles_by_actor)

    if output_json:
        output: dict[str, Any] = {
            "approximate": approximate,
            "nodes": [
                {
                    "title": title,
                    "actor": graph.node_actor(title),
                    "actors": list(graph.graph.nodes[title]["actors"]),
                }
                for title in graph.nodes()
            ],
            "edges": [
                {
                    "source": source,
                    "target": target,
                    "multiplicity": graph.graph.edges[source, target]["multiplicity"],
                    "actors": list(graph.graph.edges[source, target]["actors"]),
                }
                for source, target in graph.edges()
            ],
            "shared_titles": [stat.model_dump() for stat in table],
        }
        if with_layout:
            positions = layout(graph, seed=settings.seed, iterations=settings.layout_iterations)
            output["layout"] = {title: list(xy) for title, xy in positions.items()}
        click.echo(json.dumps(output, indent=2))
        return

    header = f"Titles: {graph.number_of_nodes()}, links: {graph.number_of_edges()}"
    if approximate:
        header += " (sampled, approximate)"
    click.echo(header)
    click.echo()
    click.echo("Shared titles:")
    for stat in table:
        label = "(own)" if stat.exclusive else stat.other
        click.echo(f"  {stat.actor:<20} {label:<20} {stat.count:>6} {format_pct(stat.pct):>8}")


if __name__ == "__main__":
    main()
