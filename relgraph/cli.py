"""
relgraph/cli.py — Command-line interface for relgraph.

Runs one full query → build → layout cycle against a CSV file or an HTTP
query service and writes the result.

Usage:
    python -m relgraph.cli render --csv edges.csv --focus alice -o graph.html
    python -m relgraph.cli render --csv edges.csv --focus alice -o graph.json
    python -m relgraph.cli layout --csv edges.csv --focus alice --focus bob

Without --csv the HTTP query service at --url (or RELGRAPH_QUERY_URL, read
from the environment or a .env file) is used.

Author: relgraph maintainers
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from pathlib import Path

from relgraph.config import DEFAULT_CONFIG, RelGraphConfig
from relgraph.interaction.controller import InteractionController
from relgraph.interaction.renderer import Renderer, SnapshotRenderer
from relgraph.query.service import (
    DataFrameQueryService,
    HttpQueryService,
    ImmediateQueryRunner,
    QueryService,
)

URL_ENV_VAR = "RELGRAPH_QUERY_URL"


# ── Query service URL ─────────────────────────────────────────────────────────

def _query_url_from_env(env_file: str | None = None) -> str | None:
    """Return RELGRAPH_QUERY_URL from the environment, else from a .env file.

    The environment wins. Without env_file, ./.env is read if present. Only
    the one variable is looked up; the environment is never modified.
    """
    url = os.environ.get(URL_ENV_VAR)
    if url:
        return url

    path = Path(env_file) if env_file else Path.cwd() / ".env"
    if not path.is_file():
        return None
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = raw_line.strip().partition("=")
        if sep and key.strip() == URL_ENV_VAR:
            return value.strip().strip("'\"") or None
    return None


# ── Logging setup ─────────────────────────────────────────────────────────────

def _setup_logging(level: str = "INFO") -> None:
    """Configure root logger with timestamps."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s  %(levelname)-8s  %(name)s — %(message)s"
    logging.basicConfig(level=numeric, format=fmt, datefmt="%H:%M:%S", stream=sys.stderr)


logger = logging.getLogger("relgraph.cli")


# ── Shared wiring ─────────────────────────────────────────────────────────────

def _config_from_args(args: argparse.Namespace) -> RelGraphConfig:
    overrides = {
        "viewport_width": args.width,
        "viewport_height": args.height,
        "layout_seed": args.seed,
        "max_iterations": args.max_iterations,
        "label_field": args.label_field,
        "related_field": args.related_field,
    }
    return dataclasses.replace(
        DEFAULT_CONFIG, **{k: v for k, v in overrides.items() if v is not None}
    )


def _service_from_args(args: argparse.Namespace, config: RelGraphConfig) -> QueryService | None:
    if args.csv:
        return DataFrameQueryService.from_csv(
            args.csv, args.database, args.table, config, related_sep=args.related_sep
        )
    url = args.url or _query_url_from_env(args.env_file)
    if url:
        logger.info("Using query service at %s", url)
        return HttpQueryService(url, config)
    logger.warning("No --csv, --url or %s given.", URL_ENV_VAR)
    return None


def _run_cycle(
    args: argparse.Namespace,
    renderer: Renderer,
) -> InteractionController:
    config = _config_from_args(args)
    service = _service_from_args(args, config)
    runner = ImmediateQueryRunner(service) if service is not None else None
    controller = InteractionController(
        runner, renderer, config=config, initial_focus=args.focus or ()
    )
    controller.set_viewport(config.viewport_width, config.viewport_height)
    controller.connect(args.database, args.table)
    return controller


def _print_summary(controller: InteractionController) -> None:
    print(
        f"state={controller.state.value} focus={controller.focus} "
        f"nodes={len(controller.model.nodes)} edges={len(controller.model.edges)}",
        file=sys.stderr,
    )
    for notice in controller.notices:
        print(f"notice: {notice}", file=sys.stderr)
    if controller.last_error is not None:
        print(f"error: {controller.last_error.message}", file=sys.stderr)


# ── Subcommands ───────────────────────────────────────────────────────────────

def cmd_render(args: argparse.Namespace) -> int:
    """Build and lay out the graph, then write HTML (Plotly) or JSON."""
    _setup_logging(args.log_level)

    output = Path(args.output)
    if output.suffix.lower() in (".html", ".htm"):
        from relgraph.viz.plotly_graph import PlotlyRenderer

        width = args.width or DEFAULT_CONFIG.viewport_width
        height = args.height or DEFAULT_CONFIG.viewport_height
        renderer = PlotlyRenderer(width=width, height=height, title=args.title)
        controller = _run_cycle(args, renderer)
        if renderer.figure is None:
            logger.error("Nothing was rendered; no output written.")
            _print_summary(controller)
            return 1
        renderer.save_html(str(output))
    else:
        renderer = SnapshotRenderer()
        controller = _run_cycle(args, renderer)
        with open(output, "w", encoding="utf-8") as fh:
            json.dump(controller.model.snapshot(), fh, indent=2)
        logger.info("Snapshot saved to: %s", output)

    _print_summary(controller)
    return 1 if controller.last_error is not None else 0


def cmd_layout(args: argparse.Namespace) -> int:
    """Build and lay out the graph, then print the JSON snapshot to stdout."""
    _setup_logging(args.log_level)

    controller = _run_cycle(args, SnapshotRenderer())
    payload = controller.model.snapshot()
    payload["focus"] = list(controller.focus)
    payload["notices"] = list(controller.notices)
    if controller.last_error is not None:
        payload["error"] = controller.last_error.to_dict()
    json.dump(payload, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 1 if controller.last_error is not None else 0


# ── Argument parser ───────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relgraph",
        description="relgraph — turn relational records into a laid-out pivot graph.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ego-network of alice as an interactive HTML page
  relgraph render --csv people.csv --focus alice -o alice.html

  # Union of two ego-networks, positions as JSON on stdout
  relgraph layout --csv people.csv --focus alice --focus bob

  # All labels as isolated nodes (no focus)
  relgraph layout --csv people.csv
        """,
    )
    parser.add_argument(
        "--env-file", default=None, metavar="PATH",
        help=f"Path to a .env file holding {URL_ENV_VAR} (default: ./.env)",
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    def add_cycle_flags(p: argparse.ArgumentParser) -> None:
        source = p.add_mutually_exclusive_group()
        source.add_argument("--csv", default=None, metavar="PATH",
                            help="Load records from this CSV file")
        source.add_argument("--url", default=None, metavar="URL",
                            help=f"HTTP query service base URL (default: ${URL_ENV_VAR})")
        p.add_argument("--database", default="local", help="Database name (default: local)")
        p.add_argument("--table", default="records", help="Table name (default: records)")
        p.add_argument("--focus", action="append", metavar="LABEL",
                       help="Focus value; repeat for a union of ego-networks")
        p.add_argument("--label-field", default=None, metavar="NAME",
                       help=f"Label column (default: {DEFAULT_CONFIG.label_field})")
        p.add_argument("--related-field", default=None, metavar="NAME",
                       help=f"Related-entities column (default: {DEFAULT_CONFIG.related_field})")
        p.add_argument("--related-sep", default=";", metavar="SEP",
                       help="Separator inside CSV related-entities cells (default: ;)")
        p.add_argument("--width", type=float, default=None, help="Viewport width")
        p.add_argument("--height", type=float, default=None, help="Viewport height")
        p.add_argument("--seed", type=int, default=None, help="Initial placement seed")
        p.add_argument("--max-iterations", type=int, default=None, metavar="N",
                       help="Layout tick ceiling")

    p_render = subparsers.add_parser("render", help="Write the laid-out graph to HTML or JSON")
    add_cycle_flags(p_render)
    p_render.add_argument("-o", "--output", required=True, metavar="PATH",
                          help="Output file; .html writes a Plotly page, anything else JSON")
    p_render.add_argument("--title", default="Directed Graph", help="Figure title (HTML only)")
    p_render.set_defaults(func=cmd_render)

    p_layout = subparsers.add_parser("layout", help="Print the laid-out graph as JSON")
    add_cycle_flags(p_layout)
    p_layout.set_defaults(func=cmd_layout)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
