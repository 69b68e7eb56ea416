#!/usr/bin/env python3
"""
Compile a scenario configuration into a labeled event Timeline.

Builds the topology, expands every benign flow and attack, validates windows
against service availability and writes the Timeline (and optionally the
capture manifest) as JSON. A dry run estimates traffic volumes for the
summary.

Usage:
    python scripts/compile_scenario.py [--duration SECONDS] [--config CONFIG]
                                       [--seed SEED] [--output PATH]
                                       [--captures PATH]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from netscenario.simulation import DryRunAdapter, ScenarioError, build_scenario
from netscenario.utils.config import get_nested, load_config
from netscenario.utils.logger import setup_logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compile an IDS traffic scenario")
    parser.add_argument("--duration", type=float, default=None,
                        help="Simulation horizon in seconds (overrides config)")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--output", type=str, default="output/timeline.json")
    parser.add_argument("--captures", type=str, default=None,
                        help="Write the capture manifest to this path")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    config = load_config(args.config)
    logger = setup_logger(
        level=get_nested(config, "logging", "level", default="INFO"),
        log_file=get_nested(config, "logging", "log_file"),
        json_format=get_nested(config, "logging", "json_format", default=True),
    )

    try:
        scenario = build_scenario(config, seed=args.seed, duration=args.duration)
        timeline = scenario.compile()
    except ScenarioError as exc:
        logger.error("Scenario compilation failed", extra={"error": str(exc)})
        return 1

    out = timeline.write(args.output)
    if args.captures:
        scenario.captures.write_manifest(args.captures)

    adapter = DryRunAdapter()
    outcomes = adapter.install(timeline)
    stats = adapter.statistics()
    report = scenario.scheduler.report

    print(f"\n{'═'*60}")
    print(f"  Scenario compiled: {len(timeline)} events, horizon {scenario.horizon:g}s")
    print(f"  Nodes: {scenario.topology.num_nodes}   "
          f"Services: {len(scenario.topology.directory)}   "
          f"Captures: {len(scenario.captures.requests)}")
    print(f"{'═'*60}")
    print(f"  {'Label':<26s} {'Events':>8s} {'Est. bytes':>16s}")
    print(f"  {'─'*52}")
    bytes_by_label: dict = {}
    for event in timeline.client_events():
        if event.event_id in stats:
            bytes_by_label[event.label] = (
                bytes_by_label.get(event.label, 0) + stats[event.event_id].bytes_transferred
            )
    for label, count in sorted(report.by_label.items()):
        print(f"  {label:<26s} {count:>8d} {bytes_by_label.get(label, 0):>16,d}")
    print(f"  {'─'*52}")
    failed = sum(1 for o in outcomes if o.status != "installed")
    print(f"  Truncated: {len(report.truncated)}   Skipped specs: {len(report.skipped)}   "
          f"Empty windows: {failed}")
    print(f"  Timeline written to {out}")
    print(f"{'═'*60}\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
