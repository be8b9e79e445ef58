#!/usr/bin/env python3
"""Run one orchestrated analysis against a project folder.

Agents are loaded from ``module:attribute`` specs, optionally prefixed with a
registry name (``name=module:attribute``). The attribute is used as the
agent factory, so a class or a zero-argument function both work.

Examples:
    python scripts/run_analysis.py ./my_project \
        --agent code_quality=my_agents.quality:CodeQualityAgent \
        --agent api_documentation=my_agents.docs:ApiDocAgent

    python scripts/run_analysis.py ./my_project --agent my_agents:SecurityAgent --json

Exit code behavior:
- 2 for usage errors, unloadable agents, or a run that could not be planned
- 1 when the run finished with status "failed"
- 0 otherwise

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import sys
from pathlib import Path
from typing import Any, List, Tuple


ROOT_DIR = Path(__file__).resolve().parents[1]
root_str = str(ROOT_DIR)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from analysis_orchestrator import AnalysisOrchestrator, OrchestratorConfig, PlanningError, RunResult  # noqa: E402


PRIORITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "dim",
}


def parse_agent_spec(spec: str) -> Tuple[str, str, str]:
    """Split ``[name=]module:attribute`` into (name, module, attribute)."""
    name, sep, target = spec.partition("=")
    if not sep:
        name, target = "", spec
    module_name, colon, attr = target.partition(":")
    if not colon or not module_name or not attr:
        raise ValueError(f"Invalid agent spec '{spec}', expected [name=]module:attribute")
    return (name or attr), module_name, attr


def load_factory(module_name: str, attr: str) -> Any:
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ValueError(f"{module_name}:{attr} is not a callable agent factory")
    return factory


def print_report(result: RunResult) -> None:
    from rich import print as rprint
    from rich.table import Table

    summary = result.summary
    rprint(f"\n[bold]Run {result.run_id}[/bold] on {result.target}: [cyan]{summary['status']}[/cyan]")

    agents = Table(title="Agents")
    agents.add_column("Agent", style="cyan")
    agents.add_column("Status")
    agents.add_column("Duration (s)", justify="right")
    agents.add_column("Error", style="dim")
    for name, r in result.results.items():
        style = "green" if r.success else "red"
        agents.add_row(name, f"[{style}]{r.status.value}[/{style}]", f"{r.duration_seconds:.2f}", r.error or "")
    rprint(agents)

    recs = Table(title="Recommendations")
    recs.add_column("Priority")
    recs.add_column("Title", style="bold")
    recs.add_column("Sources", style="dim")
    recs.add_column("Duration")
    for rec in result.recommendations:
        style = PRIORITY_STYLES.get(rec.priority.value, "")
        recs.add_row(
            f"[{style}]{rec.priority.value}[/{style}]",
            rec.title,
            ", ".join(sorted(rec.sources)),
            (rec.action_plan or {}).get("estimated_duration", ""),
        )
    rprint(recs)


async def run(args: argparse.Namespace) -> int:
    config = OrchestratorConfig()
    if args.timeout is not None:
        config.agent_timeout = args.timeout if args.timeout > 0 else None
    if args.history:
        config.history_enabled = True

    options = {"use_cache": False}
    if args.only:
        options["agents"] = args.only
    if args.capability:
        options["capabilities"] = args.capability
    if args.critical:
        options["critical_agents"] = args.critical

    async with AnalysisOrchestrator(config) as orchestrator:
        for spec in args.agent:
            try:
                name, module_name, attr = parse_agent_spec(spec)
                factory = load_factory(module_name, attr)
            except (ImportError, ValueError) as e:
                print(f"Could not load agent: {e}", file=sys.stderr)
                return 2
            await orchestrator.register_agent(name, None, factory)

        try:
            result = await orchestrator.run(args.target, options)
        except PlanningError as e:
            print(f"Run could not be planned: {e}", file=sys.stderr)
            return 2

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_report(result)

    return 1 if result.summary["status"] == "failed" else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run an orchestrated analysis on a project folder")
    parser.add_argument("target", help="Path to the project to analyze")
    parser.add_argument(
        "--agent",
        action="append",
        default=[],
        required=True,
        help="Agent to register as [name=]module:attribute (repeatable)",
    )
    parser.add_argument("--only", action="append", help="Run only these agents (repeatable)")
    parser.add_argument("--capability", action="append", help="Also run agents with this capability (repeatable)")
    parser.add_argument("--critical", action="append", help="Stop later batches if this agent fails (repeatable)")
    parser.add_argument("--timeout", type=float, default=None, help="Per-agent timeout in seconds (0 disables)")
    parser.add_argument("--history", action="store_true", help="Record the run in the run history file")
    parser.add_argument("--json", action="store_true", help="Print the full RunResult as JSON")

    args = parser.parse_args()
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
