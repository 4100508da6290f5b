"""
Switchyard command line.

    switchyard ask "What's on my calendar?" --workspace default
    switchyard usage --days 7

`ask` streams one turn to stdout: text inline, tool calls and model switches
as bracketed lines, token usage at the end. `usage` prints the aggregated
usage summary from the data directory.
"""

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from agents import (
    AgentProfile,
    AgentRunner,
    DoneEvent,
    ModelSwitchEvent,
    RunOptions,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from config import USAGE_SUMMARY_DAYS
from inference.provider import ProviderRegistry
from routing.cooldown import CooldownTracker
from sessions import JsonlTranscriptStore
from settings import Settings, load_settings
from tools import PermissionContext, ToolContext, ToolRegistry
from usage import UsageTracker, summarize_usage

logger = logging.getLogger("switchyard.cli")


def _configure_logging(settings: Settings, verbose: bool):
    level = logging.DEBUG if verbose else getattr(
        logging, settings.logging.level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


async def _ask(args, settings: Settings) -> int:
    data_dir = Path(settings.storage.data_dir)
    workspace_path = args.workspace_path or str(data_dir / "workspaces" / args.workspace)
    session_id = args.session or f"cli-{uuid.uuid4().hex[:12]}"

    runner = AgentRunner(
        tool_registry=ToolRegistry(),
        cooldowns=CooldownTracker(),
        sessions=JsonlTranscriptStore(data_dir),
        providers=ProviderRegistry(settings),
        escalation_config=settings.escalation.to_config(),
    )
    agent = AgentProfile(name=args.agent, model_ref=args.model)
    options = RunOptions(
        messages=({"role": "user", "content": args.prompt},),
        workspace_id=args.workspace,
        workspace_path=workspace_path,
        agent=agent,
        session_id=session_id,
        tool_context=ToolContext(
            workspace_id=args.workspace,
            workspace_path=workspace_path,
            session_id=session_id,
            permissions=PermissionContext(sandbox=True, workspace_path=workspace_path),
            channel_type="cli",
        ),
        global_models=settings.models.as_mapping(),
        workspace_models=settings.workspace_models(args.workspace),
        usage_tracker=UsageTracker(data_dir),
        agent_name=agent.display_name,
        channel_type="cli",
    )

    streamed = False
    async for event in runner.run(options):
        if isinstance(event, TextDeltaEvent):
            print(event.content, end="", flush=True)
            streamed = True
        elif isinstance(event, ToolCallEvent):
            print(f"\n[tool] {event.tool_name} {event.args}")
        elif isinstance(event, ToolResultEvent):
            print(f"[result] {event.tool_name}: {event.result[:200]}")
        elif isinstance(event, ModelSwitchEvent):
            print(f"\n[switch] {event.from_model} -> {event.to_model} ({event.reason})")
        elif isinstance(event, DoneEvent):
            if not streamed:
                print(event.response, end="")
            print(f"\n[usage] prompt={event.usage.prompt_tokens} "
                  f"completion={event.usage.completion_tokens}")
    return 0


async def _usage(args, settings: Settings) -> int:
    records = await UsageTracker(settings.storage.data_dir).read_all()
    summary = summarize_usage(records, days=args.days)
    if args.json:
        print(summary.model_dump_json(indent=2))
        return 0

    totals = summary.totals
    print(f"Last {args.days} days: {totals.requests} requests, "
          f"{totals.tokens.total} tokens, ${totals.cost.total:.4f}")
    for title, buckets in (("By model", summary.by_model),
                           ("By day", summary.by_day),
                           ("By agent", summary.by_agent)):
        if not buckets:
            continue
        print(f"\n{title}:")
        for key, bucket in sorted(buckets.items()):
            print(f"  {key:<40} {bucket.requests:>5} req  {bucket.tokens.total:>9} tok  "
                  f"${bucket.cost.total:.4f}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="switchyard", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--settings", help="Path to settings.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    ask = sub.add_parser("ask", help="Run one conversational turn")
    ask.add_argument("prompt")
    ask.add_argument("--workspace", default="default")
    ask.add_argument("--workspace-path", help="Workspace directory (skills live here)")
    ask.add_argument("--session", help="Session id (default: new session)")
    ask.add_argument("--agent", default="Assistant", help="Agent name")
    ask.add_argument("--model", help='"fast", "slow" or "provider/model"')

    usage = sub.add_parser("usage", help="Show aggregated usage")
    usage.add_argument("--days", type=int, default=USAGE_SUMMARY_DAYS)
    usage.add_argument("--json", action="store_true", help="Print raw JSON")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(Path(args.settings) if args.settings else None)
    _configure_logging(settings, args.verbose)

    handler = _ask if args.command == "ask" else _usage
    try:
        return asyncio.run(handler(args, settings))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
