#!/usr/bin/env python3
# ================================================================
# Prompt Optimiser CLI
# Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
# ================================================================

"""
Prompt Optimiser Command Line Interface

Usage:
    prompt-optimiser serve --port 8000
    prompt-optimiser vendors
    prompt-optimiser analyse --mode critique "A weekly team newsletter"
    prompt-optimiser analyse --mode generate --vendor gemini --model Flash \
        --context "Q: Who reads it?\nA: Engineering managers" "A weekly team newsletter"
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Optional

from prompt_optimiser import __version__
from prompt_optimiser.guidance import GUIDANCE, default_model
from prompt_optimiser.prompts import SUPPORTED_MODES


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from prompt_optimiser.config import load_config
    from prompt_optimiser.logging_config import setup_logging

    config = load_config(args.config)
    setup_logging(level=args.log_level, json_format=args.json_logs)
    if args.config:
        # The app is imported by uvicorn and reads its config path from here
        os.environ["PROMPTOPT_CONFIG"] = str(args.config)

    uvicorn.run(
        "prompt_optimiser.api:app",
        host=args.host or config.host,
        port=args.port or config.port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )
    return 0


def _vendors(args: argparse.Namespace) -> int:
    if args.json:
        data = {
            key: {"name": g.name, "models": list(g.models), "default": g.default_model}
            for key, g in GUIDANCE.items()
        }
        print(json.dumps(data, indent=2))
        return 0

    for key, guidance in GUIDANCE.items():
        print(f"{key:<10} {guidance.name}")
        for model in guidance.models:
            marker = " (default)" if model == guidance.default_model else ""
            print(f"    {model}{marker}")
    return 0


async def _run_analyse(args: argparse.Namespace) -> dict:
    from prompt_optimiser.backends import HttpAnalyseBackend
    from prompt_optimiser.orchestrator import AnalyseRequest

    backend = HttpAnalyseBackend(args.url)
    try:
        request = AnalyseRequest(
            mode=args.mode,
            vendor=args.vendor,
            model=args.model or default_model(args.vendor),
            input_text=args.text,
            additional_context=args.context,
            entry_mode=args.entry_mode,
            problem_context=args.problem,
        )
        return await backend.analyse(request)
    finally:
        await backend.aclose()


def _analyse(args: argparse.Namespace) -> int:
    from prompt_optimiser.backends import BackendError

    try:
        result = asyncio.run(_run_analyse(args))
    except BackendError as e:
        print(f"Error ({e.category or 'unknown'}): {e.message}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prompt-optimiser",
        description="Prompt Optimiser: critique ideas, generate vendor-specific prompts",
        epilog="Antagon Inc. | https://antagon.ai",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"prompt-optimiser {__version__}",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the HTTP API server")
    serve.add_argument("--host", default=None, help="Bind address (default: from config)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: from config)")
    serve.add_argument("-c", "--config", default=None, help="YAML config file")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    serve.add_argument("--json-logs", action="store_true", help="Structured JSON logs")
    serve.set_defaults(func=_serve)

    vendors = subparsers.add_parser("vendors", help="List vendors and their models")
    vendors.add_argument("--json", action="store_true", help="Output as JSON")
    vendors.set_defaults(func=_vendors)

    analyse = subparsers.add_parser("analyse", help="Send one analyse request to a server")
    analyse.add_argument("text", help="Idea or prompt text")
    analyse.add_argument("--mode", default="critique", choices=SUPPORTED_MODES)
    analyse.add_argument("--vendor", default="claude", choices=sorted(GUIDANCE))
    analyse.add_argument("--model", default=None, help="Model variant (default: vendor's first)")
    analyse.add_argument("--entry-mode", default="idea", choices=["idea", "prompt"])
    analyse.add_argument("--context", default=None, help="Additional context (answers)")
    analyse.add_argument("--problem", default=None, help="What is not working")
    analyse.add_argument("--url", default="http://localhost:8000", help="Server URL")
    analyse.set_defaults(func=_analyse)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
