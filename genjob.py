#!/usr/bin/env python3

"""
Generation Job CLI

Submit generation jobs to fal.ai, RunwayML or OpenAI Sora through one
interface, then poll, wait for, cancel and download them. Job and quota
state is kept in JSON files so a job submitted by one invocation can be
polled by the next.

Usage:
    ./genjob.py submit fal-ai/recraft-v3 -p "a red fox"
    ./genjob.py submit runway/gen4_turbo -p "slow pan" --param image_url=https://... --wait
    ./genjob.py poll <job_id>
    ./genjob.py wait <job_id>
    ./genjob.py cancel <job_id>
    ./genjob.py list
    ./genjob.py quota
    ./genjob.py download <job_id> --output downloads
    ./genjob.py models [provider]
    ./genjob.py providers
"""

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Add the package to the path for local imports
sys.path.insert(0, str(Path(__file__).parent))

from genstudio.bootstrap import create_orchestrator
from genstudio.catalog import SUPPORTED_PROVIDERS
from genstudio.cli import JobCLIHandler, ProviderHandler
from genstudio.cli.job_handler import build_input
from genstudio.config import OrchestratorConfig
from genstudio.exceptions import ConfigurationError, GenerationError
from genstudio.logger import init_library_logger

DEFAULT_CLIENT_ID = "local"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Multi-provider generation jobs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--client-id",
        default=os.getenv("GENSTUDIO_CLIENT_ID", DEFAULT_CLIENT_ID),
        help="Client whose jobs and quota to use (default: $GENSTUDIO_CLIENT_ID or 'local')",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    submit_parser = subparsers.add_parser("submit", help="Submit a generation job")
    submit_parser.add_argument("model_id", help="Model identifier, e.g. fal-ai/recraft-v3")
    submit_parser.add_argument("-p", "--prompt", help="Prompt text")
    submit_parser.add_argument("--input", dest="input_json", help="Model input as a JSON object")
    submit_parser.add_argument(
        "--param", action="append", default=[], metavar="KEY=VALUE",
        help="Extra input field (repeatable)",
    )
    submit_parser.add_argument("--wait", action="store_true", help="Poll until the job finishes")

    for name, help_text in (
        ("poll", "Refresh a job once"),
        ("wait", "Poll a job until it finishes"),
        ("cancel", "Cancel a job"),
    ):
        job_parser = subparsers.add_parser(name, help=help_text)
        job_parser.add_argument("job_id", help="Job ID")

    subparsers.add_parser("list", help="List jobs for the client")
    subparsers.add_parser("quota", help="Show the client's generation quota")

    download_parser = subparsers.add_parser("download", help="Download a finished job's assets")
    download_parser.add_argument("job_id", help="Job ID to download")
    download_parser.add_argument("--output", default="downloads", help="Output directory")

    models_parser = subparsers.add_parser("models", help="List known models")
    models_parser.add_argument("provider", nargs="?", choices=SUPPORTED_PROVIDERS, help="Only this provider")

    subparsers.add_parser("providers", help="List providers and their configuration status")
    return parser


def run(args, parser: argparse.ArgumentParser) -> int:
    providers = ProviderHandler()
    if args.command == "models":
        return providers.handle_list_models(args.provider)
    if args.command == "providers":
        return providers.handle_list_providers()
    if args.command is None:
        parser.print_help()
        return 1

    config = OrchestratorConfig.from_environment()
    handler = JobCLIHandler(create_orchestrator(config), poll_interval=config.poll_interval_seconds)

    if args.command == "submit":
        data = build_input(args.prompt, args.input_json, args.param)
        return handler.handle_submit(args.model_id, args.client_id, data, wait=args.wait)
    if args.command == "poll":
        return handler.handle_poll(args.job_id)
    if args.command == "wait":
        return handler.handle_wait(args.job_id)
    if args.command == "cancel":
        return handler.handle_cancel(args.job_id)
    if args.command == "list":
        return handler.handle_list(args.client_id)
    if args.command == "quota":
        return handler.handle_quota(args.client_id)
    if args.command == "download":
        return handler.handle_download(args.job_id, args.output)

    parser.print_help()
    return 1


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    init_library_logger(verbose=args.verbose)

    try:
        return run(args, parser)
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        print("   Check your environment variables and API credentials")
        return 1
    except GenerationError as e:
        print(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        print("\n👋 Cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
