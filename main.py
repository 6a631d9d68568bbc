import argparse
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from config.config import STAGE_NAMES, PipelineConfig, load_config, save_config
from pipeline.driver import CancellationToken, PipelineDriver, RunContext
from utils.utils import setup_logging
from zk.errors import PipelineError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STAGE_FAILED = 1
EXIT_SETUP_FAILED = 2


def install_signal_handlers(token: CancellationToken):
    """First SIGINT/SIGTERM stops at the next stage boundary, a second exits immediately"""
    def handler(signum, frame):
        if token.cancelled:
            print("\nReceived a second interrupt. Exiting...", file=sys.stderr)
            os._exit(130)
        token.cancel(signal.Signals(signum).name)
        print("\nReceived an interrupt. Stopping after the current stage...", file=sys.stderr)

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def cmd_generate(driver: PipelineDriver, args) -> int:
    if args.stage == "all":
        results = driver.generate_all(ballot_vkey=args.ballot_vkey)
        if driver.config.enable_benchmarking:
            driver.write_reports(results)

        print("\n" + "=" * 40)
        print("PIPELINE RESULTS")
        print("=" * 40)
        for result in results:
            status = "OK" if result.ok else "FAILED"
            print(f"  {result.stage}: {result.state.value} [{status}]")
            if result.error:
                print(f"    {result.error}")

        complete = len(results) == len(STAGE_NAMES) and all(r.ok for r in results)
        return EXIT_OK if complete else EXIT_STAGE_FAILED

    kwargs = {"ballot_vkey": args.ballot_vkey} if args.stage == "voteverifier" else {}
    try:
        result = driver.generate(args.stage, **kwargs)
    except PipelineError:
        return EXIT_STAGE_FAILED

    for name, digest in result.digests.items():
        print(f"{name} {digest}")
    return EXIT_OK


def cmd_status(driver: PipelineDriver, args) -> int:
    for stage, state in driver.status().items():
        print(f"{stage:<16} {state.value:<18} {driver.stage_dirs[stage]}")
    return EXIT_OK


def cmd_verify(driver: PipelineDriver, args) -> int:
    stages = [args.stage] if args.stage else None
    reports = driver.verify(stages)

    for report in reports:
        print(f"{report.stage}: {'OK' if report.ok else 'FAILED'}")
        for problem in report.problems:
            print(f"  {problem}")
    return EXIT_OK if all(r.ok for r in reports) else EXIT_STAGE_FAILED


COMMANDS = {
    "generate": cmd_generate,
    "status": cmd_status,
    "verify": cmd_verify,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Recursive vote circuit artifact generator')
    parser.add_argument('--config', type=str,
                        default='config.yaml', help='Config file path')
    parser.add_argument('--artifacts-dir', type=str,
                        help='Root directory holding one sub-directory per stage')
    parser.add_argument('--ballot-vkey', type=str,
                        help='Ballot proof verification key (path or URL)')
    parser.add_argument('--ballot-vkey-sha256', type=str,
                        help='Expected SHA-256 of the ballot proof verification key')
    parser.add_argument('--votes-per-batch', type=int,
                        help='Aggregator batch size')
    parser.add_argument('--backend', choices=['reference', 'external'],
                        help='Proof-system backend')
    parser.add_argument('--setup-seed', type=str,
                        help='Deterministic setup seed (development only)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])

    subparsers = parser.add_subparsers(dest='command', required=True)

    generate = subparsers.add_parser('generate', help='Generate stage artifacts')
    generate.add_argument('stage', choices=list(STAGE_NAMES) + ['all'])

    subparsers.add_parser('status', help='Show the on-disk state of every stage')

    verify = subparsers.add_parser('verify', help='Re-hash artifacts against stage manifests')
    verify.add_argument('stage', nargs='?', choices=list(STAGE_NAMES))

    subparsers.add_parser('init-config', help='Write the effective configuration to --config')

    return parser


def apply_overrides(config: PipelineConfig, args) -> PipelineConfig:
    if args.artifacts_dir:
        config.store.artifacts_dir = Path(args.artifacts_dir)
    if args.ballot_vkey:
        config.ballot_vkey = args.ballot_vkey
    if args.ballot_vkey_sha256:
        config.ballot_vkey_sha256 = args.ballot_vkey_sha256.lower()
    if args.votes_per_batch is not None:
        if args.votes_per_batch < 1:
            raise ValueError("--votes-per-batch must be positive")
        config.votes_per_batch = args.votes_per_batch
    if args.backend:
        config.backend.kind = args.backend
    if args.setup_seed:
        config.backend.setup_seed = args.setup_seed
    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = apply_overrides(load_config(Path(args.config)), args)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_SETUP_FAILED

    if args.command == 'init-config':
        save_config(config, Path(args.config))
        print(f"Configuration written to {args.config}")
        return EXIT_OK

    try:
        config.ensure_directories()
    except OSError as e:
        print(f"Failed to create directory: {e}", file=sys.stderr)
        return EXIT_SETUP_FAILED

    log_level = 'DEBUG' if config.enable_debug_mode else args.log_level
    setup_logging(log_level, log_dir=config.log_dir)

    token = CancellationToken()
    install_signal_handlers(token)

    try:
        context = RunContext.from_config(config, token=token)
    except ValueError as e:
        logger.error(f"Cannot create backend: {e}")
        return EXIT_SETUP_FAILED

    driver = PipelineDriver(context)
    return COMMANDS[args.command](driver, args)


if __name__ == "__main__":
    sys.exit(main())
