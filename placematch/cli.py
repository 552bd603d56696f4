"""CLI entrypoint for the place directory enrichment pipeline."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from placematch.acquisition.apply import run_apply
from placematch.acquisition.runner import analyze_acquisition, run_acquisition
from placematch.common.config_loader import ConfigBundle, load_all_configs, resolve_api_key
from placematch.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_SUCCESS
from placematch.common.errors import PipelineError
from placematch.common.ids import generate_run_id
from placematch.common.logging import build_logger, log_event
from placematch.directory.client import DirectoryClient
from placematch.pipeline.orchestrator import EnrichmentOrchestrator, RunOptions
from placematch.pipeline.reports import analysis_lines, summary_lines


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--dry-run", action="store_true", help="analyze and estimate cost without API calls")
    parser.add_argument("--resume", action="store_true", help="continue from the saved progress file")
    parser.add_argument("--retry-failed", action="store_true", help="resume and re-queue failed records")
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--category", default=None)
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--input", default=None, help="input knowledge base (defaults to files.input)")
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--verbose", action="store_true", help="shorthand for --log-level DEBUG")
    return parser.parse_args(argv)


def _print(lines: list[str]) -> None:
    for line in lines:
        print(line)


def run_enrich(args: argparse.Namespace, bundle: ConfigBundle, data_dir: Path, run_id: str, logger) -> int:
    input_path = Path(args.input) if args.input else None
    options = RunOptions(
        limit=args.limit,
        category=args.category,
        resume=args.resume,
        dry_run=args.dry_run,
        retry_failed=args.retry_failed,
    )
    if args.dry_run:
        orchestrator = EnrichmentOrchestrator(bundle, data_dir, run_id, input_path=input_path, logger=logger)
        report = orchestrator.run(options)
        _print(analysis_lines(report.analysis))
        return EXIT_SUCCESS

    directory = DirectoryClient.from_config(bundle.enrichment, resolve_api_key(bundle))
    try:
        orchestrator = EnrichmentOrchestrator(
            bundle,
            data_dir,
            run_id,
            directory=directory,
            input_path=input_path,
            logger=logger,
        )
        report = orchestrator.run(options)
    finally:
        directory.close()
    _print(summary_lines(report.stats, report.phase))
    return EXIT_SUCCESS


def run_acquire(args: argparse.Namespace, bundle: ConfigBundle, data_dir: Path, run_id: str, logger) -> int:
    if args.dry_run:
        analysis = analyze_acquisition(
            bundle,
            data_dir,
            limit=args.limit,
            category=args.category,
            input_path=Path(args.input) if args.input else None,
        )
        _print([f"already acquired: {analysis['alreadyAcquired']}", *analysis_lines(analysis)])
        return EXIT_SUCCESS
    report = run_acquisition(
        bundle,
        data_dir,
        resolve_api_key(bundle),
        workers=args.workers,
        limit=args.limit,
        category=args.category,
        input_path=Path(args.input) if args.input else None,
    )
    _print(
        [
            f"run {run_id} acquire{' (interrupted)' if report.interrupted else ''}",
            f"claimed={report.claimed} acquired={report.acquired} not_found={report.not_found} failed={report.failed}"
            f" workers_failed={report.workers_failed}",
            f"results: {report.results_path}",
        ]
    )
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)
    level = "DEBUG" if args.verbose else ("WARNING" if args.log_level == "WARN" else args.log_level)

    logger = build_logger(run_id, data_dir=data_dir, level=level)
    bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)

    log_event(logger, "command start", run_id=run_id, stage=args.command, event="COMMAND_START", status="ok")
    try:
        if args.command == "enrich":
            exit_code = run_enrich(args, bundle, data_dir, run_id, logger)
        elif args.command == "acquire":
            exit_code = run_acquire(args, bundle, data_dir, run_id, logger)
        elif args.command == "apply":
            summary = run_apply(
                bundle,
                data_dir,
                run_id,
                input_path=Path(args.input) if args.input else None,
                dry_run=args.dry_run,
            )
            output = summary["outputPath"] or "not written (dry run)"
            _print([f"run {run_id} apply", f"changes: {summary['changes']}", f"output: {output}"])
            exit_code = EXIT_SUCCESS
        else:
            raise ValueError(f"Unknown command: {args.command}")
    except PipelineError as exc:
        log_event(
            logger,
            f"{args.command} failed: {exc}",
            run_id=run_id,
            stage=args.command,
            event="COMMAND_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL
    log_event(logger, "command end", run_id=run_id, stage=args.command, event="COMMAND_END", status="ok")
    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
