"""CLI entry points for converting files between formats."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)

from convert_hub.core import config_templates
from convert_hub.core import workspace as workspace_mod
from convert_hub.core.config_templates import ConfigTemplateError
from convert_hub.core.logging import configure_logger
from convert_hub.core.workspace import WorkspaceError

from .compression import CompressionLevel
from .config import (
    ConfigOverrides,
    ConvertHubConfig,
    ConvertHubConfigError,
    load_config,
)
from .packager import BatchPackager, Deliverable
from .registry import (
    cross_group_targets,
    extension_of,
    group_of,
    normalize_extension,
    possible_targets,
)
from .service import (
    BatchReport,
    ConversionRequest,
    ConversionService,
    JobOutcome,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="convert-hub convert",
        description=(
            "Convert documents, spreadsheets, images, audio and video into "
            "another format of the same family."
        ),
        epilog=(
            "Run `convert-hub convert config init` to scaffold the default "
            "convert_hub.toml template."
        ),
    )
    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="Files to convert.",
    )
    parser.add_argument(
        "--to",
        dest="target",
        required=True,
        help="Target format extension (e.g. docx, .png, mp3).",
    )
    parser.add_argument(
        "--compression",
        choices=[level.value for level in CompressionLevel],
        help="Compression level for lossy targets (defaults to config).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help=(
            "Path to a TOML config file (defaults to the workspace config "
            "directory)."
        ),
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        help=(
            "Override the workspace root used to resolve default output and "
            "config paths."
        ),
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Override the directory the converted file is saved to.",
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        help="How many conversions may run at the same time.",
    )
    parser.add_argument(
        "--log-level",
        help="Set the logging level for the run (defaults to INFO).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Mirror log records to stderr.",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress display.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args_list = list(argv) if argv is not None else list(sys.argv[1:])

    if args_list[:1] == ["config"]:
        return _handle_config(args_list[1:])

    parser = _build_parser()
    args = parser.parse_args(args_list)

    target = normalize_extension(args.target)
    if group_of(target) is None:
        parser.error(f"Unsupported target format '{args.target}'.")

    overrides = ConfigOverrides(
        output_dir=args.output_dir,
        max_concurrent=args.max_concurrent,
        compression=(
            CompressionLevel(args.compression) if args.compression else None
        ),
        log_level=args.log_level,
    )

    try:
        load_result = load_config(
            config_path=args.config,
            overrides=overrides,
            workspace_path=args.workspace,
        )
    except ConvertHubConfigError as exc:
        parser.error(str(exc))

    config = load_result.config
    logger, log_path = configure_logger(
        "convert_hub.conversion",
        log_dir=load_result.layout.path_for("logs"),
        level=config.log_level,
        verbose=args.verbose,
    )
    logger.debug("convert CLI invoked")

    requests, unreadable = _read_requests(
        args.paths, target=target, config=config, logger=logger
    )
    report = asyncio.run(
        _run_batch(
            requests,
            config=config,
            engine_dir=load_result.layout.path_for("engine"),
            logger=logger,
            show_progress=not args.no_progress,
        )
    )
    report = BatchReport(outcomes=unreadable + report.outcomes)

    saved: Optional[Path] = None
    deliverable = _package(report)
    if deliverable is not None:
        try:
            saved = save_deliverable(deliverable, config.output_dir)
        except OSError as exc:
            sys.stderr.write(f"Unable to save {deliverable.filename}: {exc}\n")
            return 1
        logger.info(
            "Saved deliverable",
            extra={
                "path": saved,
                "archive": deliverable.is_archive,
                "entries": list(deliverable.entries),
            },
        )

    _print_summary(report, saved, log_path)
    return report.exit_code


def formats_main(argv: Sequence[str] | None = None) -> int:
    """List the formats each given file can be converted to."""

    parser = argparse.ArgumentParser(
        prog="convert-hub formats",
        description="Show the target formats available for each file.",
    )
    parser.add_argument(
        "files",
        nargs="+",
        help="File names (or bare extensions such as .png) to inspect.",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    exit_code = 0
    for name in args.files:
        extension = extension_of(name) or normalize_extension(name)
        targets = possible_targets(extension) + cross_group_targets(extension)
        if targets:
            sys.stdout.write(f"{name}: {' '.join(targets)}\n")
        else:
            sys.stdout.write(f"{name}: (unsupported)\n")
            exit_code = 1
    return exit_code


def save_deliverable(deliverable: Deliverable, output_dir: Path) -> Path:
    """Write ``deliverable`` into ``output_dir`` without clobbering files."""

    output_dir.mkdir(parents=True, exist_ok=True)
    destination = _versioned_path(output_dir / deliverable.filename)
    destination.write_bytes(deliverable.data)
    return destination


def _versioned_path(path: Path) -> Path:
    if not path.exists():
        return path
    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem}-{counter:02d}{path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1


def _read_requests(
    paths: Sequence[Path],
    *,
    target: str,
    config: ConvertHubConfig,
    logger: logging.Logger,
) -> tuple[list[ConversionRequest], tuple[JobOutcome, ...]]:
    requests: list[ConversionRequest] = []
    unreadable: list[JobOutcome] = []
    for raw in paths:
        path = raw.expanduser()
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.error(
                "Unable to read source file",
                extra={"source": path, "reason": str(exc)},
            )
            unreadable.append(JobOutcome(path.name, error=exc))
            continue
        requests.append(
            ConversionRequest(
                data=data,
                filename=path.name,
                target_format=target,
                compression=config.compression,
            )
        )
    return requests, tuple(unreadable)


async def _run_batch(
    requests: Sequence[ConversionRequest],
    *,
    config: ConvertHubConfig,
    engine_dir: Path,
    logger: logging.Logger,
    show_progress: bool,
) -> BatchReport:
    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=Console(stderr=True),
        disable=not show_progress,
    )
    tracked: list[ConversionRequest] = []
    for request in requests:
        task_id = progress.add_task(request.filename, total=100)
        tracked.append(
            ConversionRequest(
                data=request.data,
                filename=request.filename,
                target_format=request.target_format,
                compression=request.compression,
                on_progress=_progress_sink(progress, task_id),
            )
        )

    service = ConversionService.from_config(
        config, engine_dir=engine_dir, logger=logger
    )
    with progress:
        async with service:
            return await service.convert_batch(tracked)


def _progress_sink(progress: Progress, task_id):
    def update(value: int) -> None:
        progress.update(task_id, completed=value)

    return update


def _package(report: BatchReport) -> Optional[Deliverable]:
    return BatchPackager().package(report.batch_result)


def _print_summary(
    report: BatchReport, saved: Optional[Path], log_path: Path
) -> None:
    lines = [
        "convert summary:",
        "  converted: {0}".format(report.success_count),
        "  failed:    {0}".format(report.failure_count),
    ]
    for outcome in report.outcomes:
        if not outcome.succeeded:
            lines.append(
                "    {0}: {1}".format(outcome.filename, outcome.reason)
            )
    lines.append("  saved to:  {0}".format(saved if saved else "-"))
    lines.append("  log file:  {0}".format(log_path))
    sys.stdout.write("\n".join(lines) + "\n")


def _handle_config(argv: Sequence[str]) -> int:
    parser = _build_config_parser()
    args = parser.parse_args(argv)

    return _handle_config_init(args)


def _build_config_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="convert-hub convert config",
        description="Manage configuration files for the file converter.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help="Write the default convert_hub.toml template.",
    )
    init_parser.add_argument(
        "--path",
        type=Path,
        help=(
            "Destination for the config TOML (defaults to the workspace "
            "config directory)."
        ),
    )
    init_parser.add_argument(
        "--workspace",
        type=Path,
        help=(
            "Workspace root override used when resolving the default config "
            "path."
        ),
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the destination if a config already exists.",
    )
    return parser


def _handle_config_init(args: argparse.Namespace) -> int:
    template = config_templates.get_template("conversion")
    try:
        target = _resolve_config_target(args, template)
    except WorkspaceError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1

    try:
        written = template.write(target, overwrite=args.force)
    except ConfigTemplateError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1

    sys.stdout.write(f"Wrote convert-hub config to {written}\n")
    return 0


def _resolve_config_target(
    args: argparse.Namespace, template: config_templates.ConfigTemplate
) -> Path:
    if args.path is not None:
        candidate = args.path.expanduser()
        if not candidate.is_absolute():
            candidate = (Path.cwd() / candidate).resolve()
        return candidate

    layout = workspace_mod.ensure_workspace(path=args.workspace)
    return template.default_path(layout.path_for("config"))


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
