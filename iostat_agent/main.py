"""
iostat_agent.main
------------
AUTHOR: carter-vin

CLI entrypoint + host scheduler for the IO check

Key contract:
- `iostat-agent --help` shows a Commands section.
- `iostat-agent oneshot` runs one cycle (or --samples N) and exits.
- `iostat-agent run` runs cycles at a fixed interval until Ctrl+C (or --count).
"""

from __future__ import annotations

import platform
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import typer

from iostat_agent.check import CheckError, IOCheck, configure
from iostat_agent.collectors.procfs import ProcfsCounterSource
from iostat_agent.config import ConfigError
from iostat_agent.emit import EmitTargets, SpoolSink
from iostat_agent.logging import emit_event, error_fields

app = typer.Typer(
    add_completion=False,
    help="iostat-agent: per-device disk IO rate sampler",
)

AGENT_VERSION = "0.1.0"


@dataclass(frozen=True)
class EnvironmentInfo:
    """
    Snapshot of the runtime environment
    """

    python_version: str
    os: str
    machine: str
    utc_now: str


def collect_environment_info() -> EnvironmentInfo:
    return EnvironmentInfo(
        python_version=sys.version.split()[0],
        os=f"{platform.system()} {platform.release()}",
        machine=platform.machine(),
        utc_now=datetime.now(timezone.utc).isoformat(),
    )


def _build_check(
    *,
    mode: str,
    exclude: Optional[str],
    prefix: str,
    queue_mode: str,
    spool_path: str,
    spool_max_bytes: Optional[int],
    no_stdout: bool,
    proc_root: str,
    sys_root: str,
) -> IOCheck:
    """
    Wire the procfs source + spool sink into a configured check
    """

    def _on_spool_error(e: Exception, path: Path) -> None:
        emit_event(
            "spool_write_failed",
            agent_version=AGENT_VERSION,
            mode=mode,
            spool_path=str(path),
            **error_fields(e),
        )

    def _on_rotate(info: dict[str, Any]) -> None:
        emit_event("spool_rotated", agent_version=AGENT_VERSION, mode=mode, **info)

    targets = EmitTargets(
        spool_path=Path(spool_path),
        emit_stdout=not no_stdout,
        spool_max_bytes=spool_max_bytes,
    )
    sink = SpoolSink(
        targets,
        agent_version=AGENT_VERSION,
        on_spool_error=_on_spool_error,
        on_rotate=_on_rotate,
    )
    source = ProcfsCounterSource(proc_root=Path(proc_root), sys_root=Path(sys_root))

    options = {"metric_prefix": prefix, "queue_length_mode": queue_mode}
    if exclude:
        options["device_blacklist_re"] = exclude

    try:
        return configure(options, source=source, sink=sink, agent_version=AGENT_VERSION)
    except ConfigError as e:
        raise typer.BadParameter(str(e)) from e


def _sleep_until_next(start: float, interval: int) -> None:
    elapsed = time.monotonic() - start
    time.sleep(max(0.0, interval - elapsed))


# -----------------------------
# ROOT COMMAND BEHAVIOR
# -----------------------------
@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """
    Root command behavior: print a hint when no subcommand is given.
    """
    if ctx.invoked_subcommand is None:
        typer.echo("No command provided. Try: iostat-agent --help")


# -----------------------------
# CLI COMMANDS
# -----------------------------
@app.command()
def version() -> None:
    """
    Print agent version & runtime env
    """
    env = collect_environment_info()

    typer.echo(f"iostat-agent v{AGENT_VERSION}")
    typer.echo(f"python={env.python_version}")
    typer.echo(f"os={env.os}")
    typer.echo(f"machine={env.machine}")
    typer.echo(f"utc_now={env.utc_now}")


EXCLUDE_OPTION = typer.Option(None, "--exclude", help="Regex; matching device ids are not tracked.")
PREFIX_OPTION = typer.Option("system", "--prefix", help="Metric namespace prefix.")
QUEUE_MODE_OPTION = typer.Option("rate", "--queue-mode", help="avg_q_sz computation: rate or gauge.")
SPOOL_PATH_OPTION = typer.Option("spool/io_metrics.jsonl", help="Path to JSONL spool file for metric emission.")
SPOOL_MAX_BYTES_OPTION = typer.Option(None, "--spool-max-bytes", help="Rotate the spool once it reaches this size.", min=1)
NO_STDOUT_OPTION = typer.Option(False, "--no-stdout", help="Disable printing metric points to stdout.")
PROC_ROOT_OPTION = typer.Option("/proc", "--proc-root", help="procfs mount point.")
SYS_ROOT_OPTION = typer.Option("/sys", "--sys-root", help="sysfs mount point.")


@app.command("oneshot")
def oneshot(
    samples: int = typer.Option(
        1,
        "--samples",
        help="Number of cycles to run; rates need at least 2.",
        min=1,
    ),
    interval: int = typer.Option(
        1,
        help="Seconds between cycles when --samples > 1.",
        min=1,
    ),
    exclude: Optional[str] = EXCLUDE_OPTION,
    prefix: str = PREFIX_OPTION,
    queue_mode: str = QUEUE_MODE_OPTION,
    spool_path: str = SPOOL_PATH_OPTION,
    spool_max_bytes: Optional[int] = SPOOL_MAX_BYTES_OPTION,
    no_stdout: bool = NO_STDOUT_OPTION,
    proc_root: str = PROC_ROOT_OPTION,
    sys_root: str = SYS_ROOT_OPTION,
) -> None:
    """
    Run a fixed number of cycles and exit

    Failure semantics:
    - any cycle failure exits non-zero (good for ops scripts)
    """
    emit_event(
        "agent_start",
        agent_version=AGENT_VERSION,
        mode="oneshot",
        samples=samples,
        spool_path=spool_path,
    )

    try:
        check = _build_check(
            mode="oneshot",
            exclude=exclude,
            prefix=prefix,
            queue_mode=queue_mode,
            spool_path=spool_path,
            spool_max_bytes=spool_max_bytes,
            no_stdout=no_stdout,
            proc_root=proc_root,
            sys_root=sys_root,
        )

        for index in range(samples):
            start = time.monotonic()
            try:
                result = check.run()
            except Exception as e:
                emit_event(
                    "cycle_failed",
                    agent_version=AGENT_VERSION,
                    mode="oneshot",
                    cycle=index + 1,
                    **error_fields(e),
                )
                raise

            if result.metrics_emitted:
                emit_event(
                    "metrics_committed",
                    agent_version=AGENT_VERSION,
                    mode="oneshot",
                    cycle=index + 1,
                    metrics=result.metrics_emitted,
                    spool_path=spool_path,
                )

            if index + 1 < samples:
                _sleep_until_next(start, interval)

    finally:
        emit_event(
            "agent_shutdown",
            agent_version=AGENT_VERSION,
            mode="oneshot",
        )


@app.command("run")
def run(
    interval: int = typer.Option(
        15,
        help="Run a cycle at a fixed interval (seconds).",
        min=1,
    ),
    count: int = typer.Option(
        0,
        "--count",
        help="Stop after this many cycles (0 = run until interrupted).",
        min=0,
    ),
    exclude: Optional[str] = EXCLUDE_OPTION,
    prefix: str = PREFIX_OPTION,
    queue_mode: str = QUEUE_MODE_OPTION,
    spool_path: str = SPOOL_PATH_OPTION,
    spool_max_bytes: Optional[int] = SPOOL_MAX_BYTES_OPTION,
    no_stdout: bool = NO_STDOUT_OPTION,
    proc_root: str = PROC_ROOT_OPTION,
    sys_root: str = SYS_ROOT_OPTION,
) -> None:
    """
    Run continuous sampling loop.

    A failed cycle is logged and retried on the next tick.
    """
    emit_event(
        "agent_start",
        agent_version=AGENT_VERSION,
        mode="run",
        interval_s=interval,
        spool_path=spool_path,
    )

    try:
        check = _build_check(
            mode="run",
            exclude=exclude,
            prefix=prefix,
            queue_mode=queue_mode,
            spool_path=spool_path,
            spool_max_bytes=spool_max_bytes,
            no_stdout=no_stdout,
            proc_root=proc_root,
            sys_root=sys_root,
        )

        cycles = 0
        while count == 0 or cycles < count:
            start = time.monotonic()
            cycles += 1

            try:
                result = check.run()
                if result.metrics_emitted:
                    emit_event(
                        "metrics_committed",
                        agent_version=AGENT_VERSION,
                        mode="run",
                        cycle=cycles,
                        metrics=result.metrics_emitted,
                        spool_path=spool_path,
                    )
            except (CheckError, OSError) as e:
                emit_event(
                    "cycle_failed",
                    agent_version=AGENT_VERSION,
                    mode="run",
                    cycle=cycles,
                    **error_fields(e),
                )
                # Keep running; the next tick is the retry.

            if count == 0 or cycles < count:
                _sleep_until_next(start, interval)

    except KeyboardInterrupt:
        # Graceful shutdown on Ctrl+C
        pass

    finally:
        emit_event(
            "agent_shutdown",
            agent_version=AGENT_VERSION,
            mode="run",
        )


if __name__ == "__main__":
    app()
