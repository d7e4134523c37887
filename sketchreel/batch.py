"""Batch orchestrator: run many independent units, survive partial failure.

Units run sequentially by default, or on a bounded thread pool. Either way
results come back in submission order, one unit's failure (even an
unexpected exception) never stops the others, and the summary file on disk
is rewritten after every finished unit so an interrupted batch still leaves
an accurate record behind.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .stages import StageResult
from .utils import save_json

log = logging.getLogger(__name__)

SUMMARY_FILENAME = "batch-summary.json"
IGNORED_SCRIPTS = {"package.json", "package-lock.json", "tsconfig.json", SUMMARY_FILENAME}


@dataclass(frozen=True)
class BatchUnit:
    unit_id: str
    script_path: Path
    output_path: Path


Runner = Callable[[BatchUnit], StageResult]


class BatchSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    timestamp: str
    total: int
    success: int
    failed: int
    total_bytes: int
    results: list[StageResult]

    @classmethod
    def from_results(cls, results: list[StageResult], total: int | None = None) -> "BatchSummary":
        ok = [r for r in results if r.succeeded]
        return cls(
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            total=len(results) if total is None else total,
            success=len(ok),
            failed=len(results) - len(ok),
            total_bytes=sum(r.size_bytes for r in ok),
            results=list(results),
        )

    @property
    def failures(self) -> list[StageResult]:
        return [r for r in self.results if not r.succeeded]

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def write_summary(path: Path, summary: BatchSummary) -> Path:
    return save_json(path, summary.to_dict())


def discover_units(scripts_dir: Path, output_dir: Path, suffix: str = ".mp4") -> list[BatchUnit]:
    """One unit per ``*.json`` script in *scripts_dir*, sorted by name."""
    scripts_dir, output_dir = Path(scripts_dir), Path(output_dir)
    if not scripts_dir.is_dir():
        raise FileNotFoundError(f"scripts directory not found: {scripts_dir}")
    units = []
    for path in sorted(scripts_dir.glob("*.json")):
        if path.name in IGNORED_SCRIPTS or path.name.startswith("."):
            continue
        units.append(BatchUnit(path.stem, path, output_dir / f"{path.stem}{suffix}"))
    log.info("Discovered %d scripts in %s", len(units), scripts_dir)
    return units


def _run_one(unit: BatchUnit, runner: Runner) -> StageResult:
    try:
        return runner(unit)
    except Exception as e:
        log.exception("[%s] runner raised", unit.unit_id)
        return StageResult(
            unit_id=unit.unit_id,
            succeeded=False,
            stage="batch",
            output_path=str(unit.output_path),
            error=f"{type(e).__name__}: {e}",
        )


def run_all(
    units: Iterable[BatchUnit],
    runner: Runner,
    concurrency: int = 1,
    summary_path: Path | None = None,
    progress_cb: Callable[[str], None] | None = None,
) -> list[StageResult]:
    """Run every unit through *runner*; return results in submission order."""
    units = list(units)
    progress = progress_cb or (lambda msg: None)
    slots: list[StageResult | None] = [None] * len(units)
    lock = threading.Lock()
    done = 0

    def _snapshot() -> None:
        if summary_path is not None:
            finished = [r for r in slots if r is not None]
            write_summary(summary_path, BatchSummary.from_results(finished, total=len(units)))

    def _record(index: int, result: StageResult) -> None:
        nonlocal done
        with lock:
            slots[index] = result
            done += 1
            _snapshot()
        mark = "✓" if result.succeeded else "✗"
        progress(f"[{done}/{len(units)}] {mark} {units[index].unit_id}")

    try:
        if concurrency <= 1:
            for i, unit in enumerate(units):
                progress(f"▶ {unit.unit_id}")
                _record(i, _run_one(unit, runner))
        else:
            pool = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="sketchreel")
            try:
                futures = {pool.submit(_run_one, unit, runner): i for i, unit in enumerate(units)}
                for future in as_completed(futures):
                    _record(futures[future], future.result())
            finally:
                pool.shutdown(wait=False, cancel_futures=True)
    except KeyboardInterrupt:
        log.warning("Batch interrupted after %d of %d units", done, len(units))
        with lock:
            _snapshot()
        raise

    results = [r for r in slots if r is not None]
    if summary_path is not None:
        write_summary(summary_path, BatchSummary.from_results(results))
    return results


def format_report(summary: BatchSummary) -> str:
    lines = [
        f"Batch complete: {summary.success} succeeded, {summary.failed} failed (of {summary.total})",
        f"Total size: {summary.total_bytes / (1024 * 1024):.2f} MB",
    ]
    if summary.failures:
        lines.append("Failed:")
        for r in summary.failures:
            lines.append(f"  - {r.unit_id}: {r.error or 'unknown error'}")
    return "\n".join(lines)
