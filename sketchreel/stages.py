"""Stage runner: one external invocation in, one :class:`StageResult` out.

``run_stage`` never raises (short of ``KeyboardInterrupt``). Every way a
stage can go wrong (missing executable, non-zero exit, timeout, a backend
refusing the request, a success that wrote nothing) comes back as
``succeeded=False`` with an error string an operator can act on.

Stages write to a hidden temp file beside the requested output; only a
non-empty result is renamed onto the final path, so an interrupted or failed
stage never leaves a partial artifact behind.
"""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .config import STAGE_TIMEOUT
from .errors import ConfigurationError, NarrationError, StageFailure
from .utils import temp_path_for

log = logging.getLogger(__name__)


class StageResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    unit_id: str
    succeeded: bool
    stage: str = ""
    output_path: Optional[str] = None
    size_bytes: int = 0
    error: Optional[str] = None
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class CommandStage:
    """An external process.

    *argv* receives the temp output path and returns the command line.
    *support_files* may return helper files (e.g. an ffmpeg concat list) to
    write before the process starts; they are removed afterwards.
    """
    name: str
    argv: Callable[[Path], list[str]]
    inputs: list[Path] = field(default_factory=list)
    support_files: Callable[[Path], dict[Path, str]] | None = None
    cwd: Path | None = None

    def invoke(self, output: Path, timeout: float | None, unit_id: str) -> None:
        for path in self.inputs:
            if not Path(path).exists():
                raise StageFailure(unit_id, f"input not found: {path}")

        cmd = self.argv(output)
        exe = cmd[0]
        if shutil.which(exe) is None and not Path(exe).is_file():
            raise StageFailure(unit_id, f"executable not found: {exe} (is it installed and on PATH?)")

        helpers = self.support_files(output) if self.support_files else {}
        try:
            for path, content in helpers.items():
                path.write_text(content, encoding="utf-8")
            log.debug("CMD: %s", " ".join(cmd))
            result = subprocess.run(cmd, capture_output=True, timeout=timeout, cwd=self.cwd)
        finally:
            for path in helpers:
                path.unlink(missing_ok=True)

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace")[-500:].strip()
            raise StageFailure(
                unit_id, f"{Path(exe).name} exited with code {result.returncode}: {stderr or '(no output)'}"
            )


@dataclass
class CallStage:
    """An in-process call, such as an HTTP request, that writes the output file itself."""
    name: str
    call: Callable[[Path, Optional[float]], None]

    def invoke(self, output: Path, timeout: float | None, unit_id: str) -> None:
        self.call(output, timeout)


Stage = Union[CommandStage, CallStage]


def run_stage(
    stage: Stage,
    unit_id: str,
    output_path: Path,
    timeout: float | None = STAGE_TIMEOUT,
) -> StageResult:
    """Run *stage* once, producing *output_path*. Never raises."""
    output_path = Path(output_path)
    tmp = temp_path_for(output_path, f"{unit_id}.{stage.name}")
    started = time.monotonic()
    timeout = timeout or None

    def _result(succeeded: bool, error: str | None = None, size: int = 0) -> StageResult:
        return StageResult(
            unit_id=unit_id,
            stage=stage.name,
            succeeded=succeeded,
            output_path=str(output_path),
            size_bytes=size,
            error=error,
            elapsed_seconds=round(time.monotonic() - started, 3),
        )

    def _fail(message: str) -> StageResult:
        log.warning("[%s] %s failed: %s", unit_id, stage.name, message)
        return _result(False, f"{stage.name}: {message}")

    log.info("[%s] %s -> %s", unit_id, stage.name, output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        tmp.unlink(missing_ok=True)
        stage.invoke(tmp, timeout, unit_id)

        if not tmp.exists():
            return _fail("reported success but wrote no output")
        size = tmp.stat().st_size
        if size == 0:
            return _fail("reported success but wrote an empty file")
        os.replace(tmp, output_path)
    except subprocess.TimeoutExpired:
        return _fail(f"timed out after {timeout:g}s")
    except StageFailure as e:
        return _fail(e.cause)
    except ConfigurationError as e:
        return _fail(f"configuration error: {e}")
    except NarrationError as e:
        return _fail(str(e))
    except Exception as e:
        log.exception("[%s] %s raised", unit_id, stage.name)
        return _fail(f"{type(e).__name__}: {e}")
    finally:
        tmp.unlink(missing_ok=True)

    log.info("[%s] %s ok (%d bytes)", unit_id, stage.name, size)
    return _result(True, size=size)
