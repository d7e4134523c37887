"""Write-to-temp-then-rename helpers so readers never see half-written files."""
from __future__ import annotations

import json
import os
import re
import threading
from pathlib import Path


def temp_path_for(final: Path, token: str) -> Path:
    """Hidden sibling of *final* that keeps its suffix (ffmpeg picks formats by extension).

    *token* should identify the writer (unit id, stage name) so concurrent
    writers targeting the same directory never share a temp file.
    """
    safe = re.sub(r"[^A-Za-z0-9_.-]+", "_", token)
    return final.with_name(f".{final.stem}.{safe}.part{final.suffix}")


def atomic_write_bytes(path: Path, data: bytes) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_path_for(path, f"{os.getpid()}-{threading.get_ident()}")
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)
    return path


def atomic_write_text(path: Path, text: str) -> Path:
    return atomic_write_bytes(path, text.encode("utf-8"))


def save_json(path: Path, data: dict | list) -> Path:
    return atomic_write_text(path, json.dumps(data, indent=2) + "\n")
