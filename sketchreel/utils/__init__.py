from .fileio import atomic_write_bytes, atomic_write_text, save_json, temp_path_for
from .ffprobe import MediaInfo, probe_duration, probe_media

__all__ = [
    "atomic_write_bytes", "atomic_write_text", "save_json", "temp_path_for",
    "MediaInfo", "probe_duration", "probe_media",
]
