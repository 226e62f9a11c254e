import logging
from dataclasses import dataclass

from .models import Manifest

SIZE_UNITS = ['B', 'KB', 'MB', 'GB', 'TB']


@dataclass
class ManifestSummary:
    files: int
    folders: int
    total_bytes: int
    audio_files: int = 0


def summarize(manifest: Manifest) -> ManifestSummary:
    """Counts files, folders and bytes across the whole tree."""
    files = 0
    total = 0
    audio = 0
    for node in manifest.iter_files():
        files += 1
        total += node.size
        if node.audio is not None:
            audio += 1
    return ManifestSummary(files=files, folders=manifest.count_folders(), total_bytes=total, audio_files=audio)


def format_bytes(num_bytes: int) -> str:
    """Human readable size, base 1024, two decimals (e.g. '1.50 KB')."""
    if num_bytes <= 0:
        return '0 B'
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    return f"{value:.2f} {SIZE_UNITS[i]}"


def log_summary(manifest: Manifest, probe_audio: bool = False):
    s = summarize(manifest)
    logging.info("Summary:")
    logging.info(f"   Files: {s.files}")
    logging.info(f"   Folders: {s.folders}")
    logging.info(f"   Total size: {format_bytes(s.total_bytes)}")
    if probe_audio:
        logging.info(f"   Audio metadata: {s.audio_files} file(s) enriched with ffprobe")
