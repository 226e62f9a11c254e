import logging
import subprocess
import json
from pathlib import Path
from typing import Optional, Dict, Any

from .. import config
from ..exceptions import ProbeError
from ..models import AudioMetadata


class AudioProbe:
    """
    Wraps the 'ffprobe' command line utility for audio files.

    The tool is optional: when it is missing or broken every lookup returns
    None and the manifest simply carries no 'audio' block.
    """

    def __init__(self, ffprobe_path: str = config.FFPROBE_PATH, timeout: float = config.PROBE_TIMEOUT_SEC):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self._available: Optional[bool] = None

    def is_available(self) -> bool:
        """Runs '<ffprobe> -version' once and remembers the answer."""
        if self._available is None:
            self._available = self._check_available()
            if not self._available:
                logging.warning(f"{self.ffprobe_path} not available. Skipping audio metadata.")
        return self._available

    def get_audio_metadata(self, path: Path) -> Optional[AudioMetadata]:
        """
        Returns AudioMetadata for the file, or None if the tool is unavailable,
        fails, or reports nothing useful.
        """
        if not self.is_available():
            return None

        try:
            data = self._run_ffprobe(path)
            meta = self._parse(data)
        except ProbeError as e:
            logging.debug(f"ffprobe failed for {path.name}: {e}")
            return None

        return None if meta.is_empty() else meta

    # --- Internal Helpers ---

    def _check_available(self) -> bool:
        try:
            out = subprocess.run(
                [self.ffprobe_path, "-version"],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return out.returncode == 0 and "ffprobe" in (out.stdout or "")

    def _run_ffprobe(self, path: Path) -> Dict[str, Any]:
        # -v quiet keeps stderr noise out; JSON gives us format + streams in one call
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            out = subprocess.check_output(cmd, stderr=subprocess.DEVNULL, text=True, timeout=self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            raise ProbeError(str(e)) from e

        try:
            data = json.loads(out)
        except ValueError as e:
            raise ProbeError(f"invalid ffprobe json: {e}") from e

        if not isinstance(data, dict) or not data:
            raise ProbeError("empty ffprobe output")
        return data

    def _parse(self, data: Dict[str, Any]) -> AudioMetadata:
        # Only the first audio stream counts
        stream = next(
            (s for s in data.get("streams") or [] if isinstance(s, dict) and s.get("codec_type") == "audio"),
            None,
        )
        if stream is None:
            raise ProbeError("no audio stream")

        meta = AudioMetadata()
        try:
            fmt = data.get("format") or {}
            if fmt.get("duration") is not None:
                meta.duration = float(fmt["duration"])
            if fmt.get("bit_rate") is not None:
                meta.bitrate = int(fmt["bit_rate"])

            if stream.get("sample_rate") is not None:
                meta.sample_rate = int(stream["sample_rate"])
            # A zero channel count is as good as none; fall back to the layout
            if stream.get("channels"):
                meta.channels = int(stream["channels"])
            elif stream.get("channel_layout"):
                meta.channel_layout = str(stream["channel_layout"])
            if stream.get("codec_name"):
                meta.codec = str(stream["codec_name"])
            # Stream bit rate beats the container estimate
            if stream.get("bit_rate") is not None:
                meta.bitrate = int(stream["bit_rate"])
        except (TypeError, ValueError, AttributeError) as e:
            raise ProbeError(f"unparseable ffprobe field: {e}") from e

        return meta
