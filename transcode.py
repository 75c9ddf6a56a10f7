import logging
import os
import shutil
import subprocess

logger = logging.getLogger(__name__)

# libmp3lame VBR quality index 2 (~170-210 kbps)
MP3_CODEC = "libmp3lame"
MP3_QUALITY = "2"

TOOL_UNAVAILABLE_MESSAGE = "ffmpeg could not be found. Install ffmpeg or set FFMPEG_BIN to its path."


class ToolUnavailable(Exception):
    pass


class ConversionError(Exception):
    def __init__(self, message, returncode=None, stderr=""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


def locate_ffmpeg(configured=None):
    """Return the ffmpeg executable to use, or None if it cannot be found.

    ``configured`` may be a full path or a bare command name; when it is
    empty the PATH is searched for ``ffmpeg``.
    """
    if configured:
        if os.path.isfile(configured) and os.access(configured, os.X_OK):
            return configured
        return shutil.which(configured)
    return shutil.which("ffmpeg")


class Transcoder:
    """Runs ffmpeg to turn one staged input file into an MP3."""

    def __init__(self, ffmpeg_path, timeout=300):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def is_available(self):
        return self.ffmpeg_path is not None

    def ensure_available(self):
        if not self.is_available():
            raise ToolUnavailable(TOOL_UNAVAILABLE_MESSAGE)

    def build_command(self, input_path, output_path):
        return [
            self.ffmpeg_path,
            "-y",
            "-i", input_path,
            "-codec:a", MP3_CODEC,
            "-qscale:a", MP3_QUALITY,
            output_path,
        ]

    def convert(self, input_path, output_path):
        self.ensure_available()
        command = self.build_command(input_path, output_path)
        logger.debug("Running ffmpeg: %s", " ".join(command))

        try:
            result = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            # subprocess.run kills the child before re-raising
            stderr = _decode(e.stderr)
            logger.error("ffmpeg timed out after %ss on %s", self.timeout, input_path)
            raise ConversionError(f"FFmpeg timed out after {self.timeout}s", stderr=stderr) from e
        except OSError as e:
            logger.error("Failed to launch ffmpeg (%s): %s", self.ffmpeg_path, e)
            raise ConversionError(f"Failed to launch FFmpeg: {e}") from e

        stderr = _decode(result.stderr)
        if result.returncode != 0:
            logger.error("ffmpeg exited with code %s: %s", result.returncode, stderr[-500:])
            raise ConversionError(
                f"FFmpeg exited with code {result.returncode}: {stderr}",
                returncode=result.returncode,
                stderr=stderr,
            )

        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise ConversionError("FFmpeg finished but produced no output", returncode=0, stderr=stderr)

        return output_path


def _decode(data):
    if not data:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")
