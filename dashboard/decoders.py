"""
Duration decoders.

A decoder is any callable taking a local path or URL and returning the
duration in seconds, raising when it cannot tell. The estimator treats it
as a plain "decode or fail" capability, so tests can pass a lambda.
"""

import logging
import subprocess
from typing import Callable, Optional, Sequence

import ffmpeg
from mutagen import File as MutagenFile, MutagenError

logger = logging.getLogger(__name__)

Decoder = Callable[[str], float]


class DurationError(Exception):
    """Base class for failures to measure a duration."""


class DecodeTimeout(DurationError):
    """Decoding did not finish within the allowed wait."""


class DecodeError(DurationError):
    """The container is malformed, unsupported or unreachable."""


class Unmeasurable(DurationError):
    """Decoding finished but produced no usable duration."""

    def __init__(self, message: str, raw_seconds: Optional[float] = None):
        super().__init__(message)
        self.raw_seconds = raw_seconds


def mutagen_duration(source: str) -> float:
    """Read the stream length of a local file with mutagen."""
    try:
        audio = MutagenFile(source)
    except (MutagenError, OSError) as e:
        raise DecodeError(f"mutagen could not read {source}: {e}") from e
    if audio is None or audio.info is None or not hasattr(audio.info, 'length'):
        raise DecodeError(f"Unsupported audio container: {source}")
    return float(audio.info.length)


class FFprobeDecoder:
    """
    Read the duration reported by ffprobe.

    Works on local paths and on http(s) URLs. The subprocess gets its own
    timeout so an abandoned ffprobe run does not outlive the estimate by much.
    """

    def __init__(self, timeout: Optional[float] = None, cmd: str = 'ffprobe'):
        self.timeout = timeout
        self.cmd = cmd

    def __call__(self, source: str) -> float:
        try:
            info = ffmpeg.probe(source, cmd=self.cmd, timeout=self.timeout)
        except ffmpeg.Error as e:
            stderr = e.stderr.decode('utf-8', 'replace').strip() if e.stderr else str(e)
            raise DecodeError(f"ffprobe failed for {source}: {stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise DecodeTimeout(f"ffprobe timed out for {source}") from e
        except OSError as e:
            raise DecodeError(f"ffprobe not available: {e}") from e

        duration = info.get('format', {}).get('duration')
        if duration is None:
            for stream in info.get('streams', []):
                if stream.get('codec_type') == 'audio' and stream.get('duration'):
                    duration = stream['duration']
                    break
        if duration is None:
            raise Unmeasurable(f"ffprobe reported no duration for {source}")
        return float(duration)


class DecoderChain:
    """Try decoders in order, returning the first duration obtained."""

    def __init__(self, decoders: Sequence[Decoder]):
        if not decoders:
            raise ValueError("DecoderChain needs at least one decoder")
        self.decoders = list(decoders)

    def __call__(self, source: str) -> float:
        last_error: Optional[Exception] = None
        for decoder in self.decoders:
            try:
                return decoder(source)
            except DurationError as e:
                logger.debug("Decoder %r failed on %s: %s", decoder, source, e)
                last_error = e
        raise last_error
