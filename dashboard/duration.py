"""
Track duration estimation.

The estimator tries to decode the real duration of an audio asset and,
when decoding fails or takes too long, falls back to a guess based on the
file size and a typical bitrate. It never raises and never hangs: every
call returns a DurationEstimate within the configured wait.
"""

import logging
import math
import mimetypes
import os
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from shared.constants import (
    MIN_ESTIMATED_DURATION,
    MAX_TRACK_DURATION,
    VOICE_NOTE_BYTES_PER_SECOND,
    COMPRESSED_KB_PER_SECOND,
    VOICE_NOTE_HINT,
    VOICE_NOTE_MIME_HINT,
    LOCAL_DECODE_TIMEOUT,
    REMOTE_DECODE_TIMEOUT,
)
from .decoders import (
    Decoder,
    DecoderChain,
    DurationError,
    DecodeError,
    DecodeTimeout,
    FFprobeDecoder,
    Unmeasurable,
    mutagen_duration,
)

logger = logging.getLogger(__name__)


class Confidence(Enum):
    """How a duration was obtained."""
    MEASURED = "measured"
    APPROXIMATED = "approximated"


@dataclass(frozen=True)
class DurationEstimate:
    """
    Duration of one asset in whole seconds.

    Attributes:
        seconds: The duration to store or display
        confidence: MEASURED when decoded, APPROXIMATED when guessed from size
        raw_seconds: Value the decoder produced, kept even when it was out of
            range and therefore not used (None if decoding gave nothing)
    """
    seconds: int
    confidence: Confidence
    raw_seconds: Optional[float] = None

    @property
    def is_measured(self) -> bool:
        return self.confidence == Confidence.MEASURED

    def to_dict(self):
        return {
            'seconds': self.seconds,
            'confidence': self.confidence.value,
            'raw_seconds': self.raw_seconds,
        }


@dataclass
class AudioAsset:
    """
    One audio file: a local path, an in-memory blob or a remote URL.

    Attributes:
        name: File name; its extension is the container hint
        size: Size in bytes (0 if unknown)
        mime_type: Declared MIME type, if any
        path: Local file path
        data: File contents held in memory (e.g. a web upload)
        url: Dereferenceable remote URL
        recorded_duration: Duration currently stored for the asset
    """
    name: str
    size: int = 0
    mime_type: Optional[str] = None
    path: Optional[str] = None
    data: Optional[bytes] = None
    url: Optional[str] = None
    recorded_duration: Optional[int] = None

    def __post_init__(self):
        sources = [s for s in (self.path, self.data, self.url) if s is not None]
        if len(sources) != 1:
            raise ValueError("AudioAsset needs exactly one of path, data or url")
        if self.size < 0:
            raise ValueError("AudioAsset size cannot be negative")
        if self.mime_type is None:
            self.mime_type = mimetypes.guess_type(self.name)[0]

    @classmethod
    def from_path(cls, path, mime_type: Optional[str] = None) -> 'AudioAsset':
        path = Path(path)
        return cls(name=path.name, size=path.stat().st_size, mime_type=mime_type, path=str(path))

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: Optional[str] = None) -> 'AudioAsset':
        return cls(name=name, size=len(data), mime_type=mime_type, data=data)

    @classmethod
    def from_url(cls, url: str, size: int = 0, name: Optional[str] = None,
                 recorded_duration: Optional[int] = None) -> 'AudioAsset':
        if name is None:
            name = url.split('?')[0].rstrip('/').rsplit('/', 1)[-1] or url
        return cls(name=name, size=size or 0, url=url, recorded_duration=recorded_duration)

    @property
    def is_remote(self) -> bool:
        return self.url is not None

    @property
    def is_voice_note(self) -> bool:
        """True for low-bitrate voice-message containers (Opus)."""
        if VOICE_NOTE_HINT in self.name.lower():
            return True
        return bool(self.mime_type and VOICE_NOTE_MIME_HINT in self.mime_type.lower())

    @property
    def stem(self) -> str:
        return Path(self.name).stem if '.' in self.name else self.name


def clamp_duration(seconds: float) -> int:
    """Clamp a duration guess to the accepted [5, 3600] second range."""
    return int(min(max(seconds, MIN_ESTIMATED_DURATION), MAX_TRACK_DURATION))


def fallback_estimate(size: int, name: str, mime_type: Optional[str] = None) -> DurationEstimate:
    """
    Guess a duration from the file size.

    Voice notes are assumed to be ~48 kbps (6000 bytes/s); everything else is
    treated as compressed music at ~16 KB/s.
    """
    size = max(size, 0)
    is_voice = VOICE_NOTE_HINT in name.lower() or bool(
        mime_type and VOICE_NOTE_MIME_HINT in mime_type.lower()
    )
    if is_voice:
        seconds = math.floor(size / VOICE_NOTE_BYTES_PER_SECOND)
    else:
        seconds = math.floor((size / 1024) / COMPRESSED_KB_PER_SECOND)
    return DurationEstimate(clamp_duration(seconds), Confidence.APPROXIMATED)


class _DecodeRace:
    """
    Run one decode against a timer.

    The first of decode-complete, decode-error and timeout settles the race;
    later outcomes are ignored. The decode thread is a daemon and cannot be
    cancelled, it simply finishes into a settled race.
    """

    def __init__(self, decoder: Decoder, source: str, timeout: float):
        self._decoder = decoder
        self._source = source
        self._timeout = timeout
        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._value: Optional[float] = None
        self._error: Optional[BaseException] = None

    def _settle(self, value: Optional[float] = None, error: Optional[BaseException] = None) -> bool:
        with self._lock:
            if self._settled.is_set():
                return False
            self._value = value
            self._error = error
            self._settled.set()
            return True

    def _decode(self):
        try:
            value = self._decoder(self._source)
        except Exception as e:
            # Reported to the caller through the race, not raised in this thread
            self._settle(error=e)
        else:
            self._settle(value=value)

    def _expire(self):
        self._settle(error=DecodeTimeout(f"No duration after {self._timeout:g}s"))

    def run(self) -> float:
        timer = threading.Timer(self._timeout, self._expire)
        timer.daemon = True
        worker = threading.Thread(target=self._decode, name="duration-decode", daemon=True)
        timer.start()
        try:
            worker.start()
            self._settled.wait()
        finally:
            timer.cancel()

        if self._error is not None:
            raise self._error
        return self._value


class DurationEstimator:
    """
    Estimate asset durations with a bounded wait.

    Args:
        decoder: Decoder for local files and blobs (default: mutagen, then ffprobe)
        remote_decoder: Decoder for URLs (default: ``decoder`` if given, else ffprobe)
        local_timeout: Wait for freshly selected local files
        remote_timeout: Wait for stored remote assets
    """

    def __init__(self, decoder: Optional[Decoder] = None,
                 remote_decoder: Optional[Decoder] = None,
                 local_timeout: float = LOCAL_DECODE_TIMEOUT,
                 remote_timeout: float = REMOTE_DECODE_TIMEOUT):
        if local_timeout <= 0 or remote_timeout <= 0:
            raise ValueError("Decode timeouts must be positive")
        if decoder is None:
            decoder = DecoderChain([mutagen_duration, FFprobeDecoder(timeout=local_timeout)])
            if remote_decoder is None:
                remote_decoder = FFprobeDecoder(timeout=remote_timeout)
        self.decoder = decoder
        self.remote_decoder = remote_decoder or decoder
        self.local_timeout = local_timeout
        self.remote_timeout = remote_timeout

    def estimate(self, asset: AudioAsset, timeout: Optional[float] = None) -> DurationEstimate:
        """
        Return the measured duration, or a size-based approximation.

        Args:
            asset: The audio to measure
            timeout: Override of the wait; defaults to the remote timeout for
                URLs and the local timeout otherwise

        Returns:
            DurationEstimate, never raises
        """
        if timeout is None:
            timeout = self.remote_timeout if asset.is_remote else self.local_timeout
        if timeout <= 0:
            logger.warning("Non-positive timeout %s for %s, approximating", timeout, asset.name)
            return fallback_estimate(asset.size, asset.name, asset.mime_type)

        raw_seconds = None
        try:
            seconds = self.measure(asset, timeout)
            return DurationEstimate(seconds, Confidence.MEASURED, raw_seconds=seconds)
        except Unmeasurable as e:
            raw_seconds = e.raw_seconds
            logger.info("Unusable duration for %s: %s", asset.name, e)
        except DurationError as e:
            logger.warning("Could not decode %s (%s): %s", asset.name, type(e).__name__, e)

        estimate = fallback_estimate(asset.size, asset.name, asset.mime_type)
        logger.debug("Approximated %s at %ss from %d bytes", asset.name, estimate.seconds, asset.size)
        if raw_seconds is not None:
            return DurationEstimate(estimate.seconds, estimate.confidence, raw_seconds=raw_seconds)
        return estimate

    def measure(self, asset: AudioAsset, timeout: float) -> int:
        """
        Decode the duration in whole seconds.

        Raises:
            DecodeTimeout: The decoder did not answer in time
            DecodeError: The decoder failed
            Unmeasurable: The decoder answered with no usable value
        """
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        temp_path = None
        try:
            if asset.url is not None:
                decoder, source = self.remote_decoder, asset.url
            elif asset.path is not None:
                decoder, source = self.decoder, asset.path
            else:
                temp_path = self._materialize(asset)
                decoder, source = self.decoder, temp_path

            try:
                value = _DecodeRace(decoder, source, timeout).run()
            except DurationError:
                raise
            except Exception as e:
                raise DecodeError(str(e) or type(e).__name__) from e
        finally:
            if temp_path is not None:
                self._release(temp_path)

        return self._validate(value)

    @staticmethod
    def _validate(value) -> int:
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise Unmeasurable(f"Decoder returned a non-number: {value!r}")
        if not math.isfinite(value):
            raise Unmeasurable(f"Decoder returned {value}")

        seconds = math.floor(value)
        if seconds < 1:
            raise Unmeasurable(f"Decoded duration too short: {value}", raw_seconds=value)
        if seconds > MAX_TRACK_DURATION:
            raise Unmeasurable(f"Decoded duration over {MAX_TRACK_DURATION}s: {value}", raw_seconds=value)
        return seconds

    @staticmethod
    def _materialize(asset: AudioAsset) -> str:
        """Write an in-memory asset to a temporary file the decoders can open."""
        suffix = Path(asset.name).suffix
        with tempfile.NamedTemporaryFile(delete=False, suffix=suffix, prefix="melodia-") as tmp:
            tmp.write(asset.data)
            return tmp.name

    @staticmethod
    def _release(temp_path: str):
        try:
            os.remove(temp_path)
        except OSError as e:
            logger.warning("Could not remove temporary file %s: %s", temp_path, e)
