"""
Microphone capture for the realtime speech recognizer.
Streams PCM16 blocks from sounddevice into an asyncio queue.
"""

from __future__ import annotations

import asyncio
import os
from typing import Optional, Union

import sounddevice as sd

from voice_chat.cli.logging_utils import AUDIO_LOG_LABEL, ERROR_LOG_LABEL, LOGGER
from voice_chat.config import (
    AUDIO_INPUT_DEVICE,
    AUDIO_QUEUE_MAX_SIZE,
    BUFFER_SIZE,
    CHANNELS,
    DTYPE,
    SAMPLE_RATE,
)
from voice_chat.config.base import _persist_env_value
from voice_chat.core.exceptions import AudioDeviceError

from .utils import coerce_sample_rate, describe_device, device_info_dict

Device = Union[int, str, None]
_PERMISSION_MARKERS = ("permission", "not permitted", "access denied")


class AudioCapture:
    """Owns one input stream at a time; start and stop are idempotent."""

    def __init__(self, *, sample_rate: int = SAMPLE_RATE) -> None:
        self.audio_queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=AUDIO_QUEUE_MAX_SIZE)
        self.sample_rate = sample_rate
        self.input_device: Device = None
        self.dropped_chunks = 0
        self._stream: Optional[sd.InputStream] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_running(self) -> bool:
        return self._stream is not None

    def callback(self, indata, frames, time_info, status) -> None:
        """Runs on the PortAudio thread; hands the block to the event loop."""

        if status:
            LOGGER.verbose(AUDIO_LOG_LABEL, f"Input stream status: {status}")
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._enqueue_audio_bytes, indata.copy().tobytes())

    def start_stream(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Open the input device and start streaming into ``audio_queue``.

        Raises:
            AudioDeviceError: when no usable microphone is available or the device
                refuses the configured format.
        """

        if self._stream is not None:
            return
        self._loop = loop
        self._drain_queue()

        device = self._select_input_device()
        self.input_device = device
        LOGGER.verbose(
            AUDIO_LOG_LABEL,
            f"Opening {describe_device(sd, device)} at {self.sample_rate} Hz "
            f"({CHANNELS} ch, {DTYPE}, block={BUFFER_SIZE})",
        )
        self._ensure_sample_rate_supported(device)

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=CHANNELS,
                dtype=DTYPE,
                blocksize=BUFFER_SIZE,
                callback=self.callback,
                device=device,
            )
            stream.start()
        except Exception as exc:
            raise self._stream_initialization_error(exc, device) from exc
        self._stream = stream
        LOGGER.verbose(AUDIO_LOG_LABEL, "Input stream started")

    def stop_stream(self) -> None:
        stream = self._stream
        self._stream = None
        self._loop = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Failed to close input stream: {exc}", error=True)
        else:
            LOGGER.verbose(AUDIO_LOG_LABEL, "Input stream closed")
        self._drain_queue()

    async def get_audio_chunk(self) -> bytes:
        return await self.audio_queue.get()

    # ------------------------------------------------------------------
    # Internal helpers
    def _enqueue_audio_bytes(self, audio_bytes: bytes) -> None:
        if self._stream is None:
            return
        try:
            self.audio_queue.put_nowait(audio_bytes)
        except asyncio.QueueFull:
            self.dropped_chunks += 1
            LOGGER.verbose(AUDIO_LOG_LABEL, "Audio queue full, dropping block")

    def _drain_queue(self) -> None:
        while not self.audio_queue.empty():
            self.audio_queue.get_nowait()

    def _ensure_sample_rate_supported(self, device: Device) -> None:
        try:
            sd.check_input_settings(
                device=device,
                channels=CHANNELS,
                dtype=DTYPE,
                samplerate=self.sample_rate,
            )
        except Exception as exc:
            fallback_rate = self._device_default_sample_rate(device)
            if fallback_rate and fallback_rate != self.sample_rate:
                self._persist_sample_rate_hint(device, fallback_rate)
            raise self._unsupported_sample_rate_error(device) from exc

    def _persist_sample_rate_hint(self, device: Device, fallback_rate: int) -> None:
        _persist_env_value("SAMPLE_RATE", str(fallback_rate))
        os.environ["SAMPLE_RATE"] = str(fallback_rate)
        LOGGER.log(
            AUDIO_LOG_LABEL,
            f"Microphone {describe_device(sd, device)} prefers {fallback_rate} Hz. "
            "Saved SAMPLE_RATE to .env; restart to apply.",
        )

    def _unsupported_sample_rate_error(self, device: Device) -> AudioDeviceError:
        return AudioDeviceError(
            f"Microphone {describe_device(sd, device)} does not support "
            f"SAMPLE_RATE={self.sample_rate} Hz."
        )

    def _device_default_sample_rate(self, device: Device) -> Optional[int]:
        try:
            info = device_info_dict(sd.query_devices(device))
        except Exception:
            return None
        return coerce_sample_rate(info.get("default_samplerate"))

    def _stream_initialization_error(self, exc: Exception, device: Device) -> AudioDeviceError:
        message = str(exc).lower()
        if "sample rate" in message or "painvalidsamplerate" in message:
            return self._unsupported_sample_rate_error(device)
        if any(marker in message for marker in _PERMISSION_MARKERS):
            return AudioDeviceError(
                "Microphone access was denied by the operating system.",
                permission_denied=True,
            )
        return AudioDeviceError(
            "Unable to initialize audio input stream. "
            "Verify that a microphone is connected and available. "
            "Set AUDIO_INPUT_DEVICE to override the default device."
        )

    def _select_input_device(self) -> Device:
        """Prefer AUDIO_INPUT_DEVICE, then the system default, then the first input device."""

        override = self._parse_device_override(AUDIO_INPUT_DEVICE)
        if override is not None:
            try:
                sd.query_devices(override)
            except Exception as exc:
                raise AudioDeviceError(
                    f"AUDIO_INPUT_DEVICE '{override}' is not recognized by sounddevice."
                ) from exc
            return override

        default_device = sd.default.device
        if isinstance(default_device, (list, tuple)):
            default_device = default_device[0]
        if isinstance(default_device, int) and default_device >= 0:
            try:
                sd.query_devices(default_device)
            except Exception:
                pass
            else:
                return default_device

        return self._first_available_input_device()

    @staticmethod
    def _parse_device_override(value: Optional[str]) -> Device:
        candidate = (value or "").strip()
        if not candidate:
            return None
        try:
            return int(candidate)
        except ValueError:
            return candidate

    def _first_available_input_device(self) -> int:
        try:
            devices = sd.query_devices()
        except Exception as exc:
            raise AudioDeviceError("Unable to query audio devices via PortAudio.") from exc

        records = devices if isinstance(devices, (list, tuple)) else [devices]
        for idx, entry in enumerate(records):
            max_channels = device_info_dict(entry).get("max_input_channels")
            if isinstance(max_channels, (int, float)) and int(max_channels) >= CHANNELS:
                return idx

        raise AudioDeviceError(
            "No audio input devices with the required channel count were found. "
            "Connect a microphone and retry."
        )


__all__ = ["AudioCapture"]
