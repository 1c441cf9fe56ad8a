"""Plays synthesized PCM16 replies through the default output device."""

from __future__ import annotations

import asyncio
from typing import Optional

import numpy as np
import sounddevice as sd

from voice_chat.cli.logging_utils import AUDIO_LOG_LABEL, LOGGER
from voice_chat.config import TTS_SAMPLE_RATE

from .utils import coerce_sample_rate, device_info_dict

_FALLBACK_RATES = (48000, 44100, 32000)


class SpeechPlayer:
    """Serializes playback so replies never overlap and supports interruption."""

    def __init__(self, default_sample_rate: int = TTS_SAMPLE_RATE) -> None:
        self._default_sample_rate = default_sample_rate
        self._play_lock = asyncio.Lock()
        self._is_playing = asyncio.Event()
        self._interrupted = False
        self._output_device = self._detect_output_device()
        self._playback_sample_rate = self._select_playback_sample_rate(default_sample_rate)

    @property
    def is_playing(self) -> bool:
        return self._is_playing.is_set()

    async def play(self, audio_bytes: bytes, sample_rate: Optional[int] = None) -> bool:
        """Play PCM16 audio; returns False when playback was interrupted by ``stop``."""

        if not audio_bytes:
            return True

        async with self._play_lock:
            self._interrupted = False
            self._is_playing.set()
            try:
                await asyncio.to_thread(
                    self._play_blocking, audio_bytes, sample_rate or self._default_sample_rate
                )
            finally:
                self._is_playing.clear()
            return not self._interrupted

    async def stop(self) -> bool:
        """Stop in-progress playback, returning True if something was interrupted."""

        if not self._is_playing.is_set():
            return False
        self._interrupted = True
        await asyncio.to_thread(sd.stop)
        return True

    def _play_blocking(self, audio_bytes: bytes, source_rate: int) -> None:
        samples = self._prepare_samples(audio_bytes, source_rate)
        if samples.size == 0:
            return
        sd.play(
            samples.astype(np.float32) / 32768.0,
            samplerate=self._playback_sample_rate,
            device=self._output_device,
        )
        sd.wait()

    def _prepare_samples(self, audio_bytes: bytes, source_rate: int) -> np.ndarray:
        usable = len(audio_bytes) - (len(audio_bytes) % 2)
        if usable <= 0:
            return np.array([], dtype=np.int16)
        samples = np.frombuffer(audio_bytes[:usable], dtype=np.int16)
        target_rate = self._playback_sample_rate
        if source_rate <= 0 or source_rate == target_rate:
            return samples.copy()

        LOGGER.verbose(AUDIO_LOG_LABEL, f"Resampling reply {source_rate} Hz -> {target_rate} Hz")
        duration = samples.size / source_rate
        target_count = max(int(round(duration * target_rate)), 1)
        positions = np.linspace(0, samples.size - 1, num=target_count)
        resampled = np.interp(positions, np.arange(samples.size), samples.astype(np.float32))
        return np.clip(np.round(resampled), -32768, 32767).astype(np.int16)

    @staticmethod
    def _detect_output_device() -> Optional[int]:
        device = sd.default.device
        candidate = device[1] if isinstance(device, (list, tuple)) else device
        return candidate if isinstance(candidate, int) and candidate >= 0 else None

    def _select_playback_sample_rate(self, preferred_rate: int) -> int:
        candidates: list[int] = []
        for rate in (preferred_rate, self._device_default_sample_rate(), *_FALLBACK_RATES):
            if rate and rate > 0 and rate not in candidates:
                candidates.append(int(rate))

        for rate in candidates:
            try:
                sd.check_output_settings(device=self._output_device, samplerate=rate, channels=1)
            except Exception:
                continue
            if rate != preferred_rate:
                LOGGER.log(
                    AUDIO_LOG_LABEL,
                    f"Output device does not support {preferred_rate} Hz; playing at {rate} Hz.",
                )
            return rate
        return preferred_rate

    def _device_default_sample_rate(self) -> Optional[int]:
        try:
            if self._output_device is None:
                raw = sd.query_devices(kind="output")
            else:
                raw = sd.query_devices(self._output_device)
        except Exception:
            return None
        return coerce_sample_rate(device_info_dict(raw).get("default_samplerate"))


__all__ = ["SpeechPlayer"]
