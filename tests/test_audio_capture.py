import asyncio
from types import SimpleNamespace

import numpy as np
import pytest

try:
    from voice_chat.audio import capture as capture_module
except OSError:  # PortAudio shared library missing on this host
    pytest.skip("PortAudio is not available", allow_module_level=True)

from voice_chat.audio.capture import AudioCapture
from voice_chat.core.exceptions import AudioDeviceError


class DummyStream:
    def __init__(self, *, fail_with=None, **kwargs):
        if fail_with is not None:
            raise fail_with
        self.kwargs = kwargs
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


class DummySD:
    def __init__(self):
        self.default = SimpleNamespace(device=(1, 2))
        self.devices = [
            {"name": "Speaker", "max_input_channels": 0, "default_samplerate": 48000},
            {"name": "USB Mic", "max_input_channels": 1, "default_samplerate": 16000},
        ]
        self.reject_rate = False
        self.stream_error = None
        self.streams: list[DummyStream] = []

    def query_devices(self, device=None, kind=None):
        if device is None:
            return self.devices
        if isinstance(device, int) and 0 <= device < len(self.devices):
            return {**self.devices[device], "index": device}
        raise ValueError(f"unknown device {device}")

    def check_input_settings(self, **kwargs):
        if self.reject_rate:
            raise ValueError("Invalid sample rate")

    def InputStream(self, **kwargs):  # noqa: N802 - mirrors sounddevice API
        stream = DummyStream(fail_with=self.stream_error, **kwargs)
        self.streams.append(stream)
        return stream


@pytest.fixture
def dummy_sd(monkeypatch):
    sd = DummySD()
    monkeypatch.setattr(capture_module, "sd", sd)
    monkeypatch.setattr(capture_module, "AUDIO_INPUT_DEVICE", None)
    return sd


@pytest.mark.asyncio
async def test_callback_blocks_reach_the_queue(dummy_sd):
    capture = AudioCapture(sample_rate=24000)
    capture.start_stream(asyncio.get_running_loop())

    block = np.array([[1], [2]], dtype=np.int16)
    capture.callback(block, 2, None, None)
    chunk = await asyncio.wait_for(capture.get_audio_chunk(), timeout=1)

    assert chunk == block.tobytes()
    assert capture.input_device == 1
    assert dummy_sd.streams[0].kwargs["samplerate"] == 24000
    assert capture.is_running is True


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_drains_queue(dummy_sd):
    capture = AudioCapture()
    capture.start_stream(asyncio.get_running_loop())
    capture.callback(np.zeros((4, 1), dtype=np.int16), 4, None, None)
    await asyncio.sleep(0)

    capture.stop_stream()
    capture.stop_stream()

    assert capture.audio_queue.empty()
    assert dummy_sd.streams[0].closed is True
    assert capture.is_running is False


@pytest.mark.asyncio
async def test_falls_back_to_first_input_device(dummy_sd):
    dummy_sd.default = SimpleNamespace(device=(-1, -1))
    capture = AudioCapture()

    capture.start_stream(asyncio.get_running_loop())

    assert capture.input_device == 1
    capture.stop_stream()


@pytest.mark.asyncio
async def test_unsupported_rate_persists_hint(dummy_sd, monkeypatch):
    dummy_sd.reject_rate = True
    persisted: list[tuple[str, str]] = []
    monkeypatch.setattr(
        capture_module, "_persist_env_value", lambda key, value: persisted.append((key, value))
    )
    monkeypatch.setenv("SAMPLE_RATE", "24000")
    capture = AudioCapture(sample_rate=24000)

    with pytest.raises(AudioDeviceError, match="does not support"):
        capture.start_stream(asyncio.get_running_loop())

    assert persisted == [("SAMPLE_RATE", "16000")]
    assert capture.is_running is False


@pytest.mark.asyncio
async def test_permission_errors_are_flagged(dummy_sd):
    dummy_sd.stream_error = OSError("Permission denied by system")
    capture = AudioCapture()

    with pytest.raises(AudioDeviceError) as excinfo:
        capture.start_stream(asyncio.get_running_loop())

    assert excinfo.value.permission_denied is True


@pytest.mark.asyncio
async def test_unknown_device_override_is_rejected(dummy_sd, monkeypatch):
    monkeypatch.setattr(capture_module, "AUDIO_INPUT_DEVICE", "7")
    capture = AudioCapture()

    with pytest.raises(AudioDeviceError, match="not recognized"):
        capture.start_stream(asyncio.get_running_loop())
