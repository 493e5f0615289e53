"""
Speech capture using sounddevice + Silero VAD + faster-whisper.
Listens for a single utterance, transcribes it off the event loop,
and reports the result through CaptureEvent callbacks.
"""

import asyncio
import importlib.util
import logging
import threading
import time
from typing import List, Optional

import numpy as np

from ..config import CaptureConfig
from ..errors import CaptureError
from .base import BaseCaptureService, CaptureEvent

logger = logging.getLogger(__name__)


class WhisperCaptureService(BaseCaptureService):
    """
    Captures audio from an input device, applies VAD (Silero) to find the
    end of the utterance, then transcribes it with faster-whisper.
    """
    # Whisper tends to invent these on silence or noise
    HALLUCINATION_PATTERNS = [
        "thanks for watching",
        "thank you for watching",
        "subtitles by",
        "please subscribe",
    ]

    def __init__(self, config: CaptureConfig):
        super().__init__()
        self.config = config
        self.sample_rate = config.sample_rate
        self.chunk_size = 512  # Silero VAD requires 512/1024/1536 at 16kHz

        self._asr_model = None
        self._vad_model = None

        # VAD state
        self._speech_buffer: List[np.ndarray] = []
        self._is_speaking = False
        self._last_speech_time = 0.0

        # Control
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    @property
    def available(self) -> bool:
        return all(
            importlib.util.find_spec(name) is not None
            for name in ("sounddevice", "torch", "faster_whisper")
        )

    async def initialize(self) -> None:
        """Load whisper and VAD models (run in executor since it's heavy)."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._load_models)
        logger.info("Capture engine initialized (model=%s)", self.config.whisper_model)

    def _load_models(self) -> None:
        from faster_whisper import WhisperModel
        import torch

        if self._asr_model is None:
            self._asr_model = WhisperModel(
                self.config.whisper_model,
                device=self.config.whisper_device,
                compute_type=self.config.whisper_compute_type
            )
        if self._vad_model is None:
            logger.info("Loading Silero VAD model...")
            self._vad_model, _ = torch.hub.load(
                repo_or_dir='snakers4/silero-vad',
                model='silero_vad',
                force_reload=False,
                trust_repo=True
            )

    async def _open(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise CaptureError("already-listening")
        if self._asr_model is None or self._vad_model is None:
            await self.initialize()

        self._loop = asyncio.get_running_loop()
        self._speech_buffer = []
        self._is_speaking = False
        self._last_speech_time = 0.0
        self._stop_event = threading.Event()

        device_idx = self._find_device()
        self._thread = threading.Thread(
            target=self._audio_thread,
            args=(device_idx, self.session, self._stop_event),
            daemon=True,
        )
        self._thread.start()
        self._emit_start()
        logger.info("🎤 Listening (session=%d)", self.session)

    async def _close(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread.is_alive():
            await asyncio.get_running_loop().run_in_executor(None, thread.join, 3.0)
        self._speech_buffer = []
        self._is_speaking = False

    def _find_device(self) -> Optional[int]:
        if not self.config.device_name:
            return None
        import sounddevice as sd

        for i, d in enumerate(sd.query_devices()):
            if self.config.device_name.lower() in d['name'].lower():
                logger.info("Using audio device: %s (idx=%d)", d['name'], i)
                return i
        logger.warning("Device '%s' not found, using default", self.config.device_name)
        return None

    def _audio_thread(self, device_idx: Optional[int], session: int, stop: threading.Event):
        """Run the input stream until the utterance ends, times out or is stopped."""
        import sounddevice as sd
        import torch

        started = time.time()

        def callback(indata, frames, time_info, status):
            if status:
                logger.warning("Audio status: %s", status)
            if stop.is_set():
                return
            audio_f32 = indata[:, 0].copy()  # mono, float32
            speech_prob = self._vad_model(torch.from_numpy(audio_f32), self.sample_rate).item()
            now = time.time()

            if speech_prob > self.config.vad_threshold:
                self._is_speaking = True
                self._last_speech_time = now
                self._speech_buffer.append(audio_f32)
            elif self._is_speaking:
                self._speech_buffer.append(audio_f32)
                if now - self._last_speech_time > self.config.silence_timeout:
                    segment = np.concatenate(self._speech_buffer)
                    self._speech_buffer = []
                    self._is_speaking = False
                    stop.set()
                    asyncio.run_coroutine_threadsafe(
                        self._finish(segment, session), self._loop
                    )
            elif now - started > self.config.no_speech_timeout:
                stop.set()
                self._loop.call_soon_threadsafe(self._fail, session, "no-speech")

        try:
            with sd.InputStream(
                samplerate=self.sample_rate,
                blocksize=self.chunk_size,
                device=device_idx,
                channels=1,
                dtype='float32',
                callback=callback
            ):
                while not stop.wait(0.1):
                    pass
        except Exception as exc:
            logger.error("Audio stream failed: %s", exc)
            stop.set()
            self._loop.call_soon_threadsafe(self._fail, session, f"audio-capture: {exc}")

    def _fail(self, session: int, reason: str) -> None:
        self._emit(CaptureEvent.ERROR, session, reason)
        self._emit(CaptureEvent.END, session)

    async def _finish(self, segment: np.ndarray, session: int) -> None:
        """Transcribe a completed segment and report it."""
        if session != self.session:
            return
        logger.info("Speech segment received (%d samples)", len(segment))
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self._do_transcribe, segment)
        except Exception as exc:
            logger.error("Transcription failed: %s", exc)
            self._fail(session, "transcription-failed")
            return
        if not text:
            self._fail(session, "no-speech")
            return
        logger.info("📝 ASR: %s", text[:80])
        self._emit(CaptureEvent.FINAL_RESULT, session, text)
        self._emit(CaptureEvent.END, session)

    def _do_transcribe(self, audio_data: np.ndarray) -> str:
        """Synchronous transcription (runs in thread pool)."""
        segments, info = self._asr_model.transcribe(
            audio_data,
            beam_size=5,
            language=self.config.language or None,
            vad_filter=False  # We already do VAD upstream
        )
        return self._clean_text("".join(seg.text for seg in segments))

    def _clean_text(self, text: str) -> str:
        """Drop whisper hallucinations that stand in for silence."""
        cleaned = (text or "").strip()
        lowered = cleaned.lower()
        for pattern in self.HALLUCINATION_PATTERNS:
            if pattern in lowered and len(lowered) < len(pattern) + 5:
                return ""
        return cleaned
