# tts.py
# Voice output for navigation prompts.
# Phrases go through a small queue to a daemon worker thread; each phrase is
# spoken by a child process running pyttsx3 so that stop() can cut it off.

import logging
import queue
import subprocess
import sys
import threading
import time
from typing import Callable, Dict, Optional

import pyttsx3

from cargo_nav.tracking.nav_config import NavConfig

logger = logging.getLogger(__name__)

BASE_RATE_WPM = 165

MALE_PATTERNS = ["male", "david", "daniel", "dmitry", "pavel", "maxim", "ivan"]
FEMALE_PATTERNS = ["female", "zira", "elena", "anna", "maria", "irina", "svetlana", "samantha"]


def select_voice_id(language: str, gender: str) -> Optional[str]:
    """
    Best installed voice for language and gender, None to keep the default.

    Prefers a voice matching both, then the language only.
    """
    try:
        engine = pyttsx3.init()
        voices = engine.getProperty("voices") or []
    except (RuntimeError, OSError) as e:
        logger.warning(f"TTS engine unavailable: {e}")
        return None

    def _matches_lang(v) -> bool:
        langs = " ".join(str(x) for x in (getattr(v, "languages", None) or []))
        text = f"{v.id} {v.name} {langs}".lower()
        return language.lower() in text

    lang_voices = [v for v in voices if _matches_lang(v)]
    if not lang_voices:
        return None

    patterns = MALE_PATTERNS if gender == "male" else FEMALE_PATTERNS
    for v in lang_voices:
        if any(p in (v.name or "").lower() for p in patterns):
            return v.id
    return lang_voices[0].id


class SubprocessSpeaker:
    """Speaks one phrase per child process; cancel() terminates it."""

    def __init__(self, rate_wpm: int = BASE_RATE_WPM, voice_id: Optional[str] = None) -> None:
        self.rate_wpm = rate_wpm
        self.voice_id = voice_id
        self._proc: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()

    def say(self, text: str) -> None:
        script = (
            "import pyttsx3\n"
            "engine = pyttsx3.init()\n"
            f"engine.setProperty('rate', {self.rate_wpm})\n"
            + (f"engine.setProperty('voice', {self.voice_id!r})\n" if self.voice_id else "")
            + f"engine.say({text!r})\n"
            "engine.runAndWait()"
        )
        with self._lock:
            self._proc = subprocess.Popen([sys.executable, "-c", script])
            proc = self._proc
        proc.wait()
        with self._lock:
            self._proc = None

    def cancel(self) -> None:
        with self._lock:
            if self._proc is not None and self._proc.poll() is None:
                self._proc.terminate()


class VoiceAnnouncer:
    """
    Rate-limited speech queue.

    Drops empty phrases, a phrase repeated within phrase_cooldown_s, and
    anything beyond max_voice_queue pending phrases.

    Args:
        config:  NavConfig with language, rate, gender and limits.
        speaker: Object with say(text) / cancel(); a SubprocessSpeaker by default.
        clock:   Monotonic time source.
    """

    def __init__(
        self,
        config: Optional[NavConfig] = None,
        speaker=None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or NavConfig()
        self.enabled = self.config.voice_enabled
        self._speaker = speaker
        self._clock = clock
        self._queue: "queue.Queue[Optional[str]]" = queue.Queue()
        self._recent: Dict[str, float] = {}
        self._thread: Optional[threading.Thread] = None
        self.spoken_count = 0

    def _ensure_worker(self) -> None:
        if self._speaker is None:
            self._speaker = SubprocessSpeaker(
                rate_wpm=int(BASE_RATE_WPM * self.config.voice_rate),
                voice_id=select_voice_id(self.config.language, self.config.voice_gender),
            )
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._worker, name="tts-worker", daemon=True)
            self._thread.start()

    def _worker(self) -> None:
        while True:
            text = self._queue.get()
            try:
                if text is None:
                    break
                self._speaker.say(text)
                self.spoken_count += 1
            except Exception as e:
                logger.error(f"TTS error: {e}")
            finally:
                self._queue.task_done()

    def _is_duplicate(self, text: str) -> bool:
        now = self._clock()
        cooldown = self.config.phrase_cooldown_s
        for phrase, spoken_at in list(self._recent.items()):
            if now - spoken_at > cooldown:
                del self._recent[phrase]
        if text in self._recent:
            return True
        self._recent[text] = now
        return False

    def speak(self, text: str) -> bool:
        """Queue a phrase. Returns False if it was dropped."""
        text = (text or "").strip()
        if not self.enabled or not text:
            return False
        if self._is_duplicate(text):
            logger.debug(f"Skipping repeated phrase: {text}")
            return False
        if self._queue.qsize() >= self.config.max_voice_queue:
            logger.debug(f"Voice queue full, dropping: {text}")
            return False

        self._ensure_worker()
        self._queue.put(text)
        return True

    def stop(self) -> None:
        """Drop queued phrases and cut off the one being spoken."""
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()
        if self._speaker is not None:
            self._speaker.cancel()

    def wait_idle(self) -> None:
        """Block until everything queued has been spoken."""
        self._queue.join()

    def shutdown(self, timeout: float = 5.0) -> None:
        self.stop()
        if self._thread is not None and self._thread.is_alive():
            self._queue.put(None)
            self._thread.join(timeout=timeout)
        self._thread = None
