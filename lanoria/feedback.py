"""Alarm sound and spoken feedback."""

import asyncio
import itertools
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

from lanoria.config import AlertConfig, SpeechConfig


@dataclass
class Utterance:
    text: str
    language: str = "es-ES"
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0


# Called with None on normal completion, or the error that stopped playback
DoneCallback = Callable[[Exception | None], None]


class SpeechSynthesizer(Protocol):
    def speak(self, utterance: Utterance, on_done: DoneCallback) -> None: ...

    def cancel(self) -> None: ...


class SoundPlayer(Protocol):
    def play(self) -> None: ...

    def stop(self) -> None: ...


class AlarmPlayer:
    """Plays the alarm file with pygame.mixer, always from the beginning."""

    def __init__(self, config: AlertConfig) -> None:
        self.config = config
        self._sound = None
        self._init_sound()

    def _init_sound(self) -> None:
        if not self.config.enabled:
            return

        path = Path(self.config.sound_path)
        if not path.exists():
            print(f"[ALERT] Alarm sound not found: {path}")
            return

        try:
            import pygame

            if not pygame.mixer.get_init():
                pygame.mixer.init()
            self._sound = pygame.mixer.Sound(str(path))
        except Exception as e:
            print(f"[ALERT] Audio initialization failed: {e}")
            self._sound = None

    def play(self) -> None:
        if self._sound is None:
            print("[ALERT] *alarm*")
            return
        self._sound.stop()
        self._sound.play()

    def stop(self) -> None:
        if self._sound is not None:
            self._sound.stop()


class Pyttsx3Synthesizer:
    """pyttsx3 speech engine driven from a worker thread per utterance.

    Rate, volume and language are applied per utterance. pyttsx3 has no
    portable pitch property, so Utterance.pitch is ignored here.
    """

    def __init__(self, config: SpeechConfig) -> None:
        self.config = config
        self.engine = None
        self.lock = threading.Lock()
        self._generation = 0
        self._voice_language: str | None = None
        self._init_tts()

    def _init_tts(self) -> None:
        try:
            import pyttsx3

            self.engine = pyttsx3.init()
            self._select_voice(self.config.language)
        except Exception as e:
            print(f"TTS initialization failed: {e}")
            print("Falling back to console output")
            self.engine = None

    def _select_voice(self, language: str) -> None:
        self._voice_language = language
        prefix = language.split("-")[0].lower()
        for voice in self.engine.getProperty("voices"):
            languages = [
                lang.decode(errors="ignore") if isinstance(lang, bytes) else str(lang)
                for lang in (getattr(voice, "languages", None) or [])
            ]
            tags = " ".join(languages + [voice.id or "", voice.name or ""]).lower()
            if prefix in tags:
                self.engine.setProperty("voice", voice.id)
                return

    def speak(self, utterance: Utterance, on_done: DoneCallback) -> None:
        self._generation += 1
        threading.Thread(
            target=self._speak, args=(utterance, on_done, self._generation), daemon=True
        ).start()

    def _speak(self, utterance: Utterance, on_done: DoneCallback, generation: int) -> None:
        if self.engine is None:
            print(f"[SPEECH] {utterance.text}")
            on_done(None)
            return

        try:
            with self.lock:
                # Superseded while waiting for the engine: never queue it
                if generation != self._generation:
                    skipped = True
                else:
                    skipped = False
                    if utterance.language != self._voice_language:
                        self._select_voice(utterance.language)
                    self.engine.setProperty("rate", int(self.config.base_rate * utterance.rate))
                    self.engine.setProperty("volume", utterance.volume)
                    self.engine.say(utterance.text)
                    self.engine.runAndWait()
        except Exception as e:
            print(f"TTS error: {e}")
            on_done(e)
            return
        if skipped:
            print(f"[SPEECH] Skipped superseded utterance: {utterance.text}")
        on_done(None)

    def cancel(self) -> None:
        self._generation += 1
        if self.engine is not None:
            try:
                self.engine.stop()
            except Exception as e:
                print(f"TTS stop error: {e}")


class AlertFeedback:
    """Alarm playback plus single-voice speech.

    Only one utterance is audible at a time: speak() always preempts the
    previous one. Completion callbacks arrive from worker threads and are
    handed back to the event loop before touching state.
    """

    def __init__(
        self,
        config: SpeechConfig,
        player: SoundPlayer | None,
        synthesizer: SpeechSynthesizer | None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.config = config
        self.player = player
        self.synthesizer = synthesizer
        self.loop = loop
        self.is_speaking = False
        self.last_spoken = ""
        self._utterance_ids = itertools.count(1)
        self._current_id = 0

    def play_alert(self) -> None:
        if self.player is None:
            return
        try:
            self.player.play()
        except Exception as e:
            print(f"[ALERT] Error playing alert sound: {e}")

    def speak(self, text: str) -> None:
        self.last_spoken = text
        if not self.config.enabled or self.synthesizer is None:
            print(f"[SPEECH] {text}")
            return

        self.cancel()

        utterance = Utterance(
            text=text,
            language=self.config.language,
            rate=self.config.rate,
            pitch=self.config.pitch,
            volume=self.config.volume,
        )
        utterance_id = next(self._utterance_ids)
        self._current_id = utterance_id
        self.is_speaking = True
        print(f"[SPEECH] {text}")

        try:
            self.synthesizer.speak(
                utterance, lambda error: self._dispatch_done(utterance_id, error)
            )
        except Exception as e:
            print(f"[SPEECH] Speech synthesis error: {e}")
            self._on_done(utterance_id, e)

    def cancel(self) -> None:
        """Silence the active utterance, if any."""
        if not self.is_speaking:
            return
        self.is_speaking = False
        self._current_id = 0
        if self.synthesizer is not None:
            try:
                self.synthesizer.cancel()
            except Exception as e:
                print(f"[SPEECH] Cancel failed: {e}")

    def _dispatch_done(self, utterance_id: int, error: Exception | None) -> None:
        loop = self.loop
        if loop is None or loop.is_closed():
            self._on_done(utterance_id, error)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._on_done(utterance_id, error)
        else:
            loop.call_soon_threadsafe(self._on_done, utterance_id, error)

    def _on_done(self, utterance_id: int, error: Exception | None) -> None:
        if error is not None:
            print(f"[SPEECH] Speech synthesis error: {error}")
        # A preempted utterance must not clear the flag of its successor
        if utterance_id == self._current_id:
            self.is_speaking = False
