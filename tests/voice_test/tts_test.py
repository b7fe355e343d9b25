from cargo_nav.tracking.nav_config import NavConfig
from cargo_nav.voice.tts import VoiceAnnouncer

from fakes import FakeSpeaker


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _announcer(speaker, clock=None, **overrides):
    config = NavConfig(**overrides)
    return VoiceAnnouncer(config, speaker=speaker, clock=clock or FakeClock())


def test_phrases_spoken_in_order():
    speaker = FakeSpeaker()
    announcer = _announcer(speaker)

    assert announcer.speak("Через 300 метров, налево")
    assert announcer.speak("Через 100 метров, направо")
    announcer.wait_idle()

    assert speaker.said == ["Через 300 метров, налево", "Через 100 метров, направо"]
    assert announcer.spoken_count == 2
    announcer.shutdown()


def test_repeat_within_cooldown_dropped():
    speaker, clock = FakeSpeaker(), FakeClock()
    announcer = _announcer(speaker, clock)

    assert announcer.speak("Налево")
    assert not announcer.speak("Налево")
    clock.now += 16
    assert announcer.speak("Налево")
    announcer.wait_idle()

    assert speaker.said == ["Налево", "Налево"]
    announcer.shutdown()


def test_empty_and_disabled_dropped():
    speaker = FakeSpeaker()
    assert not _announcer(speaker).speak("   ")
    assert not _announcer(speaker, voice_enabled=False).speak("Налево")
    assert speaker.said == []


def test_queue_limit():
    speaker = FakeSpeaker(block=True)
    announcer = _announcer(speaker)

    announcer.speak("one")
    assert speaker.started.wait(timeout=2)     # worker busy with "one"
    assert announcer.speak("two")
    assert announcer.speak("three")
    assert announcer.speak("four")
    assert not announcer.speak("five")

    speaker.release()
    announcer.wait_idle()
    assert speaker.said == ["one", "two", "three", "four"]
    announcer.shutdown()


def test_stop_drops_queue_and_cuts_current_phrase():
    speaker = FakeSpeaker(block=True)
    announcer = _announcer(speaker)

    announcer.speak("one")
    assert speaker.started.wait(timeout=2)
    announcer.speak("two")
    announcer.speak("three")

    announcer.stop()
    announcer.wait_idle()

    assert speaker.cancelled == 1
    assert speaker.said == ["one"]
    announcer.shutdown()
