import pytest

from cargo_nav.tracking.speech_text import (
    format_distance_speech, instruction_phrase, proximity_phrase,
)


@pytest.mark.parametrize("meters, expected", [
    (0, "0 метров"),
    (120, "100 метров"),
    (125, "150 метров"),
    (350, "350 метров"),
    (970, "950 метров"),
    (980, "1 километр"),
    (1000, "1 километр"),
    (1540, "1,5 километра"),
    (2000, "2 километра"),
    (5000, "5 километров"),
    (21000, "21 километр"),
])
def test_format_distance_ru(meters, expected):
    assert format_distance_speech(meters) == expected


def test_format_distance_en():
    assert format_distance_speech(250, "en") == "250 meters"
    assert format_distance_speech(1000, "en") == "1 kilometer"
    assert format_distance_speech(990, "en") == "1 kilometer"
    assert format_distance_speech(2460, "en") == "2.5 kilometers"


def test_instruction_phrase():
    assert instruction_phrase("Поверните налево", "300 метров") == "Через 300 метров, Поверните налево"
    assert instruction_phrase("Turn left", "300 meters", "en") == "In 300 meters, Turn left"
    assert instruction_phrase("Turn left", "", "en") == "Turn left"


def test_proximity_phrases():
    assert proximity_phrase(4.6) == "До точки доставки осталось 5 километров."
    assert proximity_phrase(0.9) == "До точки доставки остался 1 километр."
    assert proximity_phrase(0.4).startswith("Вы почти у цели")
    assert proximity_phrase(0.08) == "Вы прибыли к месту назначения."
