# speech_text.py
# Phrases spoken during navigation. Pure functions, no I/O.
# Supported languages: "ru" (default) and "en".

import math


def _round_half_up(value: float, step: int) -> int:
    return int(math.floor(value / step + 0.5)) * step


def _ru_plural(n: int, one: str, few: str, many: str) -> str:
    if n % 10 == 1 and n % 100 != 11:
        return one
    if 2 <= n % 10 <= 4 and not 12 <= n % 100 <= 14:
        return few
    return many


def _format_km(km: float, language: str) -> str:
    whole = km == int(km)
    if language == "ru":
        if whole:
            n = int(km)
            return f"{n} {_ru_plural(n, 'километр', 'километра', 'километров')}"
        # Fractions take the genitive singular: "1,5 километра"
        return f"{km:.1f}".replace(".", ",") + " километра"
    if whole:
        n = int(km)
        return f"{n} kilometer" if n == 1 else f"{n} kilometers"
    return f"{km:.1f} kilometers"


def format_distance_speech(meters: float, language: str = "ru") -> str:
    """
    Distance as it should be spoken.

    Below 1000 m: rounded to the nearest 50 m, in metres.
    From 1000 m: rounded to the nearest 100 m, in kilometres. Distances
    that round up to 1000 m are spoken in kilometres too.
    """
    m = _round_half_up(meters, 50)
    if m < 1000:
        if language == "ru":
            return f"{m} {_ru_plural(m, 'метр', 'метра', 'метров')}"
        return f"{m} meter" if m == 1 else f"{m} meters"

    km = _round_half_up(meters, 100) / 1000.0
    return _format_km(km, language)


def instruction_phrase(instruction: str, distance_text: str, language: str = "ru") -> str:
    if not distance_text:
        return instruction
    if language == "ru":
        return f"Через {distance_text}, {instruction}"
    return f"In {distance_text}, {instruction}"


def proximity_phrase(distance_km: float, language: str = "ru") -> str:
    """Spoken alert for a crossed proximity threshold."""
    if language == "ru":
        if distance_km <= 0.1:
            return "Вы прибыли к месту назначения."
        if distance_km <= 0.5:
            return "Вы почти у цели. До точки доставки менее 500 метров."
        if distance_km <= 1:
            return "До точки доставки остался 1 километр."
        n = round(distance_km)
        return f"До точки доставки осталось {n} {_ru_plural(n, 'километр', 'километра', 'километров')}."

    if distance_km <= 0.1:
        return "You have arrived at your destination."
    if distance_km <= 0.5:
        return "Almost there. Less than 500 meters to the delivery point."
    if distance_km <= 1:
        return "1 kilometer to the delivery point."
    return f"{round(distance_km)} kilometers to the delivery point."


def arrival_phrase(language: str = "ru") -> str:
    if language == "ru":
        return "Вы прибыли к месту назначения!"
    return "You have arrived!"


def route_summary_phrase(distance_text: str, duration_text: str, language: str = "ru") -> str:
    if language == "ru":
        return f"Маршрут построен. {distance_text}, время в пути примерно {duration_text}"
    return f"Route ready. {distance_text}, about {duration_text}"


def navigation_started_phrase(language: str = "ru") -> str:
    if language == "ru":
        return "Навигация запущена. Следуйте указаниям на экране."
    return "Navigation started. Follow the on-screen directions."


def cancelled_phrase(language: str = "ru") -> str:
    if language == "ru":
        return "Заказ отменён. Навигация остановлена."
    return "The order was cancelled. Navigation stopped."


def off_route_phrase(language: str = "ru") -> str:
    if language == "ru":
        return "Вы отклонились от маршрута."
    return "You are off the route."
