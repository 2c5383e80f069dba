"""
Score utility functions.
"""
import math


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, with .5 always rounding up.

    Python's built-in round() rounds halves to even (round(62.5) == 62); scores
    shown to learners must round 62.5 up to 63.

    Args:
        value: The value to round

    Returns:
        Rounded integer
    """
    return int(math.floor(value + 0.5))


def percentage(part: int, whole: int) -> int:
    """
    Integer percentage of part over whole, rounded half up.

    Args:
        part: Numerator (e.g., correct answers)
        whole: Denominator (e.g., total answers)

    Returns:
        Percentage in the range 0-100, or 0 when whole is 0
    """
    if whole <= 0:
        return 0
    return round_half_up(100 * part / whole)
