import math
from typing import Tuple


METRIC = "metric"
IMPERIAL = "imperial"
UNITS = (METRIC, IMPERIAL)

IMPERIAL_FACTOR = 703

NORMAL_MIN_BMI = 18.5
NORMAL_MAX_BMI = 24.9

INVALID_INPUT_MESSAGE = "Please enter valid, positive numbers."
CALCULATION_FAILED_MESSAGE = "Could not calculate BMI. Check inputs."

CATEGORY_COLORS = {
    "Underweight": "text-blue-400",
    "Normal": "text-green-400",
    "Overweight": "text-yellow-400",
    "Obese": "text-red-400",
}


class ValidationError(ValueError):
    """Raised when form input cannot produce a BMI. The message is shown to the user."""


# ---------------- Parsing ----------------
def parse_measurement(value) -> float:
    if value is None or isinstance(value, bool):
        raise ValidationError(INVALID_INPUT_MESSAGE)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(INVALID_INPUT_MESSAGE)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(INVALID_INPUT_MESSAGE)
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(INVALID_INPUT_MESSAGE)
    return number


def check_unit(unit: str) -> str:
    if unit not in UNITS:
        raise ValidationError(f"Unknown unit system: {unit!r}.")
    return unit


def unit_labels(unit: str) -> Tuple[str, str]:
    if check_unit(unit) == METRIC:
        return "Weight (kg)", "Height (cm)"
    return "Weight (lbs)", "Height (in)"


# ---------------- BMI ----------------
def _raw_bmi(weight: float, height: float, unit: str) -> float:
    if unit == METRIC:
        return weight / ((height / 100) ** 2)
    return IMPERIAL_FACTOR * weight / (height ** 2)


def calculate_bmi(weight, height, unit: str = METRIC) -> float:
    """
    Compute BMI rounded to one decimal place.

    Metric takes kilograms and centimetres, imperial takes pounds and inches.
    Weight and height may be numbers or the raw strings from a form.
    Raises ValidationError for missing, non-numeric, non-positive or
    non-finite input, and when the result itself is not a usable number.
    """
    check_unit(unit)
    w = parse_measurement(weight)
    h = parse_measurement(height)

    try:
        bmi = _raw_bmi(w, h, unit)
    except (OverflowError, ZeroDivisionError):
        raise ValidationError(CALCULATION_FAILED_MESSAGE)

    if not math.isfinite(bmi):
        raise ValidationError(CALCULATION_FAILED_MESSAGE)

    bmi = round(bmi, 1)
    if bmi <= 0:
        raise ValidationError(CALCULATION_FAILED_MESSAGE)
    return bmi


def compute_category(bmi: float) -> str:
    if bmi < 18.5:
        return "Underweight"
    elif bmi < 25:
        return "Normal"
    elif bmi < 30:
        return "Overweight"
    return "Obese"


def category_color(category: str) -> str:
    return CATEGORY_COLORS.get(category, "text-gray-400")


# ---------------- Healthy range ----------------
def _weight_for_bmi(bmi: float, height: float, unit: str) -> float:
    if unit == METRIC:
        return bmi * ((height / 100) ** 2)
    return bmi * (height ** 2) / IMPERIAL_FACTOR


def healthy_weight_range(height, unit: str = METRIC) -> Tuple[float, float]:
    """Weight bounds for a normal BMI at this height, in the same unit system."""
    check_unit(unit)
    h = parse_measurement(height)
    try:
        normal_min_weight = round(_weight_for_bmi(NORMAL_MIN_BMI, h, unit), 1)
        normal_max_weight = round(_weight_for_bmi(NORMAL_MAX_BMI, h, unit), 1)
    except OverflowError:
        raise ValidationError(CALCULATION_FAILED_MESSAGE)
    return normal_min_weight, normal_max_weight


def weight_adjustment(weight, height, unit: str = METRIC) -> dict:
    """
    How far the weight sits outside the normal range.

    Returns {"to_lose": x} for BMI >= 25, {"to_gain": x} for BMI < 18.5
    and an empty dict otherwise.
    """
    bmi = calculate_bmi(weight, height, unit)
    w = parse_measurement(weight)
    normal_min_weight, normal_max_weight = healthy_weight_range(height, unit)

    if bmi >= 25:
        weight_to_lose = round(w - normal_max_weight, 1)
        return {"to_lose": max(weight_to_lose, 0.0)}
    if bmi < 18.5:
        weight_to_gain = round(normal_min_weight - w, 1)
        return {"to_gain": max(weight_to_gain, 0.0)}
    return {}
