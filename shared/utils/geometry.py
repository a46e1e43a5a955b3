import math

NORMALIZED_MAX = 1000


def bounds_center(bounds):
    left, top, right, bottom = bounds
    return (left + right) // 2, (top + bottom) // 2


def bounds_area(bounds):
    left, top, right, bottom = bounds
    if right <= left or bottom <= top:
        return 0
    return (right - left) * (bottom - top)


def coerce_float(value, label):
    if isinstance(value, bool):
        raise ValueError("invalid {} value".format(label))
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("invalid {} value".format(label)) from exc
    if not math.isfinite(number):
        raise ValueError("invalid {} value: {}".format(label, value))
    return number


def normalized_to_pixel(value, size):
    coord = coerce_float(value, "coordinate")
    return int(math.floor(coord / NORMALIZED_MAX * size))


def pixel_to_normalized(value, size):
    if not size:
        return 0
    return int(round(value / size * NORMALIZED_MAX))
