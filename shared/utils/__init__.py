from shared.utils.geometry import (
    bounds_area,
    bounds_center,
    coerce_float,
    normalized_to_pixel,
    pixel_to_normalized,
)

__all__ = [
    "bounds_area",
    "bounds_center",
    "coerce_float",
    "normalized_to_pixel",
    "pixel_to_normalized",
]
