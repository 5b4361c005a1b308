from __future__ import annotations

# per-image prices in minor currency units
STANDARD_PRICE = 300
BULK_PRICE = 250
BULK_THRESHOLD = 5


def unit_price(image_count: int) -> int:
    return BULK_PRICE if image_count > BULK_THRESHOLD else STANDARD_PRICE


def total_price(image_count: int) -> int:
    """Total charge for stylizing `image_count` images."""
    if image_count < 1:
        raise ValueError("image_count must be positive")
    return unit_price(image_count) * image_count
