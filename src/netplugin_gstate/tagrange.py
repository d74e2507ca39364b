"""Parsing of VLAN/VXLAN range expressions such as ``"10-20,30"``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Tuple

from .exceptions import TagRangeError

TAG_LIMITS: Dict[str, Tuple[int, int]] = {
    "vlan": (1, 4094),
    "vxlan": (1, (1 << 24) - 1),
}


@dataclass(frozen=True)
class TagRange:
    """Inclusive ``min``-``max`` span of tag ids."""

    min: int
    max: int

    def __post_init__(self) -> None:
        if self.min > self.max:
            raise TagRangeError(f"invalid range {self.min}-{self.max}")

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.min, self.max + 1))

    def __len__(self) -> int:
        return self.max - self.min + 1


def _parse_tag(value: str, item: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise TagRangeError(
            f"invalid tag '{value}' in '{item}', expected e.g. '10-50,70-100'"
        ) from None


def parse_tag_ranges(ranges: str, tag_type: str) -> List[TagRange]:
    """Parse ``ranges`` into an ordered list of :class:`TagRange`.

    An empty expression yields an empty list, meaning no explicit range was
    configured.  Only one range is accepted for VXLAN tags.
    """

    if tag_type not in TAG_LIMITS:
        raise TagRangeError(f"invalid tag type {tag_type!r}")

    if not ranges or not ranges.strip():
        return []

    items = [item.strip() for item in ranges.split(",")]
    if tag_type == "vxlan" and len(items) > 1:
        raise TagRangeError(f"only one vxlan range is supported, got '{ranges}'")

    lower, upper = TAG_LIMITS[tag_type]
    parsed: List[TagRange] = []
    for item in items:
        bounds = [part.strip() for part in item.split("-")]
        if len(bounds) > 2 or not all(bounds):
            raise TagRangeError(
                f"invalid {tag_type} range '{item}', expected e.g. '10-50,70-100'"
            )
        low = _parse_tag(bounds[0], item)
        high = _parse_tag(bounds[-1], item)
        tag_range = TagRange(low, high)
        if tag_range.min < lower or tag_range.max > upper:
            raise TagRangeError(
                f"{tag_type} range '{item}' outside allowed {lower}-{upper}"
            )
        parsed.append(tag_range)
    return parsed
