"""Fixed-capacity bit vector used as the allocation primitive for every pool."""

from __future__ import annotations

from typing import Dict, Iterator, Optional


class Bitset:
    """Bit-indexed pool backed by a single Python integer.

    A set bit means "free" in every pool built on top of this class; a cleared
    bit means "allocated".  Allocation is first-fit: :meth:`next_set` always
    returns the lowest set index at or after ``start``.

    Parameters
    ----------
    length:
        Number of addressable bits.  Indices outside ``[0, length)`` raise
        :class:`IndexError`.
    """

    __slots__ = ("_length", "_bits")

    def __init__(self, length: int) -> None:
        if length < 0:
            raise ValueError(f"bitset length must be non-negative, got {length}")
        self._length = length
        self._bits = 0

    @classmethod
    def for_width(cls, width: int) -> "Bitset":
        """Create a pool large enough to index every ``width``-bit value."""

        return cls(1 << width)

    def __len__(self) -> int:
        return self._length

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitset):
            return NotImplemented
        return self._length == other._length and self._bits == other._bits

    def __repr__(self) -> str:
        return f"Bitset(length={self._length}, set={self.count()})"

    def __iter__(self) -> Iterator[int]:
        index = self.next_set(0)
        while index is not None:
            yield index
            index = self.next_set(index + 1)

    def _check(self, index: int) -> None:
        if not 0 <= index < self._length:
            raise IndexError(f"bit {index} outside bitset of length {self._length}")

    @property
    def _mask(self) -> int:
        return (1 << self._length) - 1

    def set(self, index: int) -> "Bitset":
        self._check(index)
        self._bits |= 1 << index
        return self

    def clear(self, index: int) -> "Bitset":
        self._check(index)
        self._bits &= ~(1 << index)
        return self

    def test(self, index: int) -> bool:
        self._check(index)
        return bool(self._bits >> index & 1)

    def set_range(self, low: int, high: int) -> "Bitset":
        """Set every bit in the inclusive range ``[low, high]``."""

        self._check(low)
        self._check(high)
        if low > high:
            raise ValueError(f"invalid bit range {low}-{high}")
        self._bits |= ((1 << (high - low + 1)) - 1) << low
        return self

    def complement(self) -> "Bitset":
        flipped = Bitset(self._length)
        flipped._bits = ~self._bits & self._mask
        return flipped

    def copy(self) -> "Bitset":
        duplicate = Bitset(self._length)
        duplicate._bits = self._bits
        return duplicate

    def next_set(self, start: int = 0) -> Optional[int]:
        """Return the lowest set index ``>= start`` or ``None``."""

        if start >= self._length:
            return None
        remaining = self._bits >> max(start, 0)
        if not remaining:
            return None
        return max(start, 0) + (remaining & -remaining).bit_length() - 1

    def count(self) -> int:
        return bin(self._bits).count("1")

    def dump_as_bits(self) -> str:
        """Render the pool as a bit string, highest index first."""

        if not self._length:
            return ""
        return format(self._bits, f"0{self._length}b")

    def to_dict(self) -> Dict[str, object]:
        return {"length": self._length, "bits": format(self._bits, "x")}

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Bitset":
        bitset = cls(int(data["length"]))
        value = int(str(data.get("bits") or "0"), 16)
        if value >> bitset._length:
            raise ValueError("serialized bitset has bits beyond its length")
        bitset._bits = value
        return bitset
