"""Arbitrary-precision fractional indexes for ordering list entries."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

MAGIC_FLOOR = 127
"""The largest byte that sorts to the left of the magic byte."""

MAGIC_CEIL = 128
"""The smallest byte that sorts to the right of the magic byte."""

BYTE_MIN = 0
BYTE_MAX = 255

_MAGIC_WEIGHT = 127.5


@functools.total_ordering
@dataclass(frozen=True)
class FractionByte:
    """One digit of a :class:`ZenoIndex`.

    A ``value`` of ``None`` is the magic digit, which compares as if it were
    127.5; every index ends in an infinite run of magic digits.
    """

    value: Optional[int] = None
    MAGIC: ClassVar[FractionByte]

    def __post_init__(self) -> None:
        if self.value is None:
            return
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"a fraction byte must be an int, got {self.value!r}")
        if not BYTE_MIN <= self.value <= BYTE_MAX:
            raise ValueError(f"a fraction byte must be in 0..255, got {self.value}")

    @property
    def is_magic(self) -> bool:
        return self.value is None

    def _weight(self) -> float:
        return _MAGIC_WEIGHT if self.value is None else self.value

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, FractionByte):
            return NotImplemented
        return self._weight() < other._weight()

    @staticmethod
    def new_between_bytes(lhs: int, rhs: int) -> Optional[FractionByte]:
        """A byte strictly between ``lhs`` and ``rhs``, or ``None`` if there is none."""
        if lhs < rhs - 1:
            return FractionByte((rhs - lhs) // 2 + lhs)
        return None

    @staticmethod
    def new_between(lower_bound: FractionByte, upper_bound: FractionByte) -> Optional[FractionByte]:
        """A digit strictly between the two bounds, or ``None`` if there is none."""
        lhs, rhs = lower_bound.value, upper_bound.value
        if lhs is not None and rhs is not None:
            if lhs <= MAGIC_FLOOR and rhs >= MAGIC_CEIL:
                return FractionByte.MAGIC
            return FractionByte.new_between_bytes(lhs, rhs)
        if lhs is not None:
            return FractionByte.new_between_bytes(lhs, MAGIC_CEIL)
        if rhs is not None:
            return FractionByte.new_between_bytes(MAGIC_FLOOR, rhs)
        return None


FractionByte.MAGIC = FractionByte()


@functools.total_ordering
@dataclass(frozen=True)
class ZenoIndex:
    """A fraction strictly between 0 and 1 with arbitrary precision.

    The default value represents one half. New values can be made before,
    after or between existing ones, and values only ever matter relative to
    each other.
    """

    digits: bytes = b""

    def __post_init__(self) -> None:
        if isinstance(self.digits, int):
            raise TypeError("digits must be a sequence of bytes, not an int")
        object.__setattr__(self, "digits", bytes(self.digits))

    def _digit(self, i: int) -> FractionByte:
        if i < len(self.digits):
            return FractionByte(self.digits[i])
        return FractionByte.MAGIC

    def _key(self) -> tuple[float, ...]:
        return (*self.digits, _MAGIC_WEIGHT)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ZenoIndex):
            return NotImplemented
        return self._key() < other._key()

    @classmethod
    def new_before(cls, index: ZenoIndex) -> ZenoIndex:
        """Return an index strictly less than ``index``."""
        for i, byte in enumerate(index.digits):
            if byte > BYTE_MIN:
                return cls(index.digits[:i] + bytes([byte - 1]))
        return cls(index.digits + bytes([MAGIC_FLOOR]))

    @classmethod
    def new_after(cls, index: ZenoIndex) -> ZenoIndex:
        """Return an index strictly greater than ``index``."""
        for i, byte in enumerate(index.digits):
            if byte < BYTE_MAX:
                return cls(index.digits[:i] + bytes([byte + 1]))
        return cls(index.digits + bytes([MAGIC_CEIL]))

    @classmethod
    def new_between(cls, left: ZenoIndex, right: ZenoIndex) -> ZenoIndex:
        """Return an index strictly between ``left`` and ``right``.

        Raises ValueError if ``left`` is not less than ``right``.
        """
        for i in range(len(left.digits) + 1):
            ld, rd = left._digit(i), right._digit(i)
            if ld < rd:
                between = FractionByte.new_between(ld, rd)
                if between is None:
                    return cls._extend_between(left, right, i)
                prefix = left.digits[:i]
                if between.is_magic:
                    return cls(prefix)
                return cls(prefix + bytes([between.value]))
            if ld > rd:
                raise ValueError("left should be less than right")
        raise ValueError("cannot generate an index between two equal ZenoIndex values")

    @classmethod
    def _extend_between(cls, left: ZenoIndex, right: ZenoIndex, i: int) -> ZenoIndex:
        for j in range(i + 1, len(left.digits) + 1):
            digit = left._digit(j)
            if digit.is_magic:
                return cls(left.digits[:j] + bytes([MAGIC_CEIL]))
            if digit.value < BYTE_MAX:
                return cls(left.digits[:j] + bytes([digit.value + 1]))
        for j in range(i + 1, len(right.digits) + 1):
            digit = right._digit(j)
            if digit.is_magic:
                return cls(right.digits[:j] + bytes([MAGIC_FLOOR]))
            if digit.value > BYTE_MIN:
                return cls(right.digits[:j] + bytes([digit.value - 1]))
        raise RuntimeError("no index found between the given values")

    def to_wire(self) -> list[int]:
        return list(self.digits)

    @classmethod
    def from_wire(cls, data: Any) -> ZenoIndex:
        if isinstance(data, (bytes, bytearray)):
            return cls(bytes(data))
        if not isinstance(data, (list, tuple)):
            raise TypeError(f"a ZenoIndex must be a list of bytes, got {data!r}")
        for item in data:
            if isinstance(item, bool) or not isinstance(item, int):
                raise TypeError(f"a ZenoIndex digit must be an int, got {item!r}")
            if not BYTE_MIN <= item <= BYTE_MAX:
                raise ValueError(f"a ZenoIndex digit must be in 0..255, got {item}")
        return cls(bytes(data))