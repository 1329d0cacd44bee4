"""Lossless integer amounts, asset maps and ADA/lovelace conversion helpers."""

from __future__ import annotations

from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import Iterable, Mapping, Union


LOVELACE = "lovelace"
LOVELACE_PER_ADA = 1_000_000
_ADA_QUANT = Decimal("0.000001")

IntLike = Union["Value", int, str]


class Value:
    """Arbitrary-precision non-negative integer used for ledger and proof numbers.

    Immutable except through ``increase``, which accumulates in place.
    """

    __slots__ = ("_int",)

    def __init__(self, num: IntLike = 0):
        self._int = _coerce(num)

    def add(self, other: IntLike) -> Value:
        return Value(self._int + _coerce(other))

    def increase(self, other: IntLike) -> None:
        self._int += _coerce(other)

    def __int__(self) -> int:
        return self._int

    def __index__(self) -> int:
        return self._int

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Value):
            return self._int == other._int
        if isinstance(other, int) and not isinstance(other, bool):
            return self._int == other
        return NotImplemented

    def __lt__(self, other: IntLike) -> bool:
        return self._int < _coerce(other)

    def __le__(self, other: IntLike) -> bool:
        return self._int <= _coerce(other)

    def __gt__(self, other: IntLike) -> bool:
        return self._int > _coerce(other)

    def __ge__(self, other: IntLike) -> bool:
        return self._int >= _coerce(other)

    def __hash__(self) -> int:
        return hash(self._int)

    def __str__(self) -> str:
        return str(self._int)

    def __repr__(self) -> str:
        return f"Value({self._int})"


def _coerce(num: IntLike) -> int:
    if isinstance(num, Value):
        return num._int
    if isinstance(num, bool) or isinstance(num, float):
        raise ValueError(f"Refusing lossy or non-integer amount: {num!r}")
    if isinstance(num, int):
        result = num
    elif isinstance(num, str):
        raw = num.strip()
        try:
            result = int(raw, 16) if raw.lower().startswith("0x") else int(raw, 10)
        except ValueError:
            raise ValueError(f"Not an integer: {num!r}") from None
    else:
        raise ValueError(f"Unsupported amount type: {type(num).__name__}")
    if result < 0:
        raise ValueError(f"Amount must be non-negative: {result}")
    return result


AssetMap = dict[str, Value]


def asset_map(raw: Mapping[str, IntLike]) -> AssetMap:
    """Build an asset map, copying every amount into a fresh Value."""
    return {str(asset): Value(amount) for asset, amount in raw.items()}


def sum_asset_maps(maps: Iterable[Mapping[str, Value]]) -> AssetMap:
    """Add up asset maps key by key."""
    total: AssetMap = {}
    for m in maps:
        for asset, amount in m.items():
            if asset in total:
                total[asset].increase(amount)
            else:
                total[asset] = Value(amount)
    return total


def asset_map_to_wire(m: Mapping[str, Value]) -> dict[str, int]:
    return {asset: int(amount) for asset, amount in m.items()}


def split_asset_id(asset: str) -> tuple[str, str]:
    """Split ``<policy-id>.<asset-name>`` into its hex parts."""
    if asset == LOVELACE:
        raise ValueError("lovelace has no policy id")
    policy, sep, name = asset.partition(".")
    if not sep or not policy:
        raise ValueError(f"Asset id must look like <policy-id>.<asset-name>: {asset}")
    return policy, name


def ada_to_lovelace(value: Decimal | int | str) -> int:
    """Convert an amount to send, rounding up (conservative)."""
    dec = Decimal(str(value)).quantize(_ADA_QUANT, rounding=ROUND_CEILING)
    return int(dec * LOVELACE_PER_ADA)


def reserve_ada_to_lovelace(value: Decimal | int | str) -> int:
    """Convert a reserve, rounding down."""
    dec = Decimal(str(value)).quantize(_ADA_QUANT, rounding=ROUND_FLOOR)
    return int(dec * LOVELACE_PER_ADA)


def lovelace_to_ada(value: IntLike) -> Decimal:
    return (Decimal(int(Value(value))) / Decimal(LOVELACE_PER_ADA)).quantize(_ADA_QUANT)


def format_ada(value: IntLike) -> str:
    return f"{lovelace_to_ada(value)} ADA"
