from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Iterable

from tradebot.errors import BalanceUnavailableError

# Free-text ERC20 balance replies, most specific first. Integers are base units; a value
# with a decimal point is already in whole units. A number is never cut at its decimal point.
# A bare number is only accepted when it is the whole reply; matching digits anywhere
# would happily read an address or a chain id as a balance.
_NUMBER = r"(\d+(?:\.\d+)?)(?!\.?\d)"
ERC20_BALANCE_PATTERNS: tuple[str, ...] = (
    rf"Balance of .* is {_NUMBER}",
    rf"(?i)Balance.*: {_NUMBER}",
    r"^\s*(\d+(?:\.\d+)?)\s*$",
)


@dataclass(frozen=True)
class AssetSpec:
    asset_id: str
    decimals: int
    contract_address: str | None = None

    @property
    def is_token(self) -> bool:
        return bool(self.contract_address)


def load_assets(config: dict) -> dict[str, AssetSpec]:
    raw = (config.get("assets") or {}) if isinstance(config, dict) else {}
    out: dict[str, AssetSpec] = {}
    for asset_id, spec in raw.items():
        spec = spec or {}
        key = str(asset_id).lower()
        out[key] = AssetSpec(
            asset_id=key,
            decimals=int(spec.get("decimals", 18)),
            contract_address=(str(spec["contract_address"]) if spec.get("contract_address") else None),
        )
    return out


def wallet_balance_patterns(asset_id: str) -> tuple[str, ...]:
    sym = re.escape(asset_id.upper())
    return (rf"{sym} Balance: ([\d.]+) {sym}",)


def to_base_units(amount: float, decimals: int) -> int:
    """Whole units -> integer base units, rounding down (never trade more than asked)."""
    scaled = Decimal(str(amount)) * (Decimal(10) ** int(decimals))
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def from_base_units(value: Decimal | int | str, decimals: int) -> float:
    return float(Decimal(str(value)) / (Decimal(10) ** int(decimals)))


def parse_balance(raw: Any, patterns: Iterable[str], decimals: int = 0) -> float:
    """
    Interpret a balance reply.

    Structured replies (a number, or a mapping with `balance`) are used as-is. Text replies
    are matched against `patterns` in order. `decimals` scales integer values down from
    base units; decimal text is taken as whole units. Anything that cannot be read raises
    `BalanceUnavailableError`; it is never reported as a zero balance.
    """
    if isinstance(raw, dict) and "balance" in raw:
        raw = raw["balance"]

    if isinstance(raw, bool):
        raise BalanceUnavailableError(f"Unexpected balance value: {raw!r}")

    if isinstance(raw, (int, float)):
        value = from_base_units(Decimal(str(raw)), decimals)
    elif isinstance(raw, str):
        value = None
        for pattern in patterns:
            match = re.search(pattern, raw)
            if match:
                text = match.group(1)
                try:
                    value = float(Decimal(text)) if "." in text else from_base_units(text, decimals)
                except InvalidOperation:
                    continue
                break
        if value is None:
            raise BalanceUnavailableError(f"Could not parse balance from reply: {raw[:200]!r}")
    else:
        raise BalanceUnavailableError(f"Unexpected balance reply type: {type(raw).__name__}")

    if value < 0:
        raise BalanceUnavailableError(f"Negative balance reported: {value}")
    return value
