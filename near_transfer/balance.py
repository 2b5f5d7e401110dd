"""NEAR token amount parsing and formatting.

All amounts are carried internally as integer yoctoNEAR. Text input accepts
whole NEAR (``"5"``, ``"0.5 NEAR"``, ``"10near"``), milliNEAR
(``"250 milliNEAR"``) and raw yoctoNEAR (``"10000yoctonear"``). Formatting is
exact so a formatted amount always parses back to the same integer.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, localcontext

from .tx_builder import MAX_U128

YOCTO_PER_NEAR = 10**24
YOCTO_PER_MILLINEAR = 10**21

_UNIT_SCALE = {
    "": YOCTO_PER_NEAR,
    "near": YOCTO_PER_NEAR,
    "millinear": YOCTO_PER_MILLINEAR,
    "yoctonear": 1,
}
_AMOUNT_RE = re.compile(r"^\s*(\d+(?:\.\d*)?|\.\d+)\s*([A-Za-z]*)\s*$")

AMOUNT_EXAMPLES = "example: 10NEAR or 0.5near or 10000yoctonear"


def parse_near_amount(text: str) -> int:
    """Return the yoctoNEAR value described by *text*.

    Raises ``ValueError`` for unknown units, negative numbers or amounts that
    do not resolve to a whole number of yoctoNEAR, and for amounts that do not
    fit in a u128.
    """

    match = _AMOUNT_RE.match(text or "")
    if match is None:
        raise ValueError(f"Invalid amount {text!r} ({AMOUNT_EXAMPLES})")
    number, unit = match.groups()
    scale = _UNIT_SCALE.get(unit.lower())
    if scale is None:
        raise ValueError(f"Unknown unit {unit!r} in amount {text!r} ({AMOUNT_EXAMPLES})")

    with localcontext() as ctx:
        ctx.prec = 80
        try:
            value = Decimal(number) * scale
        except InvalidOperation as exc:  # pragma: no cover - regex guards the shape
            raise ValueError(f"Invalid amount {text!r}") from exc
        if value != value.to_integral_value():
            raise ValueError(f"Amount {text!r} is smaller than 1 yoctoNEAR precision")
        if value > MAX_U128:
            raise ValueError(f"Amount {text!r} exceeds the largest transferable amount")
        return int(value)


def format_near_amount(yocto: int) -> str:
    """Render *yocto* as an exact ``"<decimal> NEAR"`` string."""

    if yocto < 0:
        raise ValueError("Amounts cannot be negative")
    whole, fraction = divmod(yocto, YOCTO_PER_NEAR)
    if not fraction:
        return f"{whole} NEAR"
    digits = f"{fraction:024d}".rstrip("0")
    return f"{whole}.{digits} NEAR"
