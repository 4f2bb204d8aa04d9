import logging
import math
from typing import Any

logger = logging.getLogger("osurate")

class EngineError(RuntimeError):
    """Base for all errors that fail a single rate job"""
    def __init__(self, msg: str, context: Any = None) -> None:
        super().__init__(msg)
        self.msg = msg
        self.context = context

    def __str__(self) -> str:
        if self.context is None:
            return self.msg
        return f"{self.msg} ({self.context})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self})"

class InvalidRate(EngineError, ValueError):
    def __init__(self, rate: Any) -> None:
        super().__init__(f"Rate must be a positive finite number, got {rate!r}")
        self.rate = rate

def validate_rate(rate: float) -> float:
    try:
        rate = float(rate)
    except (TypeError, ValueError) as exc:
        raise InvalidRate(rate) from exc
    if not math.isfinite(rate) or rate <= 0:
        raise InvalidRate(rate)
    return rate

def parse_number(val: str) -> float:
    if not val:
        raise ValueError("Value empty")
    if "/" in val:
        num, denom = val.split("/", 1)
        if " " in num:
            # mixed fraction, ie "1 1/4" -> 1.25
            integer, num = num.split(" ", 1)
            i = int(integer)
            return i + math.copysign(float(num) / float(denom), i)
        return float(num) / float(denom)
    elif val.endswith("%"):
        return float(val[:-1]) / 100
    elif val.endswith("x"):
        # "1.2x", the way rates are usually written
        return float(val[:-1])
    return float(val)

def parse_rates(val: str) -> list[float]:
    # "1.1,1.15,1.2" or "110%,115%" -> [1.1, 1.15, 1.2]
    rates = []
    for i, part in enumerate(val.split(",")):
        part = part.strip()
        try:
            rate = parse_number(part)
        except ValueError as ve:
            raise ValueError(f"Error parsing rate #{i+1}: {part!r}") from ve
        rates.append(validate_rate(rate))
    return rates

def pretty_rate(rate: float, decimals: int = 2) -> str:
    # 1.2 -> "1.2", 1.25 -> "1.25", 1.0 -> "1"
    out = f"{rate:.{decimals}f}"
    if "." in out:
        out = out.rstrip("0").rstrip(".")
    return out

def pretty_time_delta(seconds: float) -> str:
    seconds = abs(seconds)
    if seconds < 1:
        return f"{seconds*1000:.0f} ms"
    units = {
        "second": 60,
        "minute": 60,
        "hour": 24,
    }
    value = seconds
    for unit, next_unit in units.items():
        if value < next_unit:
            # add 's' if value rounds to 2 or more
            return f"{value:.0f} {unit}{'s' if value >= 1.5 else ''}"
        value = value / next_unit
    return "a really long time"

def pretty_list(data: list[Any]) -> str:
    if not data:
        return ""
    if len(data) == 1:
        return str(data[0])
    return ", ".join(map(str, data[:-1])) + f" and {data[-1]}"

def format_float(value: float) -> str:
    # shortest text that parses back to the same float, without a trailing ".0"
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)

def safe_filename(name: str) -> str:
    return "".join("_" if c in '<>:"/\\|?*' or ord(c) < 32 else c for c in name).strip()
