# fieldpay_api/common/parse.py
from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from fieldpay_api.common.errors import ValidationError

def to_date(s) -> Optional[date]:
    if not s: return None
    if isinstance(s, date): return s
    try: return date.fromisoformat(str(s)[:10])
    except Exception: return None

def to_decimal(x) -> Optional[Decimal]:
    if x is None or x == "": return None
    if isinstance(x, bool): return None
    try: return Decimal(str(x))
    except (InvalidOperation, ValueError): return None

def to_int(x) -> Optional[int]:
    if x is None or x == "": return None
    try: return int(x)
    except (TypeError, ValueError): return None

def require_decimal(data: dict, key: str, *, default=None, min_value: Decimal | None = Decimal("0")) -> Decimal:
    """Read a numeric field from a JSON body, raising ValidationError when malformed/out of range."""
    raw = data.get(key, default)
    if raw is None or raw == "":
        if default is None:
            raise ValidationError(f"{key} is required")
        raw = default
    val = to_decimal(raw)
    if val is None or not val.is_finite():
        raise ValidationError(f"{key} must be a number")
    if min_value is not None and val < min_value:
        raise ValidationError(f"{key} must be >= {min_value}")
    return val

def optional_decimal(data: dict, key: str, *, min_value: Decimal | None = Decimal("0")) -> Optional[Decimal]:
    if data.get(key) is None or data.get(key) == "":
        return None
    return require_decimal(data, key, min_value=min_value)

def require_date(data: dict, key: str) -> date:
    d = to_date(data.get(key))
    if d is None:
        raise ValidationError(f"{key} is required (YYYY-MM-DD)")
    return d

def clean_str(v) -> Optional[str]:
    return (str(v).strip() or None) if v is not None else None

def to_bool(v, default=False) -> bool:
    if v is None or v == "": return default
    if isinstance(v, bool): return v
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")

def to_datetime(s) -> Optional[datetime]:
    if not s: return None
    if isinstance(s, datetime): return s
    try: return datetime.fromisoformat(str(s).replace("Z", "+00:00"))
    except ValueError: return None
