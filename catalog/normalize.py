# catalog/normalize.py
import re
from typing import Optional, Union

from .errors import ValidationError

_RE_CONTROL = re.compile(r"[\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F\u200b\ufeff]")


def clean_text(value: Optional[str]) -> Optional[str]:
    """
    Strip control / zero-width chars and surrounding whitespace.
    None stays None so callers can tell "not sent" from "sent empty".
    """
    if value is None:
        return None
    return _RE_CONTROL.sub("", str(value)).strip()


def parse_number(value: Union[str, float, int, None], field: str) -> Optional[float]:
    """
    Parse a form value into a float.
      - None / missing -> None
      - "" -> None (an empty form input means "not supplied")
      - "0" -> 0.0 (zero is a real value)
      - anything unparseable -> ValidationError
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        s = clean_text(value).replace(",", ".").lstrip("$")
        if not s:
            return None
        try:
            number = float(s)
        except ValueError:
            raise ValidationError(f"'{field}' must be a number")
    if number != number or number in (float("inf"), float("-inf")):
        raise ValidationError(f"'{field}' must be a finite number")
    return number


def parse_int(value: Union[str, int, None], field: str) -> Optional[int]:
    number = parse_number(value, field)
    if number is None:
        return None
    if not number.is_integer():
        raise ValidationError(f"'{field}' must be an integer")
    return int(number)


def clamp_discount(value: float) -> float:
    return min(100.0, max(0.0, value))


def require_name(value: Optional[str]) -> str:
    name = clean_text(value)
    if not name:
        raise ValidationError("Product name is required")
    return name
