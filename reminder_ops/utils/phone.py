from __future__ import annotations

import re
from typing import Iterable


def digits_only(phone: str | None) -> str:
    if not phone:
        return ""
    return re.sub(r"\D", "", phone)


def normalize_phone(phone: str | None, country_codes: Iterable[str] = ("351",)) -> str:
    """Return the national number used as a contact key.

    - strip every non-digit character
    - strip the first country calling code, in precedence order, that prefixes
      the digits and leaves a non-empty remainder

    At most one code is stripped, and an already normalized number comes back
    unchanged as long as it does not itself start with a configured code.
    """
    digits = digits_only(phone)
    for code in country_codes:
        code_digits = digits_only(code)
        if code_digits and digits.startswith(code_digits) and len(digits) > len(code_digits):
            return digits[len(code_digits):]
    return digits
