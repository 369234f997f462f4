"""
Named value adapters.

A catalog field may name an adapter ("adapter": "phone_fr_national") to
convert canonical applicant data into the format a platform expects.
"""
import re
from typing import Any, Callable, Dict, Union

from quoteflow.utils.errors import FlowError


_NON_DIGIT = re.compile(r"\D")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_OVERSEAS = ("971", "972", "973", "974", "975", "976")


def phone_to_e164(phone: Any, default_country_code: str = "+33") -> str:
    digits = _NON_DIGIT.sub("", str(phone))
    if digits.startswith("0"):
        digits = digits[1:]
    if not digits.startswith("33"):
        digits = default_country_code.lstrip("+") + digits
    return f"+{digits}"


def phone_fr_national(phone: Any) -> str:
    """'+33612345678' or '0612345678' -> '06 12 34 56 78'."""
    national = "0" + phone_to_e164(phone)[3:]
    if len(national) != 10:
        return national
    return " ".join(national[i:i + 2] for i in range(0, 10, 2))


def phone_international(phone: Any) -> str:
    """'0612345678' -> '+33 6 12 34 56 78'."""
    e164 = phone_to_e164(phone)
    match = re.match(r"^\+(\d{2})(\d)(\d{2})(\d{2})(\d{2})(\d{2})$", e164)
    if not match:
        return e164
    return "+" + " ".join(match.groups())


def department_code(postal_code: Any) -> str:
    """French postal code to department: 75001 -> 75, 20100 -> 2A, 97110 -> 971."""
    code = str(postal_code).strip().zfill(5)
    if not re.fullmatch(r"\d{5}", code):
        raise ValueError(f"Invalid postal code format: {postal_code}")
    if code[:3] in _OVERSEAS:
        return code[:3]
    if code[:2] == "20":
        return "2A" if int(code) < 20200 else "2B"
    return code[:2]


def date_iso_to_fr(value: Any) -> Any:
    """'1985-03-12' -> '12/03/1985'; anything else is returned unchanged."""
    match = _ISO_DATE.match(str(value))
    if not match:
        return value
    year, month, day = match.groups()
    return f"{day}/{month}/{year}"


def upper(value: Any) -> str:
    return str(value).upper()


def lower(value: Any) -> str:
    return str(value).lower()


def digits(value: Any) -> str:
    return _NON_DIGIT.sub("", str(value))


ADAPTERS: Dict[str, Callable[[Any], Any]] = {
    "phone_fr_national": phone_fr_national,
    "phone_international": phone_international,
    "department_code": department_code,
    "date_iso_to_fr": date_iso_to_fr,
    "upper": upper,
    "lower": lower,
    "digits": digits,
    # names used by existing catalogs
    "extractDepartmentCode": department_code,
    "dateIsoToFr": date_iso_to_fr,
}


def get_adapter(adapter: Union[str, Callable[[Any], Any]]) -> Callable[[Any], Any]:
    if callable(adapter):
        return adapter
    try:
        return ADAPTERS[adapter]
    except KeyError:
        raise FlowError(f"Unknown value adapter: {adapter}") from None


def apply_adapter(adapter: Union[str, Callable[[Any], Any], None], value: Any) -> Any:
    if adapter is None or value is None:
        return value
    return get_adapter(adapter)(value)
