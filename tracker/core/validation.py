import enum
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional


logger = logging.getLogger(__name__)

PHONE_LENGTH = 8
PHONE_PREFIXES = {'2', '3', '5', '7', '9'}  # mobile 2/5/9, landline 3/7
EMAIL_RE = re.compile(r'[^\s@]+@[^\s@]+\.[^\s@]+')
EMAIL_MAX_LENGTH = 254
EMAIL_LOCAL_MAX_LENGTH = 64

_NON_DIGITS = re.compile(r'\D', re.ASCII)
_INFINITY = re.compile(r'[+-]?Infinity')
_WHOLE_NUMBER = re.compile(r'[+-]?\d+', re.ASCII)
MIN_QUANTITY = 1


class ErrorCode(str, enum.Enum):
    REQUIRED = "required"
    INVALID_FORMAT = "invalid_format"
    TOO_LONG = "too_long"
    NOT_A_NUMBER = "not_a_number"
    NEGATIVE = "negative"
    OUT_OF_RANGE = "out_of_range"


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None
    code: Optional[ErrorCode] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"isValid": self.is_valid, "error": self.error}


VALID = ValidationResult(True)


def _fail(code: ErrorCode, message: str) -> ValidationResult:
    return ValidationResult(False, message, code)


def normalize_phone(phone: Optional[str]) -> str:
    return _NON_DIGITS.sub('', str(phone)) if phone else ''


def validate_tunisian_phone(phone: Optional[str]) -> ValidationResult:
    """Validate an 8-digit Tunisian number, given without the +216 prefix."""
    clean_phone = normalize_phone(phone)

    if not clean_phone:
        return _fail(ErrorCode.REQUIRED, "Phone number is required")

    if len(clean_phone) != PHONE_LENGTH:
        return _fail(ErrorCode.INVALID_FORMAT, "Phone number must be exactly 8 digits")

    if clean_phone[0] not in PHONE_PREFIXES:
        return _fail(ErrorCode.INVALID_FORMAT, "Invalid phone number prefix")

    return VALID


def format_tunisian_phone(phone: str) -> str:
    """Render a phone number as ``+216 XX XXX XXX``.

    Anything that does not clean down to 8 digits is returned unchanged so the
    caller can still display it.
    """
    clean_phone = normalize_phone(phone)
    if len(clean_phone) == PHONE_LENGTH:
        return f"+216 {clean_phone[:2]} {clean_phone[2:5]} {clean_phone[5:]}"
    return phone


def validate_email(email: Optional[str]) -> ValidationResult:
    if not email:
        return _fail(ErrorCode.REQUIRED, "Email is required")

    if not isinstance(email, str) or not EMAIL_RE.fullmatch(email):
        return _fail(ErrorCode.INVALID_FORMAT, "Invalid email format (must contain @ and .)")

    if len(email) > EMAIL_MAX_LENGTH:
        return _fail(ErrorCode.TOO_LONG, "Email is too long")

    if len(email.split('@')[0]) > EMAIL_LOCAL_MAX_LENGTH:
        return _fail(ErrorCode.TOO_LONG, "Email username is too long")

    return VALID


def validate_required(value: Any, field_name: str) -> ValidationResult:
    if not value or (isinstance(value, str) and not value.strip()):
        return _fail(ErrorCode.REQUIRED, f"{field_name} is required")
    return VALID


def _to_number(value: Any) -> float:
    """Parse a price the way a form field would; raises ValueError on junk."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    # float() accepts digit separators and "inf", form input does not
    if not text or '_' in text:
        raise ValueError(f"not a number: {value!r}")
    if 'inf' in text.lower() and not _INFINITY.fullmatch(text):
        raise ValueError(f"not a number: {value!r}")
    return float(text)


def validate_price(value: Any) -> ValidationResult:
    if value is None or (isinstance(value, str) and not value.strip()):
        return _fail(ErrorCode.REQUIRED, "Price is required")

    try:
        num_value = _to_number(value)
    except (TypeError, ValueError):
        return _fail(ErrorCode.NOT_A_NUMBER, "Price must be a valid number")

    if math.isnan(num_value):
        return _fail(ErrorCode.NOT_A_NUMBER, "Price must be a valid number")

    if num_value < 0:
        return _fail(ErrorCode.NEGATIVE, "Price cannot be negative")

    return VALID


def parse_price(value: Any) -> float:
    """Stored price for a submitted value; 0.0 when it cannot be parsed."""
    try:
        num_value = _to_number(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(num_value) else num_value


def validate_storable_price(value: Any) -> ValidationResult:
    """Prices are saved as JSON numbers, which have no infinity."""
    if not math.isfinite(parse_price(value)):
        return _fail(ErrorCode.OUT_OF_RANGE, "Price must be a finite number")
    return VALID


def to_quantity(value: Any) -> Optional[int]:
    """Whole-number quantity for a product row; 1 when left blank, None when unusable."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return MIN_QUANTITY
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    return int(text) if _WHOLE_NUMBER.fullmatch(text) else None


def clean_products(products: Optional[List[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
    """Drop product rows with a blank name; missing quantities default to 1.

    Quantities that are not whole numbers are kept as given so that
    :func:`validate_delivery_form` can report them.
    """
    cleaned = []
    for product in products or []:
        if not isinstance(product, Mapping):
            continue
        name = product.get('name') or ''
        if not isinstance(name, str) or not name.strip():
            continue
        quantity = to_quantity(product.get('quantity'))
        cleaned.append({'name': name, 'quantity': product.get('quantity') if quantity is None else quantity})
    return cleaned


def _valid_quantity(quantity: Any) -> bool:
    return isinstance(quantity, int) and not isinstance(quantity, bool) and quantity >= MIN_QUANTITY


def validate_delivery_form(form: Mapping[str, Any]) -> Dict[str, str]:
    """Validate a full delivery submission.

    Every field is checked independently and all failures are reported
    together, keyed by field name. An empty mapping means the form is valid.
    """
    errors: Dict[str, str] = {}

    name_validation = validate_required(form.get('recipientName'), 'Recipient name')
    if not name_validation.is_valid:
        errors['recipientName'] = name_validation.error

    phone_validation = validate_tunisian_phone(form.get('recipientPhone'))
    if not phone_validation.is_valid:
        errors['recipientPhone'] = phone_validation.error

    # Email is optional, only checked when provided
    if form.get('recipientEmail'):
        email_validation = validate_email(form.get('recipientEmail'))
        if not email_validation.is_valid:
            errors['recipientEmail'] = email_validation.error

    price_validation = validate_price(form.get('price'))
    if not price_validation.is_valid:
        errors['price'] = price_validation.error

    products = clean_products(form.get('products'))
    if not products:
        errors['products'] = "At least one product is required"
    elif not all(_valid_quantity(product['quantity']) for product in products):
        errors['products'] = f"Product quantity must be a whole number of at least {MIN_QUANTITY}"

    if not form.get('destination'):
        errors['destination'] = "Delivery location is required"

    if errors:
        logger.debug(f"Delivery form rejected: {sorted(errors)}")

    return errors
