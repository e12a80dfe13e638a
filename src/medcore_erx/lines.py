"""Line item and diagnosis value objects for prescriptions."""

import uuid
from dataclasses import asdict, dataclass, field, replace

from .exceptions import InvalidClinicalContent, InvalidLineItem

TEXT_FIELDS = (
    'generic_name', 'strength', 'form', 'dosage', 'frequency',
    'duration', 'route', 'instructions', 'discontinuation_reason',
)


def _new_line_id() -> str:
    return uuid.uuid4().hex


def _positive_int(data: dict, name: str, minimum: int) -> int:
    value = data.get(name, minimum)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise InvalidLineItem(f"'{name}' must be an integer >= {minimum}, got {value!r}")
    return value


@dataclass(frozen=True)
class LineItem:
    """
    One prescribed product.

    line_id is stable across amendments, so refill accounting follows a
    line through every version of its prescription.
    """

    product_ref: str
    quantity: int
    line_id: str = field(default_factory=_new_line_id)
    generic_name: str = ''
    strength: str = ''
    form: str = ''
    dosage: str = ''
    frequency: str = ''
    duration: str = ''
    route: str = ''
    instructions: str = ''
    refills_allowed: int = 0
    substitution_allowed: bool = True
    discontinued: bool = False
    discontinuation_reason: str = ''

    @property
    def max_dispensable(self) -> int:
        """Lifetime ceiling: quantity x (1 + refills)."""
        return self.quantity * (1 + self.refills_allowed)

    def discontinue(self, reason: str) -> 'LineItem':
        return replace(self, discontinued=True, discontinuation_reason=reason)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> 'LineItem':
        """
        Build a validated LineItem from a dict (or pass a LineItem through).

        Raises:
            InvalidLineItem: If product_ref is missing or quantities are bad
        """
        if isinstance(data, LineItem):
            return data
        if not isinstance(data, dict):
            raise InvalidLineItem(f"Line item must be an object, got {type(data).__name__}")

        product_ref = data.get('product_ref')
        if not isinstance(product_ref, str) or not product_ref.strip():
            raise InvalidLineItem("Line item requires a product_ref")

        for name in ('substitution_allowed', 'discontinued'):
            if name in data and not isinstance(data[name], bool):
                raise InvalidLineItem(f"'{name}' must be a boolean")

        text = {}
        for name in TEXT_FIELDS:
            value = data.get(name) or ''
            if not isinstance(value, str):
                raise InvalidLineItem(f"'{name}' must be text")
            text[name] = value

        return cls(
            product_ref=product_ref.strip(),
            quantity=_positive_int(data, 'quantity', 1),
            line_id=data.get('line_id') or _new_line_id(),
            refills_allowed=_positive_int(data, 'refills_allowed', 0),
            substitution_allowed=data.get('substitution_allowed', True),
            discontinued=data.get('discontinued', False),
            **text,
        )


def normalize_items(items) -> list[dict]:
    """Validate items and return their stored form, keeping entry order."""
    if not items:
        raise InvalidLineItem("A prescription needs at least one line item")

    lines = [LineItem.from_dict(item) for item in items]
    seen = set()
    for line in lines:
        if line.line_id in seen:
            raise InvalidLineItem(f"Duplicate line_id '{line.line_id}'")
        seen.add(line.line_id)
    return [line.to_dict() for line in lines]


def normalize_diagnosis(diagnosis) -> list[dict]:
    """Validate diagnosis entries: {code, description, type}."""
    normalized = []
    for entry in diagnosis or []:
        if not isinstance(entry, dict) or not entry.get('code'):
            raise InvalidClinicalContent(f"Diagnosis entry needs a code: {entry!r}")
        normalized.append({
            'code': str(entry['code']),
            'description': str(entry.get('description') or ''),
            'type': str(entry.get('type') or 'primary'),
        })
    return normalized
