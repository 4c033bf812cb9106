"""
Pricing engine.

Turns a product's material composition and charge configuration into an
itemized price breakdown. Pure and deterministic: no database, no clock, no
rounding. All arithmetic is done on Decimal at full precision; rounding
happens only when an amount is formatted for display.

Pipeline (each step uses the previous ones):

1. component subtotal  metal: weight * rate, gemstone: weight * rate * quantity
2. component wastage   fixed value, or percentage of that component's subtotal,
                       folded into metal_total / gemstone_total
3. material_total      metal_total + gemstone_total
4. making charge       fixed, or percentage of material_total
5. product wastage     fixed, or percentage of material_total
6. other charges       sum of flat amounts
7. subtotal            material_total + making + wastage + other
8. gst_amount          subtotal * gst / 100
9. total_price         subtotal + gst_amount
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Sequence, Tuple, Optional, Any

from jewelbox.exceptions import ValidationError
from jewelbox.utils.number_format import parse_decimal, parse_int, parse_rate

ZERO = Decimal('0')
HUNDRED = Decimal('100')


class ChargeType(str, Enum):
    """How a charge value is interpreted."""
    FIXED = 'fixed'
    PERCENTAGE = 'percentage'


@dataclass
class Charge:
    """A fixed amount, or a percentage applied to a base amount."""
    type: ChargeType = ChargeType.FIXED
    value: Decimal = ZERO

    def __post_init__(self):
        try:
            self.type = ChargeType(self.type)
        except ValueError:
            raise ValidationError(f"Unknown charge type '{self.type}'")
        self.value = parse_decimal(self.value, 'charge value', minimum=0)

    def amount_on(self, base: Decimal) -> Decimal:
        if self.type == ChargeType.PERCENTAGE:
            return base * self.value / HUNDRED
        return self.value

    @classmethod
    def from_dict(cls, data: Optional[dict], field_name: str = 'charge') -> 'Charge':
        """Build a charge from a request payload ({"type": ..., "value": ...})."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValidationError(f'{field_name} must be an object with type and value')
        try:
            charge_type = ChargeType(data.get('type', ChargeType.FIXED.value))
        except ValueError:
            raise ValidationError(f"{field_name}.type must be 'fixed' or 'percentage'")
        value = parse_rate(data.get('value'), f'{field_name}.value', default=0)
        return cls(type=charge_type, value=value)

    def to_dict(self) -> dict:
        return {'type': self.type.value, 'value': str(self.value)}


@dataclass
class MetalComponentInput:
    weight_in_grams: Decimal
    price_per_gram: Decimal
    wastage: Charge = field(default_factory=Charge)

    def __post_init__(self):
        self.weight_in_grams = parse_decimal(self.weight_in_grams, 'weight_in_grams', minimum=0)
        self.price_per_gram = parse_decimal(self.price_per_gram, 'price_per_gram', minimum=0)

    @property
    def subtotal(self) -> Decimal:
        return self.weight_in_grams * self.price_per_gram


@dataclass
class GemstoneComponentInput:
    weight_in_carats: Decimal
    price_per_carat: Decimal
    quantity: int = 1
    wastage: Charge = field(default_factory=Charge)

    def __post_init__(self):
        self.weight_in_carats = parse_decimal(self.weight_in_carats, 'weight_in_carats', minimum=0)
        self.price_per_carat = parse_decimal(self.price_per_carat, 'price_per_carat', minimum=0)
        self.quantity = parse_int(self.quantity, 'quantity', minimum=1)

    @property
    def subtotal(self) -> Decimal:
        return self.weight_in_carats * self.price_per_carat * self.quantity


@dataclass
class OtherCharge:
    """Flat addition such as an engraving or hallmarking fee."""
    name: str
    amount: Decimal

    def __post_init__(self):
        self.name = str(self.name or '').strip()
        if not self.name:
            raise ValidationError('Other charge name is required')
        self.amount = parse_decimal(self.amount, f"amount of '{self.name}'", minimum=0)

    @classmethod
    def from_dict(cls, data: Any) -> 'OtherCharge':
        if not isinstance(data, dict):
            raise ValidationError('Each other charge must be an object with name and amount')
        return cls(name=data.get('name'), amount=data.get('amount'))

    def to_dict(self) -> dict:
        return {'name': self.name, 'amount': str(self.amount)}


@dataclass(frozen=True)
class PricingResult:
    """Itemized price breakdown. Every field is exact, unrounded."""
    metal_total: Decimal
    gemstone_total: Decimal
    making_charge_amount: Decimal
    wastage_charge_amount: Decimal
    other_charges_total: Decimal
    subtotal: Decimal
    gst_amount: Decimal
    total_price: Decimal

    @property
    def material_total(self) -> Decimal:
        return self.metal_total + self.gemstone_total

    def to_dict(self) -> dict:
        return {
            'metal_total': self.metal_total,
            'gemstone_total': self.gemstone_total,
            'making_charge_amount': self.making_charge_amount,
            'wastage_charge_amount': self.wastage_charge_amount,
            'other_charges_total': self.other_charges_total,
            'subtotal': self.subtotal,
            'gst_amount': self.gst_amount,
            'total_price': self.total_price,
        }


def _check_gst(gst_percentage) -> Decimal:
    return parse_decimal(gst_percentage, 'gst_percentage', minimum=0, maximum=100)


def _check_types(metal_composition, gemstone_composition, making_charges, product_wastage, other_charges):
    for comp in metal_composition:
        if not isinstance(comp, MetalComponentInput):
            raise ValidationError('metal_composition entries must be MetalComponentInput')
    for comp in gemstone_composition:
        if not isinstance(comp, GemstoneComponentInput):
            raise ValidationError('gemstone_composition entries must be GemstoneComponentInput')
    for charge, name in ((making_charges, 'making_charges'), (product_wastage, 'product_wastage')):
        if not isinstance(charge, Charge):
            raise ValidationError(f'{name} must be a Charge')
    for other in other_charges:
        if not isinstance(other, OtherCharge):
            raise ValidationError('other_charges entries must be OtherCharge')


def calculate_product_price(
    metal_composition: Sequence[MetalComponentInput],
    gemstone_composition: Sequence[GemstoneComponentInput],
    making_charges: Charge,
    product_wastage: Charge,
    gst_percentage,
    other_charges: Sequence[OtherCharge] = (),
) -> PricingResult:
    """
    Calculate the full price breakdown of a product.

    Args:
        metal_composition: metal components with their current rates
        gemstone_composition: gemstone components with their current rates
        making_charges: fixed or percentage of the material total
        product_wastage: product-level wastage, fixed or percentage of the
            material total (distinct from each component's own wastage)
        gst_percentage: 0..100
        other_charges: flat additions

    Returns:
        PricingResult

    Raises:
        ValidationError: on any out-of-range input, before computing anything
    """
    metal_composition = list(metal_composition or [])
    gemstone_composition = list(gemstone_composition or [])
    other_charges = list(other_charges or [])
    _check_types(metal_composition, gemstone_composition, making_charges, product_wastage, other_charges)
    gst = _check_gst(gst_percentage)

    # Steps 1-2: component subtotals plus their own wastage
    metal_total = ZERO
    for comp in metal_composition:
        subtotal = comp.subtotal
        metal_total += subtotal + comp.wastage.amount_on(subtotal)

    gemstone_total = ZERO
    for comp in gemstone_composition:
        subtotal = comp.subtotal
        gemstone_total += subtotal + comp.wastage.amount_on(subtotal)

    # Step 3
    material_total = metal_total + gemstone_total

    # Steps 4-6
    making_charge_amount = making_charges.amount_on(material_total)
    wastage_charge_amount = product_wastage.amount_on(material_total)
    other_charges_total = sum((c.amount for c in other_charges), ZERO)

    # Steps 7-9
    subtotal = material_total + making_charge_amount + wastage_charge_amount + other_charges_total
    gst_amount = subtotal * gst / HUNDRED
    total_price = subtotal + gst_amount

    return PricingResult(
        metal_total=metal_total,
        gemstone_total=gemstone_total,
        making_charge_amount=making_charge_amount,
        wastage_charge_amount=wastage_charge_amount,
        other_charges_total=other_charges_total,
        subtotal=subtotal,
        gst_amount=gst_amount,
        total_price=total_price,
    )


def calculate_component_subtotals(
    metal_composition: Sequence[MetalComponentInput],
    gemstone_composition: Sequence[GemstoneComponentInput],
) -> Tuple[List[Decimal], List[Decimal]]:
    """Per-component subtotals (before wastage), in composition order."""
    return (
        [comp.subtotal for comp in metal_composition or []],
        [comp.subtotal for comp in gemstone_composition or []],
    )
