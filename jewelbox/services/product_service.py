"""
Product service.

Every create and update re-resolves component rates from the catalog and
re-runs the pricing engine. Rates, component subtotals and the pricing
snapshot sent by a client are ignored.

Weights, rates and charge values are rounded to the 4 decimals their
columns keep before pricing, so re-pricing a stored product always gives
back its stored snapshot.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from jewelbox.exceptions import ValidationError, NotFoundError, ConflictError
from jewelbox.models import (
    Product, ProductMetalComponent, ProductGemstoneComponent, GENDERS
)
from jewelbox.services.catalog_service import lookup_variant
from jewelbox.services.pricing_service import (
    Charge, MetalComponentInput, GemstoneComponentInput, OtherCharge,
    PricingResult, calculate_product_price, calculate_component_subtotals,
)
from jewelbox.services.sequence_service import next_sequence, format_product_code
from jewelbox.utils.formatters import slugify
from jewelbox.utils.number_format import (
    MAX_PRICE, MEASURE_QUANT, parse_decimal, parse_int, parse_weight
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateOverride:
    """Substitute one variant's rate when pricing a product."""
    entity_type: str
    entity_id: int
    variant_id: int
    rate: Decimal

    def applies_to_metal(self, component: ProductMetalComponent) -> bool:
        return (self.entity_type == 'metal'
                and component.metal_id == self.entity_id
                and component.variant_id == self.variant_id)

    def applies_to_gemstone(self, component: ProductGemstoneComponent) -> bool:
        return (self.entity_type == 'gemstone'
                and component.gemstone_id == self.entity_id
                and component.variant_id == self.variant_id)


def _component_charge(component) -> Charge:
    return Charge(type=component.component_wastage_type, value=component.component_wastage_value)


def _metal_rate(component, override: Optional[RateOverride]) -> Decimal:
    if override is not None and override.applies_to_metal(component):
        return override.rate
    return Decimal(component.price_per_gram)


def _gemstone_rate(component, override: Optional[RateOverride]) -> Decimal:
    if override is not None and override.applies_to_gemstone(component):
        return override.rate
    return Decimal(component.price_per_carat)


def _pricing_inputs(product: Product, override: Optional[RateOverride]
                    ) -> Tuple[List[MetalComponentInput], List[GemstoneComponentInput]]:
    metal_inputs = [
        MetalComponentInput(
            weight_in_grams=c.weight_in_grams,
            price_per_gram=_metal_rate(c, override),
            wastage=_component_charge(c),
        )
        for c in product.metal_components
    ]
    gemstone_inputs = [
        GemstoneComponentInput(
            weight_in_carats=c.weight_in_carats,
            price_per_carat=_gemstone_rate(c, override),
            quantity=c.quantity,
            wastage=_component_charge(c),
        )
        for c in product.gemstone_components
    ]
    return metal_inputs, gemstone_inputs


def price_product(product: Product, override: Optional[RateOverride] = None) -> PricingResult:
    """Run the pricing engine over a product's stored composition."""
    metal_inputs, gemstone_inputs = _pricing_inputs(product, override)
    return calculate_product_price(
        metal_composition=metal_inputs,
        gemstone_composition=gemstone_inputs,
        making_charges=Charge(type=product.making_charge_type, value=product.making_charge_value),
        product_wastage=Charge(type=product.product_wastage_type, value=product.product_wastage_value),
        gst_percentage=product.gst_percentage,
        other_charges=[OtherCharge(name=c['name'], amount=c['amount']) for c in (product.other_charges or [])],
    )


def apply_pricing(product: Product, result: PricingResult, override: Optional[RateOverride] = None,
                  synced_at: Optional[datetime] = None) -> None:
    """
    Persist a pricing result on the product.

    With an override, the overridden components take the new rate so that
    stored rates and component subtotals stay consistent with the snapshot.

    Raises:
        ValidationError: the total does not fit the price columns
    """
    if result.total_price > MAX_PRICE:
        raise ValidationError(
            f"Price of '{product.name}' would exceed {MAX_PRICE}",
            payload={'product_code': product.product_code},
        )

    metal_inputs, gemstone_inputs = _pricing_inputs(product, override)
    metal_subtotals, gemstone_subtotals = calculate_component_subtotals(metal_inputs, gemstone_inputs)
    for c, comp, subtotal in zip(product.metal_components, metal_inputs, metal_subtotals):
        c.price_per_gram = comp.price_per_gram
        c.subtotal = subtotal
    for c, comp, subtotal in zip(product.gemstone_components, gemstone_inputs, gemstone_subtotals):
        c.price_per_carat = comp.price_per_carat
        c.subtotal = subtotal

    product.metal_total = result.metal_total
    product.gemstone_total = result.gemstone_total
    product.making_charge_amount = result.making_charge_amount
    product.wastage_charge_amount = result.wastage_charge_amount
    product.other_charges_total = result.other_charges_total
    product.subtotal = result.subtotal
    product.gst_amount = result.gst_amount
    product.total_price = result.total_price
    product.last_price_sync = synced_at or datetime.now(timezone.utc)


def _parse_wastage(raw: Dict[str, Any], field: str) -> Charge:
    data = raw.get('component_wastage')
    if data is None:
        return Charge(type='percentage', value=0)
    return Charge.from_dict(data, field)


def _build_metal_components(session, raw_components) -> List[ProductMetalComponent]:
    if not isinstance(raw_components, list):
        raise ValidationError('metal_composition must be a list')

    components = []
    for position, raw in enumerate(raw_components):
        if not isinstance(raw, dict):
            raise ValidationError('Each metal component must be an object')
        field = f'metal_composition[{position}]'
        metal_id = parse_int(raw.get('metal_id'), f'{field}.metal_id', minimum=1)
        variant_id = parse_int(raw.get('variant_id'), f'{field}.variant_id', minimum=1)
        weight = parse_weight(raw.get('weight_in_grams'), f'{field}.weight_in_grams')
        wastage = _parse_wastage(raw, f'{field}.component_wastage')

        ref = lookup_variant(session, 'metal', metal_id, variant_id)
        components.append(ProductMetalComponent(
            position=position,
            metal_id=metal_id,
            variant_id=variant_id,
            variant_name=ref.display_name,
            weight_in_grams=weight,
            price_per_gram=ref.rate,
            subtotal=weight * ref.rate,
            component_wastage_type=wastage.type.value,
            component_wastage_value=wastage.value,
        ))
    return components


def _build_gemstone_components(session, raw_components) -> List[ProductGemstoneComponent]:
    if not isinstance(raw_components, list):
        raise ValidationError('gemstone_composition must be a list')

    components = []
    for position, raw in enumerate(raw_components):
        if not isinstance(raw, dict):
            raise ValidationError('Each gemstone component must be an object')
        field = f'gemstone_composition[{position}]'
        gemstone_id = parse_int(raw.get('gemstone_id'), f'{field}.gemstone_id', minimum=1)
        variant_id = parse_int(raw.get('variant_id'), f'{field}.variant_id', minimum=1)
        weight = parse_weight(raw.get('weight_in_carats'), f'{field}.weight_in_carats')
        quantity = parse_int(raw.get('quantity'), f'{field}.quantity', minimum=1, default=1)
        wastage = _parse_wastage(raw, f'{field}.component_wastage')

        ref = lookup_variant(session, 'gemstone', gemstone_id, variant_id)
        components.append(ProductGemstoneComponent(
            position=position,
            gemstone_id=gemstone_id,
            variant_id=variant_id,
            variant_name=ref.display_name,
            weight_in_carats=weight,
            quantity=quantity,
            price_per_carat=ref.rate,
            subtotal=weight * ref.rate * quantity,
            component_wastage_type=wastage.type.value,
            component_wastage_value=wastage.value,
        ))
    return components


def _refresh_component_rates(session, product: Product) -> None:
    """Pull current catalog rates into components that were not resubmitted."""
    for c in product.metal_components:
        ref = lookup_variant(session, 'metal', c.metal_id, c.variant_id)
        c.price_per_gram = ref.rate
        c.variant_name = ref.display_name
    for c in product.gemstone_components:
        ref = lookup_variant(session, 'gemstone', c.gemstone_id, c.variant_id)
        c.price_per_carat = ref.rate
        c.variant_name = ref.display_name


def _parse_other_charges(raw) -> List[dict]:
    if not isinstance(raw, list):
        raise ValidationError('other_charges must be a list')
    return [OtherCharge.from_dict(item).to_dict() for item in raw]


def _apply_fields(product: Product, data: Dict[str, Any], creating: bool, default_gst) -> None:
    """Copy the editable (non-derived) fields of a payload onto a product."""
    if creating or 'name' in data:
        name = str(data.get('name') or '').strip()
        if not name:
            raise ValidationError('Product name is required')
        if len(name) > 200:
            raise ValidationError('Product name must be at most 200 characters')
        product.name = name

    if creating or 'description' in data:
        product.description = str(data.get('description') or '').strip()

    if creating or 'gender' in data:
        gender = data.get('gender') or 'unisex'
        if gender not in GENDERS:
            raise ValidationError(f"gender must be one of {', '.join(GENDERS)}")
        product.gender = gender

    if 'is_active' in data:
        product.is_active = bool(data['is_active'])
    elif creating:
        product.is_active = True

    if creating or 'making_charges' in data:
        charge = Charge.from_dict(data.get('making_charges'), 'making_charges')
        product.making_charge_type = charge.type.value
        product.making_charge_value = charge.value

    if creating or 'product_wastage' in data:
        charge = Charge.from_dict(data.get('product_wastage'), 'product_wastage')
        product.product_wastage_type = charge.type.value
        product.product_wastage_value = charge.value

    if creating or 'gst_percentage' in data:
        product.gst_percentage = parse_decimal(
            data.get('gst_percentage'), 'gst_percentage', minimum=0, maximum=100,
            default=default_gst, quant=MEASURE_QUANT
        )

    if creating or 'other_charges' in data:
        product.other_charges = _parse_other_charges(data.get('other_charges') or [])


def _unique_slug(session, name: str, product_code: str, exclude_id: Optional[int] = None) -> str:
    slug = slugify(name) or slugify(product_code)
    query = session.query(Product.id).filter(Product.slug == slug)
    if exclude_id:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        slug = f"{slug}-{slugify(product_code)}"
    return slug


def _check_code_available(session, product_code: str, exclude_id: Optional[int] = None):
    query = session.query(Product.id).filter(Product.product_code == product_code)
    if exclude_id:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(f"Product code '{product_code}' already exists")


def create_product(session, data: Dict[str, Any], code_prefix: str = 'AJ', default_gst=3) -> Product:
    """
    Create a product priced from the current catalog rates.

    Args:
        session: SQLAlchemy session
        data: request payload; derived price fields are ignored
        code_prefix: prefix for generated product codes
        default_gst: GST percentage used when the payload has none

    Raises:
        ValidationError, NotFoundError (unknown metal/gemstone/variant),
        ConflictError (duplicate product code)
    """
    try:
        product = Product()
        _apply_fields(product, data, creating=True, default_gst=default_gst)
        product.metal_components = _build_metal_components(session, data.get('metal_composition') or [])
        product.gemstone_components = _build_gemstone_components(session, data.get('gemstone_composition') or [])

        product_code = str(data.get('product_code') or '').strip()
        if product_code:
            _check_code_available(session, product_code)
        else:
            seq = next_sequence(session, 'product', code_prefix, 0)
            product_code = format_product_code(code_prefix, product.name, seq)
        product.product_code = product_code
        product.slug = _unique_slug(session, product.name, product_code)

        apply_pricing(product, price_product(product))

        session.add(product)
        session.commit()
        logger.info(f"[PRODUCT] Created {product.id} {product.product_code} total={product.total_price}")
        return product

    except (ValidationError, NotFoundError, ConflictError):
        session.rollback()
        raise
    except IntegrityError:
        session.rollback()
        raise ConflictError('A product with this code or slug already exists')
    except Exception:
        session.rollback()
        raise


def update_product(session, product_id: int, data: Dict[str, Any], default_gst=3) -> Product:
    """
    Update a product and re-price it.

    Compositions sent in the payload replace the stored ones; components not
    resubmitted keep their weights but take the current catalog rate.
    """
    product = get_product(session, product_id)

    try:
        _apply_fields(product, data, creating=False, default_gst=default_gst)

        if 'metal_composition' in data:
            product.metal_components = _build_metal_components(session, data.get('metal_composition') or [])
        if 'gemstone_composition' in data:
            product.gemstone_components = _build_gemstone_components(session, data.get('gemstone_composition') or [])
        _refresh_component_rates(session, product)

        if data.get('product_code'):
            product_code = str(data['product_code']).strip()
            _check_code_available(session, product_code, exclude_id=product.id)
            product.product_code = product_code
        if 'name' in data or 'product_code' in data:
            product.slug = _unique_slug(session, product.name, product.product_code, exclude_id=product.id)

        apply_pricing(product, price_product(product))

        session.commit()
        logger.info(f"[PRODUCT] Updated {product.id} total={product.total_price}")
        return product

    except (ValidationError, NotFoundError, ConflictError):
        session.rollback()
        raise
    except IntegrityError:
        session.rollback()
        raise ConflictError('A product with this code or slug already exists')
    except Exception:
        session.rollback()
        raise


def get_product(session, product_id: int) -> Product:
    product = session.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError('Product not found')
    return product


def delete_product(session, product_id: int) -> None:
    """Delete a product. Issued bills keep their frozen snapshots."""
    product = get_product(session, product_id)
    try:
        session.delete(product)
        session.commit()
        logger.info(f"[PRODUCT] Deleted {product_id}")
    except Exception:
        session.rollback()
        raise


def find_products_using_variant(session, entity_type: str, entity_id: int, variant_id: int) -> List[Product]:
    """All products whose composition references the exact (entity, variant) pair."""
    if entity_type == 'metal':
        component = ProductMetalComponent
        entity_column = ProductMetalComponent.metal_id
    elif entity_type == 'gemstone':
        component = ProductGemstoneComponent
        entity_column = ProductGemstoneComponent.gemstone_id
    else:
        raise ValidationError("entity_type must be 'metal' or 'gemstone'")

    product_ids = [row[0] for row in session.query(component.product_id).filter(
        entity_column == entity_id,
        component.variant_id == variant_id
    ).distinct().all()]
    if not product_ids:
        return []

    return session.query(Product).filter(Product.id.in_(product_ids)).order_by(Product.id).all()
