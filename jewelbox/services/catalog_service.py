"""
Catalog service: metals, gemstones and their priced variants.

Variant rates are changed only through price_sync_service so that every
product using a variant is re-priced in the same transaction. Updating a
metal or gemstone here edits names, purity and grading, never rates of
existing variants.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from jewelbox.exceptions import ValidationError, NotFoundError, ConflictError
from jewelbox.models import (
    Metal, MetalVariant, Gemstone, GemstoneVariant,
    ProductMetalComponent, ProductGemstoneComponent,
    METAL_UNITS, GEMSTONE_UNITS,
)
from jewelbox.utils.formatters import slugify
from jewelbox.utils.number_format import MEASURE_QUANT, parse_decimal, parse_rate

logger = logging.getLogger(__name__)

ENTITY_TYPES = ('metal', 'gemstone')


@dataclass
class VariantRef:
    """Result of an entity lookup: the variant and its current rate."""
    entity_type: str
    entity: Any
    variant: Any

    @property
    def rate(self) -> Decimal:
        return Decimal(self.variant.rate)

    @property
    def unit(self) -> str:
        return self.variant.unit

    @property
    def display_name(self) -> str:
        return f"{self.entity.name} {self.variant.name}"


def _entity_classes(entity_type: str):
    if entity_type == 'metal':
        return Metal, MetalVariant
    if entity_type == 'gemstone':
        return Gemstone, GemstoneVariant
    raise ValidationError("entity_type must be 'metal' or 'gemstone'")


def _parse_name(value, field='name', max_length=50) -> str:
    name = str(value or '').strip()
    if not name:
        raise ValidationError(f'{field} is required')
    if len(name) > max_length:
        raise ValidationError(f'{field} must be at most {max_length} characters')
    return name


def _parse_metal_variant(data: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError('Each variant must be an object')
    unit = data.get('unit') or 'gram'
    if unit not in METAL_UNITS:
        raise ValidationError(f"unit must be one of {', '.join(METAL_UNITS)}")
    return {
        'name': _parse_name(data.get('name'), 'Variant name', 100),
        'purity': parse_decimal(data.get('purity'), 'purity', minimum=0, maximum=100, quant=MEASURE_QUANT),
        'price_per_gram': parse_rate(data.get('price_per_gram'), 'price_per_gram'),
        'unit': unit,
    }


def _parse_gemstone_variant(data: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError('Each variant must be an object')
    unit = data.get('unit') or 'carat'
    if unit not in GEMSTONE_UNITS:
        raise ValidationError(f"unit must be one of {', '.join(GEMSTONE_UNITS)}")
    return {
        'name': _parse_name(data.get('name'), 'Variant name', 100),
        'cut': str(data.get('cut') or '').strip(),
        'clarity': str(data.get('clarity') or '').strip(),
        'color': str(data.get('color') or '').strip(),
        'price_per_carat': parse_rate(data.get('price_per_carat'), 'price_per_carat'),
        'unit': unit,
    }


_VARIANT_PARSERS = {
    'metal': (_parse_metal_variant, 'price_per_gram'),
    'gemstone': (_parse_gemstone_variant, 'price_per_carat'),
}


def _check_name_available(session, model, name: str, exclude_id: Optional[int] = None):
    query = session.query(model).filter(func.lower(model.name) == name.lower())
    if exclude_id:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise ConflictError(f"A {model.__tablename__} named '{name}' already exists")


def _variant_in_use(session, entity_type: str, variant_id: int) -> bool:
    component = ProductMetalComponent if entity_type == 'metal' else ProductGemstoneComponent
    return session.query(component.id).filter(component.variant_id == variant_id).first() is not None


def create_entity(session, entity_type: str, data: Dict[str, Any]):
    """
    Create a metal or gemstone with at least one variant.

    Raises:
        ValidationError: invalid payload
        ConflictError: name already taken
    """
    model, variant_model = _entity_classes(entity_type)
    parse_variant, _ = _VARIANT_PARSERS[entity_type]

    name = _parse_name(data.get('name'))
    raw_variants = data.get('variants') or []
    if not isinstance(raw_variants, list) or not raw_variants:
        raise ValidationError('At least one variant is required')
    variants = [parse_variant(v) for v in raw_variants]

    try:
        _check_name_available(session, model, name)
        entity = model(
            name=name,
            slug=slugify(name),
            is_active=bool(data.get('is_active', True)),
            variants=[variant_model(**v) for v in variants],
        )
        session.add(entity)
        session.commit()
        logger.info(f"[CATALOG] Created {entity_type} {entity.id} '{name}' with {len(variants)} variants")
        return entity

    except ConflictError:
        session.rollback()
        raise
    except IntegrityError:
        session.rollback()
        raise ConflictError(f"A {entity_type} named '{name}' already exists")
    except Exception:
        session.rollback()
        raise


def update_entity(session, entity_type: str, entity_id: int, data: Dict[str, Any]):
    """
    Update name/active flag and variant details of a metal or gemstone.

    Variants carrying an 'id' are edited in place, variants without one are
    added, and existing variants missing from the payload are removed unless
    a product still uses them. A changed rate on an existing variant is
    rejected: rates move through the pricing sync.
    """
    model, variant_model = _entity_classes(entity_type)
    parse_variant, rate_field = _VARIANT_PARSERS[entity_type]

    entity = session.query(model).filter(model.id == entity_id).first()
    if not entity:
        raise NotFoundError(f'{entity_type.capitalize()} not found')

    try:
        if 'name' in data:
            name = _parse_name(data.get('name'))
            _check_name_available(session, model, name, exclude_id=entity.id)
            entity.name = name
            entity.slug = slugify(name)

        if 'is_active' in data:
            entity.is_active = bool(data['is_active'])

        if 'variants' in data:
            raw_variants = data.get('variants') or []
            if not isinstance(raw_variants, list) or not raw_variants:
                raise ValidationError('At least one variant is required')

            existing = {v.id: v for v in entity.variants}
            kept_ids = set()
            for raw in raw_variants:
                parsed = parse_variant(raw)
                variant_id = raw.get('id')
                if variant_id is None:
                    entity.variants.append(variant_model(**parsed))
                    continue

                variant = existing.get(variant_id)
                if variant is None:
                    raise NotFoundError(f'Variant {variant_id} not found')
                if Decimal(getattr(variant, rate_field)) != parsed[rate_field]:
                    raise ValidationError(
                        f"Use the pricing sync to change the rate of '{variant.name}'"
                    )
                for key, value in parsed.items():
                    setattr(variant, key, value)
                kept_ids.add(variant_id)

            for variant_id, variant in existing.items():
                if variant_id in kept_ids:
                    continue
                if _variant_in_use(session, entity_type, variant_id):
                    raise ConflictError(
                        f"Variant '{variant.name}' is used by products and cannot be removed"
                    )
                entity.variants.remove(variant)

        session.commit()
        logger.info(f"[CATALOG] Updated {entity_type} {entity.id}")
        return entity

    except (ValidationError, NotFoundError, ConflictError):
        session.rollback()
        raise
    except IntegrityError:
        session.rollback()
        raise ConflictError(f"A {entity_type} with that name already exists")
    except Exception:
        session.rollback()
        raise


def delete_entity(session, entity_type: str, entity_id: int) -> None:
    """Delete a metal or gemstone that no product references."""
    model, _ = _entity_classes(entity_type)
    entity = session.query(model).filter(model.id == entity_id).first()
    if not entity:
        raise NotFoundError(f'{entity_type.capitalize()} not found')

    for variant in entity.variants:
        if _variant_in_use(session, entity_type, variant.id):
            raise ConflictError(
                f"{entity.name} is used by products and cannot be deleted"
            )

    try:
        session.delete(entity)
        session.commit()
        logger.info(f"[CATALOG] Deleted {entity_type} {entity_id}")
    except Exception:
        session.rollback()
        raise


def get_entity(session, entity_type: str, entity_id: int):
    model, _ = _entity_classes(entity_type)
    entity = session.query(model).filter(model.id == entity_id).first()
    if not entity:
        raise NotFoundError(f'{entity_type.capitalize()} not found')
    return entity


def list_entities(session, entity_type: str, active_only: bool = False) -> List[Any]:
    model, _ = _entity_classes(entity_type)
    query = session.query(model)
    if active_only:
        query = query.filter(model.is_active.is_(True))
    return query.order_by(model.name).all()


def lookup_variant(session, entity_type: str, entity_id: int, variant_id: int, for_update: bool = False) -> VariantRef:
    """
    Resolve (entity_type, entity_id, variant_id) to the variant and its rate.

    Raises:
        ValidationError: unknown entity_type
        NotFoundError: entity or variant does not exist
    """
    model, variant_model = _entity_classes(entity_type)
    entity = session.query(model).filter(model.id == entity_id).first()
    if not entity:
        raise NotFoundError(f'{entity_type.capitalize()} not found')

    parent_fk = variant_model.metal_id if entity_type == 'metal' else variant_model.gemstone_id
    query = session.query(variant_model).filter(
        variant_model.id == variant_id,
        parent_fk == entity_id
    )
    if for_update:
        query = query.with_for_update()
    variant = query.first()
    if not variant:
        raise NotFoundError('Variant not found')

    return VariantRef(entity_type=entity_type, entity=entity, variant=variant)
