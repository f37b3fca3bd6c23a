"""
Data mapping functions to convert legacy Material records to the
BaseProduct / ProductVariant model
"""
import json
from decimal import Decimal

from errors import TransformFailure
from logger import setup_logger
from models import BaseProduct, ProductVariant

logger = setup_logger(__name__)

# alias -> (canonical name, symbol, kind)
UNIT_ALIASES = {}
for _aliases, _unit in (
    (('kg', 'kilogram', 'kilograms'), ('Kilogram', 'kg', 'Weight')),
    (('g', 'gram', 'grams'), ('Gram', 'g', 'Weight')),
    (('lb', 'pound', 'pounds'), ('Pound', 'lb', 'Weight')),
    (('l', 'liter', 'liters', 'litre', 'litres'), ('Liter', 'L', 'Volume')),
    (('ml', 'milliliter', 'milliliters', 'millilitre', 'millilitres'), ('Milliliter', 'mL', 'Volume')),
    (('m', 'meter', 'meters', 'metre', 'metres'), ('Meter', 'm', 'Length')),
    (('cm', 'centimeter', 'centimeters'), ('Centimeter', 'cm', 'Length')),
    (('mm', 'millimeter', 'millimeters'), ('Millimeter', 'mm', 'Length')),
    (('pcs', 'piece', 'pieces'), ('Piece', 'pcs', 'Count')),
    (('box', 'boxes'), ('Box', 'box', 'Count')),
):
    for _alias in _aliases:
        UNIT_ALIASES[_alias] = _unit

def safe_str(value, default=''):
    """Convert value to string, handling None and other types safely"""
    if value is None:
        return default
    return str(value)

def normalize_unit_type(unit_type):
    """Map a legacy unit type to its canonical (name, symbol, kind)

    Unknown unit types map to themselves with kind 'Other'.
    """
    unit_type = safe_str(unit_type).strip()
    return UNIT_ALIASES.get(unit_type.lower(), (unit_type, unit_type, 'Other'))

def decode_photos(value):
    """Decode the legacy photo list, stored as a JSON array of URLs"""
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(safe_str(p) for p in value if p)
    if not safe_str(value).strip():
        return ()
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        logger.warning(f"Failed to deserialize photos JSON: {value!r}")
        return ()
    if not isinstance(decoded, list):
        logger.warning(f"Photos JSON is not a list: {value!r}")
        return ()
    return tuple(safe_str(p) for p in decoded if p)

def decode_properties(value):
    """Decode the legacy dynamic property bag, stored as a JSON object"""
    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    if not safe_str(value).strip():
        return {}
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        logger.warning(f"Failed to deserialize dynamic properties JSON: {value!r}")
        return {}
    if not isinstance(decoded, dict):
        logger.warning(f"Dynamic properties JSON is not an object: {value!r}")
        return {}
    return decoded

class DataMapper:

    @staticmethod
    def map_base_product(material, category_id=None):
        """Map a Material to a BaseProduct draft (no identity yet)"""
        return BaseProduct(
            name=safe_str(material.name).strip(),
            description=material.description or None,
            category_id=category_id,
        )

    @staticmethod
    def map_product_variant(material, unit_of_measure_id=None):
        """Map a Material to its single ProductVariant draft

        The variant carries the material's own name; the owning BaseProduct
        is linked at persist time.
        """
        return ProductVariant(
            name=safe_str(material.name).strip(),
            stock_quantity=material.stock_quantity if material.stock_quantity is not None else Decimal('0'),
            unit_of_measure_id=unit_of_measure_id,
            unit_value=material.unit_value if material.unit_value is not None else Decimal('0'),
            usage_notes=material.usage_notes or None,
            photos=decode_photos(material.photos),
            dynamic_properties=decode_properties(material.dynamic_properties),
        )

    @staticmethod
    def map_material(material, category_id=None, unit_of_measure_id=None):
        """Map a Material to a (BaseProduct, ProductVariant) pair

        category_id and unit_of_measure_id are the references already resolved
        against the product catalog; None means "leave unset".
        """
        if material is None:
            raise TransformFailure("Cannot map a missing material")

        base_product = DataMapper.map_base_product(material, category_id)
        variant = DataMapper.map_product_variant(material, unit_of_measure_id)

        if not base_product.name:
            raise TransformFailure(f"Material {material.id} has no name to map")

        logger.debug(f"Mapped material {material.id} -> product '{base_product.name}'")
        return base_product, variant
