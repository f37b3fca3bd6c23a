"""
Validation gate deciding whether a material may be migrated
"""
from data_mapper import normalize_unit_type, safe_str
from logger import setup_logger
from models import ValidationOutcome

logger = setup_logger(__name__)

class ValidationGate:
    """Checks required fields and catalog references of a Material.

    Reference lookups go through ``reference_checker``, which must provide
    ``category_exists(category_id)`` and ``find_unit_of_measure(name)``.
    Lookup errors are not caught here; the caller decides how to report them.
    """

    def __init__(self, reference_checker):
        self.references = reference_checker

    def resolve_unit(self, unit_type):
        """Return the id of the unit of measure for unit_type, or None"""
        unit_type = safe_str(unit_type).strip()
        if not unit_type:
            return None
        unit_id = self.references.find_unit_of_measure(unit_type)
        if unit_id is not None:
            return unit_id
        canonical_name = normalize_unit_type(unit_type)[0]
        if canonical_name != unit_type:
            return self.references.find_unit_of_measure(canonical_name)
        return None

    def resolve_category(self, category_id):
        """Return category_id if the product catalog knows it, else None"""
        if category_id is None:
            return None
        return category_id if self.references.category_exists(category_id) else None

    def validate(self, material, skip_validation=False, force_migration=False):
        """Decide whether ``material`` may be migrated.

        With skip_validation the outcome always passes and references are
        resolved on a best-effort basis. With force_migration a failed check
        still passes, but every error is returned as a warning and unresolved
        references are left as None.
        """
        if material is None:
            return ValidationOutcome(passed=False, errors=("Material not found or unreadable",))

        category_id = self.resolve_category(material.category_id)
        unit_of_measure_id = self.resolve_unit(material.unit_type)

        if skip_validation:
            return ValidationOutcome(
                passed=True,
                category_id=category_id,
                unit_of_measure_id=unit_of_measure_id,
            )

        errors = []
        if not safe_str(material.name).strip():
            errors.append("Material name is required")
        if not safe_str(material.unit_type).strip():
            errors.append("Unit type is required")
        elif unit_of_measure_id is None:
            errors.append(f"Unit of measure '{material.unit_type}' does not exist")
        if material.unit_value is None or material.unit_value <= 0:
            errors.append("Unit value must be greater than 0")
        if material.stock_quantity is None or material.stock_quantity < 0:
            errors.append("Stock quantity cannot be negative")
        if material.category_id is not None and category_id is None:
            errors.append(f"Category {material.category_id} does not exist")

        if not errors:
            return ValidationOutcome(
                passed=True,
                category_id=category_id,
                unit_of_measure_id=unit_of_measure_id,
            )

        if not force_migration:
            logger.warning(f"Material {material.id} validation failed: {', '.join(errors)}")
            return ValidationOutcome(passed=False, errors=tuple(errors))

        logger.warning(
            f"Material {material.id} validation failed but proceeding with force migration: {', '.join(errors)}"
        )
        return ValidationOutcome(
            passed=True,
            warnings=tuple(errors),
            category_id=category_id,
            unit_of_measure_id=unit_of_measure_id,
        )
