"""
Single material migration: validate -> transform -> persist -> publish
"""
from dataclasses import replace

from data_mapper import DataMapper
from errors import (
    MigrationError,
    NotFoundFailure,
    PersistenceFailure,
    TransformFailure,
    ValidationFailure,
)
from logger import setup_logger
from models import MaterialMigratedEvent, MigrationResult, MigrationStage

logger = setup_logger(__name__)

class MaterialMigrator:
    """Migrates one Material into a new BaseProduct and its single ProductVariant.

    BaseProduct and ProductVariant are written in two steps. When the variant
    write fails the BaseProduct is deleted again; if that delete fails too the
    result keeps the orphaned base_product_id so it can be cleaned up later.

    Every failure is returned as a failed MigrationResult, nothing is raised.
    """

    def __init__(self, material_reader, product_writer, validation_gate, event_publisher):
        self.materials = material_reader
        self.products = product_writer
        self.gate = validation_gate
        self.publisher = event_publisher

    def migrate_one(self, material_id, user_id, skip_validation=False, force_migration=False):
        logger.debug(f"Starting migration of material {material_id} by user {user_id}")
        stage = MigrationStage.PENDING
        warnings = ()

        try:
            stage = MigrationStage.VALIDATING
            material = self._read_material(material_id)
            outcome = self._validate(material, skip_validation, force_migration)
            if not outcome.passed:
                raise ValidationFailure(material_id, outcome.errors)
            warnings = outcome.warnings

            stage = MigrationStage.TRANSFORMING
            base_product, variant = self._transform(material, outcome)

            stage = MigrationStage.PERSISTING
            created_product, created_variant = self._persist(material_id, base_product, variant)

        except _OrphanedBaseProduct as e:
            logger.error(f"Failed to migrate material {material_id} during {stage.value}: {e}")
            return MigrationResult.failed(material_id, e.error, base_product_id=e.base_product_id, warnings=warnings)
        except MigrationError as e:
            if isinstance(e, (ValidationFailure, NotFoundFailure)):
                logger.warning(f"Material {material_id} not migrated: {e}")
            else:
                logger.error(f"Failed to migrate material {material_id} during {stage.value}: {e}")
            return MigrationResult.failed(material_id, e, warnings=warnings)

        self._publish(MaterialMigratedEvent(
            material_id=material_id,
            base_product_id=created_product.id,
            product_variant_id=created_variant.id,
            user_id=user_id,
        ))

        logger.info(
            f"Migrated material {material_id} to BaseProduct {created_product.id} "
            f"and ProductVariant {created_variant.id}"
        )
        return MigrationResult.succeeded(material_id, created_product.id, created_variant.id, warnings)

    def _read_material(self, material_id):
        try:
            material = self.materials.get_material(material_id)
        except Exception as e:
            raise PersistenceFailure(f"Failed to read material {material_id}: {e}") from e
        if material is None:
            raise NotFoundFailure(material_id)
        return material

    def _validate(self, material, skip_validation, force_migration):
        try:
            return self.gate.validate(material, skip_validation=skip_validation, force_migration=force_migration)
        except Exception as e:
            raise PersistenceFailure(f"Reference lookup failed for material {material.id}: {e}") from e

    def _transform(self, material, outcome):
        try:
            return DataMapper.map_material(
                material,
                category_id=outcome.category_id,
                unit_of_measure_id=outcome.unit_of_measure_id,
            )
        except TransformFailure:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error mapping material {material.id}")
            raise TransformFailure(f"Failed to map material {material.id}: {e}") from e

    def _persist(self, material_id, base_product, variant):
        try:
            created_product = self.products.create_base_product(base_product)
        except Exception as e:
            raise PersistenceFailure(f"Failed to create base product '{base_product.name}': {e}") from e

        try:
            created_variant = self.products.create_product_variant(
                replace(variant, base_product_id=created_product.id)
            )
        except Exception as e:
            error = PersistenceFailure(f"Failed to create product variant '{variant.name}': {e}")
            self._rollback_base_product(material_id, created_product.id, error)
            raise error from e

        return created_product, created_variant

    def _rollback_base_product(self, material_id, base_product_id, error):
        try:
            self.products.delete_base_product(base_product_id)
            logger.info(f"Rolled back base product {base_product_id} for material {material_id}")
        except Exception as cleanup_error:
            logger.error(
                f"Could not roll back base product {base_product_id} for material {material_id}, "
                f"left orphaned: {cleanup_error}"
            )
            raise _OrphanedBaseProduct(
                base_product_id,
                PersistenceFailure(f"{error}; orphaned base product {base_product_id}"),
            ) from cleanup_error

    def _publish(self, event):
        try:
            self.publisher.publish(event)
        except Exception as e:
            logger.warning(f"Failed to publish migration event for material {event.material_id}: {e}")

class _OrphanedBaseProduct(Exception):
    def __init__(self, base_product_id, error):
        super().__init__(str(error))
        self.base_product_id = base_product_id
        self.error = error
