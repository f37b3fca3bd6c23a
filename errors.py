"""
Exceptions raised by the material migration tool
"""


class MigrationError(Exception):
    """Base class for all migration errors"""

    kind = None


class ValidationFailure(MigrationError):
    """Material failed required-field or reference checks"""

    kind = 'validation'

    def __init__(self, material_id, errors):
        self.material_id = material_id
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class TransformFailure(MigrationError):
    """Mapping a material to the product model broke an internal invariant"""

    kind = 'transform'


class PersistenceFailure(MigrationError):
    """A read or write against a catalog store failed"""

    kind = 'persistence'


class NotFoundFailure(MigrationError):
    """The requested material does not exist"""

    kind = 'not_found'

    def __init__(self, material_id):
        self.material_id = material_id
        super().__init__(f"Material with ID {material_id} not found")


class MaterialLookupError(MigrationError):
    """The set of materials to migrate could not be resolved"""


class ConfigurationError(ValueError):
    """Required configuration is missing or invalid"""


FAILURES_BY_KIND = {
    cls.kind: cls
    for cls in (ValidationFailure, TransformFailure, PersistenceFailure, NotFoundFailure)
}
