"""
Data model for the Material -> BaseProduct/ProductVariant migration
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from errors import FAILURES_BY_KIND, NotFoundFailure, ValidationFailure


def utcnow():
    return datetime.now(timezone.utc)


def to_decimal(value, default=Decimal('0')):
    """Convert a JSON number or string to Decimal, falling back to default"""
    if value is None or value == '':
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def _parse_timestamp(value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace('Z', '+00:00'))


class MigrationStage(Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    TRANSFORMING = "transforming"
    PERSISTING = "persisting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Material:
    """Legacy catalog entry. Never modified by the migration."""
    id: str
    name: str
    unit_type: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    unit_value: Decimal = Decimal('0')
    stock_quantity: Decimal = Decimal('0')
    usage_notes: Optional[str] = None
    # Legacy storage keeps these as JSON text; lists/dicts are accepted too
    photos: Any = None
    dynamic_properties: Any = None

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data.get('id')),
            name=data.get('name') or '',
            unit_type=data.get('unit_type') or '',
            description=data.get('description'),
            category_id=data.get('category_id'),
            unit_value=to_decimal(data.get('unit_value')),
            stock_quantity=to_decimal(data.get('stock_quantity')),
            usage_notes=data.get('usage_notes'),
            photos=data.get('photos'),
            dynamic_properties=data.get('dynamic_properties'),
        )


@dataclass(frozen=True)
class BaseProduct:
    name: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_payload(self):
        return {
            'name': self.name,
            'description': self.description,
            'category_id': self.category_id,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data['id']) if data.get('id') is not None else None,
            name=data.get('name') or '',
            description=data.get('description'),
            category_id=data.get('category_id'),
            created_at=_parse_timestamp(data.get('created_at')),
            updated_at=_parse_timestamp(data.get('updated_at')),
        )


@dataclass(frozen=True)
class ProductVariant:
    name: str
    base_product_id: Optional[str] = None
    stock_quantity: Decimal = Decimal('0')
    unit_of_measure_id: Optional[str] = None
    unit_value: Decimal = Decimal('0')
    usage_notes: Optional[str] = None
    photos: Tuple[str, ...] = ()
    dynamic_properties: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_payload(self):
        return {
            'base_product_id': self.base_product_id,
            'name': self.name,
            'stock_quantity': str(self.stock_quantity),
            'unit_of_measure_id': self.unit_of_measure_id,
            'unit_value': str(self.unit_value),
            'usage_notes': self.usage_notes,
            'photos': list(self.photos),
            'dynamic_properties': dict(self.dynamic_properties),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data['id']) if data.get('id') is not None else None,
            base_product_id=data.get('base_product_id'),
            name=data.get('name') or '',
            stock_quantity=to_decimal(data.get('stock_quantity')),
            unit_of_measure_id=data.get('unit_of_measure_id'),
            unit_value=to_decimal(data.get('unit_value')),
            usage_notes=data.get('usage_notes'),
            photos=tuple(data.get('photos') or ()),
            dynamic_properties=dict(data.get('dynamic_properties') or {}),
            created_at=_parse_timestamp(data.get('created_at')),
            updated_at=_parse_timestamp(data.get('updated_at')),
        )


@dataclass(frozen=True)
class ValidationOutcome:
    passed: bool
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    category_id: Optional[str] = None
    unit_of_measure_id: Optional[str] = None


@dataclass(frozen=True)
class MigrationResult:
    """Outcome of one material migration attempt"""
    material_id: str
    success: bool
    base_product_id: Optional[str] = None
    product_variant_id: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    validation_errors: Tuple[str, ...] = ()
    migrated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def succeeded(cls, material_id, base_product_id, product_variant_id, warnings=()):
        warnings = tuple(warnings)
        message = f"Migrated with warnings: {'; '.join(warnings)}" if warnings else None
        return cls(
            material_id=material_id,
            success=True,
            base_product_id=base_product_id,
            product_variant_id=product_variant_id,
            error_message=message,
            warnings=warnings,
        )

    @classmethod
    def failed(cls, material_id, error, base_product_id=None, warnings=()):
        """Build a failed result from a MigrationError"""
        return cls(
            material_id=material_id,
            success=False,
            base_product_id=base_product_id,
            error_message=str(error),
            error_kind=getattr(error, 'kind', None) or 'unexpected',
            warnings=tuple(warnings),
            validation_errors=tuple(getattr(error, 'errors', ())),
        )

    def raise_for_status(self):
        """Raise the failure this result describes. Does nothing on success."""
        if self.success:
            return
        if self.error_kind == NotFoundFailure.kind:
            raise NotFoundFailure(self.material_id)
        if self.error_kind == ValidationFailure.kind:
            raise ValidationFailure(self.material_id, self.validation_errors)
        failure_cls = FAILURES_BY_KIND.get(self.error_kind)
        if failure_cls is None:
            raise RuntimeError(self.error_message)
        raise failure_cls(self.error_message)

    def to_dict(self):
        data = asdict(self)
        data['migrated_at'] = self.migrated_at.isoformat()
        data['warnings'] = list(self.warnings)
        data['validation_errors'] = list(self.validation_errors)
        return data


@dataclass(frozen=True)
class BulkMigrationResult:
    """Aggregate of a bulk run, results in submission order"""
    total_processed: int
    successful_migrations: int
    failed_migrations: int
    results: Tuple[MigrationResult, ...] = ()
    migrated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    cancelled: bool = False
    aborted: bool = False
    orphaned_base_product_ids: Tuple[str, ...] = ()

    @property
    def success_rate(self):
        if self.total_processed == 0:
            return 0.0
        return self.successful_migrations / self.total_processed * 100

    @property
    def duration_seconds(self):
        if self.started_at is None:
            return 0.0
        return (self.migrated_at - self.started_at).total_seconds()

    @property
    def failures(self):
        return [r for r in self.results if not r.success]

    def summary(self):
        return {
            'total_processed': self.total_processed,
            'successful_migrations': self.successful_migrations,
            'failed_migrations': self.failed_migrations,
            'success_rate': round(self.success_rate, 1),
            'duration_seconds': round(self.duration_seconds, 2),
            'cancelled': self.cancelled,
            'aborted': self.aborted,
            'orphaned_base_products': len(self.orphaned_base_product_ids),
        }

    def to_dict(self):
        return {
            **self.summary(),
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'migrated_at': self.migrated_at.isoformat(),
            'orphaned_base_product_ids': list(self.orphaned_base_product_ids),
            'results': [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class MigrationOptions:
    """Flags controlling a bulk migration run"""
    batch_size: int = 10
    skip_validation: bool = False
    continue_on_error: bool = True
    force_migration: bool = False
    max_workers: Optional[int] = None

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    @property
    def worker_count(self):
        """Pool size for one batch, never larger than the batch itself"""
        if self.max_workers is None:
            return self.batch_size
        return min(self.max_workers, self.batch_size)


@dataclass(frozen=True)
class MaterialMigratedEvent:
    material_id: str
    base_product_id: str
    product_variant_id: str
    user_id: str
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self):
        return {
            'type': 'material.migrated',
            'material_id': self.material_id,
            'base_product_id': self.base_product_id,
            'product_variant_id': self.product_variant_id,
            'user_id': self.user_id,
            'occurred_at': self.occurred_at.isoformat(),
        }
