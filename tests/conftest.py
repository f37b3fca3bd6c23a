"""
Shared fixtures: in-memory stand-ins for the catalog collaborators.
"""
import itertools
import threading
from dataclasses import replace
from decimal import Decimal

import pytest

from migration_engine import MigrationEngine
from models import Material, utcnow


class InMemoryMaterialStore:
    """Legacy material reader backed by a dict (insertion ordered)."""

    def __init__(self, materials=()):
        self.materials = {m.id: m for m in materials}
        self.fail_listing = False

    def add(self, material):
        self.materials[material.id] = material

    def get_material(self, material_id):
        return self.materials.get(material_id)

    def get_all_material_ids(self):
        if self.fail_listing:
            raise ConnectionError("legacy catalog unavailable")
        return list(self.materials)


class InMemoryProductCatalog:
    """Product writer and reference checker backed by dicts."""

    def __init__(self, categories=(), units=None):
        self.categories = set(categories)
        self.units = dict(units or {})
        self.base_products = {}
        self.variants = {}
        self.deleted_base_products = []
        self.fail_variants_named = set()
        self.fail_base_products_named = set()
        self.fail_deletes = False
        self.before_create = None
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _next_id(self, prefix):
        with self._lock:
            return f"{prefix}-{next(self._ids)}"

    def create_base_product(self, base_product):
        if self.before_create is not None:
            self.before_create(base_product)
        if base_product.name in self.fail_base_products_named:
            raise IOError(f"write rejected for {base_product.name}")
        now = utcnow()
        created = replace(base_product, id=self._next_id("bp"), created_at=now, updated_at=now)
        with self._lock:
            self.base_products[created.id] = created
        return created

    def create_product_variant(self, variant):
        if variant.base_product_id not in self.base_products:
            raise LookupError(f"base product {variant.base_product_id} does not exist")
        if variant.name in self.fail_variants_named:
            raise IOError(f"write rejected for variant {variant.name}")
        now = utcnow()
        created = replace(variant, id=self._next_id("pv"), created_at=now, updated_at=now)
        with self._lock:
            self.variants[created.id] = created
        return created

    def delete_base_product(self, base_product_id):
        if self.fail_deletes:
            raise IOError("delete rejected")
        with self._lock:
            self.base_products.pop(base_product_id, None)
            self.deleted_base_products.append(base_product_id)

    def category_exists(self, category_id):
        return category_id in self.categories

    def find_unit_of_measure(self, name):
        return self.units.get(name)


class RecordingPublisher:
    def __init__(self):
        self.events = []
        self.on_publish = None
        self._lock = threading.Lock()

    def publish(self, event):
        with self._lock:
            self.events.append(event)
            count = len(self.events)
        if self.on_publish is not None:
            self.on_publish(event, count)


def make_material(material_id, **overrides):
    fields = {
        "id": material_id,
        "name": f"Material {material_id}",
        "unit_type": "pcs",
        "description": f"Legacy material {material_id}",
        "category_id": "cat-tools",
        "unit_value": Decimal("1"),
        "stock_quantity": Decimal("10"),
        "usage_notes": None,
        "photos": None,
        "dynamic_properties": None,
    }
    fields.update(overrides)
    return Material(**fields)


@pytest.fixture
def material_store():
    return InMemoryMaterialStore()


@pytest.fixture
def product_catalog():
    return InMemoryProductCatalog(
        categories={"cat-tools", "cat-paint"},
        units={"Piece": "uom-pcs", "Liter": "uom-l", "Kilogram": "uom-kg"},
    )


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def engine(material_store, product_catalog, publisher):
    return MigrationEngine(material_store, product_catalog, product_catalog, publisher)
