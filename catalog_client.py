import threading
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import requests

from logger import setup_logger
from models import BaseProduct, Material, ProductVariant

logger = setup_logger(__name__)

class CatalogClient:
    """REST client with retry logic shared by the legacy and product catalogs"""

    api_prefix = ''
    user_agent = 'Material-Migrator/1.0'

    def __init__(self, url, access_token, max_retries=3, delay=1.0, timeout=30):
        self.url = url.rstrip('/')
        self.access_token = access_token
        self.max_retries = max_retries
        self.delay = delay
        self.timeout = timeout
        # requests.Session is not thread-safe, workers get one each
        self._local = threading.local()

    @property
    def session(self):
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            session.headers.update({
                'Authorization': f'Bearer {self.access_token}',
                'Content-Type': 'application/json',
                'User-Agent': self.user_agent
            })
            self._local.session = session
        return session

    def _make_request(self, method, endpoint, not_found_ok=False, **kwargs):
        """Make API request with retry logic

        Connection errors and 5xx responses are retried with exponential
        backoff. A 429 waits for Retry-After and counts as an attempt. Other
        4xx responses raise immediately. With not_found_ok a 404 returns None
        instead of raising.
        """
        url = f"{self.url}{self.api_prefix}/{endpoint}"
        kwargs.setdefault('timeout', self.timeout)

        attempt = 0
        while True:
            try:
                response = self.session.request(method, url, **kwargs)

                # Handle rate limiting, each 429 spends an attempt
                if response.status_code == 429:
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise requests.exceptions.HTTPError(
                            f"Still rate limited after {attempt} attempts: {url}", response=response
                        )
                    retry_after = self._retry_after(response)
                    logger.warning(f"Rate limited. Waiting {retry_after} seconds...")
                    time.sleep(retry_after)
                    continue

                if response.status_code == 404 and not_found_ok:
                    return None

                response.raise_for_status()
                return response.json() if response.content else None

            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status is not None and status < 500:
                    raise
                attempt += 1
                if attempt >= self.max_retries:
                    raise
                logger.warning(f"Request failed (attempt {attempt}/{self.max_retries}): {e}")
                time.sleep(self.delay * (2 ** (attempt - 1)))

            except requests.exceptions.RequestException as e:
                attempt += 1
                if attempt >= self.max_retries:
                    raise
                logger.warning(f"Request failed (attempt {attempt}/{self.max_retries}): {e}")
                time.sleep(self.delay * (2 ** (attempt - 1)))

    def _retry_after(self, response):
        """Seconds to wait from a Retry-After header, given in seconds or as an HTTP date"""
        value = response.headers.get('Retry-After')
        if value is None:
            return 60
        try:
            return max(0, int(value))
        except ValueError:
            pass
        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return self.delay
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)
        return max(0, (retry_at - datetime.now(timezone.utc)).total_seconds())

    def get_paginated_data(self, endpoint, per_page=100, params=None):
        """Get all items from a page/per_page paginated endpoint"""
        all_data = []
        page = 1

        while True:
            query = dict(params or {}, page=page, per_page=per_page)
            response = self._make_request('GET', endpoint, params=query)

            if not response:
                break

            all_data.extend(response)
            logger.debug(f"Retrieved {len(response)} {endpoint}, total: {len(all_data)}")

            if len(response) < per_page:
                break

            page += 1

        return all_data

    def test_connection(self):
        """Test the connection to the catalog"""
        try:
            self._make_request('GET', 'health')
            logger.info(f"Successfully connected to {self.url}")
            return True
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to connect to {self.url}: {e}")
            return False

class LegacyCatalogClient(CatalogClient):
    """Read-only access to legacy Material records"""

    api_prefix = '/api/legacy'

    def get_material(self, material_id):
        """Get a material by ID, None if it does not exist"""
        response = self._make_request('GET', f'materials/{material_id}', not_found_ok=True)
        if response is None:
            return None
        return Material.from_dict(response)

    def get_all_material_ids(self, per_page=100):
        """Get the IDs of every material, in catalog order"""
        materials = self.get_paginated_data('materials', per_page=per_page)
        ids = [str(m['id']) for m in materials]
        logger.info(f"Found {len(ids)} legacy materials")
        return ids

class ProductCatalogClient(CatalogClient):
    """Writes BaseProducts / ProductVariants and answers reference lookups"""

    api_prefix = '/api'

    def create_base_product(self, base_product):
        """Create a base product, returning it with identity and timestamps"""
        response = self._make_request('POST', 'base-products', json=base_product.to_payload())
        created = BaseProduct.from_dict(response)
        logger.debug(f"Created base product: {created.name} (ID: {created.id})")
        return created

    def create_product_variant(self, variant):
        """Create a product variant, returning it with identity and timestamps"""
        response = self._make_request('POST', 'product-variants', json=variant.to_payload())
        created = ProductVariant.from_dict(response)
        logger.debug(f"Created product variant: {created.name} (ID: {created.id})")
        return created

    def delete_base_product(self, base_product_id):
        """Delete a base product. Deleting one that is already gone is not an error."""
        self._make_request('DELETE', f'base-products/{base_product_id}', not_found_ok=True)
        logger.debug(f"Deleted base product: {base_product_id}")

    def category_exists(self, category_id):
        return self._make_request('GET', f'categories/{category_id}', not_found_ok=True) is not None

    def find_unit_of_measure(self, name):
        """Get the ID of the unit of measure with this name, None if unknown"""
        units = self._make_request('GET', 'units-of-measure', params={'name': name})
        for unit in units or []:
            if str(unit.get('name', '')).lower() == name.lower():
                return str(unit['id'])
        return None
