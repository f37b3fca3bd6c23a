import os
from dotenv import load_dotenv

from errors import ConfigurationError

# Load environment variables
load_dotenv()

class Config:
    # Legacy catalog (Material source)
    LEGACY_CATALOG_URL = os.getenv('LEGACY_CATALOG_URL')
    LEGACY_CATALOG_TOKEN = os.getenv('LEGACY_CATALOG_TOKEN')

    # Product catalog (BaseProduct / ProductVariant target)
    PRODUCT_CATALOG_URL = os.getenv('PRODUCT_CATALOG_URL')
    PRODUCT_CATALOG_TOKEN = os.getenv('PRODUCT_CATALOG_TOKEN')

    # Optional webhook receiving "material migrated" events
    EVENT_WEBHOOK_URL = os.getenv('EVENT_WEBHOOK_URL')

    # Migration Settings
    BATCH_SIZE = int(os.getenv('BATCH_SIZE', 10))
    MAX_WORKERS = int(os.getenv('MAX_WORKERS', 4))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    MAX_RETRIES = int(os.getenv('MAX_RETRIES', 3))
    DELAY_BETWEEN_REQUESTS = float(os.getenv('DELAY_BETWEEN_REQUESTS', 1))
    REQUEST_TIMEOUT = float(os.getenv('REQUEST_TIMEOUT', 30))

    # Validation
    @classmethod
    def validate(cls):
        """Validate that all required configuration is present"""
        required_fields = [
            'LEGACY_CATALOG_URL',
            'LEGACY_CATALOG_TOKEN',
            'PRODUCT_CATALOG_URL',
            'PRODUCT_CATALOG_TOKEN'
        ]

        missing_fields = []
        for field in required_fields:
            if not getattr(cls, field):
                missing_fields.append(field)

        if missing_fields:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing_fields)}")

        if cls.BATCH_SIZE < 1:
            raise ConfigurationError("BATCH_SIZE must be at least 1")
        if cls.MAX_WORKERS < 1:
            raise ConfigurationError("MAX_WORKERS must be at least 1")

        return True
