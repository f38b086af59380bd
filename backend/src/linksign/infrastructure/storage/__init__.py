"""Document storage backends."""

from linksign.infrastructure.storage.pinata import PinataStorage
from linksign.infrastructure.storage.s3 import S3Storage

__all__ = [
    "PinataStorage",
    "S3Storage",
]
