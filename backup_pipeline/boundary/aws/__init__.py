"""
AWS boundary modules.

Exports: S3StreamingUploader
"""

from .s3_client import S3StreamingUploader

__all__ = ["S3StreamingUploader"]
