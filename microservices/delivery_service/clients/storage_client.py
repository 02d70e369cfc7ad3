"""
Object Storage Client for Delivery Service

HTTP client for uploading delivery proof images
"""

import httpx
import logging
from typing import Optional

from core.errors import DependencyError

logger = logging.getLogger(__name__)


class StorageClient:
    """Client for the object storage bucket API"""

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 30.0):
        """
        Initialize Storage client

        Args:
            base_url: Storage API base URL
            api_key: Service key sent as bearer token
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = httpx.AsyncClient(timeout=timeout, headers=headers)
        logger.info(f"StorageClient initialized with base_url: {self.base_url}")

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/object/public/{bucket}/{path}"

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """
        Upload an object and return its public URL

        Raises:
            DependencyError: Storage unreachable or upload rejected
        """
        try:
            response = await self.client.post(
                f"{self.base_url}/object/{bucket}/{path}",
                content=content,
                headers={"Content-Type": content_type},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Upload of {bucket}/{path} rejected: {e.response.status_code}")
            raise DependencyError(
                f"Storage rejected upload {bucket}/{path}: {e.response.status_code}",
                user_message="Could not upload the image, please try again",
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Error uploading {bucket}/{path}: {e}")
            raise DependencyError(
                f"Storage upload {bucket}/{path} failed: {e}",
                user_message="Could not upload the image, please try again",
            ) from e

        return self.public_url(bucket, path)

    async def health_check(self) -> bool:
        """Check if storage is reachable"""
        try:
            response = await self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False
