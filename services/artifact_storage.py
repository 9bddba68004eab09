"""
Artifact Storage Service for Signed Envelopes

Stores signed envelope PDFs privately in Supabase Storage. Keys are paths
within the bucket and are what DocumentEnvelope.signed_file_key records.

An in-process backend stands in for Supabase in development and tests
(ARTIFACT_STORAGE=memory).
"""

import logging
import threading
from typing import Dict, Mapping, Any

from supabase import create_client, Client

logger = logging.getLogger(__name__)

SIGNED_ARTIFACTS_BUCKET = 'deal-documents'


def signed_artifact_path(org_id: str, deal_id: str, envelope_id: str) -> str:
    """Storage path for an envelope's combined signed PDF."""
    return f"{org_id}/deals/{deal_id}/signed/signed-envelope-{envelope_id}.pdf"


class ArtifactStorageError(Exception):
    """Raised when an artifact cannot be stored or read."""
    pass


class SupabaseArtifactStorage:
    """
    Supabase Storage backend.

    The client is created on first use from SUPABASE_URL and SUPABASE_KEY.
    """

    def __init__(self, supabase_url: str, supabase_key: str, bucket: str = SIGNED_ARTIFACTS_BUCKET):
        self.supabase_url = supabase_url
        self.supabase_key = supabase_key
        self.bucket = bucket
        self._client: Client = None

    def get_client(self) -> Client:
        if self._client is None:
            if not self.supabase_url or not self.supabase_key:
                raise ArtifactStorageError(
                    "SUPABASE_URL and SUPABASE_KEY are required for ARTIFACT_STORAGE=supabase. "
                    "Get these from your Supabase project settings."
                )
            self._client = create_client(self.supabase_url, self.supabase_key)
        return self._client

    def put(self, key: str, data: bytes, content_type: str = 'application/pdf') -> str:
        """
        Upload bytes to the bucket, overwriting any existing object.

        Returns:
            The storage key
        """
        client = self.get_client()
        try:
            client.storage.from_(self.bucket).upload(
                path=key,
                file=data,
                file_options={'content-type': content_type, 'upsert': 'true'}
            )
        except Exception as e:
            logger.error(f"Failed to upload artifact {key}: {e}")
            raise ArtifactStorageError(f"Failed to upload artifact {key}: {e}")

        logger.info(f"Stored artifact {key} ({len(data)} bytes)")
        return key

    def get(self, key: str) -> bytes:
        client = self.get_client()
        try:
            return client.storage.from_(self.bucket).download(key)
        except Exception as e:
            logger.error(f"Failed to download artifact {key}: {e}")
            raise ArtifactStorageError(f"Failed to download artifact {key}: {e}")


class MemoryArtifactStorage:
    """Process-local backend; contents vanish with the app."""

    def __init__(self):
        self._objects: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str = 'application/pdf') -> str:
        with self._lock:
            self._objects[key] = bytes(data)
        return key

    def get(self, key: str) -> bytes:
        with self._lock:
            if key not in self._objects:
                raise ArtifactStorageError(f"Artifact not found: {key}")
            return self._objects[key]

    def __contains__(self, key):
        with self._lock:
            return key in self._objects


def build_artifact_storage(config: Mapping[str, Any]):
    """Pick the backend named by ARTIFACT_STORAGE ('memory' or 'supabase')."""
    backend = (config.get('ARTIFACT_STORAGE') or 'memory').lower()
    if backend == 'supabase':
        return SupabaseArtifactStorage(
            config.get('SUPABASE_URL'),
            config.get('SUPABASE_KEY'),
            bucket=config.get('SIGNED_ARTIFACTS_BUCKET') or SIGNED_ARTIFACTS_BUCKET
        )
    if backend == 'memory':
        return MemoryArtifactStorage()
    raise ValueError(f"Unknown ARTIFACT_STORAGE backend: {backend}")
