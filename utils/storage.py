import asyncio
import logging
from typing import Optional

from firebase_admin import storage as admin_storage

from core.errors import EvidenceUploadError
from core.firebase import get_storage_bucket_name, initialize_firebase

logger = logging.getLogger(__name__)

ALLOWED_EVIDENCE_TYPES = ["image/jpeg", "image/jpg"]


def evidence_object_key(worker_id: str, epoch_millis: int, event_type: str) -> str:
    """Object key for an evidence photo: <workerId>/<epochMillis>_<eventType>.jpg"""
    return f"{worker_id}/{epoch_millis}_{event_type}.jpg"


class FirebaseObjectStore:
    """
    Evidence photo storage in the Firebase Storage bucket.

    Uploaded objects carry no public download token; the returned URI is the
    gs:// path, readable only with service credentials.
    """

    def __init__(self, bucket_name: Optional[str] = None, prefix: str = "attendance_evidence"):
        self._bucket_name = bucket_name
        self._prefix = prefix.strip("/")

    def _blob(self, key: str):
        initialize_firebase()
        bucket = admin_storage.bucket(self._bucket_name or get_storage_bucket_name())
        return bucket.blob(f"{self._prefix}/{key}" if self._prefix else key)

    async def upload(self, data: bytes, key: str, content_type: str = "image/jpeg") -> str:
        if content_type not in ALLOWED_EVIDENCE_TYPES:
            raise EvidenceUploadError(
                f"Invalid evidence type {content_type}. Allowed types: {', '.join(ALLOWED_EVIDENCE_TYPES)}"
            )

        try:
            blob = self._blob(key)
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)

            # Strip any download token so the photo is not publicly reachable
            blob.metadata = {"firebaseStorageDownloadTokens": None}
            await asyncio.to_thread(blob.patch)
        except Exception as e:
            logger.warning(f"[STORAGE] Evidence upload failed for {key}: {type(e).__name__}: {e}")
            raise EvidenceUploadError(f"Could not upload evidence photo: {e}")

        uri = f"gs://{blob.bucket.name}/{blob.name}"
        logger.info(f"[STORAGE] Evidence uploaded: {uri} ({len(data)} bytes)")
        return uri

    async def delete(self, key: str) -> None:
        try:
            blob = self._blob(key)
            if await asyncio.to_thread(blob.exists):
                await asyncio.to_thread(blob.delete)
        except Exception as e:
            raise EvidenceUploadError(f"Could not delete evidence photo {key}: {e}")
