
import io
import logging
import re
import uuid
from functools import lru_cache
from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError
from .config import MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_BUCKET, MINIO_SECURE
from .errors import NotFound, UpstreamFailure

logger = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStore:
    """Object storage for uploaded files; keys double as the stored ``file_url``."""

    def __init__(self, client: Minio, bucket: str):
        self._client = client
        self._bucket = bucket

    def ensure_bucket(self):
        if not self._client.bucket_exists(self._bucket):
            self._client.make_bucket(self._bucket)

    def put(self, data: bytes, name: str, content_type: str = "application/octet-stream", prefix: str = "uploads") -> str:
        key = f"{prefix}/{uuid.uuid4().hex}-{_UNSAFE_NAME.sub('_', name) or 'file'}"
        try:
            self.ensure_bucket()
            self._client.put_object(self._bucket, key, io.BytesIO(data), length=len(data), content_type=content_type)
        except (S3Error, HTTPError) as exc:
            logger.error("blob put failed for %s: %s", key, exc)
            raise UpstreamFailure("Failed to upload file to storage") from exc
        return key

    def get(self, key: str) -> bytes:
        try:
            resp = self._client.get_object(self._bucket, key)
        except S3Error as exc:
            if exc.code == "NoSuchKey":
                raise NotFound("Stored file missing for this document") from exc
            raise UpstreamFailure("Failed to read file from storage") from exc
        except HTTPError as exc:
            raise UpstreamFailure("Failed to read file from storage") from exc
        try:
            return resp.read()
        finally:
            resp.close()
            resp.release_conn()

    def delete(self, key: str):
        try:
            self._client.remove_object(self._bucket, key)
        except (S3Error, HTTPError) as exc:
            logger.error("blob delete failed for %s: %s", key, exc)
            raise UpstreamFailure("Failed to delete file from storage") from exc


@lru_cache
def get_blob_store() -> BlobStore:
    client = Minio(
        MINIO_ENDPOINT,
        access_key=MINIO_ACCESS_KEY,
        secret_key=MINIO_SECRET_KEY,
        secure=MINIO_SECURE,
    )
    return BlobStore(client, MINIO_BUCKET)
