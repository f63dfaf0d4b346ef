"""
Storage backend abstraction for tabletgc.

A backend is rooted at a volume's base directory: table files live under
``tables/<tableId>/<tabletDir>/`` and the collector's own state under
``gc/`` and ``metadata/``.

Supports both local filesystem and S3-compatible storage (AWS S3, MinIO, etc.)
Configuration via environment variables:

Local filesystem (default):
    No configuration needed

S3-compatible storage:
    TABLETGC_STORAGE_TYPE=s3
    TABLETGC_S3_ENDPOINT=https://s3.amazonaws.com (or MinIO endpoint)
    TABLETGC_S3_ACCESS_KEY=your-access-key
    TABLETGC_S3_SECRET_KEY=your-secret-key
    TABLETGC_S3_BUCKET=your-bucket-name
    TABLETGC_S3_REGION=us-east-1
    TABLETGC_S3_PREFIX=optional/prefix/ (optional, default: "")
"""

import errno
import json
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional

from .logging_config import get_logger
from .retry import with_s3_retry

logger = get_logger(__name__)

try:
    import boto3
    from botocore.exceptions import ClientError

    BOTO3_AVAILABLE = True
except ImportError:
    BOTO3_AVAILABLE = False

# DeleteObjects accepts at most this many keys per request
S3_DELETE_BATCH = 1000


class StorageBackend(ABC):
    """Abstract base class for storage backends"""

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Read file contents as bytes"""
        pass

    @abstractmethod
    def open_file(self, path: str) -> Any:
        """Open file as a binary stream context manager"""
        pass

    @abstractmethod
    def write_file(self, path: str, content: bytes) -> None:
        """Write bytes to file"""
        pass

    def read_json(self, path: str) -> Dict[str, Any]:
        """Read JSON file"""
        content = self.read_file(path)
        return json.loads(content.decode("utf-8"))

    def write_json(self, path: str, data: Dict[str, Any]) -> None:
        """Write JSON to file"""
        content = json.dumps(data, indent=2).encode("utf-8")
        self.write_file(path, content)

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if a file or directory exists"""
        pass

    @abstractmethod
    def list_files(
        self,
        prefix: str,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[str]:
        """List files under prefix, relative to the backend root.

        Args:
            prefix: Directory or key prefix to list
            start_after: Only return paths sorting strictly after this one
            limit: Stop after this many paths

        Returns:
            Paths in byte order, ``/`` separated
        """
        pass

    @abstractmethod
    def delete_file(self, path: str) -> None:
        """Delete file. Deleting a missing file is not an error."""
        pass

    @abstractmethod
    def delete_tree(self, path: str) -> None:
        """Delete a directory and everything under it. Missing is not an error."""
        pass

    @abstractmethod
    def delete_dir_if_empty(self, path: str) -> bool:
        """Remove a directory only if it holds nothing. Returns True if it is gone."""
        pass

    @abstractmethod
    def makedirs(self, path: str, exist_ok: bool = True) -> None:
        """Create directory (no-op for S3)"""
        pass


class LocalStorageBackend(StorageBackend):
    """Local filesystem storage backend"""

    def __init__(self, base_path: str):
        self.base_path = base_path

    def _resolve_path(self, path: str) -> str:
        """Resolve path relative to base_path"""
        joined_path = os.path.join(self.base_path, path.lstrip("/"))

        # Canonicalize paths to resolve '..'
        full_path = os.path.abspath(joined_path)
        base_path = os.path.abspath(self.base_path)

        # Ensure the resolved path is within the base directory
        if full_path != base_path and not full_path.startswith(base_path + os.sep):
            raise ValueError(
                f"Security Error: Path traversal attempt detected. Resolved path '{full_path}' "
                f"is outside base directory '{base_path}'"
            )

        return full_path

    def read_file(self, path: str) -> bytes:
        full_path = self._resolve_path(path)
        with open(full_path, "rb") as f:
            return f.read()

    def open_file(self, path: str) -> Any:
        """Open local file for reading as a stream."""
        full_path = self._resolve_path(path)
        return open(full_path, "rb")

    def write_file(self, path: str, content: bytes) -> None:
        """Atomically write file with fsync for durability.

        Uses temp file + fsync + atomic rename so readers never see a
        partially written file.
        """
        logger.debug(f"Writing file: {path} ({len(content)} bytes)")

        full_path = self._resolve_path(path)
        dir_path = os.path.dirname(full_path)
        os.makedirs(dir_path, exist_ok=True)

        # Same directory keeps os.replace() atomic
        fd, temp_path = tempfile.mkstemp(
            dir=dir_path,
            prefix=".tmp.",
            suffix=f".{os.path.basename(full_path)}"
        )

        try:
            os.write(fd, content)
            os.fsync(fd)
            os.close(fd)
            os.replace(temp_path, full_path)
        except Exception:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    def exists(self, path: str) -> bool:
        full_path = self._resolve_path(path)
        return os.path.exists(full_path)

    def list_files(
        self,
        prefix: str,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[str]:
        full_prefix = self._resolve_path(prefix)
        if not os.path.exists(full_prefix):
            return []

        result: List[str] = []
        for rel_path in self._walk_sorted(full_prefix, start_after):
            result.append(rel_path)
            if limit is not None and len(result) >= limit:
                break
        return result

    def _walk_sorted(self, directory: str, start_after: Optional[str]) -> Iterator[str]:
        """Yield files under ``directory`` in the order S3 would list them.

        Subtrees that sort entirely before ``start_after`` are not entered.
        """
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except (FileNotFoundError, NotADirectoryError):
            return

        keyed = []
        for entry in entries:
            # Return path relative to base_path
            rel_path = os.path.relpath(entry.path, self.base_path).replace(os.sep, "/")
            if entry.is_dir():
                keyed.append((rel_path + "/", entry.path, True))
            elif not entry.name.startswith(".tmp."):
                keyed.append((rel_path, entry.path, False))

        for key, full_path, is_dir in sorted(keyed):
            if is_dir:
                if start_after and key < start_after and not start_after.startswith(key):
                    continue
                yield from self._walk_sorted(full_path, start_after)
            elif not start_after or key > start_after:
                yield key

    def delete_file(self, path: str) -> None:
        full_path = self._resolve_path(path)
        try:
            os.remove(full_path)
        except FileNotFoundError:
            pass

    def delete_tree(self, path: str) -> None:
        full_path = self._resolve_path(path)
        while os.path.isdir(full_path):
            try:
                shutil.rmtree(full_path)
            except FileNotFoundError:
                # an entry was removed concurrently, walk what is left
                continue
        if os.path.lexists(full_path):
            self.delete_file(path)

    def delete_dir_if_empty(self, path: str) -> bool:
        full_path = self._resolve_path(path)
        try:
            os.rmdir(full_path)
        except FileNotFoundError:
            return True
        except OSError as e:
            if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                logger.debug(f"Directory not empty, keeping it: {path}")
                return False
            raise
        return True

    def makedirs(self, path: str, exist_ok: bool = True) -> None:
        full_path = self._resolve_path(path)
        os.makedirs(full_path, exist_ok=exist_ok)


class S3FileStream:
    """Wrapper for S3 StreamingBody to support context manager protocol."""

    def __init__(self, body: Any):
        self.body = body

    def read(self, n: Optional[int] = None) -> bytes:
        return self.body.read(n)

    def close(self) -> None:
        self.body.close()

    def __enter__(self) -> "S3FileStream":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class S3StorageBackend(StorageBackend):
    """S3-compatible storage backend (AWS S3, MinIO, etc.)"""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: str = "us-east-1",
        prefix: str = "",
    ):
        if not BOTO3_AVAILABLE:
            raise ImportError(
                "boto3 is required for S3 storage backend. "
                "Install with: pip install tabletgc[s3]"
            )

        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.endpoint_url = endpoint_url
        self.region = region

        session = boto3.session.Session()

        s3_config = {
            "region_name": region,
        }

        if endpoint_url:
            s3_config["endpoint_url"] = endpoint_url

        if access_key and secret_key:
            s3_config["aws_access_key_id"] = access_key
            s3_config["aws_secret_access_key"] = secret_key

        self.s3 = session.client("s3", **s3_config)

    def _get_s3_key(self, path: str) -> str:
        """Convert path to S3 key"""
        path = path.lstrip("/")
        if self.prefix:
            return f"{self.prefix}/{path}"
        return path

    def _dir_prefix(self, path: str) -> str:
        key = self._get_s3_key(path)
        return key if key.endswith("/") else key + "/"

    def _iter_keys(
        self,
        s3_prefix: str,
        start_after: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Iterator[str]:
        """Yield keys lazily, so stopping early stops the listing requests."""
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": s3_prefix}
        if start_after:
            kwargs["StartAfter"] = start_after
        if page_size:
            kwargs["PaginationConfig"] = {"PageSize": min(page_size, 1000)}

        paginator = self.s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(**kwargs):
            for obj in page.get("Contents", []):
                yield obj["Key"]

    def _list_keys(self, s3_prefix: str) -> List[str]:
        return list(self._iter_keys(s3_prefix))

    def read_file(self, path: str) -> bytes:
        key = self._get_s3_key(path)
        logger.debug(f"Reading S3 file: s3://{self.bucket}/{key}")

        def read_op() -> bytes:
            try:
                response = self.s3.get_object(Bucket=self.bucket, Key=key)
                return response["Body"].read()
            except ClientError as e:
                if e.response["Error"]["Code"] == "NoSuchKey":
                    raise FileNotFoundError(
                        f"S3 object not found: s3://{self.bucket}/{key}"
                    ) from e
                raise

        return with_s3_retry(read_op, f"S3 read: {key}")

    def open_file(self, path: str) -> Any:
        """Open S3 object as a read-only binary stream."""
        key = self._get_s3_key(path)

        def open_op() -> Any:
            try:
                response = self.s3.get_object(Bucket=self.bucket, Key=key)
                return S3FileStream(response["Body"])
            except ClientError as e:
                if e.response["Error"]["Code"] == "NoSuchKey":
                    raise FileNotFoundError(
                        f"S3 object not found: s3://{self.bucket}/{key}"
                    ) from e
                raise

        return with_s3_retry(open_op, f"S3 open: {key}")

    def write_file(self, path: str, content: bytes) -> None:
        """Write file to S3. PutObject is atomic, no temp object needed."""
        key = self._get_s3_key(path)
        logger.debug(f"Writing S3 file: s3://{self.bucket}/{key} ({len(content)} bytes)")

        def write_op() -> None:
            self.s3.put_object(Bucket=self.bucket, Key=key, Body=content)

        with_s3_retry(write_op, f"S3 write: {key}")

    def exists(self, path: str) -> bool:
        key = self._get_s3_key(path)

        try:
            self.s3.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] not in ("404", "NoSuchKey"):
                raise

        # Directories exist as long as some object sits under them
        response = self.s3.list_objects_v2(Bucket=self.bucket, Prefix=self._dir_prefix(path), MaxKeys=1)
        return bool(response.get("Contents"))

    def list_files(
        self,
        prefix: str,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[str]:
        s3_start_after = self._get_s3_key(start_after) if start_after else None

        result: List[str] = []
        for key in self._iter_keys(self._get_s3_key(prefix), s3_start_after, limit):
            if self.prefix and key.startswith(self.prefix + "/"):
                key = key[len(self.prefix) + 1:]
            result.append(key)
            if limit is not None and len(result) >= limit:
                break
        return result

    def delete_file(self, path: str) -> None:
        key = self._get_s3_key(path)
        with_s3_retry(
            lambda: self.s3.delete_object(Bucket=self.bucket, Key=key),
            f"S3 delete: {key}",
        )

    def delete_tree(self, path: str) -> None:
        keys = self._list_keys(self._dir_prefix(path))
        # a tablet directory may also exist as a zero-byte marker object
        keys.append(self._get_s3_key(path).rstrip("/"))

        for start in range(0, len(keys), S3_DELETE_BATCH):
            chunk = keys[start:start + S3_DELETE_BATCH]
            response = with_s3_retry(
                lambda: self.s3.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
                ),
                f"S3 delete tree: {path}",
            )
            errors = response.get("Errors", [])
            if errors:
                raise IOError(
                    f"Failed to delete {len(errors)} objects under s3://{self.bucket}/{path}: "
                    f"{errors[0].get('Message', errors[0])}"
                )

    def delete_dir_if_empty(self, path: str) -> bool:
        """S3 has no real directories: one is gone once nothing is under it."""
        response = self.s3.list_objects_v2(Bucket=self.bucket, Prefix=self._dir_prefix(path), MaxKeys=1)
        return not response.get("Contents")

    def makedirs(self, path: str, exist_ok: bool = True) -> None:
        """No-op for S3 - directories don't need to be created"""
        pass


def create_storage_backend(base_path: str) -> StorageBackend:
    """
    Create storage backend based on environment configuration.

    Environment variables:
        TABLETGC_STORAGE_TYPE: "local" (default) or "s3"

        For S3:
            TABLETGC_S3_ENDPOINT: S3 endpoint URL (optional, for MinIO/custom endpoints)
            TABLETGC_S3_ACCESS_KEY: AWS access key
            TABLETGC_S3_SECRET_KEY: AWS secret key
            TABLETGC_S3_BUCKET: S3 bucket name
            TABLETGC_S3_REGION: AWS region (default: us-east-1)
            TABLETGC_S3_PREFIX: Optional prefix for all objects (default: "")

    Args:
        base_path: Volume base directory (local path or S3 key prefix)

    Returns:
        StorageBackend instance
    """
    storage_type = os.getenv("TABLETGC_STORAGE_TYPE", "local").lower()

    if storage_type == "s3":
        bucket = os.getenv("TABLETGC_S3_BUCKET")
        if not bucket:
            raise ValueError("TABLETGC_S3_BUCKET environment variable is required for S3 storage")

        endpoint_url = os.getenv("TABLETGC_S3_ENDPOINT")
        access_key = os.getenv("TABLETGC_S3_ACCESS_KEY")
        secret_key = os.getenv("TABLETGC_S3_SECRET_KEY")
        region = os.getenv("TABLETGC_S3_REGION", "us-east-1")
        env_prefix = os.getenv("TABLETGC_S3_PREFIX", "")

        # The volume's base directory lives under the configured prefix
        parts = [p.strip("/") for p in (env_prefix, base_path) if p.strip("/")]
        full_prefix = "/".join(parts)

        if not (access_key and secret_key):
            logger.info("No explicit S3 credentials provided. Using default AWS credential chain (IAM Role, Env Vars, etc.)")

        return S3StorageBackend(
            bucket=bucket,
            endpoint_url=endpoint_url,
            access_key=access_key,
            secret_key=secret_key,
            region=region,
            prefix=full_prefix,
        )
    elif storage_type == "local":
        return LocalStorageBackend(base_path)
    else:
        raise ValueError(f"Unknown TABLETGC_STORAGE_TYPE: {storage_type!r} (expected 'local' or 's3')")
