"""Local filesystem object storage for character images.

Objects live under ``STORAGE_ROOT/<bucket>/<key>`` and are served by the app
at ``/storage/<bucket>/<key>``. Writes are upserts: the last write to a key
wins.
"""

from pathlib import Path, PurePosixPath

from twinlink.services import config

STORAGE_ROOT = config.STORAGE_ROOT


def ensure_storage_root() -> Path:
    STORAGE_ROOT.mkdir(parents=True, exist_ok=True)
    return STORAGE_ROOT


def _object_path(bucket: str, key: str) -> Path:
    parts = PurePosixPath(key).parts
    if not parts or any(p in ("..", "/") for p in parts):
        raise ValueError(f"Invalid object key: {key!r}")
    return STORAGE_ROOT / bucket / Path(*parts)


def put_object(key: str, data: bytes, bucket: str = config.STORAGE_BUCKET) -> str:
    """Write ``data`` at ``key`` (overwriting) and return its public URL."""
    path = _object_path(bucket, key)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return public_object_url(key, bucket)


def public_object_url(key: str, bucket: str = config.STORAGE_BUCKET) -> str:
    return config.public_url(f"/storage/{bucket}/{key}")
