"""Object storage sessions for partwriter."""

from typing import TYPE_CHECKING

from partwriter.storage.backend import ObjectStorageSession

if TYPE_CHECKING:
    from partwriter.config import StorageConfig

__all__ = [
    "create_storage_session",
    "ObjectStorageSession",
]


def create_storage_session(config: "StorageConfig") -> ObjectStorageSession:
    """Create an object storage session based on configuration.

    The AWS session still needs ``await session.init()`` before use.

    Args:
        config: The storage configuration.

    Returns:
        A session implementing the ObjectStorageSession protocol.

    Raises:
        ValueError: If the backend is unknown.
    """
    backend = config.backend

    if backend == "aws":
        from partwriter.storage.aws import AWSMultipartSession

        return AWSMultipartSession(
            region=config.aws.region,
            endpoint_url=config.aws.endpoint_url,
            use_path_style=config.aws.use_path_style,
            access_key_id=config.aws.access_key_id,
            secret_access_key=config.aws.secret_access_key,
        )

    elif backend == "memory":
        from partwriter.storage.memory import MemoryMultipartSession

        return MemoryMultipartSession(min_part_size=config.memory_min_part_size)

    else:
        raise ValueError(f"Unknown storage backend: {backend}")
