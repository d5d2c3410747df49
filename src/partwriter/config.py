"""Configuration loading and Pydantic models for partwriter."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from partwriter.buffer import DEFAULT_SPOOL_MAX_SIZE
from partwriter.writer import MAX_PART_SIZE, PART_SIZE


class WriterConfig(BaseModel):
    """Multipart writer sizing and staging configuration."""

    part_size: int = PART_SIZE
    spool_max_size: int = DEFAULT_SPOOL_MAX_SIZE
    staging_dir: str = ""
    acl: str | None = None

    @field_validator("part_size")
    @classmethod
    def _check_part_size(cls, value: int) -> int:
        if not 0 < value <= MAX_PART_SIZE:
            raise ValueError(f"part_size must be between 1 and {MAX_PART_SIZE} bytes")
        return value

    @field_validator("spool_max_size")
    @classmethod
    def _check_spool_max_size(cls, value: int) -> int:
        if value < 0:
            raise ValueError("spool_max_size must not be negative")
        return value


class AWSConfig(BaseModel):
    """AWS S3 connection configuration."""

    region: str = "us-east-1"
    endpoint_url: str = ""
    use_path_style: bool = False
    access_key_id: str = ""
    secret_access_key: str = ""


class StorageConfig(BaseModel):
    """Object storage session configuration."""

    backend: str = "aws"
    aws: AWSConfig = Field(default_factory=AWSConfig)
    memory_min_part_size: int = 0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "text"
    upload_level: str = ""


class ObservabilityConfig(BaseModel):
    """Metrics configuration."""

    metrics: bool = False
    metrics_file: str = ""


class PartWriterConfig(BaseModel):
    """Top-level partwriter configuration."""

    writer: WriterConfig = Field(default_factory=WriterConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_writer(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the writer section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    result: dict[str, Any] = {}
    for field in ("part_size", "spool_max_size", "staging_dir", "acl"):
        if field in data:
            result[field] = data[field]
    return result


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    Handles nested structure: storage.memory.min_part_size -> memory_min_part_size
    """
    if data is None:
        return {}

    result: dict[str, Any] = {"backend": data.get("backend", "aws")}

    aws_section = data.get("aws")
    if isinstance(aws_section, dict):
        result["aws"] = AWSConfig(
            region=aws_section.get("region", "us-east-1"),
            endpoint_url=aws_section.get("endpoint_url", ""),
            use_path_style=aws_section.get("use_path_style", False),
            access_key_id=aws_section.get("access_key_id", ""),
            secret_access_key=aws_section.get("secret_access_key", ""),
        )

    memory_section = data.get("memory")
    if isinstance(memory_section, dict):
        result["memory_min_part_size"] = memory_section.get("min_part_size", 0)

    return result


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
        "upload_level": data.get("upload_level", ""),
    }


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section from YAML data."""
    if data is None:
        return {}
    return {
        "metrics": data.get("metrics", False),
        "metrics_file": data.get("metrics_file", ""),
    }


def load_config(path: Path) -> PartWriterConfig:
    """Load a PartWriterConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated PartWriterConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value is out of range.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return PartWriterConfig(
        writer=WriterConfig(**_parse_writer(raw.get("writer"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )
