"""CLI entry point for partwriter."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from urllib.parse import urlparse

from partwriter import metrics
from partwriter.config import PartWriterConfig, WriterConfig, load_config
from partwriter.errors import PartWriterError
from partwriter.logging_config import configure_logging
from partwriter.storage import create_storage_session
from partwriter.transfer import upload_fileobj

logger = logging.getLogger("partwriter")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="partwriter",
        description="Stream a file or stdin to object storage as a multipart upload",
    )
    parser.add_argument("source", help="File to upload, or '-' for stdin")
    parser.add_argument("destination", help="Target object as s3://BUCKET/KEY")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: built-in defaults)",
    )
    parser.add_argument(
        "--backend",
        type=str,
        default=None,
        choices=["aws", "memory"],
        help="Storage backend (overrides config)",
    )
    parser.add_argument(
        "--part-size",
        type=int,
        default=None,
        help="Part size in bytes (overrides config)",
    )
    parser.add_argument(
        "--acl",
        type=str,
        default=None,
        help="Canned ACL for the uploaded object, e.g. private (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--upload-log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level for partwriter loggers only (overrides config)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    return parser.parse_args(argv)


def parse_destination(url: str) -> tuple[str, str]:
    """Split an ``s3://bucket/key`` URL into bucket and key.

    Raises:
        ValueError: If the URL is not an s3 URL with both parts.
    """
    parsed = urlparse(url)
    key = parsed.path.lstrip("/")
    if parsed.scheme != "s3" or not parsed.netloc or not key:
        raise ValueError(f"Destination must look like s3://bucket/key, got {url!r}")
    return parsed.netloc, key


async def run_upload(config: PartWriterConfig, source: str, bucket: str, key: str) -> str:
    """Upload ``source`` with the storage session described by ``config``."""
    storage = create_storage_session(config.storage)
    init = getattr(storage, "init", None)
    if init is not None:
        await init()
    try:
        if source == "-":
            fileobj = sys.stdin.buffer
            return await _upload(storage, config, fileobj, bucket, key)
        with open(source, "rb") as fileobj:
            return await _upload(storage, config, fileobj, bucket, key)
    finally:
        close = getattr(storage, "close", None)
        if close is not None:
            await close()


async def _upload(storage, config: PartWriterConfig, fileobj, bucket: str, key: str) -> str:
    return await upload_fileobj(
        storage,
        fileobj,
        bucket,
        key,
        acl=config.writer.acl,
        part_size=config.writer.part_size,
        spool_max_size=config.writer.spool_max_size,
        staging_dir=config.writer.staging_dir or None,
    )


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the partwriter CLI.

    Loads configuration, applies CLI overrides, streams the source to the
    destination and prints the resulting ETag.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    try:
        config = load_config(args.config) if args.config is not None else PartWriterConfig()
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    # Apply CLI overrides
    try:
        if args.backend is not None:
            config.storage.backend = args.backend
        if args.part_size is not None:
            config.writer = WriterConfig(
                **{**config.writer.model_dump(), "part_size": args.part_size}
            )
        if args.acl is not None:
            config.writer.acl = args.acl
        bucket, key = parse_destination(args.destination)
    except ValueError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_format is not None:
        config.logging.format = args.log_format
    if args.upload_log_level is not None:
        config.logging.upload_level = args.upload_log_level

    # Configure structured logging (replaces basicConfig)
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        upload_level=config.logging.upload_level,
    )
    if config.observability.metrics:
        metrics.init_metrics()

    try:
        etag = asyncio.run(run_upload(config, args.source, bucket, key))
    except PartWriterError as exc:
        logger.error("Upload failed (%s): %s", exc.code, exc.message)
        sys.exit(1)
    except OSError as exc:
        logger.error("Cannot read %s: %s", args.source, exc)
        sys.exit(1)
    finally:
        # Exported on failure too
        if config.observability.metrics and config.observability.metrics_file:
            metrics.write_metrics_file(config.observability.metrics_file)

    print(etag)


if __name__ == "__main__":
    main()
