"""partwriter - stream bytes into object storage as one multipart upload."""

__version__ = "0.1.0"
