"""AWS S3 object storage session for partwriter.

Drives native S3 multipart uploads via aiobotocore:

    begin        -> CreateMultipartUpload (canned ACL set here only)
    upload_part  -> UploadPart (ContentLength + ContentMD5)
    complete     -> CompleteMultipartUpload
    abort        -> AbortMultipartUpload

Credentials are resolved via the standard AWS credential chain
(env vars, ~/.aws/credentials, IAM role, etc.) unless given explicitly.
"""

import logging
from typing import BinaryIO

from aiobotocore.session import AioSession
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from partwriter.errors import CompletionFailure, PartUploadFailure, SessionStartFailure
from partwriter.models import PartReceipt, UploadSession

logger = logging.getLogger(__name__)


def _error_code(exc: Exception) -> str:
    """Return the S3 error code of a botocore error, or its class name."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "") or "ClientError"
    return type(exc).__name__


class AWSMultipartSession:
    """Object storage session backed by a real S3 (or S3-compatible) endpoint.

    Call ``init()`` before use and ``close()`` when done, or use the
    instance as an async context manager.

    Attributes:
        region: The AWS region.
        endpoint_url: Custom endpoint URL (empty for AWS).
        use_path_style: Whether to use path-style bucket addressing.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        endpoint_url: str = "",
        use_path_style: bool = False,
        access_key_id: str = "",
        secret_access_key: str = "",
    ) -> None:
        self.region = region
        self.endpoint_url = endpoint_url
        self.use_path_style = use_path_style
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self._session = AioSession()
        self._client = None
        self._client_ctx = None

    async def init(self) -> None:
        """Create the aiobotocore S3 client."""
        # Build client kwargs from config
        client_kwargs: dict = {"region_name": self.region}
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.use_path_style:
            client_kwargs["config"] = BotoConfig(s3={"addressing_style": "path"})

        # Use explicit credentials if provided, otherwise fall back to chain
        if self.access_key_id and self.secret_access_key:
            session = AioSession()
            session.set_credentials(self.access_key_id, self.secret_access_key)
            self._session = session
        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()

        logger.info(
            "AWS multipart session initialized: region=%s endpoint=%s",
            self.region,
            self.endpoint_url or "default",
        )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def __aenter__(self) -> "AWSMultipartSession":
        await self.init()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def begin(self, bucket: str, key: str, acl: str | None = None) -> UploadSession:
        """Start a native S3 multipart upload.

        Raises:
            SessionStartFailure: If S3 refuses the request.
        """
        kwargs: dict = {"Bucket": bucket, "Key": key}
        if acl:
            kwargs["ACL"] = acl
        try:
            resp = await self._client.create_multipart_upload(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise SessionStartFailure(
                f"Cannot start multipart upload for {bucket}/{key}: {_error_code(e)}"
            ) from e
        return UploadSession(bucket=bucket, key=key, upload_id=resp["UploadId"], acl=acl)

    async def upload_part(
        self,
        session: UploadSession,
        part_number: int,
        body: BinaryIO,
        size: int,
        is_last_part: bool,
        content_md5: str,
    ) -> PartReceipt:
        """Upload one part with its Content-MD5 for server-side verification.

        S3 has no notion of a last part; ``is_last_part`` is only logged.

        Raises:
            PartUploadFailure: If S3 rejects the part.
        """
        logger.debug(
            "UploadPart %s part=%d size=%d last=%s",
            session.upload_id,
            part_number,
            size,
            is_last_part,
        )
        try:
            resp = await self._client.upload_part(
                Bucket=session.bucket,
                Key=session.key,
                UploadId=session.upload_id,
                PartNumber=part_number,
                Body=body,
                ContentLength=size,
                ContentMD5=content_md5,
            )
        except (ClientError, BotoCoreError) as e:
            raise PartUploadFailure(
                part_number,
                f"Cannot upload part {part_number} of {session.upload_id}: {_error_code(e)}",
            ) from e
        return PartReceipt(part_number=part_number, etag=resp["ETag"], size=size)

    async def complete(self, session: UploadSession, receipts: list[PartReceipt]) -> str:
        """Complete the upload with the ordered part manifest.

        Returns:
            The object ETag (quotes stripped).

        Raises:
            CompletionFailure: If S3 rejects the request.
        """
        try:
            resp = await self._client.complete_multipart_upload(
                Bucket=session.bucket,
                Key=session.key,
                UploadId=session.upload_id,
                MultipartUpload={"Parts": [r.to_manifest_entry() for r in receipts]},
            )
        except (ClientError, BotoCoreError) as e:
            raise CompletionFailure(
                f"Cannot complete multipart upload {session.upload_id}: {_error_code(e)}"
            ) from e
        return resp.get("ETag", "").strip('"')

    async def abort(self, session: UploadSession) -> None:
        """Abort the upload. Errors propagate to the caller."""
        await self._client.abort_multipart_upload(
            Bucket=session.bucket,
            Key=session.key,
            UploadId=session.upload_id,
        )
