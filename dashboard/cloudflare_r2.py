"""
Track audio stored in a Cloudflare R2 bucket.

Cloudflare R2 is S3-compatible and offers zero egress fees, which suits
streaming the uploaded tracks straight from the bucket.
"""

import logging
from typing import Optional, Dict, Any, List

import boto3
from botocore.exceptions import ClientError, NoCredentialsError, BotoCoreError

from .storage_provider import S3StorageProvider, StorageError

logger = logging.getLogger(__name__)


def _storage_error(e: ClientError, action: str) -> StorageError:
    """Convert a botocore ClientError into a StorageError carrying status/code."""
    error = e.response.get('Error', {})
    status = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    code = error.get('Code')
    message = error.get('Message') or str(e)
    if code == 'NoSuchBucket':
        message = f"Bucket not found: {message}"
    return StorageError(f"{action} failed: {message}", status=status, code=code)


class CloudflareR2Provider(S3StorageProvider):
    """
    R2 bucket accessed through the boto3 S3 client.

    Public URLs need the bucket's r2.dev or custom domain configured as
    ``public_base_url``; without it only signed URLs are available.
    """

    def __init__(self):
        self.s3_client = None
        self.bucket_name = None
        self.endpoint_url = None
        self.account_id = None
        self.public_base_url = None

    def authenticate(self, credentials: Dict[str, Any]) -> bool:
        """
        Create the S3 client and check that the bucket answers.

        Needs account_id, access_key_id and secret_access_key; bucket and
        public_base_url are optional.
        """
        try:
            self.account_id = credentials['account_id']
            self.endpoint_url = f"https://{self.account_id}.r2.cloudflarestorage.com"
            self.bucket_name = credentials.get('bucket')
            self.public_base_url = credentials.get('public_base_url')

            self.s3_client = boto3.client(
                's3',
                endpoint_url=self.endpoint_url,
                aws_access_key_id=credentials['access_key_id'],
                aws_secret_access_key=credentials['secret_access_key'],
                region_name='auto'  # R2 uses 'auto' region
            )

            if self.bucket_name:
                self.s3_client.head_bucket(Bucket=self.bucket_name)
            else:
                self.s3_client.list_buckets()
            return True

        except (ClientError, NoCredentialsError, BotoCoreError, KeyError) as e:
            logger.error("R2 authentication failed: %s", e)
            return False

    def upload_file(self, local_path: str, remote_key: str,
                    content_type: Optional[str] = None,
                    cache_control: Optional[str] = None) -> None:
        extra_args = {}
        if content_type:
            extra_args['ContentType'] = content_type
        if cache_control:
            extra_args['CacheControl'] = f"max-age={cache_control}"
        try:
            self.s3_client.upload_file(
                local_path, self.bucket_name, remote_key,
                ExtraArgs=extra_args
            )
        except ClientError as e:
            raise _storage_error(e, "Upload") from e
        except (BotoCoreError, OSError) as e:
            raise StorageError(f"Upload failed: {e}") from e

    def upload_bytes(self, data: bytes, remote_key: str,
                     content_type: Optional[str] = None,
                     cache_control: Optional[str] = None) -> None:
        kwargs = {'Bucket': self.bucket_name, 'Key': remote_key, 'Body': data}
        if content_type:
            kwargs['ContentType'] = content_type
        if cache_control:
            kwargs['CacheControl'] = f"max-age={cache_control}"
        try:
            self.s3_client.put_object(**kwargs)
        except ClientError as e:
            raise _storage_error(e, "Upload") from e
        except BotoCoreError as e:
            raise StorageError(f"Upload failed: {e}") from e

    def download_file(self, remote_key: str, local_path: str) -> bool:
        try:
            self.s3_client.download_file(self.bucket_name, remote_key, local_path)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error("Download failed: %s", e)
            return False

    def delete_file(self, remote_key: str) -> bool:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=remote_key)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error("Delete failed: %s", e)
            return False

    def file_exists(self, remote_key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=remote_key)
            return True
        except ClientError:
            return False

    def list_files(self, prefix: Optional[str] = None,
                   limit: Optional[int] = None) -> List[Dict[str, Any]]:
        kwargs = {'Bucket': self.bucket_name}
        if prefix:
            kwargs['Prefix'] = prefix

        files = []
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(**kwargs):
                for obj in page.get('Contents', []):
                    files.append({
                        'key': obj['Key'],
                        'size': obj['Size'],
                        'modified': obj['LastModified'].isoformat(),
                    })
                    if limit is not None and len(files) >= limit:
                        return files
        except ClientError as e:
            raise _storage_error(e, "List") from e
        except BotoCoreError as e:
            raise StorageError(f"List failed: {e}") from e
        return files

    def get_public_url(self, remote_key: str) -> str:
        if not self.public_base_url:
            raise StorageError("Bucket has no public URL configured", status=403, code="NoPublicAccess")
        return f"{self.public_base_url.rstrip('/')}/{remote_key}"

    def get_signed_url(self, remote_key: str, expires_in: int = 3600) -> str:
        """Presigned GET URL."""
        try:
            return self.s3_client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket_name, 'Key': remote_key},
                ExpiresIn=expires_in
            )
        except ClientError as e:
            raise _storage_error(e, "URL generation") from e
        except BotoCoreError as e:
            raise StorageError(f"URL generation failed: {e}") from e
