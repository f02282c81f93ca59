"""S3 access for stored report emails"""
import logging
from typing import Iterator, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# One attempt per call; redelivery is left to the queue
S3_CONFIG = Config(
    retries={"max_attempts": 1, "mode": "standard"},
    connect_timeout=10,
    read_timeout=60,
)


class ObjectFetchError(Exception):
    """Raised when an object cannot be read from S3"""

    def __init__(self, bucket: str, key: str, message: str):
        self.bucket = bucket
        self.key = key
        super().__init__(f"s3://{bucket}/{key}: {message}")


class S3ObjectStore:
    """Fetches and lists raw report emails in S3"""

    def __init__(self, client=None, region_name: Optional[str] = None):
        self.client = client or boto3.client("s3", region_name=region_name, config=S3_CONFIG)

    def fetch(self, bucket: str, key: str) -> bytes:
        """
        Read an object's full content

        Raises:
            ObjectFetchError: If the object is missing or the request fails
        """
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in ("NoSuchKey", "404"):
                raise ObjectFetchError(bucket, key, "object not found")
            if error_code == "NoSuchBucket":
                raise ObjectFetchError(bucket, key, "bucket not found")
            raise ObjectFetchError(bucket, key, f"{error_code or 'request failed'}: {e}")
        except BotoCoreError as e:
            raise ObjectFetchError(bucket, key, str(e))

    def list_keys(self, bucket: str, prefix: str = "") -> Iterator[str]:
        """Yield every object key in a bucket under a prefix"""
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    yield obj["Key"]
        except (ClientError, BotoCoreError) as e:
            raise ObjectFetchError(bucket, prefix, f"listing failed: {e}")
