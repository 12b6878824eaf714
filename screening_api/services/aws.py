"""
AWS clients
One boto3 session per process; static keys are used when configured,
otherwise the default credential chain (instance/task role) applies
"""
from functools import lru_cache

import boto3

from screening_api.config import get_settings


@lru_cache()
def get_boto_session() -> boto3.session.Session:
    settings = get_settings()
    if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
        return boto3.session.Session(
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION,
        )
    return boto3.session.Session(region_name=settings.AWS_REGION)


@lru_cache()
def get_dynamodb_resource():
    return get_boto_session().resource("dynamodb")


@lru_cache()
def get_s3_client():
    return get_boto_session().client("s3")


@lru_cache()
def get_sns_client():
    return get_boto_session().client("sns")
