"""community_shared.aws_clients — Lazy-singleton AWS service clients.

Provides factory functions that create boto3 clients on first call and
cache them for subsequent invocations. This avoids paying the boto3 client
construction cost on cold starts until the client is actually needed.
"""

from __future__ import annotations

import os
from typing import Optional

import boto3
from botocore.config import Config

# ---------------------------------------------------------------------------
# Default region (overridable via env)
# ---------------------------------------------------------------------------

AWS_REGION: str = os.environ.get("AWS_REGION", "ap-northeast-1")
DYNAMODB_REGION: str = os.environ.get("DYNAMODB_REGION", AWS_REGION)
TRANSLATE_REGION: str = os.environ.get("TRANSLATE_REGION", AWS_REGION)
SSM_REGION: str = os.environ.get("SSM_REGION", AWS_REGION)
SECRETS_REGION: str = os.environ.get("SECRETS_REGION", AWS_REGION)

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_ddb = None
_translate = None
_ssm = None
_secretsmanager = None


def _get_ddb(region: Optional[str] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        _ddb = boto3.client(
            "dynamodb",
            region_name=region or DYNAMODB_REGION,
            config=Config(retries={"max_attempts": 5, "mode": "standard"}),
        )
    return _ddb


def _get_translate(region: Optional[str] = None):
    """Get (or create) the Amazon Translate client singleton."""
    global _translate
    if _translate is None:
        _translate = boto3.client(
            "translate",
            region_name=region or TRANSLATE_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _translate


def _get_ssm(region: Optional[str] = None):
    """Get (or create) the SSM client singleton."""
    global _ssm
    if _ssm is None:
        _ssm = boto3.client(
            "ssm",
            region_name=region or SSM_REGION,
            config=Config(retries={"max_attempts": 5, "mode": "standard"}),
        )
    return _ssm


def _get_secretsmanager(region: Optional[str] = None):
    """Get (or create) the Secrets Manager client singleton."""
    global _secretsmanager
    if _secretsmanager is None:
        _secretsmanager = boto3.client(
            "secretsmanager",
            region_name=region or SECRETS_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _secretsmanager
