"""
Load environment variables from AWS Secrets Manager before Django settings are loaded.
Import this module first in asgi.py so os.environ is populated before
ws_server.settings (and ws_server.applib.config) are evaluated.

Only active when WS_SECRET_NAME is set (e.g. "geosync-prod/ws-server-secrets");
local development and tests run without AWS. Uses setdefault so existing env
vars (e.g. from the ECS task definition) override secret values.
"""
import json
import logging
import os

logger = logging.getLogger(__name__)


def load_secrets_from_aws(secret_name: str, region: str) -> int:
    """Copy the secret's JSON keys into os.environ; returns how many were applied."""
    import boto3

    client = boto3.client("secretsmanager", region_name=region)
    response = client.get_secret_value(SecretId=secret_name)
    secret_str = response.get("SecretString")
    if not secret_str:
        raise RuntimeError(f"Secret {secret_name!r} has no SecretString")
    data = json.loads(secret_str)
    applied = 0
    for key, value in data.items():
        if value is not None and key not in os.environ:
            os.environ[key] = str(value)
            applied += 1
    return applied


_secret_name = os.environ.get("WS_SECRET_NAME", "").strip()
if _secret_name:
    _count = load_secrets_from_aws(_secret_name, os.environ.get("AWS_REGION", "us-east-2"))
    logger.info("Loaded %d settings from secret %s", _count, _secret_name)
