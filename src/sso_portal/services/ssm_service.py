"""SSM Parameter Store lookup for Session Provider connection settings.

The Cognito user pool and app client identifiers may be provisioned as SSM
parameters instead of environment variables. They are fetched in one batch
call and cached for the life of the process.
"""

import logging
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""

    pass


class SSMService:
    """Batch reader for SSM parameters under a common prefix.

    Usage:
        ssm = SSMService()
        values = ssm.get_parameters("/sso-portal/prod", ["cognito/user_pool_id"])
    """

    def __init__(self) -> None:
        self._client = boto3.client("ssm")
        self._cache: dict[str, str] = {}

    def get_parameters(self, prefix: str, names: list[str]) -> dict[str, str]:
        """Fetch several parameters below ``prefix``.

        Args:
            prefix: Path prefix without trailing slash (e.g., "/sso-portal/dev")
            names: Parameter names relative to the prefix

        Returns:
            Mapping of relative name to decrypted value.

        Raises:
            SSMServiceError: If any parameter is missing or the call fails.
        """
        paths = {f"{prefix.rstrip('/')}/{name}": name for name in names}
        missing = [path for path in paths if path not in self._cache]

        if missing:
            try:
                logger.info("Fetching %d SSM parameters under %s", len(missing), prefix)
                response = self._client.get_parameters(Names=missing, WithDecryption=True)
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                if error_code == "AccessDeniedException":
                    raise SSMServiceError(
                        f"Access denied to SSM parameters under {prefix}. "
                        "Check IAM permissions for ssm:GetParameters."
                    ) from e
                raise SSMServiceError(f"Failed to read SSM parameters under {prefix}: {e}") from e

            invalid = response.get("InvalidParameters", [])
            if invalid:
                raise SSMServiceError(f"SSM parameters not found: {', '.join(sorted(invalid))}")

            for parameter in response.get("Parameters", []):
                self._cache[parameter["Name"]] = parameter["Value"]

        return {name: self._cache[path] for path, name in paths.items()}


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService()
