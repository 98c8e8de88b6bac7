"""
AWS Systems Manager Parameter Store configuration.

Values are read from the environment first (a local ``.env`` is loaded with
python-dotenv) and otherwise fetched from Parameter Store under the ``/kasy``
prefix. ``/kasy/openai/api-key`` maps to the env var ``KASY_OPENAI_API_KEY``.
"""

import os
from functools import lru_cache
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from utils.logging import setup_logger

logger = setup_logger(__name__)

load_dotenv()

PARAMETER_PREFIX = "/kasy"

_ssm_client = None


def get_ssm_client():
    """Get or create the SSM client."""
    global _ssm_client
    if _ssm_client is None:
        _ssm_client = boto3.client("ssm")
    return _ssm_client


def env_var_name(parameter_name: str) -> str:
    """``/kasy/split/remainder-policy`` -> ``KASY_SPLIT_REMAINDER_POLICY``."""
    return parameter_name.strip("/").replace("/", "_").replace("-", "_").upper()


@lru_cache(maxsize=128)
def get_parameter(parameter_name: str, decrypt: bool = True) -> str | None:
    """
    Get a parameter, preferring the environment over Parameter Store.

    Args:
        parameter_name: Full parameter name, e.g. ``/kasy/openai/api-key``
        decrypt: Whether to decrypt SecureString parameters

    Returns:
        Parameter value or None if not found
    """
    local_value = os.getenv(env_var_name(parameter_name))
    if local_value:
        logger.debug(f"Using local environment variable for {parameter_name}")
        return local_value

    try:
        response = get_ssm_client().get_parameter(
            Name=parameter_name, WithDecryption=decrypt
        )
        logger.debug(f"Retrieved parameter {parameter_name} from Parameter Store")
        return response["Parameter"]["Value"]

    except ClientError as e:
        if e.response["Error"]["Code"] == "ParameterNotFound":
            logger.warning(f"Parameter {parameter_name} not found in Parameter Store")
        else:
            logger.error(f"Error retrieving parameter {parameter_name}: {e}")
        return None
    except BotoCoreError as e:
        logger.error(f"Could not reach Parameter Store for {parameter_name}: {e}")
        return None


class ParameterStoreConfig:
    """
    Configuration values loaded from the environment or Parameter Store.

    Lookups are cached per instance; ``clear_cache`` resets everything.
    """

    def __init__(self, parameter_prefix: str = PARAMETER_PREFIX):
        self.parameter_prefix = parameter_prefix.rstrip("/")
        self._config_cache = {}

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Configuration key (prefixed with ``parameter_prefix``)
            default: Default value if not found
        """
        if key in self._config_cache:
            return self._config_cache[key]

        value = get_parameter(f"{self.parameter_prefix}/{key}")
        if value is None:
            value = default

        self._config_cache[key] = value
        return value

    def get_required(self, key: str) -> str:
        """
        Get a configuration value that must exist.

        Raises:
            ValueError: If the parameter is not found
        """
        value = self.get(key)
        if value is None:
            raise ValueError(
                f"Required parameter {self.parameter_prefix}/{key} not found"
            )
        return value

    def load_openai_config(self) -> dict:
        """
        Load the OpenAI connection settings.

        Raises:
            ValueError: If the API key is missing
        """
        openai_config = {
            "api_key": self.get_required("openai/api-key"),
            "text_model": self.get("openai/text-model", "gpt-4o-mini"),
            "vision_model": self.get("openai/vision-model", "gpt-4o"),
        }
        logger.info("Loaded OpenAI configuration")
        return openai_config

    @property
    def remainder_policy(self) -> str:
        return self.get("split/remainder-policy", "payer")


config = ParameterStoreConfig()


def clear_cache():
    """Clear the parameter caches, e.g. between tests or after a config change."""
    get_parameter.cache_clear()
    config._config_cache.clear()
    logger.info("Parameter Store cache cleared")
