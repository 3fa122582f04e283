from __future__ import annotations

from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)
from langchain_aws import ChatBedrock

from tripchat.core.config import Settings, get_settings
from tripchat.core.errors import (
    GenerationEmptyError,
    GenerationNetworkError,
    GenerationStatusError,
)


class TextGenerator(Protocol):
    def generate(self, system_instructions: str, user_payload: str, model_name: Optional[str] = None) -> str:
        ...


def get_bedrock_client(model_id: Optional[str] = None, settings: Optional[Settings] = None) -> ChatBedrock:
    settings = settings or get_settings()
    # One attempt only; the planner falls back instead of retrying
    boto_config = Config(
        read_timeout=settings.generation_timeout_seconds,
        connect_timeout=min(10.0, settings.generation_timeout_seconds),
        retries={"total_max_attempts": 1, "mode": "standard"},
    )
    return ChatBedrock(
        model_id=model_id or settings.bedrock_model_id,
        region_name=settings.aws_region,
        config=boto_config,
        model_kwargs={
            "temperature": settings.bedrock_temperature,
            "max_tokens": settings.bedrock_max_tokens,
        },
    )


def _missing_aws_credentials() -> bool:
    # Full botocore chain: env, shared files, SSO, container and instance roles
    return boto3.Session().get_credentials() is None


_NETWORK_ERRORS = (
    NoCredentialsError,
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionError,
    TimeoutError,
)


class BedrockGenerator:
    """Plain-text generation over Bedrock. Raises GenerationError subclasses on failure."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self._clients: dict[str, ChatBedrock] = {}

    def _client(self, model_name: str) -> ChatBedrock:
        if model_name not in self._clients:
            self._clients[model_name] = get_bedrock_client(model_name, self.settings)
        return self._clients[model_name]

    def generate(self, system_instructions: str, user_payload: str, model_name: Optional[str] = None) -> str:
        if _missing_aws_credentials():
            raise GenerationNetworkError("AWS credentials are not configured")

        model = model_name or self.settings.bedrock_model_id
        try:
            resp = self._client(model).invoke([
                {"role": "system", "content": system_instructions},
                {"role": "user", "content": user_payload},
            ])
        except _NETWORK_ERRORS as ex:
            raise GenerationNetworkError(str(ex)) from ex
        except ClientError as ex:
            status = ex.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            raise GenerationStatusError(f"Bedrock returned {status}: {ex}") from ex
        except Exception as ex:  # noqa: BLE001
            # langchain-aws may wrap botocore errors; classify by the cause
            if isinstance(ex.__cause__, _NETWORK_ERRORS):
                raise GenerationNetworkError(str(ex)) from ex
            raise GenerationStatusError(str(ex)) from ex

        content = resp.content if hasattr(resp, "content") else resp
        if isinstance(content, list):
            # Content blocks: keep the text parts
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block) for block in content
            )
        if not isinstance(content, str) or not content.strip():
            raise GenerationEmptyError("Bedrock returned an empty completion")
        return content
