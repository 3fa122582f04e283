from __future__ import annotations

import os
from dataclasses import dataclass


def _default_logs_dir() -> str:
    return os.path.abspath(os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "logs"))


@dataclass(frozen=True)
class Settings:
    session_max_age_seconds: float = 30 * 60
    session_sweep_interval_seconds: float = 5 * 60
    session_max_history: int = 20
    bedrock_model_id: str = "anthropic.claude-3-5-sonnet-20240620-v1:0"
    aws_region: str = "us-east-1"
    bedrock_temperature: float = 0.2
    bedrock_max_tokens: int = 1024
    generation_timeout_seconds: float = 60.0
    logs_dir: str = ""
    port: int = 8000


def get_settings() -> Settings:
    # Read on every call so tests can monkeypatch the environment
    return Settings(
        session_max_age_seconds=float(os.getenv("SESSION_MAX_AGE_SECONDS", "1800")),
        session_sweep_interval_seconds=float(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "300")),
        session_max_history=int(os.getenv("SESSION_MAX_HISTORY", "20")),
        bedrock_model_id=os.getenv("BEDROCK_MODEL_ID", "anthropic.claude-3-5-sonnet-20240620-v1:0"),
        aws_region=os.getenv("AWS_REGION", "us-east-1"),
        bedrock_temperature=float(os.getenv("BEDROCK_TEMPERATURE", "0.2")),
        bedrock_max_tokens=int(os.getenv("BEDROCK_MAX_TOKENS", "1024")),
        generation_timeout_seconds=float(os.getenv("GENERATION_TIMEOUT_SECONDS", "60")),
        logs_dir=os.getenv("LOGS_DIR") or _default_logs_dir(),
        port=int(os.getenv("PORT", "8000")),
    )
