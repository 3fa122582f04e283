from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from tripchat.core.config import get_settings


class SessionLogger:
    def __init__(self, session_id: str, base_dir: str | None = None) -> None:
        self.session_id = session_id
        self.logs_dir = base_dir or get_settings().logs_dir
        Path(self.logs_dir).mkdir(parents=True, exist_ok=True)
        self.file_path = str(Path(self.logs_dir) / f"session_{self.session_id}.jsonl")

    def write(self, event_type: str, payload: Dict[str, Any]) -> None:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
            "session_id": self.session_id,
            "event": event_type,
            "payload": payload,
        }
        with open(self.file_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")

    def step(self, name: str, input_data: Dict[str, Any], output_data: Dict[str, Any]) -> None:
        self.write(
            "agent_step",
            {"name": name, "input": input_data, "output": output_data},
        )

    def state_transition(self, from_state: str, to_state: str) -> None:
        self.write("state_transition", {"from": from_state, "to": to_state})

    def user_message(self, message: str) -> None:
        self.write("user_message", {"message": message})

    def assistant_message(self, message: str) -> None:
        self.write("assistant_message", {"message": message})

    def info(self, message: str, **kwargs: Any) -> None:
        payload = {"message": message, **kwargs}
        self.write("info", payload)

    def error(self, message: str, **kwargs: Any) -> None:
        payload = {"message": message, **kwargs}
        self.write("error", payload)
