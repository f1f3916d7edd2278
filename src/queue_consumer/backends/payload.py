"""JSON job payloads and handler resolution."""

from __future__ import annotations

import importlib
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from queue_consumer.errors import JobHandlerError

BUILTIN_HANDLERS: dict[str, str] = {
    "echo": "queue_consumer.handlers:echo",
    "sleep": "queue_consumer.handlers:sleep",
    "fail": "queue_consumer.handlers:fail",
    "append_line": "queue_consumer.handlers:append_line",
    "record_failure": "queue_consumer.handlers:record_failure",
}


@dataclass(slots=True, frozen=True)
class JobPayload:
    """Serialized job routine: handler path, keyword args, optional failure hook."""

    handler: str
    args: dict[str, Any] = field(default_factory=dict)
    on_failure: str | None = None

    def to_json(self) -> str:
        return json.dumps(
            {"handler": self.handler, "args": self.args, "on_failure": self.on_failure},
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw: str) -> JobPayload:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as error:
            raise JobHandlerError(f"Job payload is not valid JSON: {error}") from error
        if not isinstance(data, dict):
            raise JobHandlerError("Job payload must be a JSON object.")
        handler = data.get("handler")
        if not isinstance(handler, str) or not handler.strip():
            raise JobHandlerError("Job payload requires a non-empty 'handler'.")
        args = data.get("args") or {}
        if not isinstance(args, dict):
            raise JobHandlerError("Job payload 'args' must be a JSON object.")
        on_failure = data.get("on_failure")
        if on_failure is not None and not isinstance(on_failure, str):
            raise JobHandlerError("Job payload 'on_failure' must be a string.")
        return cls(handler=handler.strip(), args=args, on_failure=on_failure)

    def run(self) -> Any:
        """Invoke the handler with the payload keyword arguments."""

        return resolve_handler(self.handler)(**self.args)

    def run_failure_hook(self, error: BaseException) -> None:
        """Invoke the failure hook, if any, with the terminal error."""

        if self.on_failure is None:
            return
        resolve_handler(self.on_failure)(error, **self.args)


def resolve_handler(path: str) -> Callable[..., Any]:
    """Resolve ``module:attr`` (or a built-in alias) to a callable."""

    target_path = BUILTIN_HANDLERS.get(path, path)
    module_name, sep, attr_path = target_path.partition(":")
    if not sep or not module_name or not attr_path:
        raise JobHandlerError(
            f"Invalid handler {path!r}. Expected 'module:callable' or one of "
            f"{', '.join(sorted(BUILTIN_HANDLERS))}.",
        )
    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as error:
        raise JobHandlerError(f"Cannot import handler module {module_name!r}: {error}") from error
    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as error:
            raise JobHandlerError(f"Handler {path!r} not found.") from error
    if not callable(target):
        raise JobHandlerError(f"Handler {path!r} is not callable.")
    return target
