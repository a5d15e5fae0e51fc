from __future__ import annotations

from typing import Any, Callable, Dict, List


class RecordingLogger:
    """Drop-in for a module-level structlog logger in tests."""

    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    def _recorder(self, level: str) -> Callable[..., None]:
        def _log(event: str, **fields: Any) -> None:
            self.events.append({"event": event, "level": level, **fields})

        return _log

    def __getattr__(self, name: str) -> Callable[..., None]:
        if name in {"debug", "info", "warning", "error", "exception"}:
            return self._recorder(name)
        raise AttributeError(name)

    def named(self, event: str) -> List[Dict[str, Any]]:
        return [entry for entry in self.events if entry["event"] == event]
