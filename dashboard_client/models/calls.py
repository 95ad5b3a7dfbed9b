"""Call records and the in-memory call store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, TypedDict

CallStatus = Literal["pending", "active", "completed", "failed"]
CALL_STATUSES: frozenset[str] = frozenset({"pending", "active", "completed", "failed"})


class Call(TypedDict, total=False):
    """Call as returned by the dashboard API."""

    id: str
    leadId: str
    conversationId: str
    phoneNumber: str
    status: CallStatus
    duration: int
    startTime: str
    endTime: str
    outcome: str
    notes: str


@dataclass
class CallStore:
    """Calls shown by the dashboard, kept current by real-time updates."""

    calls: list[Call] = field(default_factory=list)
    active_calls: list[Call] = field(default_factory=list)
    calls_loading: bool = False

    def set_calls(self, calls: list[Call]) -> None:
        self.calls = list(calls)

    def add_call(self, call: Call) -> None:
        self.calls = [*self.calls, call]

    def set_active_calls(self, calls: list[Call]) -> None:
        self.active_calls = list(calls)

    def update_call(self, call_id: str, updates: Mapping[str, Any]) -> bool:
        """Merge ``updates`` into every call with ``call_id``.

        Returns True if at least one call matched.
        """
        matched = False
        for bucket in (self.calls, self.active_calls):
            for idx, call in enumerate(bucket):
                if call.get("id") == call_id:
                    bucket[idx] = {**call, **updates}  # type: ignore[typeddict-item]
                    matched = True
        return matched

    def get(self, call_id: str) -> Call | None:
        for call in self.calls:
            if call.get("id") == call_id:
                return call
        for call in self.active_calls:
            if call.get("id") == call_id:
                return call
        return None
