"""Data types shared by the bulk import pipeline."""
from __future__ import annotations
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Optional

# Field names in the order a delimited row lists them.
FIELD_ORDER = ("identity_key", "display_name", "role_tag", "entitlement_tag")

# A parsed row before validation: field name -> raw string. Absent fields are
# absent keys, never empty placeholders.
RawRecord = dict


class ImportFormat(str, Enum):
    """Input formats accepted by the parser."""

    DELIMITED = "delimited"
    STRUCTURED = "structured"

    @classmethod
    def from_value(cls, value: str) -> "ImportFormat":
        """Resolve a format name, accepting the ``csv``/``json`` aliases."""
        normalized = (value or "").strip().lower()
        aliases = {"csv": cls.DELIMITED, "json": cls.STRUCTURED}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unsupported import format: {value!r}") from None


class RecordStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class CandidateRecord:
    """A validated, not-yet-committed account to provision."""

    identity_key: str
    display_name: str
    role_tag: str
    entitlement_tag: Optional[str] = None
    status: RecordStatus = RecordStatus.PENDING
    status_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not RecordStatus.PENDING

    def mark_success(self, message: str = "created") -> None:
        self._transition(RecordStatus.SUCCESS, message)

    def mark_error(self, message: str) -> None:
        self._transition(RecordStatus.ERROR, message)

    def _transition(self, status: RecordStatus, message: str) -> None:
        if self.is_terminal:
            raise RuntimeError(
                f"Record '{self.identity_key}' already left pending (status={self.status.value})"
            )
        self.status = status
        self.status_message = message

    def copy(self) -> "CandidateRecord":
        return replace(self)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CandidateRecord":
        return cls(
            identity_key=data["identity_key"],
            display_name=data["display_name"],
            role_tag=data["role_tag"],
            entitlement_tag=data.get("entitlement_tag"),
            status=RecordStatus(data.get("status", RecordStatus.PENDING.value)),
            status_message=data.get("status_message"),
        )


@dataclass(frozen=True)
class RecordCompletion:
    """Event published after one record reaches a terminal status."""

    index: int
    identity_key: str
    status: RecordStatus
    message: str


@dataclass(frozen=True)
class ImportRunResult:
    """Aggregate tally of one commit run."""

    total: int
    success: int
    failed: int
    cancelled: bool = False

    @property
    def pending(self) -> int:
        return self.total - self.success - self.failed

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "cancelled": self.cancelled,
        }


class ImportParseError(ValueError):
    """The whole batch could not be parsed; nothing can be previewed."""
