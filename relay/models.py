from dataclasses import dataclass, field
from typing import Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Short error summary")
    message: Optional[str] = Field(None, description="Underlying failure details")


# Headers copied from the probe onto the relayed response, in this order
PROBE_HEADERS = ("content-type", "content-length", "content-disposition")


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of the best-effort HEAD probe.

    Exactly one of ``headers`` (on success) or ``error`` is meaningful. Callers
    check ``ok`` and discard the error after logging it.
    """

    headers: Dict[str, str] = field(default_factory=dict)
    status_code: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: BaseException) -> "ProbeResult":
        return cls(error=error)
