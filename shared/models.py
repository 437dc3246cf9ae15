"""
bingrep Shared Data Models
===========================

Pydantic v2 models shared by every bingrep component.

A :class:`Finding` records an observation about the analysed file that
does not stop processing -- typically a data-integrity anomaly such as a
section index pointing past the end of the section table.  Findings are
collected alongside the rendered output so they can be listed and
exported, while the offending value is still shown inline as a sentinel.

References:
    - SARIF v2.1.0 Specification (OASIS, 2020).
    - Pydantic v2 documentation. https://docs.pydantic.dev/latest/
"""

from __future__ import annotations

import json as _json
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    Field,
    ConfigDict,
    field_validator,
)


# ========================== Enumerations ===================================


class Severity(str, Enum):
    """Finding severity level.

    Attributes:
        HIGH:   The structure is unusable beyond this point.
        MEDIUM: A value is inconsistent with the rest of the file.
        LOW:    A value could not be resolved; a placeholder was shown.
        INFO:   Informational observation.
    """

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def style(self) -> str:
        """Rich style used when rendering this severity."""
        return _SEVERITY_STYLES[self.value]


_SEVERITY_STYLES: dict[str, str] = {
    "HIGH": "bold red",
    "MEDIUM": "bold yellow",
    "LOW": "bold bright_cyan",
    "INFO": "bold bright_blue",
}


# ========================== Models =========================================


class Finding(BaseModel):
    """A single observation produced while analysing a file.

    Attributes:
        severity:    Qualitative severity rating.
        title:       Short, descriptive title.
        description: Detailed explanation.
        location:    Where the observation was made (table and index).
        evidence:    Raw value supporting the finding.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        frozen=True,
        use_enum_values=False,
        extra="ignore",
    )

    severity: Severity = Field(
        ...,
        description="Severity level of this finding",
    )
    title: str = Field(
        ...,
        min_length=1,
        max_length=256,
        description="Short descriptive title",
    )
    description: str = Field(
        ...,
        min_length=1,
        description="Detailed explanation",
    )
    location: str = Field(
        default="",
        description="Table and entry the finding refers to",
    )
    evidence: str = Field(
        default="",
        description="Supporting evidence or raw data",
    )

    @field_validator("evidence", mode="before")
    @classmethod
    def _coerce_evidence(cls, v: Any) -> str:
        """Auto-convert non-string evidence (dict, list, int) to a string."""
        if isinstance(v, str):
            return v
        if isinstance(v, (dict, list)):
            return _json.dumps(v, ensure_ascii=False, default=str)
        if isinstance(v, int):
            return f"{v:#x}"
        return str(v)
