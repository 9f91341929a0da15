"""
src/pipeline/models.py

Pydantic models for rules and pipeline output.
"""


from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class Rule(BaseModel):

    id: str
    name: str = ""
    pattern: str = ""       # "/body/flags" or a bare body
    replacement: str = ""   # may contain $1, $<name>, $& ...
    active: bool = True
    order: int = 0
    extra: Dict[str, Any] = Field(default_factory=dict)   # unseen interchange fields


class DiagnosticEntry(BaseModel):

    model_config = ConfigDict(frozen=True)

    rule_id: str
    rule_name: str
    matched: bool
    match_count: int = Field(default=0, ge=0)
    elapsed_ms: float = Field(default=0.0, ge=0)
    error: Optional[str] = None


class PipelineResult(BaseModel):

    model_config = ConfigDict(frozen=True)

    final_text: str
    diagnostics: List[DiagnosticEntry] = Field(default_factory=list)
