from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from core.schemas import Diagnostic, RelatedFile, Selection


class AssistRequest(BaseModel):
    """Request for the assist endpoints"""
    instruction: str = Field(..., min_length=1, description="What the user wants done")
    source: str = Field(default="", description="Full text of the current file")
    language: str = Field(default="plaintext", description="Language identifier")
    file_path: Optional[str] = Field(None, description="Path of the current file")
    selection: Optional[Selection] = Field(None, description="Selected range, if any")
    diagnostics: List[Diagnostic] = Field(default_factory=list, description="Editor diagnostics")
    related_files: List[RelatedFile] = Field(default_factory=list, description="Related file previews")
    framework: Optional[str] = Field(None, description="Detected framework")
    quality_threshold: Optional[float] = Field(None, ge=0, le=10, description="Acceptance threshold override")
    max_rounds: Optional[int] = Field(None, ge=1, description="Round budget override")
    include_history: bool = Field(default=False, description="Include per-round records")


class AssistResponse(BaseModel):
    """Result of a convergence run"""
    success: bool
    converged: bool
    final_content: str
    explanation: str
    quality_score: float
    best_round: int
    stop_reason: str
    total_time: float
    key_decisions: Dict[str, str] = Field(default_factory=dict)
    token_usage: Dict[str, int] = Field(default_factory=dict)
    summary: dict = Field(default_factory=dict)
    iterations: Optional[List[dict]] = Field(None, description="Per-round records")
