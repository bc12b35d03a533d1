"""
Async Convergence Context
=========================

Run-scoped state of one convergence run, guarded by an asyncio.Lock.
The iteration history is append-only.
"""

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from typing import Optional, List, Dict, Any
import asyncio

from core.schemas import CodeUnit, Instruction, RepairDirective


class ConvergenceContext(BaseModel):
    """
    Async execution context for a convergence run.

    All mutation methods are async and use the lock; round states
    write through them while the controller reads the history.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    instruction: Instruction = Field(..., description="Classified user request")
    code_unit: CodeUnit = Field(..., description="Code being worked on (read-only)")

    # Execution state
    current_round: int = Field(default=0, description="Current round (1-based once started)")
    max_rounds: int = Field(default=4, description="Maximum rounds")
    pending_directive: Optional[RepairDirective] = Field(
        default=None, description="Directive for the next round only"
    )

    # Arbitrary data storage
    memory: Dict[str, Any] = Field(default_factory=dict, description="Arbitrary memory")

    _history: List[Any] = PrivateAttr(default_factory=list)
    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    @property
    def history(self) -> tuple:
        """Iteration records so far (read-only view)."""
        return tuple(self._history)

    async def append_record(self, record: Any):
        """Append an iteration record (async-safe). Records are never rewritten."""
        async with self._lock:
            self._history.append(record)

    async def set_memory(self, key: str, value: Any):
        """Store value in memory (async-safe)"""
        async with self._lock:
            self.memory[key] = value

    async def get_memory(self, key: str, default: Any = None) -> Any:
        """Retrieve value from memory (async-safe)"""
        async with self._lock:
            return self.memory.get(key, default)
