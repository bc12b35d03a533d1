"""
Scripted model client for tests.

Routes each request by the marker at the top of its system prompt
(specialist role, distill, adapt, integrate) and records every call so
tests can assert on prompt construction.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from providers.provider import LLMConfig, LLMResponse, ModelClient
from convergenceAgent.llm_synthesis_strategy import ADAPT_MARKER, DISTILL_MARKER, INTEGRATE_MARKER

_ROLE_RE = re.compile(r"SPECIALIST ROLE: (\w+)")


@dataclass
class RecordedCall:
    phase: str                    # "specialist", "distill", "adapt", "integrate", "other"
    role: Optional[str]           # specialist role, if any
    index: int                    # 0-based count of earlier calls for the same phase/role
    messages: List[Dict[str, str]]
    config: LLMConfig

    @property
    def system(self) -> str:
        return self.messages[0]["content"]

    @property
    def user(self) -> str:
        return self.messages[-1]["content"]


Script = Union[str, BaseException, List[Any], Callable[[RecordedCall], Any], None]


def critique_json(confidence=0.9, relevance=0.8, critical=0, warnings=0, suggestions=0, insight="Looks fine"):
    def issues(n, kind):
        return [{"type": kind, "line": i + 1, "description": f"{kind} issue {i + 1}", "fix": f"fix {kind} {i + 1}"}
                for i in range(n)]
    return json.dumps({
        "insights": [insight],
        "issues": {
            "critical": issues(critical, "critical"),
            "warnings": issues(warnings, "warning"),
            "suggestions": issues(suggestions, "suggestion"),
        },
        "recommendations": ["keep going"],
        "confidence": confidence,
        "relevance": relevance,
    })


def distill_json(score, requirements=("Validate inputs",), rationale="scored"):
    return json.dumps({
        "observation": {"coreNeed": "validation", "patterns": [], "conflicts": [],
                        "criticalIssues": [], "unifiedDirection": "add checks"},
        "coreRequirements": list(requirements),
        "keyConstraints": ["Keep the public signature"],
        "implementationPrinciples": ["Fail fast"],
        "qualityScore": score,
        "scoringRationale": rationale,
    })


def adapt_json(guidance="Tighten validation", roles=None, focus=("input validation",)):
    return json.dumps({
        "overallGuidance": guidance,
        "agentSpecific": roles or {"security": "Reject negative sizes", "testing": "Cover empty input"},
        "focusAreas": list(focus),
    })


def integrate_json(code="def f(x):\n    return x\n", explanation="done", decisions=None):
    return json.dumps({
        "success": True,
        "code": code,
        "explanation": explanation,
        "keyDecisions": decisions or {"architecture": "kept flat"},
    })


class FakeLLM(ModelClient):
    """
    Example:
        >>> llm = FakeLLM(specialist=critique_json(), distill=[distill_json(8.2), distill_json(9.3)],
        ...               adapt=adapt_json(), integrate=integrate_json())
    """

    def __init__(
        self,
        specialist: Script = None,
        distill: Script = None,
        adapt: Script = None,
        integrate: Script = None,
        other: Script = None,
        tokens_per_call: int = 10,
    ):
        self.scripts = {
            "specialist": specialist if specialist is not None else critique_json(),
            "distill": distill if distill is not None else distill_json(9.5),
            "adapt": adapt if adapt is not None else adapt_json(),
            "integrate": integrate if integrate is not None else integrate_json(),
            "other": other if other is not None else "",
        }
        self.tokens_per_call = tokens_per_call
        self.calls: List[RecordedCall] = []

    @staticmethod
    def _route(system: str):
        match = _ROLE_RE.search(system)
        if match:
            return "specialist", match.group(1)
        if system.startswith(DISTILL_MARKER):
            return "distill", None
        if system.startswith(ADAPT_MARKER):
            return "adapt", None
        if system.startswith(INTEGRATE_MARKER):
            return "integrate", None
        return "other", None

    def calls_for(self, phase: str, role: Optional[str] = None) -> List[RecordedCall]:
        return [c for c in self.calls if c.phase == phase and (role is None or c.role == role)]

    async def complete(self, messages, config):
        phase, role = self._route(messages[0]["content"])
        index = len(self.calls_for(phase, role))
        call = RecordedCall(phase, role, index, list(messages), config)
        self.calls.append(call)

        script = self.scripts[phase]
        if callable(script) and not isinstance(script, BaseException):
            value = script(call)
        elif isinstance(script, list):
            value = script[min(index, len(script) - 1)]
        else:
            value = script

        if isinstance(value, BaseException):
            raise value
        return LLMResponse(
            content=value,
            tokens_used=self.tokens_per_call,
            finish_reason="stop",
            usage={"prompt_tokens": self.tokens_per_call // 2,
                   "completion_tokens": self.tokens_per_call - self.tokens_per_call // 2,
                   "total_tokens": self.tokens_per_call},
        )
