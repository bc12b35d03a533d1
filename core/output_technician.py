"""
Output Technician
=================

Optional LLM repair pass: asks a model to rewrite malformed output as
valid JSON of a given structure. Used only after the local parser tiers
could not produce a clean result.
"""

import logging
from typing import Optional

from providers.provider import LLMConfig, ModelClient, RequestError

logger = logging.getLogger(__name__)

TECHNICIAN_SYSTEM_PROMPT = """You are a JSON repair technician.
You receive text that was supposed to be a single JSON value but is malformed or wrapped in prose.

Rules:
- Output ONLY the corrected JSON. No markdown fences, no commentary.
- Preserve every piece of information that is present; never invent content.
- Use the expected structure below for keys and nesting.
- Escape newlines and quotes inside string values."""


class OutputTechnician:
    """
    LLM-backed repair for malformed structured output.

    Example:
        >>> technician = OutputTechnician(llm, model="x-ai/grok-4.1-fast")
        >>> fixed = await technician.repair(raw, "Specialist:security", '{"insights": [...]}')
    """

    def __init__(self, llm: ModelClient, model: str, max_tokens: int = 8192, max_input_chars: int = 20000):
        self.llm = llm
        self.config = LLMConfig(model=model, temperature=0.1, max_tokens=max_tokens)
        self.max_input_chars = max_input_chars

    async def repair(self, raw_text: str, context_label: str, expected_structure: str) -> Optional[str]:
        """
        Ask the model to repair raw_text.

        Returns:
            Repaired text, or None if the request failed or returned nothing
        """
        if not raw_text or not raw_text.strip():
            return None

        messages = [
            {"role": "system", "content": TECHNICIAN_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f"EXPECTED STRUCTURE:\n{expected_structure}\n\n"
                    f"MALFORMED OUTPUT ({context_label}):\n{raw_text[:self.max_input_chars]}"
                ),
            },
        ]
        logger.info(f"🔧 [Technician:{context_label}] Repairing {len(raw_text)} chars")
        try:
            response = await self.llm.complete(messages, self.config)
        except RequestError as e:
            logger.warning(f"⚠️ [Technician:{context_label}] Repair request failed: {e}")
            return None

        repaired = (response.content or "").strip()
        return repaired or None
