"""
Synthesis Strategy Interface
=============================

Abstract interface for synthesis strategies.
Controller depends on this interface, never on implementation.
"""

from abc import ABC, abstractmethod
from convergenceAgent.synthesis_contracts import SynthesisRequest, SynthesisResult


class SynthesisStrategy(ABC):
    """
    Abstract synthesis strategy.

    Implementations merge one round's critiques into a scored result:
    either final content (success) or a repair directive.

    Contract: never raise for malformed model output; always return a
    SynthesisResult whose success flag agrees with its quality score
    and the strategy's threshold.
    """

    quality_threshold: float = 9.0

    @abstractmethod
    async def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        """
        Synthesize one round.

        Args:
            request: Critiques plus the round's fixed inputs

        Returns:
            SynthesisResult

        Raises:
            ConfigurationError: Missing or rejected credentials only
        """
        pass
