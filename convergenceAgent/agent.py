"""
High-Level Assistant API
========================

Developer-friendly entry point for the convergence loop.

Usage:
    Basic:
        assistant = CodeAssistant()
        result = await assistant.run("Add input validation", CodeUnit(source=src, language="python"))

    Advanced:
        assistant = CodeAssistant(
            config=AgentConfig(quality_threshold=8.5, max_rounds=3),
            progress_callback=lambda event: print(event.message),
        )
        result = await assistant.run(
            "Write the README",
            CodeUnit(source="", language="markdown", file_path="README.md"),
            max_rounds=2,
        )
"""

import copy
import dataclasses
import logging
from typing import Optional, Sequence, Union

from core.agent_config import AgentConfig
from core.output_technician import OutputTechnician
from core.retry_policy import RetryPolicy
from core.schemas import CodeUnit, Instruction
from core.structured_output import StructuredOutputParser
from core.task_classifier import build_instruction
from core.timeout_decorator import with_timeout
from providers.llm_client_async import AsyncLLMClient, track_usage
from providers.openrouter_async import AsyncOpenRouterProvider
from providers.provider import ModelClient
from agents.specialist_agent import SpecialistAgent
from agents.specialists import default_specialists
from convergenceAgent.convergence_controller import ConvergenceController
from convergenceAgent.llm_synthesis_strategy import ODAISynthesisStrategy
from convergenceAgent.loop_states import ProgressCallback
from convergenceAgent.synthesis_contracts import ConvergenceResult
from convergenceAgent.synthesis_strategy import SynthesisStrategy

logger = logging.getLogger(__name__)


class CodeAssistant:
    """
    Specialists + synthesizer + controller behind one call.

    Example:
        >>> assistant = CodeAssistant(config=AgentConfig.from_env())
        >>> result = await assistant.run("Fix the off-by-one in paginate()", code_unit)
        >>> print(result.final_content)
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        llm: Optional[ModelClient] = None,
        specialists: Optional[Sequence[SpecialistAgent]] = None,
        synthesizer: Optional[SynthesisStrategy] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            config: Run configuration (defaults to AgentConfig())
            llm: Model client (defaults to OpenRouter behind a retrying client)
            specialists: Specialist set (defaults to all six)
            synthesizer: Synthesis strategy (defaults to ODAISynthesisStrategy)
            progress_callback: Sync or async callable receiving ProgressEvents

        Raises:
            ConfigurationError: Invalid configuration or missing API key
        """
        self.config = (config or AgentConfig()).validate()
        self.llm = llm or self._setup_llm(self.config)
        self.parser = StructuredOutputParser()

        technician = None
        if self.config.enable_technician:
            technician = OutputTechnician(self.llm, self.config.synthesis_model)

        self.specialists = list(specialists) if specialists is not None else default_specialists(
            self.llm, self.config, self.parser, technician
        )
        self._custom_synthesizer = synthesizer
        self.progress_callback = progress_callback

        logger.info(
            f"✅ CodeAssistant initialized: {len(self.specialists)} specialists, "
            f"models={self.config.specialist_model}/{self.config.synthesis_model}"
        )

    @staticmethod
    def _setup_llm(config: AgentConfig) -> AsyncLLMClient:
        """OpenRouter provider wrapped with the configured retry policy."""
        provider = AsyncOpenRouterProvider(api_key=config.api_key, timeout=config.request_timeout)
        policy = RetryPolicy(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            name="openrouter",
        )
        return AsyncLLMClient(provider, policy)

    def _synthesizer_for(self, config: AgentConfig) -> SynthesisStrategy:
        if self._custom_synthesizer is None:
            return ODAISynthesisStrategy(self.llm, config, self.parser)
        if self._custom_synthesizer.quality_threshold == config.quality_threshold:
            return self._custom_synthesizer
        synthesizer = copy.copy(self._custom_synthesizer)
        synthesizer.quality_threshold = config.quality_threshold
        return synthesizer

    async def run(
        self,
        instruction: Union[str, Instruction],
        code_unit: Union[CodeUnit, str],
        quality_threshold: Optional[float] = None,
        max_rounds: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ConvergenceResult:
        """
        Run the convergence loop for one request.

        Args:
            instruction: Request text (classified here) or a prepared Instruction
            code_unit: Code under work, or raw source text
            quality_threshold: Per-run override of the acceptance threshold
            max_rounds: Per-run override of the round budget
            progress_callback: Per-run progress observer

        Returns:
            ConvergenceResult

        Raises:
            ConvergenceTimeoutError: The run exceeded run_timeout
            ConfigurationError: Invalid overrides or rejected credentials
        """
        config = self.config.with_overrides(
            quality_threshold=quality_threshold, max_rounds=max_rounds
        ).validate()
        if isinstance(instruction, str):
            instruction = build_instruction(instruction)
        if isinstance(code_unit, str):
            code_unit = CodeUnit(source=code_unit)

        controller = ConvergenceController(
            self.specialists,
            self._synthesizer_for(config),
            config,
            progress_callback or self.progress_callback,
        )
        @with_timeout(config.run_timeout)
        async def _bounded_run() -> ConvergenceResult:
            return await controller.run(instruction, code_unit)

        # Counts only this run's calls, even when runs share self.llm
        with track_usage() as usage:
            result = await _bounded_run()
        return dataclasses.replace(result, token_usage=dict(usage))
