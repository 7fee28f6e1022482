"""Grounded answer generation: one call to the generation model per query."""

from services.rag_pipeline.prompts import build_system_prompt, build_user_prompt
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig


class AnswerSynthesizer:
    """Sends the grounded prompt to the generation model. Prompt text comes from prompts.py."""

    def __init__(self, helper_config: HelperConfig, llm_client: LLMClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._llm = llm_client

    async def do_synthesize(self, question: str, context: str, temperature: float, max_tokens: int) -> str:
        """Generate an answer restricted to the context.

        Args:
            question (str): The (possibly rewritten) question.
            context (str): The assembled context.
            temperature (float): Sampling temperature.
            max_tokens (int): Upper bound for generated tokens.

        Returns:
            str: The stripped answer text.

        Raises:
            GenerationError: If the generation model fails.
        """
        answer = await self._llm.do_generate(
            build_user_prompt(question, context),
            temperature=temperature,
            max_tokens=max_tokens,
            system_prompt=build_system_prompt(),
        )
        self.logging.debug("Generated answer with %d characters.", len(answer))
        return answer.strip()
