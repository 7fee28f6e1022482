from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import GenerationError


class LLMClientInterface(ClientInterface):
    """Generation model reached through a chat endpoint. LLM_MODEL names the model."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        self.chat_model = helper_config.get_string_val(self._family_key("MODEL"))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/api/chat")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_chat_payload(self, messages: list[dict], temperature: float, max_tokens: int) -> dict:
        """Build the backend-specific request body for a chat/completion request.

        Args:
            messages (list[dict]): OpenAI-format messages
                (e.g. [{"role": "user", "content": "..."}]).
            temperature (float): Sampling temperature.
            max_tokens (int): Upper bound for generated tokens.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_chat_response(self, response_data: dict) -> str:
        """Extract the assistant reply text from a raw chat API response.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            str: The assistant reply text.

        Raises:
            ValueError: If the response does not contain a reply.
        """
        pass

    @staticmethod
    def build_messages(prompt: str, system_prompt: str | None = None) -> list[dict]:
        """Wrap a prompt (and optional system instruction) into OpenAI-format messages."""
        messages: list[dict] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_chat(self, messages: list[dict], temperature: float = 0.2, max_tokens: int = 512) -> str:
        """Send a chat/completion request and return the assistant reply text.

        Args:
            messages (list[dict]): OpenAI-format messages.
            temperature (float): Sampling temperature.
            max_tokens (int): Upper bound for generated tokens.

        Returns:
            str: The assistant reply text.

        Raises:
            ClientRequestError: If the HTTP request fails.
            ValueError: If the response does not contain a valid reply.
        """
        body = self.get_chat_payload(messages, temperature=temperature, max_tokens=max_tokens)
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chat(),
            json=body,
            raise_on_error=True,
        )
        return self.extract_chat_response(response.json())

    async def do_generate(
        self,
        prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 512,
        system_prompt: str | None = None,
    ) -> str:
        """Generate a completion for a single prompt. Exactly one backend call, no retries.

        Args:
            prompt (str): The user prompt.
            temperature (float): Sampling temperature.
            max_tokens (int): Upper bound for generated tokens.
            system_prompt (str | None): Optional system instruction sent ahead of the prompt.

        Returns:
            str: The generated text.

        Raises:
            GenerationError: On any transport, status, timeout or parsing failure.
        """
        try:
            return await self.do_chat(
                self.build_messages(prompt, system_prompt=system_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except GenerationError:
            raise
        except Exception as exc:
            self.logging.error("Generation request to '%s' failed: %s", self.get_engine_name(), exc)
            raise GenerationError(f"Generation request to '{self.get_engine_name()}' failed: {exc}", cause=exc) from exc
