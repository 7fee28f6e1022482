from shared.clients.ClientManager import ClientManager
from shared.clients.llm.LLMClientInterface import LLMClientInterface


class LLMClientManager(ClientManager):
    """Generation model selected by LLM_ENGINE."""

    family = "llm"
    class_prefix = "LLMClient"
    interface = LLMClientInterface

    def get_client(self) -> LLMClientInterface:
        return self.client
