from shared.clients.ClientManager import ClientManager
from shared.clients.rag.RAGClientInterface import RAGClientInterface


class RAGClientManager(ClientManager):
    """Vector index selected by RAG_ENGINE ("qdrant" or "memory")."""

    family = "rag"
    class_prefix = "RAGClient"
    interface = RAGClientInterface

    def get_client(self) -> RAGClientInterface:
        return self.client
