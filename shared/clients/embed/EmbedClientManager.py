from shared.clients.ClientManager import ClientManager
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface


class EmbedClientManager(ClientManager):
    """Embedding provider selected by EMBED_ENGINE."""

    family = "embed"
    class_prefix = "EmbedClient"
    interface = EmbedClientInterface

    def get_client(self) -> EmbedClientInterface:
        return self.client
