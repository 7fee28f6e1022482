from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class ClientManager:
    """Instantiates the engine selected by ``{FAMILY}_ENGINE``.

    The engine name maps onto a module path: EMBED_ENGINE=ollama loads
    shared.clients.embed.ollama.EmbedClientOllama. Subclasses only declare
    the family, the class prefix and the interface the engine must implement.
    """

    family: str = ""
    class_prefix: str = ""
    interface: type[ClientInterface] = ClientInterface

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.engine = self._get_engine_from_env()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """Return the configured engine, capitalised (e.g. "Qdrant").

        Raises:
            ValueError: If the engine variable is unset or blank.
        """
        env_key = f"{self.family.upper()}_ENGINE"
        engine = self.helper_config.get_string_val(env_key, default="").strip()
        if not engine:
            raise ValueError(f"No {self.family} engine configured ({env_key}).")
        return engine.lower().capitalize()

    def _load_client_class(self) -> type[ClientInterface]:
        class_name = f"{self.class_prefix}{self.engine}"
        module_path = f"shared.clients.{self.family}.{self.engine.lower()}.{class_name}"
        try:
            module = __import__(module_path, fromlist=[class_name])
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported {self.family} engine '{self.engine}': {e}") from e
        if not (isinstance(client_class, type) and issubclass(client_class, self.interface)):
            raise ValueError(f"{class_name} does not implement {self.interface.__name__}.")
        return client_class

    def _initialize_client(self) -> ClientInterface:
        client = self._load_client_class()(helper_config=self.helper_config)
        self.logging.info("Using %s engine '%s'.", self.family, client.get_engine_name())
        return client

    def get_client(self) -> ClientInterface:
        return self.client
