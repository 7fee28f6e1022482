from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    Describes one engine-specific environment setting a client needs.

    The full variable name is built by the client as {TYPE}_{ENGINE}_{env_key},
    e.g. env_key="BASE_URL" on the Qdrant RAG client reads RAG_QDRANT_BASE_URL.

    Attributes:
        env_key (str): The raw key of the setting, without client type and engine prefix.
        val_type (str): Expected value type: "string", "number", "bool" or "list".
        default (str | int | float | bool | list | None): Value used when the variable is unset. None marks the setting as required.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None
