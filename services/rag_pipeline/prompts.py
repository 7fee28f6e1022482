"""Prompt construction for grounded answers. Pure functions, no I/O."""

INSUFFICIENT_INFORMATION_ANSWER = "I don't have enough information in the provided context to answer this question."
NO_INFORMATION_ANSWER = "No relevant information was found for this question."
GENERATION_FAILED_ANSWER = (
    "The answer could not be generated because the language model failed. "
    "The retrieved sources are listed below."
)

SYSTEM_PROMPT = (
    "You are a careful assistant that answers questions strictly from the provided context. "
    "Use only facts stated in the context; do not rely on prior knowledge and do not speculate. "
    "If the answer cannot be derived from the context, reply exactly with: "
    f"\"{INSUFFICIENT_INFORMATION_ANSWER}\" "
    "Each context block starts with a label such as [doc1]. Cite the labels of the blocks you used "
    "in square brackets after the statements they support, e.g. [doc1] or [doc2][doc3]. "
    "Answer concisely and in the language of the question."
)


def build_system_prompt() -> str:
    """Return the system instruction that restricts the model to the context."""
    return SYSTEM_PROMPT


def build_user_prompt(question: str, context: str) -> str:
    """Combine the assembled context and the question into the user prompt.

    Args:
        question (str): The (possibly rewritten) question.
        context (str): The assembled, labelled context.

    Returns:
        str: The prompt sent as the user message.
    """
    return (
        "Context:\n"
        "-----\n"
        f"{context.strip()}\n"
        "-----\n\n"
        f"Question: {question.strip()}\n\n"
        "Answer using only the context above and cite the [docN] labels you rely on."
    )
