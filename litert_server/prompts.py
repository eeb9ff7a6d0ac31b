"""
Prompt formatting for the LiteRT-LM binary.

The binary takes a single --input_prompt string, so chat messages are
flattened into role-labelled blocks.
"""

from typing import Dict, List

ROLE_LABELS = {
    "system": "System",
    "user": "User",
    "assistant": "Assistant",
}


def messages_to_prompt(messages: List[Dict[str, str]]) -> str:
    """
    Convert OpenAI-style chat messages to a single prompt.

    Args:
        messages: List of dicts with 'role' and 'content'

    Returns:
        Prompt text ending with "Assistant:" unless the last message is
        from the assistant
    """
    prompt = ""

    for message in messages:
        label = ROLE_LABELS.get(message.get("role"))
        if label is None:
            continue
        prompt += f"{label}: {message.get('content', '')}\n\n"

    # Ask the model to answer as the assistant
    if messages and messages[-1].get("role") != "assistant":
        prompt += "Assistant:"

    return prompt.strip()


def estimate_tokens(text: str) -> int:
    """Rough token count (about four characters per token)."""
    return -(-len(text) // 4)
