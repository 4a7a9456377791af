"""
Prompt Templates

Versioned prompts for prediction generation and outcome adjudication.
Lifecycle events record the PROMPT_VERSION that produced them.
"""
from __future__ import annotations

PROMPT_VERSION = "v1"

PREDICTION_COUNT = 3

# ---------------------------------------------------------------------------
# Generation — topic + digest -> JSON array of predictions
# ---------------------------------------------------------------------------

GENERATION_SYSTEM_PROMPT = (
    "You are an expert in creating engaging and relevant prediction market "
    "questions based on current events and data.\n"
    "\n"
    "Rules:\n"
    "- ONLY output a valid JSON array. No markdown, no commentary.\n"
    "- Every element uses exactly this schema:\n"
    '  {"description": "<question>", "duration": <integer seconds>, '
    '"tags": ["<tag>", ...]}'
)


def build_generation_prompt(topic: str, digest: str, count: int = PREDICTION_COUNT) -> str:
    """Build the user-turn message asking for *count* predictions about *topic*."""
    return (
        f"Based on the following current information about {topic}:\n"
        "\n"
        f"{digest.strip()}\n"
        "\n"
        f"Generate {count} prediction market questions. Each prediction should be:\n"
        "1. Specific and unambiguous\n"
        "2. Measurable with a clear outcome\n"
        "3. Have a definite timeframe for resolution (within the next 6 months)\n"
        "4. Relevant to the given topic and current events\n"
        "5. Interesting and engaging for participants\n"
        "\n"
        "Output ONLY a valid JSON array of prediction objects with the following fields:\n"
        "- description: The prediction question\n"
        "- duration: Time until the prediction resolves, in seconds (max 6 months)\n"
        "- tags: An array of relevant tags (3-5 tags)\n"
        "\n"
        "Ensure the predictions are diverse and cover different aspects of the topic."
    )


# ---------------------------------------------------------------------------
# Adjudication — description + digest -> reasoning, then 0 or 1
# ---------------------------------------------------------------------------

ADJUDICATION_SYSTEM_PROMPT = (
    "You are an impartial judge tasked with determining the outcomes of "
    "prediction markets based on the most current and relevant information "
    "available."
)


def build_adjudication_prompt(description: str, digest: str) -> str:
    """
    Build the user-turn message for judging one prediction.

    The verdict must be the last line on its own so it can be parsed without
    interpreting the reasoning.
    """
    return (
        "Analyze the following prediction and the most recent related "
        "information to determine its outcome:\n"
        "\n"
        f'Prediction: "{description}"\n'
        "\n"
        "Current Information:\n"
        f"{digest.strip()}\n"
        "\n"
        "Based on this data, has the prediction come true? Respond with:\n"
        "- 0 if the prediction is false or has not occurred\n"
        "- 1 if the prediction is true or has occurred\n"
        "\n"
        "If the information is insufficient to make a definitive "
        "determination, lean towards 0 (false).\n"
        "\n"
        "Provide your reasoning, then on a new line, give ONLY the numeric "
        "outcome (0 or 1)."
    )
