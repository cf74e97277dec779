"""Context assembly for the model call."""

from typing import Iterable, List

from ..models import ChatMessage, TrainingPair, Turn

PREAMBLE = "You are a blank chatbot being trained. Here's some training data I've provided you:"
INSTRUCTION = "Based on our conversation history and the training data, please respond to the following:"


def history_turns(messages: Iterable[ChatMessage]) -> List[Turn]:
    return [
        Turn(role="user" if msg.sender == "user" else "model", text=msg.text)
        for msg in messages
    ]


def render_training_block(pairs: Iterable[TrainingPair]) -> str:
    return "\n".join(
        f'User asked "{pair.question}", I responded "{pair.answer}".' for pair in pairs
    )


def instruction_turn(pairs: Iterable[TrainingPair], user_message: str) -> Turn:
    text = f"{PREAMBLE}\n{render_training_block(pairs)}\n\n{INSTRUCTION}\n{user_message}"
    return Turn(role="user", text=text)


def build_turns(
    history: Iterable[ChatMessage],
    pairs: Iterable[TrainingPair],
    user_message: str,
) -> List[Turn]:
    """Transcript turns followed by the final instruction turn."""
    turns = history_turns(history)
    turns.append(instruction_turn(pairs, user_message))
    return turns
