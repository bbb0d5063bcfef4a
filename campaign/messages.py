"""
Message content — the payload handed to the transport.

Content is opaque to the run loop. Two sources:
- static text (MESSAGE_TEXT)
- phrase spinning: random phrase + 50% chance of a trailing emoji,
  so consecutive messages aren't byte-identical

A link is appended on its own line, and an image (if present on disk) is
sent with the text as its caption.
"""

import base64
import json
import logging
import mimetypes
import os
import random
from dataclasses import dataclass
from typing import Callable, List, Optional

from campaign.errors import StartupFailure

logger = logging.getLogger("broadcast.messages")

DEFAULT_PHRASES = [
    "Hi! Hope you're doing well.",
    "Hello, quick note for you.",
]
EMOJIS = ["🙂", "✨", "👋", "😃", "💫"]


@dataclass(frozen=True)
class MediaAttachment:
    mimetype: str
    filename: str
    data: str  # base64

    @classmethod
    def from_file(cls, path: str) -> "MediaAttachment":
        mimetype = mimetypes.guess_type(path)[0] or "application/octet-stream"
        if path.endswith(".webp"):
            mimetype = "image/webp"
        with open(path, "rb") as f:
            data = base64.b64encode(f.read()).decode("ascii")
        return cls(mimetype=mimetype, filename=os.path.basename(path), data=data)


@dataclass(frozen=True)
class Payload:
    text: str
    media: Optional[MediaAttachment] = None


class PhraseSpinner:
    """Randomized phrase + optional emoji."""

    def __init__(self, phrases: List[str] = None, emojis: List[str] = None,
                 emoji_probability: float = 0.5, rng: random.Random = None):
        self.phrases = list(phrases or DEFAULT_PHRASES)
        if not self.phrases:
            raise ValueError("at least one phrase is required")
        self.emojis = list(emojis or EMOJIS)
        self.emoji_probability = emoji_probability
        self._rng = rng or random.Random()

    def generate(self) -> str:
        phrase = self._rng.choice(self.phrases)
        if self.emojis and self._rng.random() < self.emoji_probability:
            return f"{phrase} {self._rng.choice(self.emojis)}"
        return phrase


def load_phrases(path: str) -> List[str]:
    """Read a JSON list of phrases. Raises StartupFailure if unusable."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            phrases = json.load(f)
    except (OSError, ValueError) as e:
        raise StartupFailure(f"Cannot read phrases file {path}: {e}") from e
    if not isinstance(phrases, list) or not all(isinstance(p, str) for p in phrases) or not phrases:
        raise StartupFailure(f"Phrases file {path} must be a non-empty JSON list of strings")
    return phrases


def build_payload_factory(
    static_text: str = "",
    link: str = "",
    phrases_file: str = "",
    image_path: str = "",
) -> Callable[[], Payload]:
    """
    Return a zero-arg callable producing a fresh Payload per recipient.

    Static text wins over phrase spinning when both are configured.
    """
    if static_text:
        generate = lambda: static_text  # noqa: E731
        source = "static"
    else:
        spinner = PhraseSpinner(load_phrases(phrases_file) if phrases_file else None)
        generate = spinner.generate
        source = f"spinner({len(spinner.phrases)} phrases)"

    media = None
    if image_path and os.path.exists(image_path):
        media = MediaAttachment.from_file(image_path)

    logger.info(f"message_source: {source}, link={'yes' if link else 'no'}, media={media.filename if media else 'none'}")

    def factory() -> Payload:
        text = generate()
        if link:
            text = f"{text}\n{link}"
        return Payload(text=text, media=media)

    return factory
