"""
Best-effort voice selection for playback engines.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence


@dataclass(frozen=True)
class Voice:
    """An installed synthesis voice."""
    id: str
    name: str
    language: str = ""
    gender: str = ""


def _primary(tag: str) -> str:
    return tag.replace("_", "-").split("-")[0].lower()


def _same_locale(a: str, b: str) -> bool:
    return a.replace("_", "-").lower() == b.replace("_", "-").lower()


def _hinted(voice: Voice, hints: Sequence[str]) -> bool:
    labels = (voice.name.lower(), voice.gender.lower())
    return any(hint.lower() in label for hint in hints for label in labels if label)


def select_voice(
    voices: Iterable[Voice], language: str, hints: Sequence[str] = ()
) -> Optional[Voice]:
    """
    Pick the voice that best fits ``language`` and the name ``hints``.

    Preference order: exact locale with a hinted name, then same primary
    language with a hinted name. Returns None when nothing qualifies so the
    engine keeps its own default voice.
    """
    voices = list(voices)
    if not hints:
        return None

    for voice in voices:
        if _same_locale(voice.language, language) and _hinted(voice, hints):
            return voice

    primary = _primary(language)
    for voice in voices:
        if voice.language and _primary(voice.language) == primary and _hinted(voice, hints):
            return voice
    return None
