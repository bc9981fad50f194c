"""Languages for user-facing messages.

Hindi is the site's language; English exists for logs and tooling. Kept in
the domain layer so errors, services and the CLI share one enum.
"""

from __future__ import annotations

from enum import Enum


class Language(str, Enum):
    HINDI = "hi"
    ENGLISH = "en"

    @classmethod
    def parse(cls, value: str) -> "Language":
        """Accept a code or a name ("hi", "Hindi", "हिन्दी", "en", "English")."""

        normalized = value.strip().lower()
        aliases = {
            "hi": cls.HINDI,
            "hindi": cls.HINDI,
            "हिन्दी": cls.HINDI,
            "हिंदी": cls.HINDI,
            "en": cls.ENGLISH,
            "english": cls.ENGLISH,
        }
        try:
            return aliases[normalized]
        except KeyError:
            raise ValueError(f"Unsupported language: {value!r}") from None
