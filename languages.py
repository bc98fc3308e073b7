"""Language profiles shared by capture and playback."""

from __future__ import annotations

from models import LanguageProfile

# rate is the local speech rate; denser languages are spoken slower
LANGUAGE_PROFILES: dict[str, LanguageProfile] = {
    "english": LanguageProfile("english", "en-US", 0.92),
    "german": LanguageProfile("german", "de-DE", 0.88),
    "french": LanguageProfile("french", "fr-FR", 0.90),
    "spanish": LanguageProfile("spanish", "es-ES", 0.90),
    "italian": LanguageProfile("italian", "it-IT", 0.90),
    "hindi": LanguageProfile("hindi", "hi-IN", 0.88),
    "japanese": LanguageProfile("japanese", "ja-JP", 0.85),
    "korean": LanguageProfile("korean", "ko-KR", 0.85),
    "portuguese": LanguageProfile("portuguese", "pt-BR", 0.90),
    "chinese": LanguageProfile("chinese", "zh-CN", 0.85),
}

DEFAULT_LANGUAGE = "english"


def resolve_language(tag: str | None) -> LanguageProfile:
    """Accept a name ("german"), a locale ("de-DE", "de_DE") or a prefix ("de")."""
    if not tag:
        return LANGUAGE_PROFILES[DEFAULT_LANGUAGE]
    key = tag.strip().lower().replace("_", "-")
    if key in LANGUAGE_PROFILES:
        return LANGUAGE_PROFILES[key]
    for profile in LANGUAGE_PROFILES.values():
        if profile.locale.lower() == key:
            return profile
    prefix = key.split("-")[0]
    for profile in LANGUAGE_PROFILES.values():
        if profile.prefix == prefix:
            return profile
    return LANGUAGE_PROFILES[DEFAULT_LANGUAGE]
