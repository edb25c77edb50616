"""Pronoun table for ``:subject``-style placeholders."""

from collections.abc import Mapping
from typing import Any

DEFAULT_LANGUAGE = "en"
NEUTRAL_GENDER = "x"

PRONOUNS: dict[str, dict[str, dict[str, str]]] = {
    "en": {
        "m": {
            "subject": "he",
            "object": "him",
            "possessive": "his",
            "reflexive": "himself",
        },
        "f": {
            "subject": "she",
            "object": "her",
            "possessive": "her",
            "reflexive": "herself",
        },
        "x": {
            "subject": "they",
            "object": "them",
            "possessive": "their",
            "reflexive": "themselves",
        },
    },
}


def resolve_pronoun(form: str, gender: Any = None, lang: Any = None) -> str:
    """Look up a pronoun form, falling back to English and the neutral gender.

    Regional language tags (``en-GB``) use their base language's table.
    """
    language = str(lang or DEFAULT_LANGUAGE)
    table = PRONOUNS.get(language) or PRONOUNS.get(language.split("-", 1)[0])
    if table is None:
        table = PRONOUNS[DEFAULT_LANGUAGE]
    forms = table.get(str(gender or NEUTRAL_GENDER)) or table[NEUTRAL_GENDER]
    return forms[form]


def pronoun_for(form: str, context: Mapping[str, Any]) -> str:
    """Resolve a pronoun form against a variant context."""
    return resolve_pronoun(form, context.get("gender"), context.get("lang"))
