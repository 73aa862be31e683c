"""
Action Vocabulary

Synonym table, identifier tokenization and the searchable document text built
for each knowledge-base entity.
"""

import re
from typing import Dict, Iterable, List, Optional

from action_kb.models.actions import (
    AtomicAction,
    CompositeAction,
    LearnedPattern,
    UserTerm,
    unique,
)

# Canonical verb -> synonyms
SYNONYM_MAP: Dict[str, List[str]] = {
    "click": ["tap", "press", "select", "hit"],
    "verify": ["check", "assert", "validate", "confirm", "ensure"],
    "wait": ["pause", "delay", "sleep", "hold"],
    "navigate": ["go", "open", "visit", "goto"],
    "enter": ["type", "input", "fill", "write"],
    "scroll": ["swipe", "drag", "slide"],
    "play": ["start", "begin", "launch", "initiate"],
    "stop": ["pause", "halt", "end", "terminate"],
    "get": ["fetch", "retrieve", "obtain", "read"],
    "set": ["update", "modify", "change", "configure"],
    "login": ["signin", "authenticate", "logon"],
    "logout": ["signout", "logoff", "disconnect"],
    "search": ["find", "lookup", "query", "filter"],
    "close": ["dismiss", "hide", "remove", "exit"],
}

STOP_WORDS = frozenset({
    "a", "an", "the", "to", "for", "of", "on", "in", "and", "then",
    "with", "is", "be", "it", "at", "by", "into", "from",
})

_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_WORD = re.compile(r"([A-Z]+)([A-Z][a-z])")
_NON_WORD = re.compile(r"[^A-Za-z0-9]+")
_SCREEN_SUFFIX = re.compile(r"^(\w+?)(Screen|Page)$")


def split_identifier(name: str) -> List[str]:
    """Split camelCase, snake_case and punctuation into lower-case words."""
    spaced = _ACRONYM_WORD.sub(r"\1 \2", _LOWER_UPPER.sub(r"\1 \2", name or ""))
    return [word.lower() for word in _NON_WORD.split(spaced) if word]


def tokenize(text: str) -> List[str]:
    """Content tokens of free text or identifiers, stop words removed."""
    return [token for token in split_identifier(text) if token not in STOP_WORDS]


def expand_with_synonyms(words: Iterable[str]) -> List[str]:
    """Words followed by the synonyms of any canonical verb among them."""
    words = list(words)
    expanded = list(words)
    for word in words:
        expanded.extend(SYNONYM_MAP.get(word, []))
    return unique(expanded)


def keywords_from_method_name(method_name: str) -> List[str]:
    """
    Keywords for a mined method.

    >>> keywords_from_method_name("clickPlayButton")[:3]
    ['click', 'play', 'button']
    """
    words = [word for word in split_identifier(method_name) if len(word) > 2]
    return expand_with_synonyms(words)


def method_name_to_action(method_name: str) -> str:
    """clickPlayButton -> click_play_button"""
    return "_".join(split_identifier(method_name))


def target_screen_from_class(class_name: str) -> str:
    """PlayerScreen -> player; names without the suffix are lower-cased whole."""
    match = _SCREEN_SUFFIX.match(class_name)
    return match.group(1).lower() if match else class_name.lower()


def generate_search_phrases(action: str, target: str, details: Optional[str] = None) -> List[str]:
    """Natural-language variants of an action/target pair."""
    phrases = [f"{action} {target}".strip()]
    if details:
        phrases.append(f"{action} {target} {details}".strip())
    for variation in SYNONYM_MAP.get(action, []):
        phrases.append(f"{variation} {target}".strip())

    clean_target = target.replace("_", " ")
    if clean_target != target:
        phrases.append(f"{action} {clean_target}".strip())

    return unique(phrases)


def _join(parts: Iterable[Optional[str]]) -> str:
    return " ".join(part for part in parts if part)


def atomic_document(action: AtomicAction) -> str:
    """Searchable text of an atomic action, with keyword synonyms folded in."""
    return _join([
        action.action_name,
        action.method_name,
        action.class_name,
        action.platform.value if action.platform else None,
        action.brand.value if action.brand else None,
        *expand_with_synonyms(action.keywords),
        action.target_screen,
    ])


def composite_document(composite: CompositeAction) -> str:
    steps = " then ".join(step.atomic_action.phrase for step in composite.steps)
    return _join([composite.action_name, composite.description, steps, composite.target_screen])


def term_document(term: UserTerm) -> str:
    return _join([term.user_term, *term.synonyms, term.context])


def pattern_document(pattern: LearnedPattern) -> str:
    return _join(pattern.phrases or [f"{pattern.action} {pattern.target}"])


# Key phrases: a lookup has to name one of these, not just share words with
# the rest of the document.
def composite_phrases(composite: CompositeAction) -> List[str]:
    return [p for p in (composite.action_name, composite.description) if p]


def term_phrases(term: UserTerm) -> List[str]:
    return [term.user_term, *term.synonyms]


__all__ = [
    "SYNONYM_MAP",
    "STOP_WORDS",
    "split_identifier",
    "tokenize",
    "expand_with_synonyms",
    "keywords_from_method_name",
    "method_name_to_action",
    "target_screen_from_class",
    "generate_search_phrases",
    "atomic_document",
    "composite_document",
    "term_document",
    "pattern_document",
    "composite_phrases",
    "term_phrases",
]
