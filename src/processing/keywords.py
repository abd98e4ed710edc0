"""
Keyword extraction over title + description.

Two passes:
1. Gazetteer lookup (player names, team names, fantasy terms) on word boundaries.
2. Capitalised two/three-word phrases, treated as likely names.
"""
import re
from typing import Iterable, List

from core.vocabulary import FANTASY_TERMS, PHRASE_STOPWORDS, PLAYER_NAMES, TEAM_NAMES

_CAPITALISED_PHRASE = re.compile(r"\b[A-Z][a-zA-Z'.-]+(?:\s+[A-Z][a-zA-Z'.-]+){1,2}\b")


def _compile(terms: Iterable[str]) -> List[tuple]:
    return [
        (term, re.compile(rf"(?<![a-z0-9]){re.escape(term)}(?![a-z0-9])"))
        for term in terms
    ]


_GAZETTEER = _compile(PLAYER_NAMES) + _compile(TEAM_NAMES) + _compile(FANTASY_TERMS)


def _phrase_candidates(text: str) -> List[str]:
    phrases = []
    for match in _CAPITALISED_PHRASE.finditer(text):
        words = match.group(0).split()
        if words[0].lower() in PHRASE_STOPWORDS:
            continue
        if all(len(word) > 2 for word in words):
            phrases.append(match.group(0))
    return phrases


def extract_keywords(title: str, description: str = "") -> List[str]:
    raw_text = f"{title} {description}"
    text = raw_text.lower()
    keywords: List[str] = []

    for term, pattern in _GAZETTEER:
        if pattern.search(text):
            keywords.append(term)

    keywords.extend(_phrase_candidates(raw_text))

    return normalize_keywords(keywords)


def normalize_keywords(keywords: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for keyword in keywords:
        keyword = " ".join(keyword.split()).lower()
        if keyword and keyword not in seen:
            seen.add(keyword)
            result.append(keyword)
    return result
