import re
from typing import Iterable, List, Sequence

from core.entities import ContentType
from core.vocabulary import (
    ARTICLE_CATEGORY_RULES,
    ARTICLE_DEFAULT_CATEGORY,
    FORMAT_TAGS,
    POSITION_TAGS,
    VIDEO_CATEGORY_RULES,
    VIDEO_DEFAULT_CATEGORY,
    CategoryRule,
)

_POSITION_PATTERNS = [(tag, re.compile(rf"(?<![A-Za-z0-9/]){re.escape(tag)}(?![A-Za-z0-9])")) for tag in POSITION_TAGS]
_FORMAT_PATTERNS = [
    (re.compile(rf"(?<![a-z0-9]){re.escape(phrase)}(?![a-z0-9])", re.IGNORECASE), tag)
    for phrase, tag in FORMAT_TAGS.items()
]


class Classifier:
    """
    Ordered first-match category assignment.
    Rules are checked in order; the first rule with a keyword contained in
    title + description (case-insensitive) wins.
    """

    def __init__(self, rules: Sequence[CategoryRule], default: str):
        self.rules = tuple(rules)
        self.default = default

    def categorize(self, title: str, description: str = "") -> str:
        text = f"{title} {description}".lower()
        for rule in self.rules:
            if any(keyword in text for keyword in rule.keywords):
                return rule.label
        return self.default


VIDEO_CLASSIFIER = Classifier(VIDEO_CATEGORY_RULES, VIDEO_DEFAULT_CATEGORY)
ARTICLE_CLASSIFIER = Classifier(ARTICLE_CATEGORY_RULES, ARTICLE_DEFAULT_CATEGORY)


def classifier_for(content_type: ContentType) -> Classifier:
    if content_type is ContentType.VIDEO:
        return VIDEO_CLASSIFIER
    return ARTICLE_CLASSIFIER


def extract_tags(title: str, description: str = "") -> List[str]:
    """Position abbreviations and league-format terms found in the text."""
    text = f"{title} {description}"
    tags: List[str] = []

    for tag, pattern in _POSITION_PATTERNS:
        if pattern.search(text) and tag not in tags:
            tags.append(tag)

    for pattern, tag in _FORMAT_PATTERNS:
        if pattern.search(text) and tag not in tags:
            tags.append(tag)

    return tags


def normalize_tags(tags: Iterable[str]) -> List[str]:
    seen = set()
    normalized = []
    for tag in tags:
        tag = " ".join(str(tag).split())
        if not tag or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        normalized.append(tag)
    return normalized
