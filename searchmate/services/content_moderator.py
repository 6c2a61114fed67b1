from __future__ import annotations

import json
import re
import unicodedata
from typing import Any

from loguru import logger

from searchmate.models.messages import Message, UserMessage
from searchmate.services.term_source import get_sensitive_terms

_QUOTES = str.maketrans({
    "‘": "'",
    "’": "'",
    "‚": "'",
    "‛": "'",
    "“": '"',
    "”": '"',
    "„": '"',
    "«": '"',
    "»": '"',
})

_WORD_CONTRACTIONS = {
    "can't": "cannot",
    "won't": "will not",
    "shan't": "shall not",
    "let's": "let us",
}
_SUFFIX_CONTRACTIONS = {
    "n't": " not",
    "'re": " are",
    "'ll": " will",
    "'ve": " have",
    "'m": " am",
    "'d": " would",
}
_CONTRACTIONS = {**_WORD_CONTRACTIONS, **_SUFFIX_CONTRACTIONS}
# Suffixes only count at the end of a word, so names like O'Malley are left alone
_CONTRACTION_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(c) for c in _WORD_CONTRACTIONS) + r")\b"
    r"|(?<=\w)(?:" + "|".join(re.escape(c) for c in _SUFFIX_CONTRACTIONS) + r")\b",
    re.IGNORECASE,
)
_PARENTHESES_RE = re.compile(r"[()\[\]{}]")
_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    text = unicodedata.normalize("NFKC", text).translate(_QUOTES)
    text = _PARENTHESES_RE.sub(" ", text)
    text = _CONTRACTION_RE.sub(lambda m: _CONTRACTIONS[m.group(0).lower()], text)
    text = _PUNCTUATION_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text.lower()).strip()


class ContentModerator:
    """Replaces sensitive terms in user text.

    Matching is whole-word and case-insensitive. The text is then normalized
    and the replacement runs again, so variants hidden behind punctuation,
    casing or smart quotes are caught on the second pass.
    """

    def __init__(self, terms: dict[str, str] | None = None):
        self.terms = dict(terms or {})

    def _replace(self, text: str) -> str:
        for term, replacement in self.terms.items():
            if not term:
                continue
            pattern = re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE)
            text = pattern.sub(replacement, text)
        return text

    def clean(self, text: str) -> str:
        if not self.terms:
            return text
        moderated = self._replace(normalize(self._replace(text)))
        if moderated != text:
            logger.debug(f"Moderated text: {text!r} -> {moderated!r}")
        return moderated

    def _clean_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.clean(value)
        if isinstance(value, dict):
            return {k: self._clean_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._clean_value(v) for v in value]
        return value

    def clean_content(self, content: str) -> str:
        """Clean user content; JSON payloads have their string values cleaned in place."""
        try:
            payload = json.loads(content)
        except json.JSONDecodeError:
            return self.clean(content)
        if not isinstance(payload, (dict, list)):
            return self.clean(content)
        return json.dumps(self._clean_value(payload), ensure_ascii=False)

    def moderate_messages(self, messages: list[Message]) -> list[Message]:
        moderated: list[Message] = []
        for message in messages:
            if isinstance(message, UserMessage):
                message = message.model_copy(update={"content": self.clean_content(message.content)})
            moderated.append(message)
        return moderated


async def moderate_messages(messages: list[Message]) -> list[Message]:
    """Refresh the term map and return messages with user content cleaned."""
    terms = await get_sensitive_terms()
    return ContentModerator(terms).moderate_messages(messages)
