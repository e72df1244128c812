"""Word tokenization shared by embedding, reranking and evaluation."""

import re
from typing import List

_WORD_RE = re.compile(r"\w+")


def words(text: str) -> List[str]:
    """Lowercase word tokens of `text`, punctuation removed."""
    return _WORD_RE.findall(text.lower())
