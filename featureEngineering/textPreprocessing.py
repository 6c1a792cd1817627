import re
from typing import Iterable, List, Optional, Set

HASHTAG_PATTERN = re.compile(r'#([\w\u0590-\u05ff]+)')
MENTION_PATTERN = re.compile(r'@(\w+)')
NON_WORD_PATTERN = re.compile(r'[^\w\s]')
EXCESS_NEWLINES_PATTERN = re.compile(r'\n{3,}')


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    unique_items = []
    for item in items:
        if item not in seen:
            seen.add(item)
            unique_items.append(item)
    return unique_items


def tokenize_text(text: str) -> List[str]:
    """
    Simple tokenization - lowercase, remove punctuation, split on whitespace

    Args:
        text: Input text to tokenize

    Returns:
        List of tokens
    """
    if not text:
        return []

    text = NON_WORD_PATTERN.sub('', text.lower())
    return [token for token in text.split() if token]


def clean_text(text: str) -> str:
    """
    Normalize line endings, collapse runs of blank lines and trim

    Args:
        text: Input text to clean

    Returns:
        Cleaned text
    """
    if not text:
        return ""

    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = EXCESS_NEWLINES_PATTERN.sub('\n\n', text)
    return text.strip()


def remove_stopwords(tokens: List[str], stopwords: Optional[Set[str]] = None) -> List[str]:
    """
    Remove common stopwords from token list

    Args:
        tokens: List of tokens
        stopwords: Set of stopwords to remove (uses default if None)

    Returns:
        Filtered tokens without stopwords
    """
    if stopwords is None:
        stopwords = {
            'a', 'an', 'and', 'are', 'as', 'at', 'be', 'by', 'for', 'from',
            'has', 'he', 'in', 'is', 'it', 'its', 'of', 'on', 'that', 'the',
            'to', 'was', 'will', 'with', 'but', 'or', 'not', 'this', 'they',
            'i', 'you', 'we', 'she', 'him', 'her', 'his', 'them', 'their'
        }

    return [token for token in tokens if token not in stopwords]


def extract_hashtags(text: str) -> List[str]:
    """
    Extract hashtags from text

    Args:
        text: Input text

    Returns:
        Unique lowercase hashtags (without # symbol) in order of appearance
    """
    if not text:
        return []

    return _unique(tag.lower() for tag in HASHTAG_PATTERN.findall(text))


def extract_mentions(text: str) -> List[str]:
    """
    Extract @mentions from text

    Args:
        text: Input text

    Returns:
        Unique lowercase mentions (with @ symbol) in order of appearance
    """
    if not text:
        return []

    return _unique(f"@{mention.lower()}" for mention in MENTION_PATTERN.findall(text))


def extract_keywords(text: str, stopwords: Iterable[str], min_length: int = 4, limit: int = 10) -> List[str]:
    """
    Derive fallback tags from free text

    Args:
        text: Title/description text
        stopwords: Words never used as keywords
        min_length: Minimum keyword length
        limit: Maximum number of keywords

    Returns:
        Up to ``limit`` unique lowercase keywords in order of appearance
    """
    if not text:
        return []

    excluded = set(stopwords)
    keywords = [
        token for token in remove_stopwords(tokenize_text(text), excluded)
        if len(token) >= min_length
    ]
    return _unique(keywords)[:limit]
