"""
Free-text sentiment scoring for feedback answers.

Uses the VADER lexicon (vaderSentiment) and reports its compound polarity,
a scalar in [-1, 1]. Pure function; the analyzer is built once and reused.
"""

from functools import lru_cache

import structlog
from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

logger = structlog.get_logger()


@lru_cache
def _get_analyzer() -> SentimentIntensityAnalyzer:
    """Lazy-load the VADER analyzer (lexicon parsing happens once)."""
    logger.debug("sentiment_analyzer_loaded")
    return SentimentIntensityAnalyzer()


def score_sentiment(text: str) -> float:
    """
    Score the polarity of a free-text answer.

    Blank input short-circuits to 0.0 before the lexicon is consulted.

    Args:
        text: Answer text

    Returns:
        Compound polarity in [-1, 1]; 0.0 for empty or whitespace-only text
    """
    if not text or not text.strip():
        return 0.0

    try:
        compound = _get_analyzer().polarity_scores(text)["compound"]
    except Exception as e:
        logger.warning("sentiment_scoring_failed", error=str(e), text_length=len(text))
        return 0.0

    return max(-1.0, min(1.0, float(compound)))
