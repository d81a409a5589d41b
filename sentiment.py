"""
Review sentiment: nearby place ratings and reviews to a 0-200 score.

Combines five signals:
  - average place rating (max 100)
  - review volume (max 30)
  - recent-vs-older review trend (max 20)
  - share of positive reviews (max 30)
  - price level, cheaper is better (max 20)

Google Place Details returns at most five reviews per place, so the
trend and keyword signals are computed over a small sample.
"""

import logging
import math
import random
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from scoring_config import SCORING_MODEL, SentimentConfig, clamp, round_half_up

logger = logging.getLogger(__name__)

_TREND_BONUS = {"improving": 20, "stable": 10, "declining": 0}

DETAIL_FIELDS = ["rating", "reviews", "user_ratings_total", "price_level"]


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Review:
    rating: float
    text: str = ""
    timestamp: int = 0      # epoch seconds

    @classmethod
    def from_google(cls, raw: Dict) -> Optional["Review"]:
        if raw.get("rating") is None:
            return None
        return cls(
            rating=raw["rating"],
            text=raw.get("text") or "",
            timestamp=raw.get("time") or 0,
        )


@dataclass(frozen=True)
class SentimentAssessment:
    score: int                                  # 0-200
    review_counts: Dict[str, int]               # positive / neutral / negative
    average_rating: float                       # 0-5
    total_reviews: int
    trend: str                                  # improving | stable | declining
    top_keywords: Tuple[str, ...] = ()
    price_level: int = 0
    community_engagement: str = "Very Low"
    is_fallback: bool = False
    is_synthetic: bool = False


def default_sentiment_assessment() -> SentimentAssessment:
    """Low-engagement default used when review data cannot be fetched."""
    return SentimentAssessment(
        score=0,
        review_counts={"positive": 0, "neutral": 0, "negative": 0},
        average_rating=0.0,
        total_reviews=0,
        trend="stable",
        community_engagement="Low",
        is_fallback=True,
    )


# =============================================================================
# PURE SIGNALS
# =============================================================================

def bucket_reviews(
    reviews: Sequence[Review],
    config: SentimentConfig = SCORING_MODEL.sentiment,
) -> Dict[str, int]:
    counts = {"positive": 0, "neutral": 0, "negative": 0}
    for r in reviews:
        if r.rating >= config.positive_min_rating:
            counts["positive"] += 1
        elif r.rating <= config.negative_max_rating:
            counts["negative"] += 1
        else:
            counts["neutral"] += 1
    return counts


def review_trend(
    reviews: Sequence[Review],
    config: SentimentConfig = SCORING_MODEL.sentiment,
) -> str:
    """Compare the newer half of the reviews against the older half.

    Odd counts put the extra review in the recent half.
    """
    if len(reviews) < 2:
        return "stable"

    ordered = sorted(reviews, key=lambda r: r.timestamp, reverse=True)
    split = math.ceil(len(ordered) / 2)
    recent, older = ordered[:split], ordered[split:]

    recent_avg = sum(r.rating for r in recent) / len(recent)
    older_avg = sum(r.rating for r in older) / len(older)

    if recent_avg - older_avg > config.trend_delta:
        return "improving"
    if recent_avg - older_avg < -config.trend_delta:
        return "declining"
    return "stable"


def extract_keywords(
    texts: Sequence[str],
    config: SentimentConfig = SCORING_MODEL.sentiment,
) -> Tuple[str, ...]:
    """Top keywords by frequency; ties keep first-encountered order."""
    counts: Counter = Counter()
    for text in texts:
        for word in re.split(r"\W+", (text or "").lower()):
            if len(word) < config.keyword_min_length or word in config.stopwords:
                continue
            counts[word] += 1
    # Counter keeps insertion order and sorted() is stable.
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return tuple(word for word, _ in ranked[:config.keyword_limit])


def community_engagement(total_reviews: int) -> str:
    if total_reviews > 500:
        return "Very High"
    if total_reviews > 200:
        return "High"
    if total_reviews > 100:
        return "Medium"
    if total_reviews > 50:
        return "Low"
    return "Very Low"


def sentiment_score(
    average_rating: float,
    total_reviews: int,
    trend: str,
    review_counts: Dict[str, int],
    average_price: float,
    config: SentimentConfig = SCORING_MODEL.sentiment,
) -> int:
    score = (average_rating / 5) * 100
    score += min(config.volume_cap, total_reviews / config.volume_divisor)
    score += _TREND_BONUS.get(trend, 0)

    considered = sum(review_counts.values())
    if considered > 0:
        score += review_counts["positive"] / considered * config.positive_ratio_weight

    score += max(0.0, config.price_base - average_price * config.price_factor)
    return round_half_up(clamp(score, 0, 200))


def analyze_sentiment(
    details: Sequence[Dict],
    config: SentimentConfig = SCORING_MODEL.sentiment,
) -> SentimentAssessment:
    """Reduce place-detail records to a SentimentAssessment.

    Each record may carry rating, user_ratings_total, price_level and a
    reviews list of ``{rating, text, time}``.
    """
    total_rating = 0.0
    total_reviews = 0
    rated = 0
    prices: List[float] = []
    reviews: List[Review] = []

    for d in details:
        if d.get("rating"):
            total_rating += d["rating"]
            total_reviews += d.get("user_ratings_total") or 0
            rated += 1
        if d.get("price_level") is not None:
            prices.append(d["price_level"])
        for raw in d.get("reviews") or ():
            review = Review.from_google(raw)
            if review is not None:
                reviews.append(review)

    average_rating = total_rating / len(details) if rated else 0.0
    average_price = sum(prices) / len(prices) if prices else 0.0

    counts = bucket_reviews(reviews, config)
    trend = review_trend(reviews, config)

    return SentimentAssessment(
        score=sentiment_score(average_rating, total_reviews, trend, counts, average_price, config),
        review_counts=counts,
        average_rating=round(average_rating, 1),
        total_reviews=total_reviews,
        trend=trend,
        top_keywords=extract_keywords([r.text for r in reviews], config),
        price_level=round_half_up(average_price),
        community_engagement=community_engagement(total_reviews),
    )


# =============================================================================
# PROVIDERS
# =============================================================================

def get_sentiment_assessment(
    maps,
    lat: float,
    lng: float,
    radius_meters: int,
    pacing_s: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
) -> SentimentAssessment:
    """Fetch nearby establishments and their details, then analyze.

    Any provider error or malformed detail record returns the default
    assessment.
    """
    try:
        places = maps.places_nearby(lat, lng, "establishment", radius_meters=radius_meters)
        details = []
        for place in places:
            place_id = place.get("place_id")
            if not place_id:
                continue
            if details and pacing_s > 0:
                sleep(pacing_s)
            details.append(maps.place_details(place_id, fields=DETAIL_FIELDS))
        return analyze_sentiment(details)
    except Exception:
        logger.warning(
            "Sentiment data unavailable for (%.4f, %.4f); using default",
            lat, lng, exc_info=True,
        )
        return default_sentiment_assessment()


@dataclass
class SimulatedSentimentProvider:
    """Demo stand-in for review data.  Output is flagged is_synthetic."""
    rng: random.Random = field(default_factory=random.Random)

    def assess(self) -> SentimentAssessment:
        total = self.rng.randint(100, 200)
        rating = min(5.0, round(self.rng.uniform(2.9, 5.0), 1))
        return SentimentAssessment(
            score=self.rng.randint(100, 200),
            review_counts={"positive": 0, "neutral": 0, "negative": 0},
            average_rating=rating,
            total_reviews=total,
            trend="stable",
            community_engagement=community_engagement(total),
            is_synthetic=True,
        )
