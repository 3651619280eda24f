"""Tier 2 sub-source: traveller and student discussions on Reddit.

Authenticates with the app-only OAuth flow (client credentials) and keeps
the bearer token until shortly before it expires. Post searches across
the relevant subreddits are cached in the reddit namespace and distilled
into insights (topics, concerns, costs, safety and housing advice).
"""

import asyncio
import logging
import re
import time
from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Sequence, TypedDict

from destiq.domain.interfaces.cache import CacheService
from destiq.domain.interfaces.providers import SubSource
from destiq.domain.models.common import REDDIT_NAMESPACE
from destiq.domain.models.errors import ApiErrorKind, ExternalApiError, NoDataFound
from destiq.domain.models.fallback import FallbackContext
from destiq.infrastructure.cache.caching_service import with_cache
from destiq.infrastructure.cache.keys import CacheKeyGenerator
from destiq.infrastructure.providers.http_client import USER_AGENT, HttpClientMixin

logger = logging.getLogger(__name__)

REDDIT_AUTH_URL = "https://www.reddit.com/api/v1/access_token"
REDDIT_API_URL = "https://oauth.reddit.com"

BASE_SUBREDDITS = ("studyabroad", "IWantOut", "travel")
# Refresh the token this many seconds before Reddit says it expires
TOKEN_REFRESH_MARGIN_S = 300

TOPIC_KEYWORDS = (
    "housing", "accommodation", "food", "transport", "metro", "bus", "safety", "nightlife",
    "museum", "university", "student", "visa", "budget", "cheap", "expensive",
)
CONCERN_KEYWORDS = ("problem", "issue", "concern", "careful", "avoid", "warning", "scam")
SAFETY_KEYWORDS = ("safety", "safe", "dangerous", "crime", "secure", "pickpocket")
HOUSING_KEYWORDS = ("housing", "apartment", "rent", "accommodation", "landlord", "lease")
STUDENT_KEYWORDS = ("student", "study abroad", "exchange", "university", "semester")
POSITIVE_WORDS = ("love", "great", "amazing", "best", "recommend", "enjoy")
NEGATIVE_WORDS = ("hate", "bad", "worst", "difficult", "expensive", "disappoint")
COST_CATEGORIES = {
    "housing": ("rent", "apartment", "housing", "room"),
    "food": ("food", "grocer", "restaurant", "meal"),
    "transport": ("transport", "metro", "bus", "train"),
}
COST_PATTERN = re.compile(r"[$€£]|\d+\s*(dollar|euro|pound|per month|monthly)", re.IGNORECASE)
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


class RedditPost(TypedDict):
    id: str
    title: str
    content: str
    author: str
    subreddit: str
    score: int
    num_comments: int
    url: str
    created_utc: float
    permalink: str
    flair: Optional[str]


class CostInsight(TypedDict):
    category: str
    text: str
    source: str


class StudentExperience(TypedDict):
    summary: str
    positives: List[str]
    negatives: List[str]
    source: str


class RedditInsights(TypedDict):
    posts: List[RedditPost]
    top_topics: List[str]
    common_concerns: List[str]
    cost_insights: List[CostInsight]
    safety_tips: List[str]
    housing_advice: List[str]
    student_experiences: List[StudentExperience]
    confidence: float


class RedditSource(HttpClientMixin, SubSource):
    """Community insights from subreddits about the destination."""

    name = "reddit"

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        user_agent: Optional[str] = None,
        cache: Optional[CacheService] = None,
        ttl: Optional[float] = None,
        timeout: float = 10.0,
        limit: int = 25,
        max_posts: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the source.

        Args:
            client_id: Reddit app client id.
            client_secret: Reddit app client secret.
            user_agent: User-Agent sent to Reddit, which rejects generic agents.
            cache: Cache for post searches (reddit namespace).
            ttl: TTL for cached searches (namespace default if None).
            timeout: HTTP timeout in seconds.
            limit: Posts requested per subreddit.
            max_posts: Posts kept after merging all subreddits.
            clock: Monotonic time source for token expiry.
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.user_agent = user_agent or USER_AGENT
        self.timeout = timeout
        self.limit = limit
        self.max_posts = max_posts
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._search = self._search_posts
        if cache is not None:
            self._search = with_cache(
                cache, REDDIT_NAMESPACE, ttl, self._search_posts,
                key_fn=lambda query, subreddits: CacheKeyGenerator.reddit_key(query, subreddits),
            )

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _ensure_token(self) -> str:
        if self._token is None or self._clock() >= self._token_expires_at:
            await self._authenticate()
        return self._token

    async def _authenticate(self) -> None:
        response = await self._get_client().post(
            REDDIT_AUTH_URL,
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            headers={"User-Agent": self.user_agent},
        )
        response.raise_for_status()
        body = response.json()
        token = body.get("access_token")
        if not token:
            raise ExternalApiError(
                ApiErrorKind.AUTH_FAILED,
                f"Reddit token response had no access_token ({body.get('error', 'unknown error')})",
            )
        expires_in = float(body.get("expires_in", 3600))
        self._token = token
        self._token_expires_at = self._clock() + max(0.0, expires_in - TOKEN_REFRESH_MARGIN_S)
        logger.info(f"Reddit access token obtained, valid for {expires_in:.0f}s")

    async def _search_subreddit(self, subreddit: str, query: str, token: str) -> List[RedditPost]:
        response = await self._get_client().get(
            f"{REDDIT_API_URL}/r/{subreddit}/search",
            params={"q": query, "sort": "top", "t": "year", "limit": self.limit, "restrict_sr": "true"},
            headers={"Authorization": f"Bearer {token}", "User-Agent": self.user_agent},
        )
        if response.status_code == 401:
            # Revoked early; the next search authenticates again
            self._token = None
        response.raise_for_status()
        children = (response.json().get("data") or {}).get("children", [])
        return [_to_post(child.get("data") or {}) for child in children]

    async def _search_posts(self, query: str, subreddits: Sequence[str]) -> List[RedditPost]:
        token = await self._ensure_token()
        results = await asyncio.gather(
            *(self._search_subreddit(s, query, token) for s in subreddits),
            return_exceptions=True,
        )
        posts: List[RedditPost] = []
        errors: List[BaseException] = []
        for subreddit, result in zip(subreddits, results):
            if isinstance(result, BaseException):
                logger.warning(f"Reddit search in r/{subreddit} failed: {result}")
                errors.append(result)
                continue
            posts.extend(result)
        if errors and len(errors) == len(subreddits):
            raise errors[0]
        posts.sort(key=lambda p: p["score"], reverse=True)
        return posts[:self.max_posts]

    async def fetch(self, context: FallbackContext) -> Dict[str, Any]:
        if not self.is_configured():
            raise ExternalApiError(ApiErrorKind.AUTH_FAILED, "Reddit client credentials not configured")
        city, country = context.location.city, context.location.country
        subreddits = relevant_subreddits(city, country)
        posts = await self._search(f"{city} student OR study abroad OR cost living OR housing", subreddits)
        if not posts:
            raise NoDataFound(f"No Reddit discussions found for {city}, {country}")
        return {**build_insights(posts), "subreddits": subreddits}


def relevant_subreddits(city: str, country: str) -> List[str]:
    """General travel subreddits plus the city's and country's own."""
    names = list(BASE_SUBREDDITS)
    for place in (city, country):
        name = "".join(place.lower().split())
        if name and name not in names:
            names.append(name)
    return names


def build_insights(posts: List[RedditPost], now: Optional[float] = None) -> RedditInsights:
    """Distills posts (highest score first) into travel insights."""
    return RedditInsights(
        posts=posts[:20],
        top_topics=_top_topics(posts),
        common_concerns=_titles_mentioning(posts, CONCERN_KEYWORDS, min_score=10, limit=5),
        cost_insights=_cost_insights(posts),
        safety_tips=_titles_mentioning(posts, SAFETY_KEYWORDS, min_score=5, limit=5),
        housing_advice=_titles_mentioning(posts, HOUSING_KEYWORDS, min_score=10, limit=5),
        student_experiences=_student_experiences(posts),
        confidence=calculate_confidence(posts, now),
    )


def calculate_confidence(posts: List[RedditPost], now: Optional[float] = None) -> float:
    """0..1 from score, recency and discussion volume; 25 points max per post."""
    if not posts:
        return 0.0
    now = time.time() if now is None else now
    points = 0.0
    for post in posts:
        age_days = max(0.0, (now - post["created_utc"]) / 86400)
        points += min(post["score"] / 100, 10)
        points += max(0.0, 10 - age_days / 30)
        points += min(post["num_comments"] / 20, 5)
    return round(min(points / (25 * len(posts)), 1.0), 2)


def _to_post(data: Dict[str, Any]) -> RedditPost:
    return RedditPost(
        id=str(data.get("id", "")),
        title=data.get("title") or "",
        content=data.get("selftext") or "",
        author=data.get("author") or "[deleted]",
        subreddit=data.get("subreddit") or "",
        score=int(data.get("score") or 0),
        num_comments=int(data.get("num_comments") or 0),
        url=data.get("url") or "",
        created_utc=float(data.get("created_utc") or 0),
        permalink=f"https://reddit.com{data.get('permalink', '')}",
        flair=data.get("link_flair_text"),
    )


def _text(post: RedditPost) -> str:
    return f"{post['title']} {post['content']}".lower()


def _top_topics(posts: List[RedditPost]) -> List[str]:
    counts = Counter(k for post in posts for k in TOPIC_KEYWORDS if k in _text(post))
    return [topic for topic, _ in counts.most_common(10)]


def _titles_mentioning(posts: List[RedditPost], keywords: Sequence[str], min_score: int, limit: int) -> List[str]:
    return [
        post["title"] for post in posts
        if post["score"] > min_score and any(k in _text(post) for k in keywords)
    ][:limit]


def _cost_insights(posts: List[RedditPost]) -> List[CostInsight]:
    insights: List[CostInsight] = []
    for post in posts:
        for sentence in SENTENCE_SPLIT.split(f"{post['title']}. {post['content']}"):
            if not COST_PATTERN.search(sentence):
                continue
            lowered = sentence.lower()
            category = next((c for c, words in COST_CATEGORIES.items() if any(w in lowered for w in words)), "general")
            insights.append(CostInsight(category=category, text=sentence.strip()[:200], source=post["permalink"]))
            if len(insights) == 10:
                return insights
    return insights


def _student_experiences(posts: List[RedditPost]) -> List[StudentExperience]:
    experiences: List[StudentExperience] = []
    for post in posts:
        if not any(k in _text(post) for k in STUDENT_KEYWORDS):
            continue
        sentences = [s.strip() for s in SENTENCE_SPLIT.split(post["content"]) if s.strip()]
        experiences.append(StudentExperience(
            summary=post["title"],
            positives=[s for s in sentences if any(w in s.lower() for w in POSITIVE_WORDS)][:3],
            negatives=[s for s in sentences if any(w in s.lower() for w in NEGATIVE_WORDS)][:3],
            source=post["permalink"],
        ))
        if len(experiences) == 3:
            break
    return experiences
