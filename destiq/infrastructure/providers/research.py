"""Tier 1 research provider backed by Perplexity's OpenAI-compatible API.

Hides the specifics of the OpenAI client library and translates the
destination request into one comprehensive research prompt. The answer is
returned as markdown under each research section.
"""

import logging
import time
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from destiq.domain.interfaces.providers import ResearchProvider
from destiq.domain.models.errors import ApiErrorKind, ExternalApiError, NoDataFound
from destiq.domain.models.fallback import DestinationQuery, ParsedLocation, UserOrigin

logger = logging.getLogger(__name__)

PERPLEXITY_BASE_URL = "https://api.perplexity.ai"
RESEARCH_SECTIONS = ("housing", "costs", "cultural", "safety", "flights")

SYSTEM_PROMPT = "You are a helpful and accurate travel research assistant. Answer in structured Markdown."


class PerplexityResearchProvider(ResearchProvider):
    """Perplexity implementation of the ResearchProvider interface."""

    name = "perplexity"
    DEFAULT_MODEL = "sonar"

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        max_tokens: int = 3000,
        temperature: float = 0.2,
    ):
        """Initializes the provider.

        Args:
            api_key: Perplexity API key. The provider is unconfigured without one.
            model: Perplexity model name.
            max_tokens: Completion token limit.
            temperature: Sampling temperature (low for factual research).
        """
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODEL
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client: Optional[AsyncOpenAI] = None
        logger.info(f"PerplexityResearchProvider initialized for model: {self.model} (configured={self.is_configured()})")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            # Retries are owned by ApiRetryService
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=PERPLEXITY_BASE_URL, max_retries=0)
        return self._client

    async def research(
        self, location: ParsedLocation, origin: UserOrigin, query: DestinationQuery
    ) -> Dict[str, Any]:
        if not self.api_key:
            raise ExternalApiError(ApiErrorKind.AUTH_FAILED, "Perplexity API key not configured")

        prompt = build_research_prompt(location, origin, query)
        logger.debug(f"Sending research prompt for {location.city}, {location.country} to {self.model}")
        start_time = time.perf_counter()
        response = await self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        latency_ms = (time.perf_counter() - start_time) * 1000
        content = _extract_content(response)
        if not content.strip():
            raise NoDataFound(f"No content returned from {self.name} for {location.city}")

        logger.debug(f"Research completed in {latency_ms:.0f}ms, response length: {len(content)} chars")
        result: Dict[str, Any] = {section: content for section in RESEARCH_SECTIONS}
        result["model"] = getattr(response, "model", self.model)
        result["citations"] = list(getattr(response, "citations", None) or [])
        return result

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


def _extract_content(response: Any) -> str:
    try:
        return response.choices[0].message.content or ""
    except (AttributeError, IndexError, TypeError) as e:
        logger.error(f"Failed to parse research response structure: {e}")
        raise ExternalApiError(ApiErrorKind.PARSE_ERROR, f"Invalid research response structure: {e}") from e


def build_research_prompt(location: ParsedLocation, origin: UserOrigin, query: DestinationQuery) -> str:
    """Master research prompt for one destination."""
    interests = ", ".join(query.interests) if query.interests else "general activities"
    origin_label = origin.city or origin.country
    currency = location.currency or query.currency
    return f"""You are an expert travel research assistant compiling a detailed briefing for a long-stay traveller. Be factual and concise.

**Research Context:**
* **Destination:** {location.city}, {location.country}
* **Duration:** {query.duration_months} months
* **Budget:** {query.budget} {query.currency}
* **Interests:** {interests}
* **Origin:** {origin_label}

All cost estimates must be given in {currency}.

### Cost of Living
- Monthly estimate for a single person on a budget: housing, food, local transport, utilities.

### Housing Options
- Typical costs of shared apartments and short-term rentals, and good neighborhoods.

### Cultural Insights
- Key etiquette and customs that differ from {origin_label}. Primary language: {location.primary_language}.

### Safety Analysis
- Safe neighborhoods, areas to be cautious in, common scams.

### Flights
- Typical routes and price ranges from {origin_label}.

### Personalized Recommendations
- Based on interests in {interests}, suggest 2-3 specific activities."""
