"""
AI-powered signal extraction from harvested posts.
"""
from __future__ import annotations

import json
import logging
from typing import List, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from trendwatcher.config import (
    ANALYSIS_BODY_CHARS,
    ANALYSIS_MAX_TOKENS,
    ANALYSIS_TEMPERATURE,
    LOOKBACK_HOURS,
    MAX_ANALYSIS_POSTS,
    OPENAI_MODEL,
    REQUEST_TIMEOUT,
)
from trendwatcher.errors import AnalysisFailure
from trendwatcher.models import Post
from trendwatcher.schemas import AnalysisResult

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a trend analyst for SDG Lab, analyzing Reddit discussions about loneliness, "
    "depression, and communication.\n"
    'Return JSON: { "summary": "...", "signals": [{ "category": '
    '"emerging_topic"|"growing_trend"|"pain_point"|"hypothesis", "title": "...", '
    '"description": "...", "strength": "high"|"medium"|"low", '
    '"sentiment": "positive"|"negative"|"mixed"|"neutral", "postCount": N, '
    '"sourceNames": [...], "growthPercent": N|null }] }\n'
    "Focus on: loneliness, companionship, emotional support, peer communication, "
    "mental health tools. 3-5 signals per category."
)


def format_posts(posts: Sequence[Post], limit: int = MAX_ANALYSIS_POSTS) -> str:
    """
    Render posts as the compact text block sent to the model.

    Args:
        posts: Posts of the run
        limit: Maximum number of posts included (extra posts are dropped)

    Returns:
        Posts separated by '---' lines
    """
    return "\n---\n".join(
        f"[r/{p.source_name}] (score:{p.score}, comments:{p.comment_count}) {p.title}\n"
        f"{(p.body or '')[:ANALYSIS_BODY_CHARS]}"
        for p in posts[:limit]
    )


def build_user_prompt(posts: Sequence[Post], source_names: Sequence[str], lookback_hours: int) -> str:
    return (
        f"Analyze {len(posts)} posts from {', '.join(source_names)} (last {lookback_hours}h):\n\n"
        + format_posts(posts)
    )


def parse_analysis(content: Optional[str]) -> AnalysisResult:
    """
    Validate the model's JSON answer.

    Raises:
        AnalysisFailure: if the content is empty, not JSON or has the wrong shape
    """
    if not content or not content.strip():
        raise AnalysisFailure("Empty response from OpenAI")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise AnalysisFailure(f"OpenAI returned invalid JSON: {e}") from e
    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        raise AnalysisFailure(
            "OpenAI response does not match the signal schema",
            {"errors": e.errors(include_url=False, include_input=False)},
        ) from e


class SignalAnalyzer:
    """Sends posts to the chat completions API and returns summary + signals."""

    def __init__(
        self,
        api_key: str,
        model: str = OPENAI_MODEL,
        client: Optional[AsyncOpenAI] = None,
        lookback_hours: int = LOOKBACK_HOURS,
    ):
        self.model = model
        self.lookback_hours = lookback_hours
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=REQUEST_TIMEOUT * 4)

    async def analyze(self, posts: Sequence[Post], source_names: Sequence[str]) -> AnalysisResult:
        """
        Extract signals from posts.

        Args:
            posts: Windowed posts (truncated to MAX_ANALYSIS_POSTS in the prompt)
            source_names: Configured sources

        Returns:
            Validated AnalysisResult

        Raises:
            AnalysisFailure: on API error or malformed content
        """
        messages: List[dict] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(posts, source_names, self.lookback_hours)},
        ]

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                messages=messages,
                max_tokens=ANALYSIS_MAX_TOKENS,
                temperature=ANALYSIS_TEMPERATURE,
            )
        except OpenAIError as e:
            raise AnalysisFailure(f"OpenAI error: {type(e).__name__}: {e}") from e

        if not response.choices:
            raise AnalysisFailure("Empty response from OpenAI")
        result = parse_analysis(response.choices[0].message.content)
        logger.info("Analysis found %d signals", len(result.signals))
        return result
