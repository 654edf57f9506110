"""
Summarizer
==========

LLM-based structured video summaries.

Features:
- OpenAI chat model in JSON mode (default) or a local Ollama model
- Title + description + optional transcript as input
- Structured result: core theme, sections, key points, insights, tags
- Unparsable model output degrades to a minimal summary instead of failing
"""

import json
import logging
import re
from typing import Any, List, Optional

from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

NO_SUMMARY_TEXT = "Could not generate a summary."

SYSTEM_PROMPT = (
    "You are an expert content summarizer specializing in YouTube video analysis. "
    "Create comprehensive, well-structured summaries suitable for knowledge "
    "management systems such as Obsidian."
)

SUMMARY_PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_PROMPT),
    ("human", """
Summarize the following YouTube video in {language}, as a note for Obsidian.

Video title: {title}
Video description: {description}
{transcript_block}

Respond with a single JSON object in exactly this shape:
{{
  "title": "summary title that captures the core content",
  "coreTheme": "one or two sentences on the central theme",
  "content": "detailed summary in Markdown, organised in paragraphs",
  "sections": [
    {{"title": "section title", "timestamp": "mm:ss (optional)", "content": "section summary", "keyWords": ["keyword"]}}
  ],
  "keyPoints": ["key point 1", "key point 2", "key point 3"],
  "insights": ["practical insight or takeaway"],
  "tags": ["tag1", "tag2", "tag3"]
}}

Guidelines:
- Convey the core message clearly
- Highlight practical information and tips
- Explain technical content so beginners can follow
- Produce tags that are useful for searching in Obsidian
"""),
])


class SummaryError(RuntimeError):
    """The LLM backend could not produce a response."""


class SummarySection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    timestamp: Optional[str] = None
    content: str = ""
    key_words: List[str] = Field(default_factory=list, alias="keyWords")


class VideoSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    core_theme: str = Field("", alias="coreTheme")
    content: str
    sections: List[SummarySection] = Field(default_factory=list)
    key_points: List[str] = Field(default_factory=list, alias="keyPoints")
    insights: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _sections(value: Any) -> List[SummarySection]:
    out: List[SummarySection] = []
    if not isinstance(value, list):
        return out
    for raw in value:
        if not isinstance(raw, dict):
            continue
        out.append(SummarySection(
            title=str(raw.get("title") or ""),
            timestamp=(str(raw["timestamp"]) if raw.get("timestamp") else None),
            content=str(raw.get("content") or ""),
            key_words=_str_list(raw.get("keyWords", raw.get("key_words"))),
        ))
    return out


def minimal_summary(fallback_title: str, text: Optional[str] = None) -> VideoSummary:
    return VideoSummary(title=fallback_title, content=(text or "").strip() or NO_SUMMARY_TEXT)


def parse_summary_payload(text: Optional[str], fallback_title: str) -> VideoSummary:
    """
    Parse the model's reply into a VideoSummary.

    Accepts camelCase or snake_case keys and ```json fences. Anything that
    is not a JSON object becomes a minimal summary carrying the raw text.
    """
    raw = (text or "").strip()
    m = _FENCE.match(raw)
    if m:
        raw = m.group(1)

    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Summary response is not valid JSON; storing minimal summary")
        return minimal_summary(fallback_title, text)

    if not isinstance(data, dict):
        logger.warning("Summary response is %s, not an object", type(data).__name__)
        return minimal_summary(fallback_title, text)

    return VideoSummary(
        title=str(data.get("title") or fallback_title),
        core_theme=str(data.get("coreTheme") or data.get("core_theme") or ""),
        content=str(data.get("content") or NO_SUMMARY_TEXT),
        sections=_sections(data.get("sections")),
        key_points=_str_list(data.get("keyPoints", data.get("key_points"))),
        insights=_str_list(data.get("insights")),
        tags=_str_list(data.get("tags")),
    )


def _build_llm(settings: Settings):
    """Chat model for the configured backend."""
    if settings.summary_backend == "ollama":
        from langchain_community.chat_models import ChatOllama

        logger.info("Using local Ollama model: %s", settings.ollama_model)
        return ChatOllama(model=settings.ollama_model, format="json", temperature=0.7)

    if not settings.openai_api_key:
        raise SummaryError("OPENAI_API_KEY is not set.")

    from langchain_openai import ChatOpenAI

    llm = ChatOpenAI(
        model=settings.openai_model,
        temperature=0.7,
        api_key=settings.openai_api_key,
    )
    return llm.bind(response_format={"type": "json_object"})


def summarize_video(
    title: str,
    description: str,
    transcript: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> VideoSummary:
    """
    Summarize a video with the configured LLM backend.

    Raises:
        SummaryError if the backend is unavailable or the request fails
    """
    settings = settings or get_settings()
    transcript_block = ""
    if transcript:
        transcript_block = f"Transcript: {transcript[:settings.summary_max_chars]}"

    try:
        chain = SUMMARY_PROMPT | _build_llm(settings)
        result = chain.invoke({
            "language": settings.summary_language,
            "title": title,
            "description": description or "",
            "transcript_block": transcript_block,
        })
    except SummaryError:
        raise
    except Exception as e:
        logger.error("Summary generation failed for %r: %s", title, e)
        raise SummaryError(
            "AI summary generation failed. Check the API key and rate limits."
        ) from e

    return parse_summary_payload(getattr(result, "content", str(result)), title)
