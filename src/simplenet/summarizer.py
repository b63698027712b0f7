"""Fixed-length summary of a content bundle via a hosted LLM.

Serializes whatever sources are present into one prompt, asks for a
single paragraph of about 65 words, and clamps the reply to that length.
An empty bundle gets a deterministic best-effort sentence instead of an
LLM call.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from simplenet.costs import estimate_llm_cost, token_usage
from simplenet.exceptions import SummarizationFailedError
from simplenet.models import SourceKind
from simplenet.usage import track_usage

if TYPE_CHECKING:
    from simplenet.config import LLMSettings
    from simplenet.models import Category, ContentBundle
    from simplenet.usage import UsageSink

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You write short digests for a content feed. Given a list of recent videos,
news headlines, and newsletter posts about one topic, write a single
paragraph of about {words} words that tells the reader what is happening.

Guidelines:
- Synthesize across sources; do not list items one by one.
- Plain prose only: no headings, bullets, links, or emoji.
- Do not invent facts that are not suggested by the items.
"""

_SOURCE_HEADINGS: dict[SourceKind, str] = {
    SourceKind.YOUTUBE: "Video",
    SourceKind.NEWS: "News",
    SourceKind.NEWSLETTER: "Newsletters",
}

_WS_RE = re.compile(r"\s+")
_QUOTES = "\"'“”"


def build_prompt(bundle: ContentBundle, category: Category | None = None) -> str:
    """Render the bundle as prompt context grouped by source."""
    topic = category.value if category is not None else "the selected topic"
    sections: list[str] = [f"Topic: {topic}"]

    current: SourceKind | None = None
    for kind, item in bundle.items():
        if kind is not current:
            sections.append(f"\n## {_SOURCE_HEADINGS[kind]}")
            current = kind
        line = f"- {item.title}"
        if item.source_label:
            line += f" ({item.source_label})"
        if item.description:
            line += f": {item.description}"
        sections.append(line)
    return "\n".join(sections)


def clamp_words(text: str, max_words: int) -> str:
    """Collapse whitespace, strip wrapping quotes, and cap the word count."""
    cleaned = _WS_RE.sub(" ", text).strip().strip(_QUOTES).strip()
    words = cleaned.split(" ") if cleaned else []
    if len(words) <= max_words:
        return cleaned
    clipped = " ".join(words[:max_words]).rstrip(",;:")
    if not clipped.endswith((".", "!", "?")):
        clipped += "..."
    return clipped


def fallback_summary(category: Category | None = None) -> str:
    """Best-effort text for a search where no source returned content."""
    topic = f"{category.value} " if category is not None else ""
    return (
        f"No fresh {topic}content could be gathered from any source right now. "
        "Try the search again in a few minutes."
    )


# ---------------------------------------------------------------------------
# Summarizer
# ---------------------------------------------------------------------------


class Summarizer:
    """Summarize a bundle with a single completion call, no retries."""

    def __init__(self, settings: LLMSettings, sink: UsageSink) -> None:
        self._settings = settings
        self._sink = sink

    @property
    def max_words(self) -> int:
        return self._settings.summary_words

    async def summarize(
        self,
        bundle: ContentBundle,
        category: Category | None = None,
    ) -> str:
        """Produce a summary of at most ``summary_words`` words.

        Args:
            bundle: Aggregated content (may be empty).
            category: Optional topic to steer the prompt.

        Returns:
            Non-empty summary text.

        Raises:
            SummarizationFailedError: If the completion call errors, times
                out, or returns no text.
        """
        if bundle.is_empty:
            logger.info("summarize_empty_bundle")
            return fallback_summary(category)

        import litellm

        model = self._settings.litellm_model
        messages = [
            {
                "role": "system",
                "content": _SYSTEM_PROMPT.format(words=self.max_words),
            },
            {"role": "user", "content": build_prompt(bundle, category)},
        ]

        try:
            async with track_usage(self._sink, "llm", "summarize") as call:
                response = await litellm.acompletion(
                    model=model,
                    messages=messages,
                    max_tokens=self._settings.max_tokens,
                    temperature=self._settings.temperature,
                    timeout=self._settings.timeout,
                )
                input_tokens, output_tokens = token_usage(response)
                call.cost = estimate_llm_cost(model, input_tokens, output_tokens)
                call.detail = f"model={model} in={input_tokens} out={output_tokens}"

                content = response.choices[0].message.content or ""
                summary = clamp_words(content, self.max_words)
                if not summary:
                    raise SummarizationFailedError("Completion returned no text")
        except SummarizationFailedError:
            logger.error("summarize_failed", model=model, error="empty completion")
            raise
        except Exception as exc:
            logger.error("summarize_failed", model=model, error=str(exc))
            raise SummarizationFailedError(f"Completion call failed: {exc}") from exc

        logger.info(
            "summarize_ok",
            model=model,
            sources=[kind.value for kind in bundle.present_sources()],
            summary_words=len(summary.split()),
        )
        return summary
