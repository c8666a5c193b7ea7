"""
AI Analysis Service for Discubot.

Makes exactly one model call per discussion: a single JSON prompt asks for
the summary (summary, key points, sentiment, confidence) and the detected
tasks (title, description, action items, priority, assignee, tags, domain)
together, so cost scales with discussions rather than with outputs.

Guarantees:
- Domains outside the flow's vocabulary are replaced by None
- Confidence values are clamped to [0, 1]
- A response that isn't a usable analysis is retried; three malformed
  responses in a row are fatal (non-retryable AnalysisError)
- Provider failures keep their retryable flag (timeouts, 429, 5xx)

Results are cached in memory keyed by thread content, prompts and
vocabulary.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from cachetools import TTLCache

from discubot.errors import AnalysisError, ConfigurationError
from discubot.models import AIAnalysis, AISummary, DetectedTask, DiscussionThread, TaskPriority
from discubot.pipeline.retry import ExponentialBackoff, RetryPolicy, retry_call
from discubot.providers.llm import LLMConfig, LLMProvider, Message, to_analysis_error
from discubot.utils.json_parser import ensure_list, parse_analysis_json

logger = logging.getLogger(__name__)

DEFAULT_MAX_TASKS = 5
DEFAULT_CACHE_TTL = 3600
DEFAULT_CACHE_SIZE = 1024

SYSTEM_PROMPT = (
    "You analyze team discussions and turn them into actionable tasks. "
    "Respond with a single JSON object and nothing else."
)

_SENTIMENTS = ("positive", "neutral", "negative")


def _clamp(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, number))


def build_analysis_prompt(
    thread: DiscussionThread,
    *,
    source_type: str | None = None,
    domains: Sequence[str] = (),
    summary_prompt: str | None = None,
    task_prompt: str | None = None,
    max_tasks: int = DEFAULT_MAX_TASKS,
) -> str:
    """Render the combined summary + task detection prompt."""
    source_context = f" from {source_type}" if source_type else ""
    if domains:
        domain_rule = (
            f"- Classify each task into exactly one of these domains: {', '.join(domains)}. "
            "Use null when none clearly applies; never invent another domain."
        )
    else:
        domain_rule = "- Set domain to null for every task."

    sections = [
        f"Analyze this discussion thread{source_context}.",
        "",
        "Discussion:",
        thread.transcript(),
        "",
        "Provide:",
        "1. A concise summary (2-3 sentences)",
        "2. 3-5 key points or decisions",
        "3. Overall sentiment (positive, neutral, or negative)",
        "4. The specific, actionable tasks mentioned or implied",
        "",
        "Task instructions:",
        "- Extract title, description, action items and priority for each task",
        f"- Maximum {max_tasks} tasks; return an empty list when there are no clear tasks",
        domain_rule,
    ]
    if summary_prompt:
        sections += ["", "Additional summary instructions:", summary_prompt.strip()]
    if task_prompt:
        sections += ["", "Additional task instructions:", task_prompt.strip()]

    sections += [
        "",
        "Respond in JSON format:",
        json.dumps(
            {
                "summary": "...",
                "keyPoints": ["...", "..."],
                "sentiment": "positive|neutral|negative",
                "confidence": "0.0-1.0",
                "isMultiTask": "true|false",
                "tasks": [
                    {
                        "title": "...",
                        "description": "...",
                        "actionItems": ["..."],
                        "priority": "low|medium|high|urgent",
                        "assignee": "... or null",
                        "tags": ["..."],
                        "type": "bug|feature|question|improvement|null",
                        "domain": "one of the domains or null",
                    }
                ],
            },
            indent=2,
        ),
    ]
    return "\n".join(sections)


class AIAnalysisService:
    """
    Summarizes a discussion and detects its tasks with one model call.

    Example:
        service = AIAnalysisService(AnthropicLLMProvider(api_key=key))
        analysis = await service.analyze(thread, domains=["design", "frontend"])
        for task in analysis.tasks:
            print(task.title, task.domain)
    """

    def __init__(
        self,
        provider: LLMProvider | None = None,
        *,
        model: str | None = None,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        cache_size: int = DEFAULT_CACHE_SIZE,
        max_attempts: int = 3,
        timeout: float = 60.0,
        max_tokens: int = 2048,
        provider_factory: Callable[[str], LLMProvider] | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        """
        Args:
            provider: Application-wide model provider
            model: Model override (provider default when None)
            cache_ttl: Seconds to keep analyses; 0 disables the cache
            cache_size: Most analyses kept at once; least recently used go first
            max_attempts: Attempts per discussion, malformed responses included
            timeout: Bound on one model call in seconds
            provider_factory: Builds a provider for a flow's own API key
            retry_policy: Overrides the backoff between attempts
        """
        self._provider = provider
        self._model = model
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._provider_factory = provider_factory
        self._flow_providers: dict[str, LLMProvider] = {}
        self._cache: TTLCache | None = None
        if cache_ttl > 0 and cache_size > 0:
            self._cache = TTLCache(maxsize=cache_size, ttl=cache_ttl)
            logger.debug(f"[ai] Analysis cache maxsize={cache_size}, ttl={cache_ttl}s")
        self._hits = 0
        self._misses = 0
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=max_attempts,
            backoff=ExponentialBackoff(base=1.0, max_delay=10.0),
            max_total_delay=30.0,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def analyze(
        self,
        thread: DiscussionThread,
        *,
        source_type: str | None = None,
        domains: Sequence[str] = (),
        summary_prompt: str | None = None,
        task_prompt: str | None = None,
        max_tasks: int = DEFAULT_MAX_TASKS,
        api_key: str | None = None,
        use_cache: bool = True,
    ) -> AIAnalysis:
        """
        Analyze a thread.

        Args:
            thread: Full discussion thread
            source_type: Source name used as prompt context
            domains: The flow's domain vocabulary
            summary_prompt: Tenant summary instructions
            task_prompt: Tenant task detection instructions
            max_tasks: Upper bound on detected tasks
            api_key: Flow's own model API key
            use_cache: Read and write the analysis cache

        Returns:
            AIAnalysis

        Raises:
            AnalysisError: Model failure (retryable flag set by cause)
            ConfigurationError: No provider available
        """
        provider = self._resolve_provider(api_key)
        cache_key = self._cache_key(thread, domains, summary_prompt, task_prompt, max_tasks)

        if use_cache and self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._hits += 1
                logger.info(f"[ai] Cache hit for thread {thread.id}")
                return AIAnalysis(
                    summary=cached.summary,
                    tasks=cached.tasks,
                    confidence=cached.confidence,
                    processing_time_ms=cached.processing_time_ms,
                    cached=True,
                    model=cached.model,
                )
            self._misses += 1

        prompt = build_analysis_prompt(
            thread,
            source_type=source_type,
            domains=domains,
            summary_prompt=summary_prompt,
            task_prompt=task_prompt,
            max_tasks=max_tasks,
        )
        messages = [Message.system(SYSTEM_PROMPT), Message.user(prompt)]
        vocabulary = {d.strip().lower(): d.strip() for d in domains if d and d.strip()}

        started = time.perf_counter()
        malformed = 0

        async def attempt() -> AIAnalysis:
            nonlocal malformed
            response = await self._complete(provider, messages)
            data = parse_analysis_json(response.content)
            if data is not None:
                try:
                    return self._build_analysis(data, vocabulary, max_tasks, response.model)
                except (TypeError, ValueError, AttributeError, KeyError) as e:
                    logger.warning(f"[ai] Analysis fields have unexpected shapes: {type(e).__name__}: {e}")

            malformed += 1
            raise AnalysisError(
                "Model response is not a valid analysis JSON object",
                retryable=True,
                source=provider.name,
                context={"response_preview": response.content[:200]},
            )

        try:
            analysis = await retry_call(attempt, self._retry_policy, operation_name=f"[ai] analyze {thread.id}")
        except AnalysisError as e:
            if malformed >= self._retry_policy.max_attempts:
                raise AnalysisError(
                    f"Model returned malformed analysis {malformed} times",
                    retryable=False,
                    source=e.source,
                ) from e
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        analysis = AIAnalysis(
            summary=analysis.summary,
            tasks=analysis.tasks,
            confidence=analysis.confidence,
            processing_time_ms=elapsed_ms,
            cached=False,
            model=analysis.model,
        )
        logger.info(
            f"[ai] Analyzed thread {thread.id}: {len(analysis.tasks)} task(s) in {elapsed_ms:.0f}ms"
        )

        if use_cache and self._cache is not None:
            self._cache[cache_key] = analysis
        return analysis

    def clear_cache(self) -> None:
        if self._cache is not None:
            size = len(self._cache)
            self._cache.clear()
            logger.info(f"[ai] Cleared {size} cached analyses")
        self._hits = 0
        self._misses = 0

    def cache_stats(self) -> dict[str, Any]:
        return {
            "enabled": self._cache is not None,
            "entries": len(self._cache) if self._cache is not None else 0,
            "maxsize": self._cache.maxsize if self._cache is not None else 0,
            "hits": self._hits,
            "misses": self._misses,
        }

    # =========================================================================
    # Internals
    # =========================================================================

    def _resolve_provider(self, api_key: str | None) -> LLMProvider:
        if api_key and self._provider_factory is not None:
            provider = self._flow_providers.get(api_key)
            if provider is None:
                provider = self._provider_factory(api_key)
                self._flow_providers[api_key] = provider
            return provider
        if self._provider is None:
            raise ConfigurationError("No language model provider configured", source="ai")
        return self._provider

    async def _complete(self, provider: LLMProvider, messages: list[Message]):
        config = LLMConfig(model=self._model, max_tokens=self._max_tokens, response_format="json")
        try:
            return await asyncio.wait_for(provider.complete(messages, config), timeout=self._timeout)
        except AnalysisError:
            raise
        except Exception as e:
            raise to_analysis_error(e, provider.name) from e

    def _cache_key(
        self,
        thread: DiscussionThread,
        domains: Sequence[str],
        summary_prompt: str | None,
        task_prompt: str | None,
        max_tasks: int,
    ) -> str:
        digest = hashlib.sha256()
        for part in (
            thread.transcript(),
            summary_prompt or "",
            task_prompt or "",
            "|".join(sorted(d.lower() for d in domains)),
            str(max_tasks),
            self._model or "",
        ):
            digest.update(part.encode("utf-8"))
            digest.update(b"\x00")
        return f"thread_{thread.id}_{digest.hexdigest()[:16]}"

    def _build_analysis(
        self,
        data: dict[str, Any],
        vocabulary: dict[str, str],
        max_tasks: int,
        model: str,
    ) -> AIAnalysis:
        confidence = _clamp(data.get("confidence"), default=0.5)
        sentiment = data["sentiment"].lower()
        summary = AISummary(
            summary=data["summary"].strip(),
            key_points=tuple(data["key_points"]),
            sentiment=sentiment if sentiment in _SENTIMENTS else "neutral",
            confidence=_clamp(data.get("summary_confidence"), default=confidence),
        )

        tasks: list[DetectedTask] = []
        for raw in data["tasks"][:max_tasks]:
            task = self._build_task(raw, vocabulary)
            if task is not None:
                tasks.append(task)

        return AIAnalysis(summary=summary, tasks=tuple(tasks), confidence=confidence, model=model)

    def _build_task(self, raw: dict[str, Any], vocabulary: dict[str, str]) -> DetectedTask | None:
        title = str(raw.get("title") or "").strip()
        if not title:
            logger.debug("[ai] Dropping task without title")
            return None

        domain = raw.get("domain")
        canonical = None
        if isinstance(domain, str) and domain.strip():
            canonical = vocabulary.get(domain.strip().lower())
            if canonical is None:
                logger.info(f"[ai] Domain {domain!r} is outside the vocabulary, using null")

        assignee = raw.get("assignee")
        if not isinstance(assignee, str) or assignee.strip().lower() in ("", "null", "none"):
            assignee = None

        task_type = raw.get("type")
        return DetectedTask(
            title=title,
            description=str(raw.get("description") or "").strip(),
            priority=TaskPriority.from_string(raw.get("priority")),
            assignee=assignee.strip() if assignee else None,
            tags=tuple(ensure_list(raw.get("tags"))),
            domain=canonical,
            action_items=tuple(ensure_list(raw.get("actionItems", raw.get("action_items")))),
            task_type=str(task_type) if task_type and task_type != "null" else None,
        )


__all__ = [
    "DEFAULT_MAX_TASKS",
    "SYSTEM_PROMPT",
    "AIAnalysisService",
    "build_analysis_prompt",
]
