"""
Discussion Processor for Discubot.

Runs one inbound discussion through the pipeline:

    received -> thread_resolved -> analyzed -> routed -> creating_outputs
             -> completed | partially_completed | failed

Execution Model:
- One run per inbound event, guarded by a per-discussion in-flight marker
- One model call per discussion, whatever the task/output fan-out
- Every (task, output) pair is attempted concurrently; calls sharing a
  Notion token are spaced by the task creator's limiter
- A pair failure never aborts its siblings
- Discussion and Job records are updated before returning or raising

Replies and status reactions on the source are best-effort and never
change the outcome of a run.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from discubot.adapters import SourceAdapter, get_adapter
from discubot.errors import (
    ConfigurationError,
    ConflictError,
    DiscubotError,
    MalformedInputError,
    ProcessingError,
    error_kind,
    is_retryable,
)
from discubot.models import (
    AIAnalysis,
    AISummary,
    DetectedTask,
    DiscussionStatus,
    DiscussionThread,
    JobOutcome,
    PairOutcome,
    ParsedDiscussion,
    ProcessingResult,
    ProcessingState,
    SourceType,
)
from discubot.pipeline import (
    REPROCESS_RETRY,
    DomainRouter,
    ExponentialBackoff,
    ProcessingContext,
    RetryPolicy,
    retry_call,
    validate_outputs,
)
from discubot.store import DiscussionRecord, JobRecord, TaskRecord

if TYPE_CHECKING:
    from discubot.config import BaseConfigurationService, FlowOutput, ResolvedConfig
    from discubot.store import DiscussionStore, InFlightRegistry

    from .ai import AIAnalysisService
    from .tasks import NotionTaskCreator

logger = logging.getLogger(__name__)

DEFAULT_INFLIGHT_TTL = 900

THREAD_FETCH_RETRY = RetryPolicy(
    max_attempts=2,
    backoff=ExponentialBackoff(base=1.0, max_delay=5.0),
    max_total_delay=10.0,
)


def content_hash(parsed: ParsedDiscussion) -> str:
    """Hash of what the user wrote; a changed message is processed again."""
    digest = hashlib.sha256(f"{parsed.title}\n{parsed.content}".encode())
    return digest.hexdigest()


def build_confirmation_message(urls: list[str]) -> str:
    """Reply posted to the source thread when a run delivers tasks."""
    if not urls:
        return "✅ Discussion processed (no tasks created)"
    if len(urls) == 1:
        return f"✅ Task created in Notion\n🔗 {urls[0]}"
    lines = [f"✅ Created {len(urls)} tasks in Notion:"]
    lines.extend(f"{i}. {url}" for i, url in enumerate(urls, start=1))
    return "\n".join(lines)


def build_fallback_analysis(parsed: ParsedDiscussion) -> AIAnalysis:
    """Single task straight from the discussion, used when AI is disabled."""
    task = DetectedTask(title=parsed.title, description=parsed.content)
    return AIAnalysis(
        summary=AISummary(summary=parsed.content[:500]),
        tasks=(task,),
        confidence=0.0,
        model="none",
    )


def is_retry_eligible(record: DiscussionRecord, job: JobRecord | None) -> bool:
    """Only failed or partially completed discussions may be retried."""
    if record.status == DiscussionStatus.FAILED:
        return True
    return (
        record.status == DiscussionStatus.COMPLETED
        and job is not None
        and job.status == JobOutcome.PARTIALLY_COMPLETED.value
    )


@dataclass
class _Run:
    """Mutable state of one run, shared by the stage helpers."""

    parsed: ParsedDiscussion
    discussion: DiscussionRecord
    job: JobRecord
    ctx: ProcessingContext
    adapter: SourceAdapter
    resolved: ResolvedConfig | None = None
    thread: DiscussionThread | None = None
    analysis: AIAnalysis | None = None
    # (task_index, output_id) -> outcome of a pair whose page already exists
    done: dict[tuple[int, str], PairOutcome] = field(default_factory=dict)

    @property
    def status_target(self) -> str:
        """Thread id used for replies and reactions."""
        if self.thread is not None and self.thread.id:
            return self.thread.id
        return self.parsed.source_thread_id


class DiscussionProcessor:
    """
    Orchestrates discussion processing.

    Example:
        processor = DiscussionProcessor(
            config_service=config,
            store=InMemoryDiscussionStore(),
            inflight=InMemoryInFlightRegistry(),
            ai_service=AIAnalysisService(provider),
            task_creator=NotionTaskCreator(),
        )
        result = await processor.process(parsed)
        print(result.outcome, [t.url for t in result.created_tasks])
    """

    def __init__(
        self,
        config_service: BaseConfigurationService,
        store: DiscussionStore,
        inflight: InFlightRegistry,
        ai_service: AIAnalysisService | None,
        task_creator: NotionTaskCreator,
        router: DomainRouter | None = None,
        adapter_lookup: Callable[[SourceType], SourceAdapter] = get_adapter,
        *,
        inflight_ttl: float = DEFAULT_INFLIGHT_TTL,
        thread_retry_policy: RetryPolicy | None = None,
        max_tasks: int = 5,
    ):
        """
        Args:
            config_service: Resolves the flow (or legacy config) of a discussion
            store: Discussion/Job/Task records
            inflight: In-flight markers for the idempotency gate
            ai_service: Model analysis; may be None when every flow disables AI
            task_creator: Creates destination pages
            router: Domain router
            adapter_lookup: Source adapter registry lookup
            inflight_ttl: Seconds after which a marker counts as abandoned
            thread_retry_policy: Policy around ``fetch_thread``
            max_tasks: Upper bound on tasks detected per discussion
        """
        self._config_service = config_service
        self._store = store
        self._inflight = inflight
        self._ai = ai_service
        self._creator = task_creator
        self._router = router or DomainRouter()
        self._adapter_lookup = adapter_lookup
        self._inflight_ttl = inflight_ttl
        self._thread_retry_policy = thread_retry_policy or THREAD_FETCH_RETRY
        self._max_tasks = max_tasks

    # =========================================================================
    # Public API
    # =========================================================================

    async def process(
        self,
        parsed: ParsedDiscussion,
        *,
        thread: DiscussionThread | None = None,
        config: ResolvedConfig | None = None,
        force: bool = False,
    ) -> ProcessingResult:
        """
        Process one discussion.

        Args:
            parsed: Normalized inbound event
            thread: Already fetched thread (skips ``fetch_thread``)
            config: Already resolved configuration
            force: Reprocess even if the same content already completed

        Returns:
            ProcessingResult; ``duplicate`` is True when the idempotency
            gate short-circuited

        Raises:
            MalformedInputError: Required fields are empty (no records written)
            ProcessingError: The run failed; records reflect the failure
        """
        missing = parsed.missing_fields()
        if missing:
            raise MalformedInputError(
                f"Missing required fields: {', '.join(missing)}",
                source=parsed.source_type.value,
            )
        return await self._guarded(
            parsed,
            lambda: self._run(parsed, thread=thread, config=config, force=force),
        )

    async def reprocess(self, discussion_id: str) -> ProcessingResult:
        """
        Run a stored discussion through the whole pipeline again.

        Raises:
            MalformedInputError: Unknown discussion id
            ProcessingError: The new run failed
        """
        record = await self._load(discussion_id)
        logger.info(f"[processor] Reprocessing discussion {discussion_id}")
        return await self.process(self._parsed_from_record(record), force=True)

    async def retry_failed_discussion(
        self,
        discussion_id: str,
        policy: RetryPolicy = REPROCESS_RETRY,
    ) -> ProcessingResult:
        """
        Retry a failed or partially completed discussion with backoff.

        Pairs whose page already exists are never created again: once any
        page exists, the stored thread and analysis are replayed and only
        the missing pairs are attempted.

        Raises:
            MalformedInputError: Unknown discussion id
            ConflictError: The discussion is not failed or partially completed
            ProcessingError: The last attempt failed
        """
        record = await self._load(discussion_id)
        job = await self._store.get_job(record.sync_job_id) if record.sync_job_id else None
        if not is_retry_eligible(record, job):
            raise ConflictError(
                f"Discussion {discussion_id} is {record.status.value}; "
                "only failed or partially completed discussions can be retried",
                source="processor",
            )

        if await self._completed_pairs(record) and not (record.ai_analysis and record.thread_data):
            raise ConflictError(
                f"Discussion {discussion_id} has created pages but no stored analysis to resume from",
                source="processor",
            )

        await self._store.update_discussion(discussion_id, status=DiscussionStatus.RETRYING)
        return await retry_call(
            lambda: self._retry_once(discussion_id),
            policy,
            operation_name=f"[processor] retry {discussion_id}",
        )

    # =========================================================================
    # Run
    # =========================================================================

    async def _guarded(
        self,
        parsed: ParsedDiscussion,
        run: Callable[[], Awaitable[ProcessingResult]],
    ) -> ProcessingResult:
        key = parsed.discussion_key
        owner = uuid4().hex

        if not await self._inflight.acquire(key, owner, self._inflight_ttl):
            logger.info(f"[processor] Discussion {key} already in flight, skipping duplicate")
            existing = await self._store.find_discussion(parsed.team_id, parsed.source_thread_id)
            return await self._existing_result(existing)

        try:
            return await run()
        finally:
            await self._inflight.release(key, owner)

    async def _retry_once(self, discussion_id: str) -> ProcessingResult:
        record = await self._load(discussion_id)
        done = await self._completed_pairs(record)
        if not done:
            logger.info(f"[processor] Retrying discussion {discussion_id} from the start")
            return await self.process(self._parsed_from_record(record), force=True)

        if not record.ai_analysis or not record.thread_data:
            raise ConflictError(
                f"Discussion {discussion_id} has created pages but no stored analysis to resume from",
                source="processor",
            )

        logger.info(
            f"[processor] Resuming discussion {discussion_id}: {len(done)} pair(s) already created"
        )
        parsed = self._parsed_from_record(record)
        return await self._guarded(
            parsed,
            lambda: self._run(
                parsed,
                thread=DiscussionThread.from_dict(record.thread_data),
                config=None,
                force=True,
                analysis=AIAnalysis.from_dict(record.ai_analysis),
                done=done,
            ),
        )

    async def _load(self, discussion_id: str) -> DiscussionRecord:
        record = await self._store.get_discussion(discussion_id)
        if record is None:
            raise MalformedInputError(f"Discussion not found: {discussion_id}", source="processor")
        return record

    @staticmethod
    def _parsed_from_record(record: DiscussionRecord) -> ParsedDiscussion:
        return ParsedDiscussion(
            source_type=record.source_type,
            source_thread_id=record.source_thread_id,
            source_url=record.source_url,
            team_id=record.team_id,
            author_handle=record.author_handle,
            title=record.title,
            content=record.content,
            participants=frozenset(record.participants),
            metadata=dict(record.metadata),
        )

    async def _completed_pairs(self, record: DiscussionRecord) -> dict[tuple[int, str], PairOutcome]:
        """Pairs of any earlier run whose destination page exists."""
        done: dict[tuple[int, str], PairOutcome] = {}
        for job in await self._store.list_jobs(record.id):
            for raw in job.pair_outcomes:
                pair = PairOutcome(**raw)
                if pair.notion_page_id:
                    # The page exists even if its task record was never saved
                    done.setdefault(
                        (pair.task_index, pair.output_id),
                        PairOutcome(
                            task_index=pair.task_index,
                            output_id=pair.output_id,
                            output_name=pair.output_name,
                            success=True,
                            notion_page_id=pair.notion_page_id,
                            url=pair.url,
                        ),
                    )
        for task in await self._store.list_tasks(record.id):
            done[(task.task_index, task.output_id)] = PairOutcome(
                task_index=task.task_index,
                output_id=task.output_id,
                output_name=task.metadata.get("output_name", ""),
                success=True,
                notion_page_id=task.notion_page_id,
                url=task.notion_page_url or None,
            )
        return done

    async def _run(
        self,
        parsed: ParsedDiscussion,
        *,
        thread: DiscussionThread | None,
        config: ResolvedConfig | None,
        force: bool,
        analysis: AIAnalysis | None = None,
        done: dict[tuple[int, str], PairOutcome] | None = None,
    ) -> ProcessingResult:
        digest = content_hash(parsed)
        existing = await self._store.find_discussion(parsed.team_id, parsed.source_thread_id)

        if (
            not force
            and existing is not None
            and existing.status == DiscussionStatus.COMPLETED
            and existing.content_hash == digest
        ):
            logger.info(f"[processor] Discussion {existing.id} already completed with same content")
            return await self._existing_result(existing)

        adapter = self._adapter_lookup(parsed.source_type)
        discussion = await self._open_discussion(parsed, existing, digest)
        job = await self._open_job(discussion)

        run = _Run(
            parsed=parsed,
            discussion=discussion,
            job=job,
            ctx=ProcessingContext(discussion_key=parsed.discussion_key),
            adapter=adapter,
            thread=thread,
            analysis=analysis,
            done=dict(done or {}),
        )
        logger.info(
            f"[processor] Processing {parsed.source_type.value} discussion {discussion.id} "
            f"(job={job.id}, execution={str(run.ctx.execution_id)[:8]})"
        )

        stage = "configuration"
        try:
            run.resolved = config or await self._resolve_config(parsed)
            validate_outputs(run.resolved.outputs)
            await self._store.update_discussion(discussion.id, config_id=run.resolved.config_id)

            stage = ProcessingState.THREAD_RESOLVED.value
            await self._resolve_thread(run)

            stage = ProcessingState.ANALYZED.value
            await self._analyze(run)

            stage = ProcessingState.ROUTED.value
            pairs = await self._route(run)

            stage = ProcessingState.CREATING_OUTPUTS.value
            await self._transition(run, ProcessingState.CREATING_OUTPUTS)
            outcomes = await self._create_outputs(run, pairs)
        except DiscubotError as e:
            await self._fail(run, stage, e)
            raise ProcessingError(
                f"Processing failed at {stage}: {e.message}",
                stage,
                retryable=e.retryable,
                cause=e,
                source="processor",
            ) from e
        except Exception as e:
            logger.error(f"[processor] Unexpected error at {stage}: {e}", exc_info=True)
            await self._fail(run, stage, e)
            raise ProcessingError(
                f"Processing failed at {stage}: {e}",
                stage,
                retryable=False,
                cause=e,
                source="processor",
            ) from e

        return await self._finish(run, outcomes)

    async def _open_discussion(
        self,
        parsed: ParsedDiscussion,
        existing: DiscussionRecord | None,
        digest: str,
    ) -> DiscussionRecord:
        fields: dict[str, Any] = {
            "source_url": parsed.source_url,
            "title": parsed.title,
            "content": parsed.content,
            "content_hash": digest,
            "author_handle": parsed.author_handle,
            "participants": sorted(parsed.participants | {parsed.author_handle}),
            "status": DiscussionStatus.PROCESSING,
            "metadata": dict(parsed.metadata),
            "error": None,
        }
        if existing is not None:
            updated = await self._store.update_discussion(existing.id, **fields)
            return updated or existing

        record = DiscussionRecord(
            team_id=parsed.team_id,
            source_type=parsed.source_type,
            source_thread_id=parsed.source_thread_id,
            **fields,
        )
        return await self._store.create_discussion(record)

    async def _open_job(self, discussion: DiscussionRecord) -> JobRecord:
        previous = await self._store.list_jobs(discussion.id)
        job = await self._store.create_job(
            JobRecord(
                team_id=discussion.team_id,
                discussion_id=discussion.id,
                status="processing",
                stage="ingestion",
                attempts=len(previous) + 1,
                max_attempts=REPROCESS_RETRY.max_attempts,
            )
        )
        await self._store.update_discussion(discussion.id, sync_job_id=job.id)
        return job

    async def _resolve_config(self, parsed: ParsedDiscussion) -> ResolvedConfig:
        resolved = await self._config_service.resolve(parsed.team_id, parsed.source_type)
        if resolved is None:
            raise ConfigurationError(
                f"No flow or source config for team {parsed.team_id} "
                f"({parsed.source_type.value})",
                source="processor",
            )
        if resolved.legacy:
            logger.info(f"[processor] Using legacy config {resolved.config_id}")
        return resolved

    async def _transition(self, run: _Run, state: ProcessingState) -> None:
        run.ctx.transition(state)
        await self._store.update_job(run.job.id, stage=state.value)

    # =========================================================================
    # Stages
    # =========================================================================

    async def _resolve_thread(self, run: _Run) -> None:
        adapter_config = run.resolved.adapter_config

        if run.thread is None:
            run.thread = await retry_call(
                lambda: run.adapter.fetch_thread(run.parsed.source_thread_id, adapter_config),
                self._thread_retry_policy,
                operation_name=f"[processor] fetch thread {run.parsed.source_thread_id}",
            )

        await self._transition(run, ProcessingState.THREAD_RESOLVED)
        await self._store.update_discussion(
            run.discussion.id,
            thread_data=run.thread.to_dict(),
            total_messages=run.thread.message_count,
        )
        await self._safe_status(run, DiscussionStatus.PROCESSING)

    async def _analyze(self, run: _Run) -> None:
        resolved = run.resolved

        if run.analysis is not None:
            logger.info(f"[processor] Reusing stored analysis for {run.discussion.id}")
        elif not resolved.ai_enabled:
            logger.info(f"[processor] AI disabled for {resolved.config_id}, creating single task")
            run.analysis = build_fallback_analysis(run.parsed)
        else:
            if self._ai is None:
                raise ConfigurationError("AI analysis is enabled but no AI service is configured")
            run.analysis = await self._ai.analyze(
                run.thread,
                source_type=run.parsed.source_type.display_name,
                domains=resolved.domains,
                summary_prompt=resolved.ai_summary_prompt,
                task_prompt=resolved.ai_task_prompt,
                max_tasks=self._max_tasks,
                api_key=resolved.anthropic_api_key,
            )

        await self._transition(run, ProcessingState.ANALYZED)
        analysis = run.analysis
        await self._store.update_discussion(
            run.discussion.id,
            status=DiscussionStatus.ANALYZED,
            ai_summary=analysis.summary.summary,
            ai_key_points=list(analysis.summary.key_points),
            ai_tasks=[t.to_dict() for t in analysis.tasks],
            is_multi_task=analysis.is_multi_task,
            ai_analysis=analysis.to_dict(),
        )

    async def _route(self, run: _Run) -> list[tuple[int, DetectedTask, FlowOutput]]:
        outputs = run.resolved.active_outputs
        pairs: list[tuple[int, DetectedTask, FlowOutput]] = []

        for index, task in enumerate(run.analysis.tasks):
            decision = self._router.route(task.domain, outputs)
            run.ctx.record_decision(decision)
            pairs.extend((index, task, output) for output in decision.outputs)

        await self._transition(run, ProcessingState.ROUTED)
        logger.info(
            f"[processor] Routed {len(run.analysis.tasks)} task(s) to {len(pairs)} output pair(s)"
        )
        return pairs

    async def _create_outputs(
        self,
        run: _Run,
        pairs: list[tuple[int, DetectedTask, FlowOutput]],
    ) -> list[PairOutcome]:
        """Attempt every pending pair; all of them settle before this returns."""
        pending = [(i, t, o) for i, t, o in pairs if (i, o.id) not in run.done]
        if len(pending) < len(pairs):
            logger.info(f"[processor] Skipping {len(pairs) - len(pending)} pair(s) already created")

        results = await asyncio.gather(
            *(self._create_pair(run, index, task, output) for index, task, output in pending),
            return_exceptions=True,
        )

        outcomes: dict[tuple[int, str], PairOutcome] = dict(run.done)
        for (index, _task, output), result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.error(f"[processor] Task {index} -> output {output.id} did not settle: {result!r}")
                result = PairOutcome(
                    task_index=index,
                    output_id=output.id,
                    output_name=output.name,
                    success=False,
                    error=str(result) or type(result).__name__,
                    retryable=False,
                )
            outcomes[(index, output.id)] = result
        return [outcomes[key] for key in sorted(outcomes)]

    async def _create_pair(
        self,
        run: _Run,
        index: int,
        task: DetectedTask,
        output: FlowOutput,
    ) -> PairOutcome:
        analysis = run.analysis
        try:
            created = await self._creator.create_task(
                task,
                run.thread,
                analysis.summary,
                output.output_config,
                source_type=run.parsed.source_type.display_name,
                source_url=run.parsed.source_url,
                analysis_confidence=analysis.confidence,
            )
        except Exception as e:
            logger.warning(
                f"[processor] Task {index} -> output {output.id} failed: {e}",
                exc_info=not isinstance(e, DiscubotError),
            )
            return PairOutcome(
                task_index=index,
                output_id=output.id,
                output_name=output.name,
                success=False,
                error=str(e),
                retryable=is_retryable(e),
            )

        try:
            await self._store.create_task(
                TaskRecord(
                    discussion_id=run.discussion.id,
                    sync_job_id=run.job.id,
                    output_id=output.id,
                    notion_page_id=created.id,
                    notion_page_url=created.url,
                    title=task.title,
                    description=task.description,
                    priority=task.priority.value,
                    assignee=task.assignee,
                    domain=task.domain,
                    summary=analysis.summary.summary,
                    source_url=run.parsed.source_url,
                    is_multi_task_child=analysis.is_multi_task,
                    task_index=index,
                    metadata={"tags": list(task.tags), "output_name": output.name},
                )
            )
        except Exception as e:
            # The page exists; never create it again for this pair
            logger.error(
                f"[processor] Page {created.id} created but its task record was not saved: {e}",
                exc_info=True,
            )
            return PairOutcome(
                task_index=index,
                output_id=output.id,
                output_name=output.name,
                success=False,
                notion_page_id=created.id,
                url=created.url,
                error=f"Task record not saved: {e}",
                retryable=False,
            )

        return PairOutcome(
            task_index=index,
            output_id=output.id,
            output_name=output.name,
            success=True,
            notion_page_id=created.id,
            url=created.url,
        )

    # =========================================================================
    # Terminal states
    # =========================================================================

    async def _finish(self, run: _Run, outcomes: list[PairOutcome]) -> ProcessingResult:
        succeeded = [o for o in outcomes if o.success]
        failed = [o for o in outcomes if not o.success]
        outcome = JobOutcome.from_pairs(len(succeeded), len(failed))
        now = datetime.now(UTC)

        run.ctx.transition(ProcessingState(outcome.value))
        elapsed_ms = run.ctx.elapsed_ms
        job_fields: dict[str, Any] = {
            "status": outcome.value,
            "stage": outcome.value,
            "completed_at": now,
            "processing_time_ms": elapsed_ms,
            "task_ids": [o.notion_page_id for o in succeeded],
            "pair_outcomes": [o.to_dict() for o in outcomes],
            "metadata": {"audit": run.ctx.to_audit_dict()},
        }

        if outcome == JobOutcome.FAILED:
            retryable = any(o.retryable for o in failed)
            message = f"All {len(failed)} output attempt(s) failed: {failed[0].error}"
            await self._store.update_job(
                run.job.id,
                **job_fields,
                error=message,
                error_stage=ProcessingState.CREATING_OUTPUTS.value,
                error_kind="output",
                retryable=retryable,
            )
            await self._store.update_discussion(
                run.discussion.id,
                status=DiscussionStatus.FAILED,
                error=message,
            )
            await self._safe_status(run, DiscussionStatus.FAILED)
            logger.error(f"[processor] Discussion {run.discussion.id} failed: {message}")
            raise ProcessingError(
                message,
                ProcessingState.CREATING_OUTPUTS.value,
                retryable=retryable,
                source="processor",
            )

        if failed:
            job_fields["error"] = "; ".join(f"{o.output_id}: {o.error}" for o in failed)
            job_fields["error_stage"] = ProcessingState.CREATING_OUTPUTS.value
            job_fields["retryable"] = any(o.retryable for o in failed)

        await self._store.update_job(run.job.id, **job_fields)
        await self._store.update_discussion(
            run.discussion.id,
            status=DiscussionStatus.COMPLETED,
            notion_task_ids=[o.notion_page_id for o in succeeded],
            processed_at=now,
        )

        await self._safe_reply(run, build_confirmation_message([o.url for o in succeeded if o.url]))
        await self._safe_status(run, DiscussionStatus.COMPLETED)

        logger.info(
            f"[processor] Discussion {run.discussion.id} {outcome.value}: "
            f"{len(succeeded)} created, {len(failed)} failed in {elapsed_ms:.0f}ms"
        )
        return ProcessingResult(
            discussion_id=run.discussion.id,
            job_id=run.job.id,
            outcome=outcome,
            analysis=run.analysis,
            pair_outcomes=outcomes,
            processing_time_ms=elapsed_ms,
        )

    async def _fail(self, run: _Run, stage: str, error: BaseException) -> None:
        run.ctx.transition(ProcessingState.FAILED)
        message = str(error)
        await self._store.update_job(
            run.job.id,
            status=JobOutcome.FAILED.value,
            stage=ProcessingState.FAILED.value,
            error=message,
            error_stage=stage,
            error_kind=error_kind(error),
            retryable=is_retryable(error),
            completed_at=datetime.now(UTC),
            processing_time_ms=run.ctx.elapsed_ms,
            metadata={"audit": run.ctx.to_audit_dict()},
        )
        await self._store.update_discussion(
            run.discussion.id,
            status=DiscussionStatus.FAILED,
            error=message,
        )
        logger.error(f"[processor] Discussion {run.discussion.id} failed at {stage}: {message}")
        if run.resolved is not None:
            await self._safe_status(run, DiscussionStatus.FAILED)

    async def _existing_result(self, record: DiscussionRecord | None) -> ProcessingResult:
        """Result describing an earlier (or still running) run."""
        if record is None:
            return ProcessingResult(discussion_id="", duplicate=True)

        result = ProcessingResult(discussion_id=record.id, job_id=record.sync_job_id, duplicate=True)
        job = await self._store.get_job(record.sync_job_id) if record.sync_job_id else None
        if job is not None:
            if job.status in {o.value for o in JobOutcome}:
                result.outcome = JobOutcome(job.status)
            result.pair_outcomes = [PairOutcome(**p) for p in job.pair_outcomes]
            result.processing_time_ms = job.processing_time_ms or 0.0
        return result

    # =========================================================================
    # Best-effort source feedback
    # =========================================================================

    async def _safe_status(self, run: _Run, status: DiscussionStatus) -> None:
        if run.resolved is None:
            return
        ok = await run.adapter.update_status(run.status_target, status, run.resolved.adapter_config)
        if not ok:
            logger.debug(f"[processor] Status {status.value} not shown on {run.status_target}")

    async def _safe_reply(self, run: _Run, message: str) -> None:
        ok = await run.adapter.post_reply(run.status_target, message, run.resolved.adapter_config)
        if not ok:
            logger.warning(f"[processor] Could not post confirmation to {run.status_target}")


__all__ = [
    "DEFAULT_INFLIGHT_TTL",
    "THREAD_FETCH_RETRY",
    "DiscussionProcessor",
    "build_confirmation_message",
    "build_fallback_analysis",
    "content_hash",
    "is_retry_eligible",
]
