"""
Classification Orchestrator

Sends filtered messages to the LLM and turns the responses into
AnalysisRecords. Two modes:

- batch: one Message Batch job, polled until it ends (50% cheaper, slow)
- realtime: groups of ``concurrency`` concurrent calls; each group finishes
  before the next starts

One bad item never aborts a run. Failures are collected per correlation id
and reported; only a failed submission is raised to the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from pydantic import ValidationError

from ..common.config import AnalyzerConfig
from ..common.errors import SubmissionError
from ..common.llm_client import LLMClient
from ..common.llm_utils import ParsedObject, ParseErrorKind, ParseFailure, parse_llm_payload
from ..common.schemas import AnalysisRecord, ChatMessage, CorrelationEntry
from .batch import BatchJob, BatchState, PollPolicy
from .prompts import build_analysis_prompt

logger = logging.getLogger("extractor.analyzer.orchestrator")

MODE_BATCH = "batch"
MODE_REALTIME = "realtime"

REQUIRED_FIELDS = ("category", "versatility")

CorrelationMap = Dict[str, CorrelationEntry]
SubmittedCallback = Callable[[str, CorrelationMap], None]


class FailureKind(str, Enum):
    API_ERROR = "api_error"
    TRANSPORT_ERROR = "transport_error"
    TRUNCATED = "truncated"
    MALFORMED = "malformed"
    CANCELED = "canceled"
    EXPIRED = "expired"
    MISSING = "missing"


@dataclass
class ItemFailure:
    """A classification request that produced no usable response"""
    correlation_id: str
    message_id: str
    kind: FailureKind
    detail: str = ""


@dataclass
class AnalysisOutcome:
    """Everything a classification run produced"""
    mode: str
    submitted: int = 0
    records: List[AnalysisRecord] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)
    dropped: int = 0  # parsed objects rejected by validation
    batch_id: Optional[str] = None
    state: Optional[BatchState] = None

    @property
    def failed_message_ids(self) -> Set[str]:
        return {f.message_id for f in self.failures}

    def failure_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for failure in self.failures:
            counts[failure.kind.value] = counts.get(failure.kind.value, 0) + 1
        return counts


def build_correlation(messages: Sequence[ChatMessage]) -> Tuple[List[Tuple[str, ChatMessage]], CorrelationMap]:
    """Assign correlation ids (independent of message ids) and build the lookup table"""
    items: List[Tuple[str, ChatMessage]] = []
    correlation: CorrelationMap = {}
    for index, msg in enumerate(messages):
        correlation_id = f"item-{index:05d}"
        items.append((correlation_id, msg))
        correlation[correlation_id] = CorrelationEntry(
            message_id=msg.id,
            date=msg.sent_datetime.isoformat(),
        )
    return items, correlation


def records_from_response(text: str, entry: CorrelationEntry) -> Tuple[List[AnalysisRecord], int, Optional[ParseFailure]]:
    """
    Parse one response into validated records.

    Returns (records, dropped_count, parse_failure). message_id and date
    always come from the correlation entry, never from the model's echo.
    """
    parsed = parse_llm_payload(text)
    if isinstance(parsed, ParseFailure):
        return [], 0, parsed

    candidates: List[Any] = [parsed.record] if isinstance(parsed, ParsedObject) else list(parsed.records)

    records: List[AnalysisRecord] = []
    dropped = 0
    for candidate in candidates:
        if not isinstance(candidate, dict):
            logger.warning("Dropping non-object item for message %s", entry.message_id)
            dropped += 1
            continue

        missing = [name for name in REQUIRED_FIELDS if not candidate.get(name)]
        if missing:
            logger.warning("Dropping record for message %s: missing %s", entry.message_id, ", ".join(missing))
            dropped += 1
            continue

        try:
            record = AnalysisRecord(
                message_id=entry.message_id,
                date=entry.date,
                category=candidate["category"],
                versatility=candidate["versatility"],
                title=str(candidate.get("title") or ""),
                tags=candidate.get("tags") or [],
                formatted_content=str(candidate.get("formatted_content") or ""),
            )
        except ValidationError as e:
            logger.warning(
                "Dropping record for message %s: invalid category/versatility (%s)",
                entry.message_id, e.errors()[0].get("msg", e),
            )
            dropped += 1
            continue

        records.append(record)

    return records, dropped, None


class ClassificationOrchestrator:
    """Runs message classification in batch or realtime mode"""

    def __init__(
        self,
        llm: LLMClient,
        config: Optional[AnalyzerConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._llm = llm
        self._config = config or AnalyzerConfig()
        self._policy = PollPolicy(
            interval=self._config.poll_interval,
            soft_timeout=self._config.soft_timeout,
            max_wait=self._config.max_wait,
        )
        self._sleep = sleep
        self._clock = clock

    @property
    def model(self) -> str:
        return self._llm.model

    async def classify(
        self,
        messages: Sequence[ChatMessage],
        mode: Optional[str] = None,
        on_submitted: Optional[SubmittedCallback] = None,
    ) -> AnalysisOutcome:
        """
        Classify ``messages`` and return every record that validated.

        Args:
            messages: Filtered messages (already truncated where needed)
            mode: "batch" or "realtime" (default from AnalyzerConfig)
            on_submitted: Called with (batch_id, correlation) right after a
                batch is submitted, so the caller can persist it

        Raises:
            SubmissionError: the submission step as a whole failed
        """
        mode = (mode or self._config.mode).lower()
        if mode not in (MODE_BATCH, MODE_REALTIME):
            raise ValueError(f"Unknown analysis mode: {mode!r}")

        outcome = AnalysisOutcome(mode=mode, submitted=len(messages))
        if not messages:
            logger.info("Nothing to classify")
            return outcome

        items, correlation = build_correlation(messages)

        if mode == MODE_BATCH:
            await self._classify_batch(items, correlation, outcome, on_submitted)
        else:
            await self._classify_realtime(items, correlation, outcome)

        self._log_summary(outcome)
        return outcome

    async def resume(self, batch_id: str, correlation: CorrelationMap) -> AnalysisOutcome:
        """Collect a batch submitted by an earlier process"""
        if not self._llm.supports_batches:
            raise SubmissionError(f"Cannot resume batch {batch_id}: Message Batches unavailable")

        outcome = AnalysisOutcome(mode=MODE_BATCH, submitted=len(correlation), batch_id=batch_id)
        logger.info("Resuming batch %s (%d requests)", batch_id, len(correlation))
        await self._collect_batch(batch_id, correlation, outcome)
        self._log_summary(outcome)
        return outcome

    # ------------------------------------------------------------------
    # Batch mode
    # ------------------------------------------------------------------

    async def _classify_batch(
        self,
        items: List[Tuple[str, ChatMessage]],
        correlation: CorrelationMap,
        outcome: AnalysisOutcome,
        on_submitted: Optional[SubmittedCallback],
    ) -> None:
        if not self._llm.supports_batches:
            raise SubmissionError(
                f"Message Batches unavailable for provider {self._llm.provider!r} "
                "(missing API key or non-Anthropic provider); use realtime mode"
            )

        requests = [
            {
                "custom_id": correlation_id,
                "params": {
                    "model": self.model,
                    "max_tokens": self._config.max_tokens,
                    "messages": [{"role": "user", "content": build_analysis_prompt(msg)}],
                },
            }
            for correlation_id, msg in items
        ]

        logger.info("Submitting batch of %d requests (%s)", len(requests), self.model)
        try:
            batch = await self._llm.batches.create(requests=requests)
        except Exception as e:
            raise SubmissionError(f"Batch submission of {len(requests)} requests failed: {e}") from e

        outcome.batch_id = batch.id
        logger.info("Batch created: %s (status: %s)", batch.id, getattr(batch, "processing_status", "?"))
        if on_submitted:
            on_submitted(batch.id, correlation)

        await self._collect_batch(batch.id, correlation, outcome)

    async def _collect_batch(self, batch_id: str, correlation: CorrelationMap, outcome: AnalysisOutcome) -> None:
        job = BatchJob(batch_id, self._policy, sleep=self._sleep, clock=self._clock)
        outcome.state = await job.wait(self._llm.batches.retrieve)

        seen: Set[str] = set()
        results = await self._llm.batches.results(batch_id)
        async for item in results:
            correlation_id = item.custom_id
            entry = correlation.get(correlation_id)
            if entry is None:
                logger.warning("Batch %s returned unknown custom_id %s, ignoring", batch_id, correlation_id)
                continue
            seen.add(correlation_id)
            self._handle_batch_result(correlation_id, entry, item.result, outcome)

        for correlation_id in sorted(set(correlation) - seen):
            self._fail(outcome, correlation_id, correlation[correlation_id], FailureKind.MISSING, "no result returned")

    def _handle_batch_result(
        self,
        correlation_id: str,
        entry: CorrelationEntry,
        result: Any,
        outcome: AnalysisOutcome,
    ) -> None:
        result_type = getattr(result, "type", "")

        if result_type == "succeeded":
            self._ingest(correlation_id, entry, _message_text(result.message), outcome)
        elif result_type == "errored":
            self._fail(outcome, correlation_id, entry, FailureKind.API_ERROR, _error_detail(result))
        elif result_type == "canceled":
            self._fail(outcome, correlation_id, entry, FailureKind.CANCELED, "request canceled")
        elif result_type == "expired":
            self._fail(outcome, correlation_id, entry, FailureKind.EXPIRED, "request expired before processing")
        else:
            self._fail(outcome, correlation_id, entry, FailureKind.API_ERROR, f"unknown result type {result_type!r}")

    # ------------------------------------------------------------------
    # Realtime mode
    # ------------------------------------------------------------------

    async def _classify_realtime(
        self,
        items: List[Tuple[str, ChatMessage]],
        correlation: CorrelationMap,
        outcome: AnalysisOutcome,
    ) -> None:
        if not self._llm.is_available:
            raise SubmissionError("LLM client is not available (missing API key?)")

        width = max(1, self._config.concurrency)
        for start in range(0, len(items), width):
            group = items[start:start + width]
            responses = await asyncio.gather(
                *(
                    self._llm.agenerate(build_analysis_prompt(msg), max_tokens=self._config.max_tokens)
                    for _, msg in group
                ),
                return_exceptions=True,
            )

            for (correlation_id, _msg), response in zip(group, responses):
                entry = correlation[correlation_id]
                if isinstance(response, BaseException):
                    self._fail(outcome, correlation_id, entry, FailureKind.TRANSPORT_ERROR, f"{type(response).__name__}: {response}")
                else:
                    self._ingest(correlation_id, entry, response, outcome)

            logger.info("Realtime progress: %d/%d", min(start + width, len(items)), len(items))

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    def _ingest(self, correlation_id: str, entry: CorrelationEntry, text: str, outcome: AnalysisOutcome) -> None:
        records, dropped, failure = records_from_response(text, entry)
        outcome.dropped += dropped
        if failure is not None:
            kind = FailureKind.TRUNCATED if failure.kind == ParseErrorKind.TRUNCATED else FailureKind.MALFORMED
            self._fail(outcome, correlation_id, entry, kind, failure.detail)
            logger.warning("%s: %s", correlation_id, failure.remediation)
            logger.debug("Raw response for %s: %s", correlation_id, (text or "")[:500])
            return
        outcome.records.extend(records)

    @staticmethod
    def _fail(
        outcome: AnalysisOutcome,
        correlation_id: str,
        entry: CorrelationEntry,
        kind: FailureKind,
        detail: str,
    ) -> None:
        outcome.failures.append(ItemFailure(correlation_id, entry.message_id, kind, detail))
        logger.error("Classification failed for %s (message %s): %s %s", correlation_id, entry.message_id, kind.value, detail)

    def _log_summary(self, outcome: AnalysisOutcome) -> None:
        logger.info(
            "Analysis finished (%s): %d submitted, %d records, %d failed, %d dropped",
            outcome.mode, outcome.submitted, len(outcome.records), len(outcome.failures), outcome.dropped,
        )
        if any(f.kind == FailureKind.TRUNCATED for f in outcome.failures):
            logger.warning(
                "Some responses were truncated; consider raising max_tokens (currently %d)",
                self._config.max_tokens,
            )


def _message_text(message: Any) -> str:
    """Concatenate the text blocks of an Anthropic message"""
    blocks = getattr(message, "content", None) or []
    return "".join(getattr(block, "text", "") for block in blocks if getattr(block, "type", "text") == "text")


def _error_detail(result: Any) -> str:
    error = getattr(result, "error", None)
    inner = getattr(error, "error", error)
    message = getattr(inner, "message", None)
    error_type = getattr(inner, "type", None)
    if message or error_type:
        return f"{error_type or 'error'}: {message or ''}".strip()
    return str(error or "errored")
