"""
Extraction Pipeline

One run per room:

    resume pending batch -> fetch -> cache messages + speakers
        -> unanalyzed subset -> filter -> classify -> store records
        -> mark analyzed

Messages whose classification failed stay unanalyzed so the next run
retries them. Messages dropped by the filter are marked analyzed.
A pending batch that can no longer be collected is discarded with a
warning; only a hard wait timeout keeps it for the next run.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .analyzer.message_filter import FilterStats, filter_messages
from .analyzer.orchestrator import AnalysisOutcome, ClassificationOrchestrator
from .cache import AnalysisStore, MessageStore, PendingBatchStore, SpeakerMapStore
from .chatwork.client import ChatworkClient, filter_by_extract_from
from .common.config import ExtractorConfig, FilterConfig, SelectionPolicy
from .common.errors import BatchTimeoutError
from .common.llm_client import LLMClient
from .common.schemas import AnalysisRecord, Category, SpeakerMapCache
from .common.team_profiles import TeamProfiles

logger = logging.getLogger("extractor.pipeline")


@dataclass
class RunSummary:
    """What one pipeline run did for a room"""
    room_id: str
    room_name: str = ""
    fetched: int = 0
    unanalyzed: int = 0
    filter_stats: Optional[FilterStats] = None
    outcome: Optional[AnalysisOutcome] = None
    resumed: Optional[AnalysisOutcome] = None
    knowledge: List[AnalysisRecord] = field(default_factory=list)
    knowledge_by_role: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


def select_knowledge(records: Sequence[AnalysisRecord], policy: Optional[SelectionPolicy] = None) -> List[AnalysisRecord]:
    """Drop records whose category or versatility is excluded by ``policy``"""
    policy = policy or SelectionPolicy()
    excluded_categories = set(policy.exclude_categories)
    excluded_versatility = set(policy.exclude_versatility)
    return [
        r for r in records
        if r.category.value not in excluded_categories
        and r.versatility.value not in excluded_versatility
    ]


def category_summary(records: Sequence[AnalysisRecord]) -> Dict[str, int]:
    """Record count per category, in Category declaration order, zero counts omitted"""
    counts = {c.value: 0 for c in Category}
    for record in records:
        counts[record.category.value] += 1
    return {name: n for name, n in counts.items() if n}


def role_summary(
    records: Sequence[AnalysisRecord],
    speakers: Optional[SpeakerMapCache],
    profiles: TeamProfiles,
) -> Dict[str, int]:
    """Record count per speaker role label; records without a known speaker are skipped"""
    counts: Dict[str, int] = {}
    if speakers is None:
        return counts
    for record in records:
        info = speakers.speakers.get(record.message_id)
        if info is None:
            continue
        label = profiles.resolve_role(info.account_id).label
        counts[label] = counts.get(label, 0) + 1
    return counts


class ExtractionPipeline:
    """Runs fetch, filter, classify and persist for one room at a time"""

    def __init__(
        self,
        chatwork: ChatworkClient,
        orchestrator: ClassificationOrchestrator,
        message_store: MessageStore,
        analysis_store: AnalysisStore,
        speaker_store: SpeakerMapStore,
        pending_store: PendingBatchStore,
        team_profiles: Optional[TeamProfiles] = None,
        filter_config: Optional[FilterConfig] = None,
        selection: Optional[SelectionPolicy] = None,
        extract_from: str = "",
        mode: Optional[str] = None,
    ):
        self.chatwork = chatwork
        self.orchestrator = orchestrator
        self.message_store = message_store
        self.analysis_store = analysis_store
        self.speaker_store = speaker_store
        self.pending_store = pending_store
        self.team_profiles = team_profiles or TeamProfiles()
        self.filter_config = filter_config or FilterConfig()
        self.selection = selection or SelectionPolicy()
        self.extract_from = extract_from
        self.mode = mode

    @classmethod
    def from_config(
        cls,
        config: ExtractorConfig,
        llm: Optional[LLMClient] = None,
        chatwork: Optional[ChatworkClient] = None,
    ) -> "ExtractionPipeline":
        llm = llm or LLMClient.from_config(config.llm)
        chatwork = chatwork or ChatworkClient(
            api_token=config.chatwork.api_token,
            base_url=config.chatwork.base_url,
            timeout=config.chatwork.timeout,
        )
        return cls(
            chatwork=chatwork,
            orchestrator=ClassificationOrchestrator(llm, config.analyzer),
            message_store=MessageStore(config.cache_dir),
            analysis_store=AnalysisStore(config.cache_dir),
            speaker_store=SpeakerMapStore(config.cache_dir),
            pending_store=PendingBatchStore(config.cache_dir),
            team_profiles=TeamProfiles.load(config.team_profiles_path),
            filter_config=config.filter,
            selection=config.selection,
            extract_from=config.extract_from,
            mode=config.analyzer.mode,
        )

    async def aclose(self) -> None:
        await self.chatwork.aclose()

    def _knowledge_by_role(self, room_id: str, records: Sequence[AnalysisRecord]) -> Dict[str, int]:
        return role_summary(records, self.speaker_store.load(room_id), self.team_profiles)

    async def resume_pending(self, room_id: str) -> Optional[AnalysisOutcome]:
        """Collect a batch left behind by an interrupted run, if any"""
        pending = self.pending_store.load(room_id)
        if pending is None:
            return None

        logger.info("Room %s has pending batch %s from %s", room_id, pending.batch_id, pending.submitted_at)
        outcome = await self.orchestrator.resume(pending.batch_id, pending.correlation)

        if outcome.records:
            self.analysis_store.save(room_id, outcome.records, pending.model or self.orchestrator.model)
        failed = outcome.failed_message_ids
        self.message_store.mark_as_analyzed(
            room_id, [e.message_id for e in pending.correlation.values() if e.message_id not in failed]
        )
        self.pending_store.clear(room_id)
        return outcome

    async def run(self, room_id: str) -> RunSummary:
        summary = RunSummary(room_id=room_id)

        try:
            summary.resumed = await self.resume_pending(room_id)
        except BatchTimeoutError:
            raise
        except Exception as e:
            # Journaled ids were never marked analyzed, so they are re-submitted below
            warning = f"Pending batch for room {room_id} could not be collected and was discarded: {e}"
            summary.warnings.append(warning)
            logger.warning(warning)
            self.pending_store.clear(room_id)

        room_info = await self.chatwork.get_room_info(room_id)
        summary.room_name = room_info.get("name", "")
        logger.info("Room: %s (ID: %s)", summary.room_name or "?", room_id)

        fetch = await self.chatwork.fetch_messages(room_id)
        summary.fetched = len(fetch.messages)
        summary.warnings.extend(fetch.warnings)

        existing = self.message_store.load(room_id)
        merged = self.message_store.merge(existing.messages if existing else [], fetch.messages)
        self.message_store.save(room_id, merged)
        self.speaker_store.save(room_id, fetch.messages, role_resolver=self.team_profiles.role_for)

        candidates, window = filter_by_extract_from(merged, self.extract_from)
        logger.info("Extraction window (%s): %d of %d cached messages", window, len(candidates), len(merged))

        unanalyzed = self.message_store.get_unanalyzed(candidates, self.message_store.get_analyzed_ids(room_id))
        summary.unanalyzed = len(unanalyzed)
        logger.info("Unanalyzed messages: %d", len(unanalyzed))

        records: List[AnalysisRecord] = list(summary.resumed.records) if summary.resumed else []
        if not unanalyzed:
            summary.knowledge = select_knowledge(records, self.selection)
            summary.knowledge_by_role = self._knowledge_by_role(room_id, summary.knowledge)
            return summary

        filtered = filter_messages(unanalyzed, self.filter_config)
        summary.filter_stats = filtered.stats

        def journal(batch_id, correlation):
            self.pending_store.save(room_id, batch_id, correlation, model=self.orchestrator.model)

        outcome = await self.orchestrator.classify(filtered.filtered, mode=self.mode, on_submitted=journal)
        summary.outcome = outcome

        if outcome.records:
            self.analysis_store.save(room_id, outcome.records, self.orchestrator.model)
        records.extend(outcome.records)

        failed = outcome.failed_message_ids
        self.message_store.mark_as_analyzed(room_id, [m.id for m in unanalyzed if m.id not in failed])
        if outcome.batch_id:
            self.pending_store.clear(room_id)

        if failed:
            warning = f"{len(failed)} messages failed classification and will be retried on the next run"
            summary.warnings.append(warning)
            logger.warning(warning)

        summary.knowledge = select_knowledge(records, self.selection)
        summary.knowledge_by_role = self._knowledge_by_role(room_id, summary.knowledge)
        logger.info(
            "Room %s: %d records, %d selected as knowledge",
            room_id, len(records), len(summary.knowledge),
        )
        return summary
