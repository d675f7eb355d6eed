"""
Chatwork Knowledge Extractor

Turns a team's chat history into reusable, cross-project knowledge records.

Pipeline:
- Fetch room messages and merge them into an append-only cache
- Compute the unanalyzed subset and drop noise/boilerplate before spending tokens
- Classify with Claude (Message Batches or bounded-concurrency realtime calls)
- Merge the resulting records into a per-room analysis cache

Usage:
    from extractor.common import load_config
    from extractor.cache import MessageStore, AnalysisStore, SpeakerMapStore
    from extractor.analyzer import ClassificationOrchestrator, filter_messages
    from extractor.pipeline import ExtractionPipeline
"""

__version__ = "0.1.0"
