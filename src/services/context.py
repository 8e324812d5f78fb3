"""
Application context: settings and clients shared by the API and scripts.

Built once at process start, passed explicitly to whatever needs it and closed
at shutdown.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from core.config import MAIN_LOG_SHEET, PAYROLL_SHEET, Settings
from services.artifacts import BlobStore, GraphDriveBlobStore, LocalBlobStore
from services.correlator import ArtifactCorrelator, MatchStrategy
from services.ingestion import ReportIngestion
from services.provider import ElevenLabsClient
from services.report_log import ReportIdGenerator, ReportLog
from services.roster import RosterSource
from services.store import GraphWorkbookStore, LocalWorkbookStore, RowStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    store: RowStore
    blobs: BlobStore
    provider: ElevenLabsClient
    report_ids: ReportIdGenerator = field(default_factory=ReportIdGenerator)
    credential: Any = None
    claim_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def reports(self) -> ReportLog:
        return ReportLog(self.store, self.settings.REPORT_TIMEZONE, claim_lock=self.claim_lock)

    @property
    def roster(self) -> RosterSource:
        return RosterSource(self.store)

    @property
    def ingestion(self) -> ReportIngestion:
        return ReportIngestion(
            self.reports,
            self.roster,
            self.report_ids,
            self.settings.NAME_MATCH_THRESHOLD,
        )

    @property
    def correlator(self) -> ArtifactCorrelator:
        """Correlator for live post-call notifications."""
        return self.build_correlator(MatchStrategy(self.settings.PER_CALL_STRATEGY))

    def build_correlator(self, per_call_strategy: MatchStrategy) -> ArtifactCorrelator:
        return ArtifactCorrelator(
            self.reports,
            self.provider,
            self.blobs,
            self.settings.REPORT_TIMEZONE,
            per_call_strategy=per_call_strategy,
            sweep_limit=self.settings.SWEEP_CALL_LIMIT,
        )

    async def aclose(self):
        await self.provider.aclose()
        if self.credential is not None:
            self.credential.close()


def build_context(settings: Settings) -> AppContext:
    """Build the store, blob storage and provider clients selected by settings."""
    provider = ElevenLabsClient(
        api_key=settings.ELEVENLABS_API_KEY,
        base_url=settings.ELEVENLABS_BASE_URL,
        agent_id=settings.ELEVENLABS_AGENT_ID,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )

    if settings.DATA_ADAPTER == "graph":
        from core.graph_client import build_graph_client

        graph, credential = build_graph_client(settings)
        store = GraphWorkbookStore(
            graph,
            settings.WORKBOOK_DRIVE_ID,
            settings.WORKBOOK_ITEM_ID,
            tables={
                MAIN_LOG_SHEET: settings.MAIN_LOG_TABLE,
                PAYROLL_SHEET: settings.PAYROLL_TABLE,
            },
        )
        blobs = GraphDriveBlobStore(
            graph,
            settings.WORKBOOK_DRIVE_ID,
            settings.DRIVE_AUDIO_FOLDER_ID,
            settings.DRIVE_TRANSCRIPTS_FOLDER_ID,
        )
        logger.info("Using Graph workbook %s", settings.WORKBOOK_ITEM_ID)
        return AppContext(settings, store, blobs, provider, credential=credential)

    store = LocalWorkbookStore(settings.LOCAL_WORKBOOK_PATH)
    blobs = LocalBlobStore(settings.LOCAL_UPLOAD_DIR, settings.PUBLIC_BASE_URL)
    logger.info("Using local workbook %s", settings.LOCAL_WORKBOOK_PATH)
    return AppContext(settings, store, blobs, provider)
