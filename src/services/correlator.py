"""
Artifact correlation: link finished calls to the reports they produced.

The provider assigns each conversation a call id that ingestion never sees,
and reports carry an id the provider never sees. The only join key between the
two streams is time: a report is submitted shortly before or after the call
that produced it ends.

Matching is greedy nearest-timestamp assignment, not a globally optimal
bipartite matching. Overlapping concurrent calls can be misassigned.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from core.config import MATCH_WINDOW_AFTER_SECONDS, MATCH_WINDOW_BEFORE_SECONDS
from models.reports import ArtifactLinks, CallEvent, Report
from services.artifacts import BlobStore
from services.formatting import artifact_filename, format_transcript
from services.provider import ElevenLabsClient, merge_call_details
from services.report_log import ClaimRejected, ReportLog

logger = logging.getLogger(__name__)


class MatchStrategy(str, Enum):
    """
    WINDOWED: report time S and call end E must satisfy
              -60s <= S - E <= 300s; nearest pairs are assigned first.
    LATEST:   no window; the most recent reports are paired with the most
              recent calls.
    """

    WINDOWED = "windowed"
    LATEST = "latest"


class Outcome(str, Enum):
    LINKED = "linked"
    ALREADY_LINKED = "already_linked"
    NO_MATCH = "no_match"
    NO_ARTIFACTS = "no_artifacts"
    IGNORED = "ignored"
    CLAIM_REJECTED = "claim_rejected"


@dataclass(frozen=True)
class CallMatch:
    event: CallEvent
    report: Report
    offset_seconds: float | None = None


@dataclass
class CorrelationOutcome:
    status: Outcome
    call_id: str
    report_id: str | None = None
    audio_uploaded: bool = False
    transcript_uploaded: bool = False
    offset_seconds: float | None = None
    message: str = ""


@dataclass
class SweepResult:
    calls_considered: int = 0
    reports_considered: int = 0
    outcomes: list[CorrelationOutcome] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)
    unmatched_report_ids: list[str] = field(default_factory=list)
    unmatched_call_ids: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is Outcome.LINKED)


def match_calls(
    events: Iterable[CallEvent],
    reports: Iterable[Report],
    strategy: MatchStrategy = MatchStrategy.WINDOWED,
    window_before: float = MATCH_WINDOW_BEFORE_SECONDS,
    window_after: float = MATCH_WINDOW_AFTER_SECONDS,
) -> list[CallMatch]:
    """
    Pair finished calls with unlinked reports.

    Every eligible (call, report) pair is ranked, then pairs are taken in rank
    order, skipping any whose call or report was already taken. Only calls
    with status "done" and only unlinked reports take part. With the windowed
    strategy, calls without a known end time are not eligible.
    """
    reports = [r for r in reports if not r.linked]
    candidates = []

    for event in events:
        if event.status != "done":
            continue
        end = event.end_time

        for report in reports:
            offset = (report.submitted_at - end).total_seconds() if end else None
            if strategy is MatchStrategy.WINDOWED:
                if offset is None or not (-window_before <= offset <= window_after):
                    continue
                rank = (abs(offset), report.submitted_at.timestamp(), report.id, event.call_id)
            else:
                end_ts = end.timestamp() if end else float("-inf")
                rank = (-report.submitted_at.timestamp(), -end_ts, report.id, event.call_id)
            candidates.append((rank, event, report, offset))

    candidates.sort(key=lambda c: c[0])

    used_calls: set[str] = set()
    used_reports: set[str] = set()
    matches = []
    for _, event, report, offset in candidates:
        if event.call_id in used_calls or report.id in used_reports:
            continue
        used_calls.add(event.call_id)
        used_reports.add(report.id)
        matches.append(CallMatch(event, report, offset))
    return matches


class ArtifactCorrelator:
    """
    Links call artifacts to reports, per call (webhook) or in a batch sweep.

    Before touching any artifact the report is claimed for the call (see
    ReportLog.claim). A report that is linked, or claimed by another call, is
    never matched again, and a call already recorded on a linked report is
    never processed again.
    """

    def __init__(
        self,
        reports: ReportLog,
        provider: ElevenLabsClient,
        blobs: BlobStore,
        timezone_name: str,
        per_call_strategy: MatchStrategy = MatchStrategy.LATEST,
        sweep_limit: int = 50,
        agent_label: str = "Agent",
    ):
        self.reports = reports
        self.provider = provider
        self.blobs = blobs
        self.timezone_name = timezone_name
        self.per_call_strategy = MatchStrategy(per_call_strategy)
        self.sweep_limit = sweep_limit
        self.agent_label = agent_label

    async def handle_call_finished(self, event: CallEvent) -> CorrelationOutcome:
        """Correlate one call from a post-call notification."""
        if event.status != "done":
            return CorrelationOutcome(
                Outcome.IGNORED, event.call_id, message=f"Call status: {event.status}"
            )

        index = await self.reports.snapshot()
        claimed = index.claimed_by(event.call_id)
        if claimed is not None and claimed.linked:
            logger.info("Call %s already linked to %s", event.call_id, claimed.id)
            return CorrelationOutcome(
                Outcome.ALREADY_LINKED,
                event.call_id,
                report_id=claimed.id,
                message="Call artifacts were already linked",
            )

        if claimed is not None:
            # Claimed by an earlier attempt; taken over only once its lease expires
            return await self._link(CallMatch(event, claimed))

        if self.per_call_strategy is MatchStrategy.WINDOWED and event.end_time is None:
            event = merge_call_details(event, await self.provider.get_call(event.call_id))

        candidates = [r for r in index.unlinked() if not r.call_id]
        matches = match_calls([event], candidates, self.per_call_strategy)
        if not matches:
            logger.info("No report to link for call %s", event.call_id)
            return CorrelationOutcome(
                Outcome.NO_MATCH, event.call_id, message="No matching report found"
            )
        return await self._link(matches[0])

    async def sweep(self, limit: int | None = None) -> SweepResult:
        """
        Correlate recent provider calls with unlinked reports in one pass.

        Matches are processed one at a time to bound the request rate against
        the store and the provider.
        """
        events = await self.provider.list_recent_calls(limit or self.sweep_limit)
        index = await self.reports.snapshot()

        resumes = []
        fresh_events = []
        for event in events:
            if event.status != "done":
                continue
            claimed = index.claimed_by(event.call_id)
            if claimed is None:
                fresh_events.append(event)
            elif not claimed.linked:
                resumes.append(CallMatch(event, claimed))

        candidates = [r for r in index.unlinked() if not r.call_id]
        matches = resumes + match_calls(fresh_events, candidates, MatchStrategy.WINDOWED)
        logger.info(
            "Sweep: %d calls, %d unlinked reports, %d matches",
            len(fresh_events),
            len(candidates),
            len(matches),
        )

        result = SweepResult(calls_considered=len(fresh_events), reports_considered=len(candidates))
        for match in matches:
            try:
                outcome = await self._link(match)
            except Exception as e:
                logger.exception(
                    "Linking call %s to report %s failed", match.event.call_id, match.report.id
                )
                result.failures.append(
                    {"call_id": match.event.call_id, "report_id": match.report.id, "error": str(e)}
                )
                continue
            result.outcomes.append(outcome)

        matched_reports = {m.report.id for m in matches}
        matched_calls = {m.event.call_id for m in matches}
        result.unmatched_report_ids = [r.id for r in candidates if r.id not in matched_reports]
        result.unmatched_call_ids = [e.call_id for e in fresh_events if e.call_id not in matched_calls]
        return result

    async def _link(self, match: CallMatch) -> CorrelationOutcome:
        event = match.event
        try:
            report = await self.reports.claim(match.report.id, event.call_id)
        except ClaimRejected as e:
            logger.warning("Claim rejected for call %s: %s", event.call_id, e)
            return CorrelationOutcome(
                Outcome.CLAIM_REJECTED, event.call_id, report_id=match.report.id, message=str(e)
            )

        logger.info(
            "Matched call %s to report %s (offset: %s s)",
            event.call_id,
            report.id,
            match.offset_seconds,
        )

        # Each artifact is independent: one failing does not stop the other
        audio_url = await self._upload_audio(event, report)
        transcript_url = await self._upload_transcript(event, report)

        if not (audio_url or transcript_url):
            await self.reports.release_claim(report, event.call_id)
            return CorrelationOutcome(
                Outcome.NO_ARTIFACTS,
                event.call_id,
                report_id=report.id,
                offset_seconds=match.offset_seconds,
                message="No artifacts could be fetched; report left unlinked",
            )

        await self.reports.attach_links(report, ArtifactLinks(audio_url, transcript_url))
        return CorrelationOutcome(
            Outcome.LINKED,
            event.call_id,
            report_id=report.id,
            audio_uploaded=bool(audio_url),
            transcript_uploaded=bool(transcript_url),
            offset_seconds=match.offset_seconds,
            message="Post-call data processed and linked to report",
        )

    def _filename(self, event: CallEvent, report: Report, extension: str) -> str:
        at = event.start_time or report.submitted_at
        return artifact_filename(at, self.timezone_name, report.id, extension)

    async def _upload_audio(self, event: CallEvent, report: Report) -> str | None:
        try:
            if event.audio_ref:
                data = await self.provider.download(event.audio_ref)
            else:
                data = await self.provider.get_call_audio(event.call_id)
            if not data:
                logger.info("Call %s has no audio", event.call_id)
                return None
            return await self.blobs.upload_audio(data, self._filename(event, report, "mp3"))
        except Exception:
            logger.exception("Failed to fetch or upload audio for call %s", event.call_id)
            return None

    async def _upload_transcript(self, event: CallEvent, report: Report) -> str | None:
        try:
            entries = event.transcript
            if not entries:
                entries = (await self.provider.get_call(event.call_id)).transcript
            if not entries:
                logger.info("Call %s has no transcript", event.call_id)
                return None
            text = format_transcript(entries, self.agent_label)
            return await self.blobs.upload_transcript(text, self._filename(event, report, "txt"))
        except Exception:
            logger.exception("Failed to fetch or upload transcript for call %s", event.call_id)
            return None
