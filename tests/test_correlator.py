"""Tests for artifact correlation against the local workbook store."""

import asyncio
import time
from datetime import timedelta

import pytest

from conftest import TZ, make_report, utc
from core.config import CLAIM_LEASE_SECONDS
from models.reports import CallEvent
from services.correlator import ArtifactCorrelator, MatchStrategy, Outcome
from services.provider import parse_call_event
from services.report_log import ReportLog

REPORT_AT = utc(2026, 1, 18, 20, 32)  # 14:32 Central
CALL_START = utc(2026, 1, 18, 20, 28)  # ends 14:30:10 Central


async def saved(report_log, report_id):
    return (await report_log.snapshot()).get(report_id)


@pytest.mark.asyncio
async def test_call_finished_links_report(correlator, report_log, provider_api, blobs):
    report = make_report(REPORT_AT, employees=(("Alice", 8, 0), ("Bob", 8, 2)))
    await report_log.append(report)
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.LINKED
    assert outcome.report_id == report.id
    assert outcome.audio_uploaded and outcome.transcript_uploaded

    stem = f"Daily Report 18-Jan-26 1428hrs ({report.id})"
    assert blobs.audio == {f"{stem}.mp3": b"ID3-audio"}
    assert blobs.transcripts == {
        f"{stem}.txt": "Agent [0:01]: Ready for your daily report.\n"
        "User [0:06]: Alice worked eight hours."
    }

    linked = await saved(report_log, report.id)
    assert linked.links.audio_url == f"https://files.test/audio/{stem}.mp3"
    assert linked.links.transcript_url == f"https://files.test/transcripts/{stem}.txt"
    assert linked.call_id == "conv_a"
    assert len(linked.row_refs) == 2


@pytest.mark.asyncio
async def test_duplicate_delivery_uploads_nothing(correlator, report_log, provider_api, blobs):
    report = make_report(REPORT_AT)
    await report_log.append(report)
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130))

    await correlator.handle_call_finished(event)
    second = await correlator.handle_call_finished(event)

    assert second.status is Outcome.ALREADY_LINKED
    assert second.report_id == report.id
    assert blobs.upload_count == 2
    assert provider_api.count("/audio") == 1


@pytest.mark.asyncio
async def test_non_done_call_is_ignored(correlator, report_log, provider_api, blobs):
    await report_log.append(make_report(REPORT_AT))
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130, status="failed"))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.IGNORED
    assert blobs.upload_count == 0


@pytest.mark.asyncio
async def test_no_unlinked_report_is_no_match(correlator, provider_api):
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.NO_MATCH
    assert provider_api.requests == []


@pytest.mark.asyncio
async def test_audio_failure_still_links_transcript(correlator, report_log, provider_api, blobs):
    report = make_report(REPORT_AT)
    await report_log.append(report)
    blobs.fail_audio = True
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.LINKED
    assert outcome.audio_uploaded is False
    assert outcome.transcript_uploaded is True
    linked = await saved(report_log, report.id)
    assert linked.links.audio_url is None
    assert linked.links.transcript_url


@pytest.mark.asyncio
async def test_missing_audio_is_fetched_independently(correlator, report_log, provider_api, blobs):
    report = make_report(REPORT_AT)
    await report_log.append(report)
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130, audio=None))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.LINKED
    assert blobs.audio == {}
    assert len(blobs.transcripts) == 1


@pytest.mark.asyncio
async def test_no_artifacts_releases_claim_for_retry(correlator, report_log, provider_api, blobs):
    report = make_report(REPORT_AT)
    await report_log.append(report)
    blobs.fail_audio = blobs.fail_transcript = True
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.NO_ARTIFACTS
    released = await saved(report_log, report.id)
    assert released.linked is False
    assert released.call_id is None

    blobs.fail_audio = blobs.fail_transcript = False
    retry = await correlator.handle_call_finished(event)

    assert retry.status is Outcome.LINKED
    assert retry.report_id == report.id


@pytest.mark.asyncio
async def test_overlapping_deliveries_fetch_and_upload_once(
    correlator, report_log, provider_api, blobs
):
    report = make_report(REPORT_AT)
    await report_log.append(report)
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130))

    outcomes = await asyncio.gather(
        correlator.handle_call_finished(event),
        correlator.handle_call_finished(event),
    )

    assert [o.status for o in outcomes].count(Outcome.LINKED) == 1
    assert provider_api.count("/audio") == 1
    assert blobs.upload_count == 2


@pytest.mark.asyncio
async def test_redelivery_during_claim_lease_is_rejected(correlator, report_log, provider_api, blobs):
    report = make_report(REPORT_AT)
    await report_log.append(report)
    await report_log.claim(report.id, "conv_a")
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.CLAIM_REJECTED
    assert outcome.report_id == report.id
    assert blobs.upload_count == 0


@pytest.mark.asyncio
async def test_interrupted_attempt_resumes_after_lease(correlator, store, report_log, provider_api):
    claimed = make_report(REPORT_AT, suffix="0001")
    newer = make_report(REPORT_AT + timedelta(minutes=20), suffix="0002")
    await report_log.append(claimed)
    await report_log.append(newer)
    earlier = ReportLog(store, TZ, clock=lambda: time.time() - CLAIM_LEASE_SECONDS - 60)
    await earlier.claim(claimed.id, "conv_a")
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.LINKED
    assert outcome.report_id == claimed.id
    assert (await saved(report_log, newer.id)).linked is False


@pytest.mark.asyncio
async def test_report_claimed_by_another_call_is_skipped(correlator, report_log, provider_api):
    older = make_report(REPORT_AT - timedelta(minutes=30), suffix="0001")
    claimed = make_report(REPORT_AT, suffix="0002")
    await report_log.append(older)
    await report_log.append(claimed)
    await report_log.claim(claimed.id, "conv_other")
    event = parse_call_event(provider_api.add_call("conv_a", CALL_START, 130))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.LINKED
    assert outcome.report_id == older.id
    assert (await saved(report_log, claimed.id)).call_id == "conv_other"


@pytest.mark.asyncio
async def test_windowed_per_call_fetches_missing_timing(report_log, provider_api, blobs):
    correlator = ArtifactCorrelator(
        report_log, provider_api.client(), blobs, TZ, per_call_strategy=MatchStrategy.WINDOWED
    )
    report = make_report(REPORT_AT)
    await report_log.append(report)
    provider_api.add_call("conv_a", CALL_START, 130)

    outcome = await correlator.handle_call_finished(CallEvent(call_id="conv_a", status="done"))

    assert outcome.status is Outcome.LINKED
    assert outcome.offset_seconds == 110
    assert provider_api.count("/conversations/conv_a") >= 1


@pytest.mark.asyncio
async def test_windowed_per_call_rejects_distant_report(report_log, provider_api, blobs):
    correlator = ArtifactCorrelator(
        report_log, provider_api.client(), blobs, TZ, per_call_strategy="windowed"
    )
    await report_log.append(make_report(REPORT_AT))
    event = parse_call_event(provider_api.add_call("conv_b", utc(2026, 1, 18, 20, 5), 300))

    outcome = await correlator.handle_call_finished(event)

    assert outcome.status is Outcome.NO_MATCH
    assert blobs.upload_count == 0


@pytest.mark.asyncio
async def test_sweep_links_in_window_pairs_once(correlator, report_log, provider_api, blobs):
    r1 = make_report(utc(2026, 1, 18, 16, 0), suffix="0001")
    r2 = make_report(utc(2026, 1, 18, 16, 2), suffix="0002")
    await report_log.append(r1)
    await report_log.append(r2)
    provider_api.add_call("conv_1", utc(2026, 1, 18, 15, 57, 30), 120)
    provider_api.add_call("conv_2", utc(2026, 1, 18, 15, 59, 50), 120)
    provider_api.add_call("conv_3", utc(2026, 1, 18, 11, 58), 120)
    provider_api.add_call("conv_4", utc(2026, 1, 18, 15, 59), 120, status="failed")

    result = await correlator.sweep()

    assert result.processed == 2
    assert {(o.call_id, o.report_id) for o in result.outcomes} == {
        ("conv_1", r1.id),
        ("conv_2", r2.id),
    }
    assert result.calls_considered == 3
    assert result.unmatched_call_ids == ["conv_3"]
    assert result.unmatched_report_ids == []
    assert result.failures == []
    assert blobs.upload_count == 4

    again = await correlator.sweep()

    assert again.processed == 0
    assert again.outcomes == []
    assert blobs.upload_count == 4


@pytest.mark.asyncio
async def test_sweep_leaves_out_of_window_report_unlinked(correlator, report_log, provider_api):
    report = make_report(utc(2026, 1, 18, 16, 0))
    await report_log.append(report)
    provider_api.add_call("conv_1", utc(2026, 1, 18, 15, 0), 120)

    result = await correlator.sweep(limit=10)

    assert result.processed == 0
    assert result.unmatched_report_ids == [report.id]
    assert provider_api.requests[0].url.params["page_size"] == "10"


class FlakyReportLog(ReportLog):
    def __init__(self, store, timezone_name, failing_report_id):
        super().__init__(store, timezone_name)
        self.failing_report_id = failing_report_id

    async def attach_links(self, report, links):
        if report.id == self.failing_report_id:
            raise OSError("workbook is locked")
        await super().attach_links(report, links)


@pytest.mark.asyncio
async def test_sweep_records_failure_and_continues(store, provider_api, blobs):
    r1 = make_report(utc(2026, 1, 18, 16, 0), suffix="0001")
    r2 = make_report(utc(2026, 1, 18, 16, 2), suffix="0002")
    report_log = FlakyReportLog(store, TZ, failing_report_id=r1.id)
    await report_log.append(r1)
    await report_log.append(r2)
    provider_api.add_call("conv_1", utc(2026, 1, 18, 15, 57, 30), 120)
    provider_api.add_call("conv_2", utc(2026, 1, 18, 15, 59, 50), 120)
    correlator = ArtifactCorrelator(report_log, provider_api.client(), blobs, TZ)

    result = await correlator.sweep()

    assert result.processed == 1
    assert result.failures == [
        {"call_id": "conv_1", "report_id": r1.id, "error": "workbook is locked"}
    ]
    assert (await saved(report_log, r2.id)).linked is True
    assert (await saved(report_log, r1.id)).linked is False
