import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import WORKER_KEY
from styllio.db import AsyncSessionLocal
from styllio.exceptions import ClaimTokenError
from styllio.models import ClaimToken, JobPermission
from styllio.routes.jobs import job_event_stream
from styllio.schemas import WorkerStatusUpdate
from styllio.services import claims, jobs
from styllio.services.events import event_bus

WORKER_HEADERS = {"X-Worker-Key": WORKER_KEY}


async def _create_job(db, job_id="jane-1a2b3c4d", session_id="cs_test_1"):
    return await jobs.create_job(
        db,
        job_id=job_id,
        payment_session_id=session_id,
        customer_email="jane@example.com",
        selected_style="noir",
        payment_status="paid",
        input_image_refs=["https://cdn.test/uploads/a", "https://cdn.test/uploads/b"],
    )


async def _report(client, job_id, **body):
    return await client.post(f"/internal/jobs/{job_id}/status", json=body, headers=WORKER_HEADERS)


@pytest.mark.asyncio
async def test_get_job_projection(client, db):
    job = await _create_job(db)

    response = await client.get(f"/jobs/{job.job_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == job.job_id
    assert data["status"] == "queuing"
    assert data["progress"] == 0
    assert data["resultUrl"] is None
    assert data["processedImages"] == []
    assert data["originalImageUrls"] == ["https://cdn.test/uploads/a", "https://cdn.test/uploads/b"]
    assert data["metadata"] == {
        "style": "noir",
        "imageCount": 2,
        "customerEmail": "jane@example.com",
        "paymentStatus": "paid",
    }


@pytest.mark.asyncio
async def test_unknown_job_is_404(client):
    response = await client.get("/jobs/missing-job")

    assert response.status_code == 404
    assert response.json()["error"] == "JOB_NOT_FOUND"


@pytest.mark.asyncio
async def test_find_job_by_session(client, db):
    job = await _create_job(db)

    found = await client.get("/jobs", params={"sessionId": "cs_test_1"})
    missing = await client.get("/jobs", params={"sessionId": "cs_unknown"})

    assert found.status_code == 200
    assert found.json()["id"] == job.job_id
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_worker_reports_progress_then_completion(client, db):
    job = await _create_job(db)

    processing = await _report(client, job.job_id, status="processing", progress=40)
    assert processing.status_code == 200
    assert processing.json()["status"] == "processing"
    assert processing.json()["progress"] == 40

    lower = await _report(client, job.job_id, status="processing", progress=10)
    assert lower.json()["progress"] == 40

    completed = await _report(
        client,
        job.job_id,
        status="completed",
        outputImageUrls=["https://cdn.test/out/1.png", "https://cdn.test/out/2.png"],
    )
    data = completed.json()
    assert completed.status_code == 200
    assert data["status"] == "completed"
    assert data["progress"] == 100
    assert data["processedImages"] == ["https://cdn.test/out/1.png", "https://cdn.test/out/2.png"]
    assert data["resultUrl"] == "https://cdn.test/out/1.png"
    assert data["completedAt"] is not None
    assert data["error"] is None


@pytest.mark.asyncio
async def test_completion_requires_output_images(client, db):
    job = await _create_job(db)

    response = await _report(client, job.job_id, status="completed", outputImageUrls=[])

    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_JOB_TRANSITION"
    assert (await client.get(f"/jobs/{job.job_id}")).json()["status"] == "queuing"


@pytest.mark.asyncio
async def test_failure_carries_error_message(client, db):
    job = await _create_job(db)

    explicit = await _report(client, job.job_id, status="failed", errorMessage="Model crashed")
    assert explicit.status_code == 200
    assert explicit.json()["error"] == "Model crashed"
    assert explicit.json()["completedAt"] is not None

    other = await _create_job(db, job_id="other-1", session_id="cs_test_2")
    defaulted = await _report(client, other.job_id, status="failed")
    assert defaulted.json()["error"] == jobs.GENERIC_FAILURE_MESSAGE


@pytest.mark.asyncio
async def test_terminal_status_is_final(client, db):
    job = await _create_job(db)
    await _report(client, job.job_id, status="completed", outputImageUrls=["https://cdn.test/out/1.png"])

    back_to_processing = await _report(client, job.job_id, status="processing")
    to_failed = await _report(client, job.job_id, status="failed", errorMessage="late failure")
    repeated = await _report(client, job.job_id, status="completed", outputImageUrls=["https://cdn.test/out/other.png"])

    assert back_to_processing.status_code == 409
    assert to_failed.status_code == 409
    assert repeated.status_code == 200
    data = (await client.get(f"/jobs/{job.job_id}")).json()
    assert data["status"] == "completed"
    assert data["processedImages"] == ["https://cdn.test/out/1.png"]
    assert data["error"] is None


@pytest.mark.asyncio
async def test_worker_endpoint_requires_key(client, db):
    job = await _create_job(db)

    missing = await client.post(f"/internal/jobs/{job.job_id}/status", json={"status": "processing"})
    wrong = await client.post(
        f"/internal/jobs/{job.job_id}/status",
        json={"status": "processing"},
        headers={"X-Worker-Key": "nope"},
    )

    assert missing.status_code == 401
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_worker_cannot_report_unknown_status(client, db):
    job = await _create_job(db)

    response = await _report(client, job.job_id, status="queuing")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_event_stream_of_finished_job_sends_snapshot_and_closes(client, db):
    job = await _create_job(db)
    await _report(client, job.job_id, status="failed", errorMessage="boom")

    response = await client.get(f"/jobs/{job.job_id}/events")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text == f'data: {{"jobId": "{job.job_id}", "status": "failed"}}\n\n'


@pytest.mark.asyncio
async def test_event_stream_delivers_worker_updates_to_open_subscriber(db):
    job = await _create_job(db)
    stream = job_event_stream(job.job_id)

    snapshot = await stream.__anext__()
    assert snapshot == f'data: {{"jobId": "{job.job_id}", "status": "queuing"}}\n\n'
    assert event_bus.subscriber_count(job.job_id) == 1

    await jobs.apply_worker_update(db, job.job_id, WorkerStatusUpdate(status="processing", progress=40))
    await jobs.apply_worker_update(
        db, job.job_id, WorkerStatusUpdate(status="completed", outputImageUrls=["https://cdn.test/out/a"])
    )

    assert await stream.__anext__() == f'data: {{"jobId": "{job.job_id}", "status": "processing"}}\n\n'
    assert await stream.__anext__() == f'data: {{"jobId": "{job.job_id}", "status": "completed"}}\n\n'
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert event_bus.subscriber_count(job.job_id) == 0


@pytest.mark.asyncio
async def test_event_stream_snapshot_reflects_change_made_before_first_read(db):
    job = await _create_job(db)
    stream = job_event_stream(job.job_id)
    await jobs.apply_worker_update(db, job.job_id, WorkerStatusUpdate(status="failed", errorMessage="boom"))

    frames = [frame async for frame in stream]

    assert frames == [f'data: {{"jobId": "{job.job_id}", "status": "failed"}}\n\n']
    assert event_bus.subscriber_count(job.job_id) == 0


@pytest.mark.asyncio
async def test_claim_token_grants_read_access_once(client, db):
    job = await _create_job(db)
    raw_token = await claims.issue_claim_token(db, job.job_id)
    session = (await client.post("/sessions/anonymous")).json()
    headers = {"Authorization": f"Bearer {session['token']}"}

    before = await client.get("/account/jobs", headers=headers)
    assert before.json() == {"jobs": [], "total": 0}

    claimed = await client.post(
        f"/jobs/{job.job_id}/claim",
        json={"claimToken": raw_token, "userId": session["userId"]},
    )
    assert claimed.status_code == 200
    assert claimed.json() == {"ok": True}

    listed = (await client.get("/account/jobs", headers=headers)).json()
    assert listed["total"] == 1
    assert listed["jobs"][0]["id"] == job.job_id

    reused = await client.post(
        f"/jobs/{job.job_id}/claim",
        json={"claimToken": raw_token, "userId": "anon_someone_else"},
    )
    assert reused.status_code == 400
    assert reused.json()["message"] == "Invalid or used token"


@pytest.mark.asyncio
async def test_concurrent_redemptions_of_one_token_grant_one_user(db):
    job = await _create_job(db)
    raw_token = await claims.issue_claim_token(db, job.job_id)

    async def redeem(user_id):
        async with AsyncSessionLocal() as session:
            try:
                await claims.redeem_claim_token(session, job.job_id, raw_token, user_id)
            except ClaimTokenError:
                return "rejected"
            return "ok"

    outcomes = await asyncio.gather(redeem("anon_first"), redeem("anon_second"))

    assert sorted(outcomes) == ["ok", "rejected"]
    async with AsyncSessionLocal() as session:
        granted = (await session.execute(select(JobPermission.user_id))).scalars().all()
        stored = (await session.execute(select(ClaimToken))).scalar_one()
    assert len(granted) == 1
    assert stored.used is True
    assert stored.used_at is not None


@pytest.mark.asyncio
async def test_claim_token_is_stored_hashed(db):
    job = await _create_job(db)

    raw_token = await claims.issue_claim_token(db, job.job_id)

    stored = (await db.execute(select(ClaimToken))).scalar_one()
    assert stored.token_hash == claims.hash_token(raw_token)
    assert stored.token_hash != raw_token


@pytest.mark.asyncio
async def test_expired_claim_token_is_rejected(client, db):
    job = await _create_job(db)
    raw_token = await claims.issue_claim_token(db, job.job_id)
    stored = (await db.execute(select(ClaimToken))).scalar_one()
    stored.expires_at = datetime.utcnow() - timedelta(minutes=1)
    await db.commit()

    response = await client.post(f"/jobs/{job.job_id}/claim", json={"claimToken": raw_token, "userId": "anon_x"})

    assert response.status_code == 400
    assert response.json()["message"] == "Token expired"


@pytest.mark.asyncio
async def test_claim_token_is_bound_to_its_job(client, db):
    job = await _create_job(db)
    other = await _create_job(db, job_id="other-1", session_id="cs_test_2")
    raw_token = await claims.issue_claim_token(db, job.job_id)

    response = await client.post(f"/jobs/{other.job_id}/claim", json={"claimToken": raw_token, "userId": "anon_x"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_account_jobs_requires_session(client):
    response = await client.get("/account/jobs")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_mark_downloaded(client, db):
    job = await _create_job(db)

    response = await client.post(f"/jobs/{job.job_id}/downloaded")

    assert response.status_code == 200
    await db.refresh(job)
    assert job.is_downloaded is True


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "styllio-backend"}
