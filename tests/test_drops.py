"""
Test suite for drop creation and staking

Tests cover:
- Stake escrow and the drop_created ledger entry
- Rolling weekly cap
- Insufficient balance
- Nothing persisted when the write fails
- Request validation
- Drop detail
"""

import json
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import DependencyFailure, InsufficientReputation, WeeklyLimitReached
from app.models import Drop, ReputationEvent
from app.schemas.drop import DropCreate
from app.services.drops import create_drop
from app.settings import settings


class TestCreateDropService:
    """Staking rules at the service layer"""

    @pytest.mark.asyncio
    async def test_stake_is_escrowed(self, db_session: AsyncSession, make_profile, drop_payload):
        owner = await make_profile()

        drop, count = await create_drop(
            db_session, owner.id, DropCreate(**drop_payload(reputation_stake=40))
        )

        await db_session.refresh(owner)
        assert count == 1
        assert drop.status == "active"
        assert drop.validation_count == 0
        assert drop.validation_score == 0.0
        assert owner.reputation_available == 60
        assert owner.trust_score == 0
        assert owner.total_drops == 1

        result = await db_session.execute(
            select(ReputationEvent).where(ReputationEvent.related_drop_id == drop.id)
        )
        event = result.scalar_one()
        assert event.event_type == "drop_created"
        assert event.points_change == 0
        assert event.new_reputation_available == 60
        assert event.event_metadata == {"stake": 40}

    @pytest.mark.asyncio
    async def test_expires_after_ttl(self, db_session: AsyncSession, make_profile, drop_payload):
        owner = await make_profile()

        drop, _ = await create_drop(db_session, owner.id, DropCreate(**drop_payload()))

        assert drop.expires_at - drop.created_at == timedelta(hours=settings.DROP_TTL_HOURS)

    @pytest.mark.asyncio
    async def test_insufficient_balance_writes_nothing(
        self, db_session: AsyncSession, make_profile, drop_payload
    ):
        owner = await make_profile(reputation_available=15)
        owner_id = owner.id

        with pytest.raises(InsufficientReputation) as exc_info:
            await create_drop(db_session, owner_id, DropCreate(**drop_payload(reputation_stake=20)))

        assert exc_info.value.data == {"available": 15, "required": 20}
        count = (
            await db_session.execute(select(func.count(Drop.id)).where(Drop.user_id == owner_id))
        ).scalar_one()
        assert count == 0
        await db_session.refresh(owner)
        assert owner.reputation_available == 15

    @pytest.mark.asyncio
    async def test_failed_write_leaves_no_partial_state(
        self, db_session: AsyncSession, make_profile, drop_payload, monkeypatch
    ):
        owner = await make_profile(reputation_available=100)
        owner_id = owner.id

        async def commit_fails():
            # rows reach the transaction before the commit is lost
            await db_session.flush()
            raise OperationalError("COMMIT", {}, Exception("server closed the connection"))

        monkeypatch.setattr(db_session, "commit", commit_fails)

        with pytest.raises(DependencyFailure):
            await create_drop(db_session, owner_id, DropCreate(**drop_payload(reputation_stake=40)))

        drops = (
            await db_session.execute(select(func.count(Drop.id)).where(Drop.user_id == owner_id))
        ).scalar_one()
        events = (
            await db_session.execute(
                select(func.count(ReputationEvent.id)).where(ReputationEvent.user_id == owner_id)
            )
        ).scalar_one()
        assert drops == 0
        assert events == 0
        await db_session.refresh(owner)
        assert owner.reputation_available == 100
        assert owner.total_drops == 0

    @pytest.mark.asyncio
    async def test_weekly_cap_checked_before_balance(
        self, db_session: AsyncSession, make_profile, make_drop, drop_payload
    ):
        owner = await make_profile()
        for _ in range(settings.WEEKLY_DROP_LIMIT):
            await make_drop(owner, reputation_stake=10)

        with pytest.raises(WeeklyLimitReached) as exc_info:
            await create_drop(db_session, owner.id, DropCreate(**drop_payload(reputation_stake=10)))

        assert exc_info.value.data["drops_this_week"] == settings.WEEKLY_DROP_LIMIT
        assert exc_info.value.data["limit"] == settings.WEEKLY_DROP_LIMIT
        assert "resets_at" in exc_info.value.data

    @pytest.mark.asyncio
    async def test_drops_outside_window_do_not_count(
        self, db_session: AsyncSession, make_profile, make_drop, drop_payload
    ):
        owner = await make_profile(reputation_available=1000)
        for _ in range(settings.WEEKLY_DROP_LIMIT):
            await make_drop(owner, created_ago=timedelta(days=8), reputation_stake=10)

        _, count = await create_drop(db_session, owner.id, DropCreate(**drop_payload(reputation_stake=10)))

        assert count == 1


class TestCreateDropEndpoint:
    """POST /drops"""

    @pytest.mark.asyncio
    async def test_create_drop(self, authenticated_client, db_session, fake_redis, drop_payload):
        client, profile = authenticated_client

        response = await client.post("/drops", json=drop_payload(reputation_stake=25))

        assert response.status_code == 201
        body = response.json()
        assert body["drops_this_week"] == 1
        assert body["limit"] == settings.WEEKLY_DROP_LIMIT
        assert body["drop"]["status"] == "active"
        assert body["drop"]["reputation_stake"] == 25
        assert body["drop"]["user_id"] == str(profile.id)

        await db_session.refresh(profile)
        assert profile.reputation_available == 75

        channel, message = fake_redis.published[-1]
        assert channel == "drops.events"
        assert json.loads(message)["event"] == "drop.created"

    @pytest.mark.asyncio
    async def test_insufficient_reputation_returns_400(
        self, authenticated_client, db_session, drop_payload
    ):
        client, profile = authenticated_client
        profile.reputation_available = 5
        await db_session.commit()

        response = await client.post("/drops", json=drop_payload(reputation_stake=10))

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INSUFFICIENT_REPUTATION"
        assert body["available"] == 5
        assert body["required"] == 10

    @pytest.mark.asyncio
    async def test_weekly_limit_returns_429(self, authenticated_client, make_drop, drop_payload):
        client, profile = authenticated_client
        for _ in range(settings.WEEKLY_DROP_LIMIT):
            await make_drop(profile, reputation_stake=10)

        response = await client.post("/drops", json=drop_payload(reputation_stake=10))

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "WEEKLY_LIMIT_REACHED"
        assert body["drops_this_week"] == settings.WEEKLY_DROP_LIMIT
        assert body["limit"] == settings.WEEKLY_DROP_LIMIT
        assert body["resets_at"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stake", [9, 101])
    async def test_stake_out_of_range_rejected(self, authenticated_client, stake, drop_payload):
        client, _ = authenticated_client
        body = drop_payload()
        body["reputation_stake"] = stake

        response = await client.post("/drops", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_short_context_rejected(self, authenticated_client, drop_payload):
        client, _ = authenticated_client
        body = drop_payload()
        body["context"] = "too short"

        response = await client.post("/drops", json=body)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_not_onboarded_returns_404(self, async_client, drop_payload):
        from app.main import app
        from app.security import get_current_user_id

        async def stranger():
            return uuid.uuid4()

        app.dependency_overrides[get_current_user_id] = stranger

        response = await async_client.post("/drops", json=drop_payload())

        assert response.status_code == 404
        assert response.json()["error"] == "PROFILE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_requires_auth(self, async_client, drop_payload):
        response = await async_client.post("/drops", json=drop_payload())
        assert response.status_code == 401


class TestReadDrop:
    """GET /drops/{id}"""

    @pytest.mark.asyncio
    async def test_read_drop_includes_owner(self, authenticated_client, make_drop):
        client, profile = authenticated_client
        drop = await make_drop(profile)

        response = await client.get(f"/drops/{drop.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(drop.id)
        assert body["owner"]["username"] == profile.username

    @pytest.mark.asyncio
    async def test_unknown_drop_returns_404(self, authenticated_client):
        client, _ = authenticated_client

        response = await client.get(f"/drops/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "DROP_NOT_FOUND"
