"""Tests for hold-to-cancel and the cancellation rules."""

import asyncio

import pytest

from src.domain.enums import CancellationReason, RideStatus
from src.domain.exceptions import CancellationReasonRequiredError, ValidationError
from src.services.cancellation import HoldToConfirm, cancellation_fields, resolve_reason


class TestHoldToConfirm:
    @pytest.mark.asyncio
    async def test_release_before_expiry_commits_nothing(self):
        commits = []

        async def commit():
            commits.append(True)

        hold = HoldToConfirm(commit, duration=1.0, tick=0.1)
        hold.press()
        await asyncio.sleep(0.6)
        assert hold.release() is True
        await asyncio.sleep(0.6)
        assert commits == []
        assert hold.progress == 0.0

    @pytest.mark.asyncio
    async def test_full_hold_commits_once(self):
        commits = []

        async def commit():
            commits.append(True)

        hold = HoldToConfirm(commit, duration=0.2, tick=0.02)
        hold.press()
        await hold.wait()
        assert commits == [True]
        assert hold.progress == 1.0
        # Releasing after the commit point is a no-op.
        assert hold.release() is False
        hold.press()
        await hold.wait()
        assert commits == [True]

    @pytest.mark.asyncio
    async def test_progress_reported_while_holding(self):
        progress = []

        async def commit():
            pass

        hold = HoldToConfirm(commit, duration=0.2, tick=0.05, on_progress=progress.append)
        hold.press()
        await hold.wait()
        assert progress[-1] == 1.0
        assert any(0.0 < p < 1.0 for p in progress)

    @pytest.mark.asyncio
    async def test_press_again_restarts_countdown(self):
        commits = []

        async def commit():
            commits.append(True)

        hold = HoldToConfirm(commit, duration=0.3, tick=0.05)
        hold.press()
        await asyncio.sleep(0.2)
        hold.press()
        await asyncio.sleep(0.2)
        assert commits == []
        await hold.wait()
        assert commits == [True]

    @pytest.mark.asyncio
    async def test_rearm_allows_another_hold(self):
        commits = []

        async def commit():
            commits.append(True)

        hold = HoldToConfirm(commit, duration=0.05, tick=0.01)
        hold.press()
        await hold.wait()
        hold.rearm()
        hold.press()
        await hold.wait()
        assert commits == [True, True]


class TestResolveReason:
    def test_default_reason_before_assignment(self):
        assert resolve_reason(False, None) is CancellationReason.USER_CANCELLED

    def test_reason_required_after_assignment(self):
        with pytest.raises(CancellationReasonRequiredError):
            resolve_reason(True, None, require_reason=True)

    def test_default_when_not_required(self):
        assert resolve_reason(True, None, require_reason=False) is CancellationReason.USER_CANCELLED

    def test_offered_reason_accepted(self):
        assert (
            resolve_reason(True, CancellationReason.DRIVER_NO_SHOW)
            is CancellationReason.DRIVER_NO_SHOW
        )

    def test_generic_reason_not_offered_after_assignment(self):
        with pytest.raises(ValidationError):
            resolve_reason(True, CancellationReason.USER_CANCELLED)


def test_cancellation_fields():
    fields = cancellation_fields(CancellationReason.OTHER)
    assert fields["status"] == RideStatus.DECLINED.value
    assert fields["cancelled_by"] == "customer"
    assert fields["cancellation_reason"] == "other"
    assert fields["cancelled_at"]
