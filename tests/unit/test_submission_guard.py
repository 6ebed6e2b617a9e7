"""Tests for the duplicate submission guard."""

import pytest

from sso_portal.models.errors import ErrorCode, PortalError
from sso_portal.services.submission_guard import SubmissionGuard


@pytest.fixture
def guard() -> SubmissionGuard:
    return SubmissionGuard()


def test_second_hold_while_first_is_in_flight_is_rejected(guard: SubmissionGuard) -> None:
    with guard.hold("device-a", "login"):
        with pytest.raises(PortalError) as exc_info:
            with guard.hold("device-a", "login"):
                pass
    assert exc_info.value.code == ErrorCode.REQUEST_IN_PROGRESS
    assert exc_info.value.details == {"action": "login"}


def test_slot_is_released_after_block(guard: SubmissionGuard) -> None:
    with guard.hold("device-a", "login"):
        pass
    with guard.hold("device-a", "login"):
        pass


def test_slot_is_released_when_block_raises(guard: SubmissionGuard) -> None:
    with pytest.raises(RuntimeError):
        with guard.hold("device-a", "register"):
            raise RuntimeError("provider down")
    with guard.hold("device-a", "register"):
        pass


def test_other_devices_and_actions_are_independent(guard: SubmissionGuard) -> None:
    with guard.hold("device-a", "login"):
        with guard.hold("device-b", "login"):
            with guard.hold("device-a", "register"):
                pass
