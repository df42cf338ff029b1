import json

import pytest

from shared.identity import SessionInvalidError, SessionRequiredError


def _audit_lines(tmp_path):
    return [json.loads(line) for line in (tmp_path / "audit.log").read_text().splitlines()]


async def test_active_session_returns_identity(guard, identity_service, proof):
    identity = await identity_service.register(proof)

    result = await guard.require_active_session(identity.session_token, action="initiate_payment")

    assert result.user_id == identity.user_id


@pytest.mark.parametrize("token", [None, ""])
async def test_missing_token_is_audited(guard, tmp_path, token):
    with pytest.raises(SessionRequiredError):
        await guard.require_active_session(token, action="initiate_payment", entity="payment", entity_id="r1")

    event = _audit_lines(tmp_path)[-1]
    assert event["status"] == "error"
    assert event["details"]["reason"] == "missing_session_token"
    assert event["entity_id"] == "r1"


async def test_unknown_token_is_audited(guard, tmp_path):
    with pytest.raises(SessionInvalidError):
        await guard.require_active_session("nope", action="confirm_payment", details={"step": "confirm"})

    event = _audit_lines(tmp_path)[-1]
    assert event["details"] == {"step": "confirm", "reason": "session_not_found"}
    assert event["session_id"].startswith("hash:")


async def test_expired_session_is_invalid(guard, identity_service, clock, proof):
    identity = await identity_service.register(proof)
    clock.advance(days=8)

    with pytest.raises(SessionInvalidError):
        await guard.require_active_session(identity.session_token, action="join_tournament")
