"""Tests for two-factor setup, login and backup-code handling."""

import asyncio

import pyotp
import pytest

from darna_auth.domain.errors import (
    InvalidPassword,
    TokenInvalid,
    TwoFactorAlreadyEnabled,
    TwoFactorInvalidCode,
    TwoFactorNotEnabled,
    TwoFactorRequired,
    TwoFactorSetupMissing,
)

from .conftest import ALICE


async def _user_with_2fa(service):
    registered = await service.register(**ALICE)
    setup = await service.generate_2fa_setup(registered["id"])
    await service.enable_2fa(registered["id"], pyotp.TOTP(setup.secret).now())
    return registered["id"], setup


@pytest.mark.asyncio
async def test_setup_returns_secret_qr_and_backup_codes(auth_service, store):
    registered = await auth_service.register(**ALICE)

    setup = await auth_service.generate_2fa_setup(registered["id"])

    assert setup.provisioning_uri.startswith("otpauth://totp/")
    assert setup.qr_code_data_url.startswith("data:image/png;base64,")
    assert len(setup.backup_codes) == 10
    user = store.get_user_by_id(registered["id"])
    assert not user.two_factor_enabled
    assert user.two_factor_secret is None
    assert user.two_factor_pending_secret == setup.secret

    status = await auth_service.get_2fa_status(registered["id"])
    assert status.setup_pending
    assert not status.enabled


@pytest.mark.asyncio
async def test_enable_requires_valid_code(auth_service):
    registered = await auth_service.register(**ALICE)
    await auth_service.generate_2fa_setup(registered["id"])

    with pytest.raises(TwoFactorInvalidCode):
        await auth_service.enable_2fa(registered["id"], "000000")
    assert not (await auth_service.get_2fa_status(registered["id"])).enabled


@pytest.mark.asyncio
async def test_enable_without_setup(auth_service):
    registered = await auth_service.register(**ALICE)

    with pytest.raises(TwoFactorSetupMissing):
        await auth_service.enable_2fa(registered["id"], "123456")


@pytest.mark.asyncio
async def test_enable_after_setup_expired(auth_service, clock):
    registered = await auth_service.register(**ALICE)
    setup = await auth_service.generate_2fa_setup(registered["id"])
    clock.advance(minutes=30)

    with pytest.raises(TwoFactorSetupMissing):
        await auth_service.enable_2fa(registered["id"], pyotp.TOTP(setup.secret).now())


@pytest.mark.asyncio
async def test_expired_setup_is_discarded(auth_service, store, clock):
    registered = await auth_service.register(**ALICE)
    await auth_service.generate_2fa_setup(registered["id"])
    clock.advance(minutes=30)

    status = await auth_service.get_2fa_status(registered["id"])

    assert not status.enabled
    assert not status.setup_pending
    assert status.backup_codes_count == 0
    assert status.backup_codes_remaining == 0
    user = store.get_user_by_id(registered["id"])
    assert user.two_factor_pending_secret is None
    assert user.two_factor_pending_expires is None
    assert store.count_backup_codes(registered["id"]) == (0, 0)


@pytest.mark.asyncio
async def test_enable_after_expiry_clears_pending_state(auth_service, store, clock):
    registered = await auth_service.register(**ALICE)
    setup = await auth_service.generate_2fa_setup(registered["id"])
    clock.advance(minutes=30)

    with pytest.raises(TwoFactorSetupMissing):
        await auth_service.enable_2fa(registered["id"], setup.backup_codes[0])

    assert store.get_user_by_id(registered["id"]).two_factor_pending_secret is None
    assert store.count_backup_codes(registered["id"]) == (0, 0)


@pytest.mark.asyncio
async def test_new_setup_after_expiry_replaces_old_codes(auth_service, store, clock):
    registered = await auth_service.register(**ALICE)
    first = await auth_service.generate_2fa_setup(registered["id"])
    clock.advance(minutes=30)

    second = await auth_service.generate_2fa_setup(registered["id"])

    assert second.secret != first.secret
    assert store.count_backup_codes(registered["id"]) == (10, 0)
    with pytest.raises(TwoFactorInvalidCode):
        await auth_service.enable_2fa(registered["id"], first.backup_codes[0])


@pytest.mark.asyncio
async def test_enable_with_backup_code_spends_it(auth_service):
    registered = await auth_service.register(**ALICE)
    setup = await auth_service.generate_2fa_setup(registered["id"])
    code = setup.backup_codes[0]

    await auth_service.enable_2fa(registered["id"], code)

    status = await auth_service.get_2fa_status(registered["id"])
    assert status.enabled
    assert status.backup_codes_remaining == 9
    with pytest.raises(TwoFactorInvalidCode):
        await auth_service.verify_2fa_for_login(registered["id"], code)
    result = await auth_service.verify_2fa_for_login(registered["id"], setup.backup_codes[1])
    assert result.authenticated


@pytest.mark.asyncio
async def test_pending_setup_does_not_guard_login(auth_service):
    registered = await auth_service.register(**ALICE)
    await auth_service.generate_2fa_setup(registered["id"])

    result = await auth_service.login(ALICE["email"], ALICE["password"])

    assert result.authenticated
    assert not result.pending_two_factor
    assert result.access_token


@pytest.mark.asyncio
async def test_enable_promotes_pending_secret(auth_service, store):
    user_id, setup = await _user_with_2fa(auth_service)

    user = store.get_user_by_id(user_id)
    assert user.two_factor_enabled
    assert user.two_factor_secret == setup.secret
    assert user.two_factor_pending_secret is None

    status = await auth_service.get_2fa_status(user_id)
    assert status.enabled
    assert status.backup_codes_remaining == 10
    with pytest.raises(TwoFactorAlreadyEnabled):
        await auth_service.generate_2fa_setup(user_id)


@pytest.mark.asyncio
async def test_login_with_2fa_is_two_steps(auth_service, token_service):
    user_id, setup = await _user_with_2fa(auth_service)

    pending = await auth_service.login(ALICE["email"], ALICE["password"])

    assert pending.pending_two_factor
    assert pending.user_id == user_id
    assert pending.access_token is None
    assert not pending.authenticated

    result = await auth_service.verify_2fa_challenge(pending.challenge_token, pyotp.TOTP(setup.secret).now())
    assert result.authenticated
    assert token_service.verify(result.access_token).user_id == user_id


@pytest.mark.asyncio
async def test_challenge_token_cannot_be_used_as_access_token(auth_service):
    await _user_with_2fa(auth_service)
    pending = await auth_service.login(ALICE["email"], ALICE["password"])

    with pytest.raises(TokenInvalid):
        await auth_service.authenticate_token(pending.challenge_token)


@pytest.mark.asyncio
async def test_second_step_rejects_bad_code(auth_service, store):
    user_id, _ = await _user_with_2fa(auth_service)

    with pytest.raises(TwoFactorInvalidCode):
        await auth_service.verify_2fa_for_login(user_id, "000000")
    assert store.get_user_by_id(user_id).failed_login_count == 1


@pytest.mark.asyncio
async def test_second_step_requires_a_code(auth_service, store):
    user_id, _ = await _user_with_2fa(auth_service)

    with pytest.raises(TwoFactorRequired):
        await auth_service.verify_2fa_for_login(user_id, "   ")
    assert store.get_user_by_id(user_id).failed_login_count == 0


@pytest.mark.asyncio
async def test_second_step_for_user_without_2fa(auth_service):
    registered = await auth_service.register(**ALICE)

    with pytest.raises(TwoFactorInvalidCode):
        await auth_service.verify_2fa_for_login(registered["id"], "123456")


@pytest.mark.asyncio
async def test_backup_code_is_single_use(auth_service):
    user_id, setup = await _user_with_2fa(auth_service)
    code = setup.backup_codes[0]

    result = await auth_service.verify_2fa_for_login(user_id, code.lower())
    assert result.authenticated

    with pytest.raises(TwoFactorInvalidCode):
        await auth_service.verify_2fa_for_login(user_id, code)
    status = await auth_service.get_2fa_status(user_id)
    assert status.backup_codes_count == 10
    assert status.backup_codes_remaining == 9


@pytest.mark.asyncio
async def test_concurrent_backup_code_use_has_one_winner(auth_service):
    user_id, setup = await _user_with_2fa(auth_service)
    code = setup.backup_codes[3]

    results = await asyncio.gather(
        *(auth_service.verify_2fa_for_login(user_id, code) for _ in range(10)),
        return_exceptions=True,
    )

    failures = [item for item in results if isinstance(item, Exception)]
    assert len(results) - len(failures) == 1
    assert all(isinstance(item, TwoFactorInvalidCode) for item in failures)


@pytest.mark.asyncio
async def test_step_up_verification(auth_service):
    user_id, setup = await _user_with_2fa(auth_service)

    result = await auth_service.verify_2fa_code(user_id, pyotp.TOTP(setup.secret).now())

    assert result["success"] is True
    with pytest.raises(TwoFactorInvalidCode):
        await auth_service.verify_2fa_code(user_id, "000000")


@pytest.mark.asyncio
async def test_disable_requires_password(auth_service, store):
    user_id, _ = await _user_with_2fa(auth_service)

    with pytest.raises(InvalidPassword):
        await auth_service.disable_2fa(user_id, "WrongPass1")

    await auth_service.disable_2fa(user_id, ALICE["password"])

    user = store.get_user_by_id(user_id)
    assert not user.two_factor_enabled
    assert user.two_factor_secret is None
    assert store.count_backup_codes(user_id) == (0, 0)
    with pytest.raises(TwoFactorNotEnabled):
        await auth_service.disable_2fa(user_id, ALICE["password"])
    assert (await auth_service.login(ALICE["email"], ALICE["password"])).authenticated
