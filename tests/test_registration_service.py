import os

import pytest
from sqlalchemy import inspect

from conftest import FakeWalletClient, make_registration
from zyrapay.core.exceptions import FieldValidationError, RegistrationFailedError, WalletProvisioningError
from zyrapay.core.security import verify_password
from zyrapay.models.tenant import Domain, Tenant
from zyrapay.models.user import User, UserRole
from zyrapay.services.registration import RegistrationService, RegistrationStage
from zyrapay.services.wallet import WalletProvisioner


def _seed_tenant(db, email, domain):
    tenant = Tenant(
        business_name="Existing",
        username="existing",
        email=email,
        phone="+254711111111",
        wallet_id="W-EXISTING",
    )
    tenant.domains.append(Domain(domain=domain))
    db.add(tenant)
    db.commit()
    return tenant


def _tenant_files(settings):
    if not os.path.isdir(settings.TENANT_DATABASE_DIR):
        return []
    return os.listdir(settings.TENANT_DATABASE_DIR)


def test_register_creates_tenant_domain_and_admin(service, db_session, tenant_databases, wallet_client):
    result = service.register(make_registration())

    assert result.subdomain == "acme-corp"
    assert result.domain == "acme-corp.zyraispay.zyraaf.cloud"
    assert result.redirect_url == "https://acme-corp.zyraispay.zyraaf.cloud/dashboard"
    assert result.wallet_id == "W00001"
    assert result.wallet_is_placeholder is False
    assert service.stage == RegistrationStage.COMMITTED
    assert wallet_client.calls[0]["label"] == "acme-corp"

    tenant = db_session.query(Tenant).filter(Tenant.id == result.tenant_id).one()
    assert tenant.email == "owner@acmecorp.co.ke"
    assert tenant.wallet_id == "W00001"
    assert [d.domain for d in tenant.domains] == ["acme-corp.zyraispay.zyraaf.cloud"]

    with tenant_databases.session(result.tenant_id) as tenant_db:
        admin = tenant_db.query(User).one()
        assert admin.role == UserRole.ADMIN
        assert admin.username == "jdoe"
        assert admin.business_name == "Acme Corp"
        assert verify_password("securepassword123", admin.hashed_password)


def test_admin_user_is_not_in_the_central_database(service, central_engine):
    service.register(make_registration())

    assert "users" not in inspect(central_engine).get_table_names()


def test_second_registration_gets_numeric_suffix(service, db_session):
    first = service.register(make_registration())
    second = service.register(make_registration(email="other@acmecorp.co.ke", username="other"))

    assert first.subdomain == "acme-corp"
    assert second.subdomain == "acme-corp-1"
    assert db_session.query(Domain).count() == 2


def test_numeric_business_name_gets_prefix(service):
    assert service.register(make_registration(business_name="123 Shop")).subdomain == "biz-123-shop"


def test_duplicate_email_is_a_field_error(service, db_session, wallet_client):
    _seed_tenant(db_session, "owner@acmecorp.co.ke", "existing.zyraispay.zyraaf.cloud")

    with pytest.raises(FieldValidationError) as excinfo:
        service.register(make_registration())

    assert excinfo.value.errors == {"email": "The email has already been taken."}
    assert service.stage == RegistrationStage.ROLLED_BACK
    # Rejected before any side effect
    assert wallet_client.calls == []


def test_placeholder_wallet_in_testing(db_session, settings, tenant_databases):
    wallets = WalletProvisioner(FakeWalletClient(fail=True), settings)
    service = RegistrationService(db_session, settings, wallets, tenant_databases)

    result = service.register(make_registration())

    assert result.wallet_id.startswith("DUMMY-")
    assert result.wallet_is_placeholder is True
    tenant = db_session.query(Tenant).one()
    assert tenant.wallet_is_placeholder is True


def test_wallet_failure_in_production_persists_nothing(db_session, settings, tenant_databases):
    production = settings.model_copy(update={"ENVIRONMENT": "production"})
    wallets = WalletProvisioner(FakeWalletClient(fail=True), production)
    service = RegistrationService(db_session, production, wallets, tenant_databases)

    with pytest.raises(WalletProvisioningError) as excinfo:
        service.register(make_registration())

    assert excinfo.value.errors == {"wallet": "Failed to create wallet. Try again later."}
    assert service.stage == RegistrationStage.ROLLED_BACK
    assert db_session.query(Tenant).count() == 0
    assert db_session.query(Domain).count() == 0
    assert _tenant_files(settings) == []


def test_failed_admin_creation_removes_tenant_and_domain(service, db_session, settings, monkeypatch):
    def broken_hash(password):
        raise RuntimeError("hashing backend unavailable")

    monkeypatch.setattr("zyrapay.services.registration.get_password_hash", broken_hash)

    with pytest.raises(RegistrationFailedError) as excinfo:
        service.register(make_registration())

    assert excinfo.value.errors == {"register": "Registration failed. Please try again."}
    assert service.stage == RegistrationStage.ROLLED_BACK
    assert db_session.query(Tenant).count() == 0
    assert db_session.query(Domain).count() == 0
    assert _tenant_files(settings) == []


def test_failed_tenant_database_creation_removes_tenant(service, db_session, tenant_databases, monkeypatch):
    def broken_create(tenant_id):
        raise OSError("disk full")

    monkeypatch.setattr(tenant_databases, "create_database", broken_create)

    with pytest.raises(RegistrationFailedError):
        service.register(make_registration())

    assert db_session.query(Tenant).count() == 0
    assert db_session.query(Domain).count() == 0


def test_failed_registration_can_be_retried(service, monkeypatch):
    calls = {"count": 0}
    real_create = service.tenant_databases.create_database

    def flaky_create(tenant_id):
        calls["count"] += 1
        if calls["count"] == 1:
            raise OSError("disk full")
        real_create(tenant_id)

    monkeypatch.setattr(service.tenant_databases, "create_database", flaky_create)

    with pytest.raises(RegistrationFailedError):
        service.register(make_registration())

    # Compensation freed the email and the subdomain
    assert service.register(make_registration()).subdomain == "acme-corp"


def test_concurrent_subdomain_claim_moves_to_next_candidate(service, db_session):
    _seed_tenant(db_session, "first@acmecorp.co.ke", "acme-corp.zyraispay.zyraaf.cloud")

    real_check = service._subdomain_taken
    checks = {"count": 0}

    def stale_check(subdomain):
        # The first check runs before the other signup committed
        checks["count"] += 1
        if checks["count"] == 1:
            return False
        return real_check(subdomain)

    service._subdomain_taken = stale_check

    result = service.register(make_registration())

    assert result.subdomain == "acme-corp-1"
    assert db_session.query(Domain).filter(Domain.domain == "acme-corp-1.zyraispay.zyraaf.cloud").count() == 1


def test_concurrent_email_claim_is_a_field_error(service, db_session):
    _seed_tenant(db_session, "owner@acmecorp.co.ke", "existing.zyraispay.zyraaf.cloud")

    real_check = service._email_taken
    checks = {"count": 0}

    def stale_check(email):
        checks["count"] += 1
        if checks["count"] == 1:
            return False
        return real_check(email)

    service._email_taken = stale_check

    with pytest.raises(FieldValidationError) as excinfo:
        service.register(make_registration())

    assert excinfo.value.errors == {"email": "The email has already been taken."}
    assert db_session.query(Tenant).count() == 1


def test_conflict_retries_are_bounded(db_session, settings, tenant_databases, wallets):
    bounded = settings.model_copy(update={"SUBDOMAIN_CONFLICT_RETRIES": 2})
    service = RegistrationService(db_session, bounded, wallets, tenant_databases)
    _seed_tenant(db_session, "first@acmecorp.co.ke", "acme-corp.zyraispay.zyraaf.cloud")

    # Every check misses the committed domain, so every insert conflicts
    service._subdomain_taken = lambda subdomain: False

    with pytest.raises(RegistrationFailedError):
        service.register(make_registration())

    assert db_session.query(Tenant).count() == 1


def test_tenant_engines_are_released_after_registration(service, tenant_databases):
    for n in range(3):
        service.register(make_registration(email=f"owner{n}@acmecorp.co.ke"))

    assert tenant_databases._engines == {}


def test_tenant_engine_is_released_after_failed_admin_creation(service, tenant_databases, monkeypatch):
    def broken_hash(password):
        raise RuntimeError("hashing backend unavailable")

    monkeypatch.setattr("zyrapay.services.registration.get_password_hash", broken_hash)

    with pytest.raises(RegistrationFailedError):
        service.register(make_registration())

    assert tenant_databases._engines == {}


def test_failure_log_records_the_stage_that_failed(db_session, settings, tenant_databases, caplog):
    production = settings.model_copy(update={"ENVIRONMENT": "production"})
    wallets = WalletProvisioner(FakeWalletClient(fail=True), production)
    service = RegistrationService(db_session, production, wallets, tenant_databases)

    with pytest.raises(WalletProvisioningError):
        service.register(make_registration())

    rejected = [r for r in caplog.records if r.getMessage().startswith("Registration rejected")]
    assert [r.stage for r in rejected] == [RegistrationStage.SLUG_RESOLVED.value]


def test_password_policy_follows_injected_settings(db_session, settings, tenant_databases, wallet_client, wallets):
    strict = settings.model_copy(update={"PASSWORD_REQUIRE_SYMBOLS": True})
    service = RegistrationService(db_session, strict, wallets, tenant_databases)

    with pytest.raises(FieldValidationError) as excinfo:
        service.register(make_registration())

    assert excinfo.value.errors == {"password": "The password must contain at least one symbol."}
    assert wallet_client.calls == []
    assert db_session.query(Tenant).count() == 0


def test_subdomain_retry_logs_wallet_and_both_slugs(service, db_session, caplog):
    _seed_tenant(db_session, "first@acmecorp.co.ke", "acme-corp.zyraispay.zyraaf.cloud")

    real_check = service._subdomain_taken
    checks = {"count": 0}

    def stale_check(subdomain):
        checks["count"] += 1
        if checks["count"] == 1:
            return False
        return real_check(subdomain)

    service._subdomain_taken = stale_check

    result = service.register(make_registration())

    retries = [r for r in caplog.records if getattr(r, "wallet_id", None) == result.wallet_id and "taken concurrently" in r.getMessage()]
    assert len(retries) == 1
    message = retries[0].getMessage()
    assert "acme-corp " in message
    assert "retrying as acme-corp-1" in message
    assert message.endswith(f"wallet {result.wallet_id} stays labelled acme-corp")
