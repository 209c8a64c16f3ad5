"""
Test configuration - pytest fixtures

Every test gets its own central sqlite database and tenant directory
under tmp_path. The wallet provider is always faked.

The environment is set before zyrapay is imported so the module-level
engine and cached settings never point at a developer database.
"""
import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="zyrapay-tests-")
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT}/central.db"
os.environ["TENANT_DATABASE_DIR"] = os.path.join(_TEST_ROOT, "tenants")
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from zyrapay.api.deps import get_tenant_databases, get_wallet_provisioner
from zyrapay.config import Settings, get_settings
from zyrapay.core.exceptions import WalletProviderError
from zyrapay.database import Base, create_database_engine, get_db
from zyrapay.main import app
from zyrapay.schemas.registration import RegisterRequest
from zyrapay.services.registration import RegistrationService
from zyrapay.services.wallet import WalletProvisioner
from zyrapay.tenancy import TenantDatabaseManager


class FakeWalletClient:
    """Stands in for IntaSendClient; records every call."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def create_wallet(self, currency, label, can_disburse=True):
        self.calls.append({"currency": currency, "label": label, "can_disburse": can_disburse})
        if self.fail:
            raise WalletProviderError("provider unavailable")
        return {"wallet_id": f"W{len(self.calls):05d}", "label": label, "currency": currency}


def make_registration(**overrides) -> RegisterRequest:
    data = {
        "business_name": "Acme Corp",
        "username": "jdoe",
        "email": "owner@acmecorp.co.ke",
        "phone": "+254700000000",
        "password": "securepassword123",
        "password_confirmation": "securepassword123",
    }
    data.update(overrides)
    return RegisterRequest(**data)


def registration_payload(**overrides) -> dict:
    return make_registration(**overrides).model_dump(mode="json")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path}/central.db",
        TENANT_DATABASE_DIR=str(tmp_path / "tenants"),
        ENVIRONMENT="testing",
        RATE_LIMIT_ENABLED=False,
    )


@pytest.fixture
def central_engine(settings):
    engine = create_database_engine(settings.DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(central_engine):
    return sessionmaker(bind=central_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def tenant_databases(settings, central_engine):
    manager = TenantDatabaseManager(settings, central_engine)
    yield manager
    manager.dispose()


@pytest.fixture
def wallet_client():
    return FakeWalletClient()


@pytest.fixture
def wallets(wallet_client, settings):
    return WalletProvisioner(wallet_client, settings)


@pytest.fixture
def service(db_session, settings, wallets, tenant_databases):
    return RegistrationService(db_session, settings, wallets, tenant_databases)


@pytest.fixture
def client(session_factory, settings, wallets, tenant_databases):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_wallet_provisioner] = lambda: wallets
    app.dependency_overrides[get_tenant_databases] = lambda: tenant_databases

    yield TestClient(app)

    app.dependency_overrides.clear()
