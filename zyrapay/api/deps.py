"""
API Dependencies

FastAPI dependencies that assemble the registration service.

PATTERN: Settings and collaborators are built here and passed down
explicitly, so tests can swap any of them with app.dependency_overrides.
"""
from functools import lru_cache
from fastapi import Depends
from sqlalchemy.orm import Session

from zyrapay.config import Settings, get_settings
from zyrapay.database import engine, get_db
from zyrapay.services.registration import RegistrationService
from zyrapay.services.wallet import IntaSendClient, WalletProvisioner
from zyrapay.tenancy import TenantDatabaseManager


@lru_cache()
def get_tenant_databases() -> TenantDatabaseManager:
    """
    Shared tenant database manager.

    Cached so tenant engines (and their pools) are reused across requests.
    """
    return TenantDatabaseManager(get_settings(), engine)


def get_wallet_provisioner(settings: Settings = Depends(get_settings)) -> WalletProvisioner:
    return WalletProvisioner(IntaSendClient.from_settings(settings), settings)


def get_registration_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    wallets: WalletProvisioner = Depends(get_wallet_provisioner),
    tenant_databases: TenantDatabaseManager = Depends(get_tenant_databases),
) -> RegistrationService:
    return RegistrationService(db, settings, wallets, tenant_databases)
