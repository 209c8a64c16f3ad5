"""
Tenant Registration

Orchestrates a business signup:
    validate -> derive subdomain -> provision wallet -> persist -> redirect

Persistence spans two databases. Tenant and Domain are committed to the
central registry first, then the tenant database is created and the admin
user is written into it. If the tenant side fails, the central rows and the
tenant database are removed again (compensating step), so a failed
registration leaves nothing behind.

KNOWN GAP: If the process dies between the central commit and the
compensation, the tenant row survives without an admin user. Those are
logged at CRITICAL with the tenant id.
"""
from dataclasses import dataclass
import enum
import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from zyrapay.config import Settings
from zyrapay.core.exceptions import FieldValidationError, RegistrationFailedError
from zyrapay.core.security import get_password_hash, password_policy_errors
from zyrapay.core.slugs import (
    dashboard_url,
    resolve_unique_subdomain,
    slugify_business_name,
    tenant_domain,
)
from zyrapay.models.tenant import Domain, Tenant
from zyrapay.models.user import User, UserRole
from zyrapay.schemas.registration import RegisterRequest
from zyrapay.services.wallet import ProvisionedWallet, WalletProvisioner
from zyrapay.tenancy import TenantDatabaseManager

logger = logging.getLogger(__name__)

EMAIL_TAKEN = "The email has already been taken."


class RegistrationStage(str, enum.Enum):
    VALIDATING = "validating"
    SLUG_RESOLVED = "slug_resolved"
    WALLET_RESOLVED = "wallet_resolved"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class RegistrationResult:
    tenant_id: str
    subdomain: str
    domain: str
    wallet_id: str
    wallet_is_placeholder: bool
    redirect_url: str


class RegistrationService:
    """
    Registers one tenant per call to register().

    Collaborators are passed in explicitly; nothing here reads the
    environment.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        wallets: WalletProvisioner,
        tenant_databases: TenantDatabaseManager,
    ):
        self.db = db
        self.settings = settings
        self.wallets = wallets
        self.tenant_databases = tenant_databases
        self.stage = RegistrationStage.VALIDATING

    def _advance(self, stage: RegistrationStage, **extra) -> None:
        self.stage = stage
        logger.info(f"Registration stage: {stage.value}", extra={"stage": stage.value, **extra})

    def register(self, data: RegisterRequest) -> RegistrationResult:
        self.stage = RegistrationStage.VALIDATING
        subdomain = None

        try:
            policy_errors = password_policy_errors(data.password, self.settings)
            if policy_errors:
                raise FieldValidationError({"password": " ".join(policy_errors)})

            if self._email_taken(data.email):
                raise FieldValidationError({"email": EMAIL_TAKEN})

            base = slugify_business_name(
                data.business_name,
                max_length=self.settings.SUBDOMAIN_MAX_LENGTH,
                fallback_prefix=self.settings.SUBDOMAIN_FALLBACK_PREFIX,
            )
            subdomain = self._resolve_subdomain(base)
            self._advance(RegistrationStage.SLUG_RESOLVED, subdomain=subdomain)

            wallet = self.wallets.provision(subdomain)
            self._advance(RegistrationStage.WALLET_RESOLVED, subdomain=subdomain, wallet_id=wallet.wallet_id)

            self._advance(RegistrationStage.PERSISTING, subdomain=subdomain)
            tenant, subdomain = self._create_tenant(data, base, subdomain, wallet)
            self._create_admin_user(tenant, data)

        except FieldValidationError as e:
            failed_stage = self._rollback()
            logger.warning(
                f"Registration rejected: {e.errors}",
                extra={"subdomain": subdomain, "stage": failed_stage.value}
            )
            raise
        except Exception as e:
            failed_stage = self._rollback()
            logger.error(
                f"Tenant registration failed: {e}",
                exc_info=True,
                extra={"subdomain": subdomain, "stage": failed_stage.value}
            )
            raise RegistrationFailedError() from e

        domain = tenant_domain(subdomain, self.settings.TENANT_BASE_DOMAIN)
        self._advance(RegistrationStage.COMMITTED, subdomain=subdomain, tenant_id=tenant.id)

        return RegistrationResult(
            tenant_id=tenant.id,
            subdomain=subdomain,
            domain=domain,
            wallet_id=tenant.wallet_id,
            wallet_is_placeholder=tenant.wallet_is_placeholder,
            redirect_url=dashboard_url(subdomain, self.settings.TENANT_BASE_DOMAIN),
        )

    def _rollback(self) -> RegistrationStage:
        """Roll back the central session; returns the stage that failed."""
        failed_stage = self.stage
        self.db.rollback()
        self.stage = RegistrationStage.ROLLED_BACK
        return failed_stage

    def _email_taken(self, email: str) -> bool:
        return self.db.query(Tenant.id).filter(Tenant.email == email).first() is not None

    def _subdomain_taken(self, subdomain: str) -> bool:
        domain = tenant_domain(subdomain, self.settings.TENANT_BASE_DOMAIN)
        return self.db.query(Domain.id).filter(Domain.domain == domain).first() is not None

    def _resolve_subdomain(self, base: str) -> str:
        return resolve_unique_subdomain(
            base,
            self._subdomain_taken,
            max_length=self.settings.SUBDOMAIN_MAX_LENGTH,
        )

    def _create_tenant(self, data: RegisterRequest, base: str, subdomain: str, wallet: ProvisionedWallet):
        """
        Commit Tenant and Domain to the central registry.

        The pre-checks can race with a concurrent signup; the unique
        constraints decide. A lost race on the email is a field error, a lost
        race on the domain moves on to the next free subdomain.
        """
        wallet_label = subdomain
        conflicts = 0
        while True:
            tenant = Tenant(
                id=str(uuid.uuid4()),
                business_name=data.business_name,
                username=data.username,
                email=data.email,
                phone=data.phone,
                wallet_id=wallet.wallet_id,
                wallet_is_placeholder=wallet.is_placeholder,
            )
            tenant.domains.append(Domain(domain=tenant_domain(subdomain, self.settings.TENANT_BASE_DOMAIN)))
            self.db.add(tenant)

            try:
                self.db.commit()
                return tenant, subdomain
            except IntegrityError:
                self.db.rollback()
                if self._email_taken(data.email):
                    raise FieldValidationError({"email": EMAIL_TAKEN})

                conflicts += 1
                if conflicts > self.settings.SUBDOMAIN_CONFLICT_RETRIES:
                    raise
                taken = subdomain
                subdomain = self._resolve_subdomain(base)
                logger.warning(
                    f"Subdomain {taken} taken concurrently, retrying as {subdomain} ({conflicts}); "
                    f"wallet {wallet.wallet_id} stays labelled {wallet_label}",
                    extra={"subdomain": subdomain, "wallet_id": wallet.wallet_id}
                )

    def _create_admin_user(self, tenant: Tenant, data: RegisterRequest) -> None:
        """Create the tenant database and its admin user, undoing the tenant on failure."""
        try:
            self.tenant_databases.create_database(tenant.id)
            with self.tenant_databases.session(tenant.id) as tenant_db:
                tenant_db.add(User(
                    name=data.username,
                    username=data.username,
                    business_name=data.business_name,
                    email=data.email,
                    phone=data.phone,
                    hashed_password=get_password_hash(data.password),
                    role=UserRole.ADMIN,
                ))
        except Exception as e:
            logger.error(
                f"Admin user creation failed, removing tenant: {e}",
                extra={"tenant_id": tenant.id}
            )
            self._remove_tenant(tenant)
            raise
        finally:
            self.tenant_databases.release(tenant.id)

    def _remove_tenant(self, tenant: Tenant) -> None:
        """Compensating step: delete Tenant and Domain, drop the tenant database."""
        tenant_id = tenant.id
        try:
            self.db.delete(tenant)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.critical(
                "Could not remove tenant after failed registration, manual cleanup required",
                exc_info=True,
                extra={"tenant_id": tenant_id}
            )

        try:
            self.tenant_databases.drop_database(tenant_id)
        except Exception:
            logger.critical(
                "Could not drop tenant database after failed registration, manual cleanup required",
                exc_info=True,
                extra={"tenant_id": tenant_id}
            )
