"""
Registration Endpoints

Business signup. A successful registration redirects the browser to the
new tenant's dashboard on its own subdomain.

The frontend is an Inertia app: Inertia requests (X-Inertia header) get a
409 with X-Inertia-Location so the client performs a full page visit to
the other origin. Plain form posts get a 303.
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse, Response

from zyrapay.api.deps import get_registration_service
from zyrapay.config import Settings, get_settings
from zyrapay.schemas.registration import PasswordPolicy, RegisterRequest, RegistrationForm
from zyrapay.services.registration import RegistrationService
from zyrapay.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["registration"])


def external_redirect(request: Request, url: str) -> Response:
    """Navigate the browser to another origin."""
    if request.headers.get("X-Inertia"):
        return Response(status_code=status.HTTP_409_CONFLICT, headers={"X-Inertia-Location": url})
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/register", response_model=RegistrationForm)
async def registration_form(settings: Settings = Depends(get_settings)):
    """Describe the signup form: fields, password policy and tenant domain."""
    return RegistrationForm(
        fields=list(RegisterRequest.model_fields),
        password_policy=PasswordPolicy(
            min_length=settings.PASSWORD_MIN_LENGTH,
            require_mixed_case=settings.PASSWORD_REQUIRE_MIXED_CASE,
            require_numbers=settings.PASSWORD_REQUIRE_NUMBERS,
            require_symbols=settings.PASSWORD_REQUIRE_SYMBOLS,
        ),
        base_domain=settings.TENANT_BASE_DOMAIN,
    )


@router.post("/register", status_code=status.HTTP_303_SEE_OTHER)
def register(
    registration: RegisterRequest,
    request: Request,
    service: RegistrationService = Depends(get_registration_service),
):
    """
    Register a new business as a tenant.

    Process:
    1. Validate the form (schema + unique email)
    2. Derive a unique subdomain from the business name
    3. Create an IntaSend wallet (placeholder outside production on failure)
    4. Create tenant, domain, tenant database and admin user
    5. Redirect to https://<subdomain>.<base domain>/dashboard

    NOTE: Sync def on purpose. The wallet call and both databases block,
    so this runs in the threadpool.
    """
    result = service.register(registration)

    logger.info(
        f"Tenant registered: {result.tenant_id} at {result.domain}",
        extra={"tenant_id": result.tenant_id, "subdomain": result.subdomain, "wallet_id": result.wallet_id}
    )

    return external_redirect(request, result.redirect_url)
