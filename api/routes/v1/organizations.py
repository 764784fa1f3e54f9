"""
api/routes/v1/organizations.py -- Organization and office endpoints.

Routes:
  POST   /api/v1/organizations/register      -- create org + admin + features (superAdmin)
  GET    /api/v1/organizations               -- list organizations (superAdmin)
  GET    /api/v1/organizations/offices       -- list own offices (organizationAdmin, org-scoped)
  POST   /api/v1/organizations/offices       -- add an office to own org (organizationAdmin, org-scoped)
  DELETE /api/v1/organizations/offices/{id}  -- delete own office (organizationAdmin, org-scoped)
  POST   /api/v1/organizations/offices/{id}/members -- bind an account to own office (organizationAdmin, org-scoped)
  GET    /api/v1/organizations/{id}          -- organization detail (superAdmin)
  PATCH  /api/v1/organizations/{id}          -- update fields / replace features (superAdmin)
  DELETE /api/v1/organizations/{id}          -- delete organization (superAdmin)

The /offices routes are declared before /{id} so the literal path wins.

Office routes never take an organization ID from the client: the
organization comes from the validated principal via get_organization_id().
"""

from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import (
    OfficeCreate,
    OfficeMemberCreate,
    OfficeMemberResponse,
    OfficeResponse,
    OrganizationCreate,
    OrganizationCreatedResponse,
    OrganizationPatch,
    OrganizationResponse,
)
from auth.access import AccessRule
from auth.dependencies import get_organization_id, require_access
from auth.errors import ConflictError, NotFoundError
from auth.models import Office, Organization, Role, User
from auth.store import UserStore
from auth.tokens import hash_password

SUPER_ADMIN_ONLY = AccessRule.of(Role.SUPER_ADMIN)
ORG_ADMIN_SCOPED = AccessRule.of(Role.ORGANIZATION_ADMIN, organization_scoped=True)

router = APIRouter()


def _branch_code() -> str:
    return f"{secrets.randbelow(10_000):04d}"


# ---------------------------------------------------------------------------
# Superadmin: organization registry
# ---------------------------------------------------------------------------


@router.post(
    "/organizations/register",
    response_model=OrganizationCreatedResponse,
    status_code=201,
    dependencies=[Depends(require_access(SUPER_ADMIN_ONLY))],
)
def register_organization(request: Request, body: OrganizationCreate) -> OrganizationCreatedResponse:
    """Create an organization, its admin account and its feature set in one transaction."""
    user_store: UserStore = request.app.state.user_store
    organization = Organization(
        name=body.organization_name,
        email=body.email,
        admin_user_id="",
        features=body.features,
        province=body.province,
        city=body.city,
        phone_number=body.phone_number,
        address_line=body.address_line,
    )
    admin = User(email=body.email, user_name=body.user_name, hashed_password=hash_password(body.password))
    try:
        organization_id, admin_id = user_store.create_organization(organization, admin)
    except IntegrityError as exc:
        raise ConflictError("An organization or user with that email or user name already exists") from exc
    created = user_store.get_organization(organization_id)
    if created is None:
        raise NotFoundError("Organization not found after write")
    return OrganizationCreatedResponse(
        organization=OrganizationResponse.from_organization(created),
        admin_user_id=admin_id,
    )


@router.get(
    "/organizations",
    response_model=list[OrganizationResponse],
    dependencies=[Depends(require_access(SUPER_ADMIN_ONLY))],
)
def list_organizations(request: Request) -> list[OrganizationResponse]:
    user_store: UserStore = request.app.state.user_store
    return [OrganizationResponse.from_organization(o) for o in user_store.list_organizations()]


# ---------------------------------------------------------------------------
# Organization admin: offices of the caller's own organization
# ---------------------------------------------------------------------------


@router.get(
    "/organizations/offices",
    response_model=list[OfficeResponse],
    dependencies=[Depends(require_access(ORG_ADMIN_SCOPED))],
)
def list_offices(request: Request, organization_id: str = Depends(get_organization_id)) -> list[OfficeResponse]:
    user_store: UserStore = request.app.state.user_store
    return [OfficeResponse.from_office(o) for o in user_store.list_offices(organization_id)]


@router.post(
    "/organizations/offices",
    response_model=OfficeResponse,
    status_code=201,
    dependencies=[Depends(require_access(ORG_ADMIN_SCOPED))],
)
def add_office(
    request: Request,
    body: OfficeCreate,
    organization_id: str = Depends(get_organization_id),
) -> OfficeResponse:
    user_store: UserStore = request.app.state.user_store
    office_id = user_store.create_office(
        Office(
            organization_id=organization_id,
            name=body.name,
            branch_code=_branch_code(),
            city=body.city,
            address_line=body.address_line,
        )
    )
    office = user_store.get_office(office_id)
    if office is None:
        raise NotFoundError("Office not found after write")
    return OfficeResponse.from_office(office)


@router.delete(
    "/organizations/offices/{office_id}",
    status_code=204,
    dependencies=[Depends(require_access(ORG_ADMIN_SCOPED))],
)
def delete_office(
    request: Request,
    office_id: str,
    organization_id: str = Depends(get_organization_id),
) -> Response:
    """Delete an office of the caller's organization. Other organizations' offices are 404."""
    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_office(office_id, organization_id):
        raise NotFoundError("Office not found")
    return Response(status_code=204)


@router.post(
    "/organizations/offices/{office_id}/members",
    response_model=OfficeMemberResponse,
    status_code=201,
    dependencies=[Depends(require_access(ORG_ADMIN_SCOPED))],
)
def add_office_member(
    request: Request,
    office_id: str,
    body: OfficeMemberCreate,
    organization_id: str = Depends(get_organization_id),
) -> OfficeMemberResponse:
    """Bind an existing account to an office of the caller's organization.

    This is how a signup account gains an organization: its next request
    resolves the office's organization and that organization's features.
    """
    user_store: UserStore = request.app.state.user_store
    office = user_store.get_office(office_id)
    if office is None or office.organization_id != organization_id:
        raise NotFoundError("Office not found")
    user = user_store.get_by_email(body.email)
    if user is None:
        raise NotFoundError("User not found")
    try:
        user_store.add_office_member(user.id, office.id)
    except IntegrityError as exc:
        raise ConflictError("User is already a member of this office") from exc
    return OfficeMemberResponse(office_id=office.id, user_id=user.id)


# ---------------------------------------------------------------------------
# Superadmin: single organization
# ---------------------------------------------------------------------------


@router.get(
    "/organizations/{organization_id}",
    response_model=OrganizationResponse,
    dependencies=[Depends(require_access(SUPER_ADMIN_ONLY))],
)
def get_organization(request: Request, organization_id: str) -> OrganizationResponse:
    user_store: UserStore = request.app.state.user_store
    organization = user_store.get_organization(organization_id)
    if organization is None:
        raise NotFoundError("Organization not found")
    return OrganizationResponse.from_organization(organization)


@router.patch(
    "/organizations/{organization_id}",
    response_model=OrganizationResponse,
    dependencies=[Depends(require_access(SUPER_ADMIN_ONLY))],
)
def update_organization(request: Request, organization_id: str, body: OrganizationPatch) -> OrganizationResponse:
    """Update organization fields. A features list replaces the current set.

    Members see the new feature set on their next request; no re-login needed.
    """
    user_store: UserStore = request.app.state.user_store
    fields = body.model_dump(exclude_unset=True, exclude_none=True, exclude={"features", "organization_name"})
    if body.organization_name is not None:
        fields["name"] = body.organization_name
    if not user_store.update_organization(organization_id, features=body.features, **fields):
        raise NotFoundError("Organization not found")
    return get_organization(request, organization_id)


@router.delete(
    "/organizations/{organization_id}",
    status_code=204,
    dependencies=[Depends(require_access(SUPER_ADMIN_ONLY))],
)
def delete_organization(request: Request, organization_id: str) -> Response:
    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_organization(organization_id):
        raise NotFoundError("Organization not found")
    return Response(status_code=204)
