"""
API request and response models for the organization access service.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import Office, Organization, Principal, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USER_NAME_PATTERN = r"^[A-Za-z0-9_.-]{3,50}$"

_Feature = Annotated[str, Field(min_length=1, max_length=100)]


def _dedupe_features(values: list) -> list[str]:
    """Strip, drop blanks and deduplicate while preserving order."""
    seen: set[str] = set()
    result: list[str] = []
    for v in values:
        name = str(v).strip()
        if name and name not in seen:
            seen.add(name)
            result.append(name)
    return result


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(min_length=1, max_length=64)


class SignupRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    user_name: str = Field(pattern=USER_NAME_PATTERN)
    password: str = Field(min_length=8, max_length=64)


class PrincipalResponse(BaseModel):
    """The caller-facing view of a Principal, camelCase like the token payload."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    email: str
    user_name: Optional[str] = Field(default=None, serialization_alias="userName")
    role: str
    organization_id: Optional[str] = Field(default=None, serialization_alias="organizationId")
    features: list[str]
    is_super_admin: bool = Field(serialization_alias="isSuperAdmin")

    @classmethod
    def from_principal(cls, principal: Principal, user: Optional[User] = None) -> "PrincipalResponse":
        return cls(
            id=principal.id,
            email=principal.email,
            user_name=user.user_name if user else None,
            role=principal.role,
            organization_id=principal.organization_id,
            features=list(principal.features),
            is_super_admin=principal.is_super_admin,
        )


class AuthResponse(BaseModel):
    """Response for POST /auth/login and POST /auth/signup."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: PrincipalResponse


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


class OrganizationCreate(BaseModel):
    """Request body for POST /organizations/register.

    Creates the organization and its admin account together. At least one
    feature is required.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    organization_name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    user_name: str = Field(pattern=USER_NAME_PATTERN)
    password: str = Field(min_length=8, max_length=64)
    features: list[_Feature] = Field(min_length=1, max_length=100)
    province: Optional[str] = Field(default=None, max_length=100)
    city: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=30)
    address_line: Optional[str] = Field(default=None, max_length=500)

    @field_validator("features", mode="before")
    @classmethod
    def normalize_features(cls, values: list) -> list[str]:
        return _dedupe_features(values)


class OrganizationPatch(BaseModel):
    """Request body for PATCH /organizations/{id}. All fields optional.

    features, when given, replaces the whole feature set.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    organization_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    features: Optional[list[_Feature]] = None
    province: Optional[str] = Field(default=None, max_length=100)
    city: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=30)
    address_line: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None

    @field_validator("features", mode="before")
    @classmethod
    def normalize_features(cls, values: Optional[list]) -> Optional[list[str]]:
        return None if values is None else _dedupe_features(values)


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    admin_user_id: str
    features: list[str]
    province: Optional[str] = None
    city: Optional[str] = None
    phone_number: Optional[str] = None
    address_line: Optional[str] = None
    is_active: bool
    created_at: str

    @classmethod
    def from_organization(cls, org: Organization) -> "OrganizationResponse":
        return cls(
            id=org.id,
            name=org.name,
            email=org.email,
            admin_user_id=org.admin_user_id,
            features=list(org.features),
            province=org.province,
            city=org.city,
            phone_number=org.phone_number,
            address_line=org.address_line,
            is_active=org.is_active,
            created_at=org.created_at or "",
        )


class OrganizationCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization: OrganizationResponse
    admin_user_id: str


class OfficeCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    address_line: Optional[str] = Field(default=None, max_length=500)


class OfficeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    organization_id: str
    name: str
    branch_code: str
    city: Optional[str] = None
    address_line: Optional[str] = None
    created_at: str

    @classmethod
    def from_office(cls, office: Office) -> "OfficeResponse":
        return cls(
            id=office.id,
            organization_id=office.organization_id,
            name=office.name,
            branch_code=office.branch_code,
            city=office.city,
            address_line=office.address_line,
            created_at=office.created_at or "",
        )


class OfficeMemberCreate(BaseModel):
    """Bind an existing account to an office by its email."""

    email: EmailStr


class OfficeMemberResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    office_id: str
    user_id: str
