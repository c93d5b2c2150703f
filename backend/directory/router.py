"""
User Directory - API Router

Provides the user API used alongside the OIDC provider:
- GET  /api/user            - Find a user by external login
- POST /api/user/update     - Update name/email/login (subject to the write policy)
- POST /api/user/create     - Create a user and link it to the default groups
- POST /api/user/activate   - Activate a user
- POST /api/user/deactivate - Deactivate a user

Parameters are read from the query string or from a form-encoded body.

Status codes:
- 200: success ({"status": "ok"} for update/activate/deactivate)
- 400: missing parameter, unknown user on update, duplicate user on create, store failure
- 404: find found no user
- 405: update refused because the identity provider owns the attributes
"""

import logging
from typing import Annotated, Dict, List, Optional, Type, TypeVar
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StringConstraints, ValidationError, field_validator

from sentry_integration import capture_exception
from utils.validation_errors import raise_for_validation_error

from .errors import (
    ConflictError,
    DirectoryError,
    NotFoundError,
    PolicyDeniedError,
    TransientStoreError,
)
from .policy import WritePolicyGate
from .repository import DirectoryRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Users"])

WARNING_HEADER = "X-Directory-Warning"

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


# ==================== COMMANDS ====================

# Blank or whitespace-only values are reported as missing
RequiredStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class _ProviderCommand(BaseModel):
    provider: Optional[str] = Field(None, description="Identity provider (default: oidc)")

    @field_validator("provider", mode="before")
    @classmethod
    def blank_provider_is_default(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class FindUserCommand(_ProviderCommand):
    login: RequiredStr = Field(..., description="User's external login")


class UpdateUserCommand(BaseModel):
    name: RequiredStr = Field(..., description="User's full name")
    email: RequiredStr = Field(..., description="User's e-mail")
    login: RequiredStr = Field(..., description="User's login")


class CreateUserCommand(_ProviderCommand):
    login: RequiredStr = Field(..., description="User's login")
    name: RequiredStr = Field(..., description="User's full name")
    email: RequiredStr = Field(..., description="User's e-mail")


class SetActiveCommand(_ProviderCommand):
    login: RequiredStr = Field(..., description="User's login")


def warning_header(warnings: List[str]) -> str:
    """Join warnings into a header value; non-ASCII text is percent-encoded."""
    return "; ".join(quote(warning, safe=" '") for warning in warnings)


CommandT = TypeVar("CommandT", bound=BaseModel)


def decode(command_type: Type[CommandT], params: Dict[str, str]) -> CommandT:
    """Build a typed command; a missing mandatory parameter becomes a 400."""
    try:
        return command_type.model_validate(params)
    except ValidationError as e:
        raise_for_validation_error(e)


async def request_params(request: Request) -> Dict[str, str]:
    """Merge query string and form body parameters (body wins)."""
    params: Dict[str, str] = dict(request.query_params)
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        for key, value in form.items():
            if isinstance(value, str):
                params[key] = value
    return params


# ==================== DISPATCHER ====================

class UserApi:
    """
    Maps user API commands onto the repository and the write policy.

    Store errors never reach the caller: every DirectoryError is translated
    into a fixed status code.
    """

    def __init__(
        self,
        repository: DirectoryRepository,
        policy: WritePolicyGate,
        default_provider: str = "oidc"
    ):
        self.repository = repository
        self.policy = policy
        self.default_provider = default_provider

    def _provider(self, provider: Optional[str]) -> str:
        return provider or self.default_provider

    async def find(self, command: FindUserCommand) -> Response:
        provider = self._provider(command.provider)
        logger.info(f"Find user: login={command.login}, provider={provider}")

        try:
            user = await self.repository.find_by_external_identity(command.login, provider)
        except DirectoryError as e:
            return self._failure("finding", command.login, e)

        if user is None:
            return Response(status_code=status.HTTP_404_NOT_FOUND)
        return JSONResponse(user.to_dict(), status_code=status.HTTP_200_OK)

    async def update(self, command: UpdateUserCommand) -> Response:
        logger.info(f"Update user: login={command.login}")

        try:
            self.policy.check_manual_update(command.login)
        except PolicyDeniedError:
            logger.info("Update user not allowed (identity attributes are managed by the provider)")
            return Response(status_code=status.HTTP_405_METHOD_NOT_ALLOWED)

        try:
            await self.repository.update_user(
                login=command.login,
                name=command.name,
                email=command.email,
                external_login=command.login,
                provider=self.default_provider,
            )
        except DirectoryError as e:
            return self._failure("updating", command.login, e)

        return JSONResponse({"status": "ok"}, status_code=status.HTTP_200_OK)

    async def create(self, command: CreateUserCommand) -> Response:
        provider = self._provider(command.provider)
        logger.info(f"Create user: login={command.login}, provider={provider}")

        try:
            result = await self.repository.create_user(
                login=command.login,
                name=command.name,
                email=command.email,
                external_login=command.login,
                provider=provider,
            )
        except DirectoryError as e:
            return self._failure("creating", command.login, e)

        response = Response(status_code=status.HTTP_200_OK)
        if result.partial:
            response.headers[WARNING_HEADER] = warning_header(result.warnings)
        return response

    async def set_active(self, command: SetActiveCommand, is_active: bool) -> Response:
        provider = self._provider(command.provider)
        logger.info(f"Set user active={is_active}: login={command.login}, provider={provider}")

        try:
            await self.repository.set_active(command.login, provider, is_active)
        except DirectoryError as e:
            return self._failure("updating", command.login, e)

        return JSONResponse({"status": "ok"}, status_code=status.HTTP_200_OK)

    def _failure(self, action: str, login: str, error: DirectoryError) -> Response:
        if isinstance(error, (ConflictError, NotFoundError)):
            logger.warning(f"Error while {action} user {login}: {error}")
        elif isinstance(error, TransientStoreError):
            logger.error(f"Error while {action} user {login}: {error}", exc_info=error)
            capture_exception(error, login=login, action=action)
        else:
            logger.error(f"Error while {action} user {login}: {error}")
        return Response(status_code=status.HTTP_400_BAD_REQUEST)


def get_user_api(request: Request) -> UserApi:
    """Dependency returning the dispatcher built at application startup."""
    return request.app.state.user_api


# ==================== ENDPOINTS ====================

@router.get("/user")
async def find_user(
    params: Dict[str, str] = Depends(request_params),
    api: UserApi = Depends(get_user_api)
):
    """
    Find a user by external login.

    Returns the first match as JSON, 404 when no user matches.
    """
    return await api.find(decode(FindUserCommand, params))


@router.post("/user/update")
async def update_user(
    params: Dict[str, str] = Depends(request_params),
    api: UserApi = Depends(get_user_api)
):
    """
    Update a user's name, email and login.

    **405** when the identity provider owns identity attributes.
    """
    return await api.update(decode(UpdateUserCommand, params))


@router.post("/user/create")
async def create_user(
    params: Dict[str, str] = Depends(request_params),
    api: UserApi = Depends(get_user_api)
):
    """
    Create a user and link it to the default groups.

    Empty 200 on success; 400 if the user already exists.
    """
    return await api.create(decode(CreateUserCommand, params))


@router.post("/user/activate")
async def activate_user(
    params: Dict[str, str] = Depends(request_params),
    api: UserApi = Depends(get_user_api)
):
    """Activate a user."""
    return await api.set_active(decode(SetActiveCommand, params), True)


@router.post("/user/deactivate")
async def deactivate_user(
    params: Dict[str, str] = Depends(request_params),
    api: UserApi = Depends(get_user_api)
):
    """Deactivate a user."""
    return await api.set_active(decode(SetActiveCommand, params), False)
