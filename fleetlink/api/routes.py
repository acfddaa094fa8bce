"""
FastAPI routes for linking a manufacturer account and syncing its vehicles.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from fleetlink.clients.fleet_api import FleetApiError
from fleetlink.dependencies import get_account_link_service, get_app_settings
from fleetlink.schemas import (
    AccountLinkView,
    AuthorizationUrlResponse,
    LinkCompletedResponse,
    OAuthCallbackPayload,
    VehicleSyncResponse,
    VehicleView,
)
from fleetlink.services.account_linking import LinkingError, UserNotFoundError
from fleetlink.services.token_cipher import TokenDecryptionError

router = APIRouter()
logger = logging.getLogger(__name__)

UserIdQuery = Annotated[str, Query(description="Identity of the signed-in user.")]


def _linking_error(exc: LinkingError) -> HTTPException:
    return HTTPException(
        status_code=HTTPStatus.BAD_REQUEST,
        detail={"error": exc.code.value, "message": exc.message},
    )


def _user_not_found(exc: UserNotFoundError) -> HTTPException:
    return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc))


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/fleet/authorize", status_code=HTTPStatus.OK)
async def start_fleet_oauth_flow(
    request: Request,
    service: Annotated[Any, Depends(get_account_link_service)],
    user_id: UserIdQuery,
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the consent screen.",
    ),
) -> Any:
    """Kick off the OAuth flow by issuing a state token and authorization URL."""
    try:
        service.ensure_user(user_id)
        auth_request = service.initiate(user_id)
    except LinkingError as exc:
        raise _linking_error(exc) from exc

    if redirect or _wants_html(request):
        return RedirectResponse(
            url=auth_request.authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    return AuthorizationUrlResponse(
        authorization_url=auth_request.authorization_url, state=auth_request.state
    )


@router.post("/auth/fleet/callback", status_code=HTTPStatus.OK)
async def handle_fleet_oauth_callback(
    payload: OAuthCallbackPayload,
    service: Annotated[Any, Depends(get_account_link_service)],
) -> LinkCompletedResponse:
    """Complete the OAuth exchange, store tokens and sync vehicles."""
    try:
        outcome = await service.complete(payload.user_id, payload.code, payload.state)
    except LinkingError as exc:
        logger.warning("Account linking rejected for %s: %s", payload.user_id, exc.code.value)
        raise _linking_error(exc) from exc
    except UserNotFoundError as exc:
        raise _user_not_found(exc) from exc

    return LinkCompletedResponse(
        account_id=outcome.account_id, synced_vehicles=outcome.synced_vehicles
    )


@router.get("/auth/fleet/callback", status_code=HTTPStatus.OK)
async def handle_fleet_oauth_callback_get(
    request: Request,
    service: Annotated[Any, Depends(get_account_link_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    user_id: UserIdQuery,
    state: str = Query(..., description="OAuth state token."),
    code: str = Query("", description="Authorization code returned by the provider."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    result = await handle_fleet_oauth_callback(
        payload=OAuthCallbackPayload(user_id=user_id, code=code, state=state),
        service=service,
    )

    redirect_target = settings.frontend_base_url
    if redirect_target and (redirect or _wants_html(request)):
        return RedirectResponse(
            url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    return JSONResponse(content=result.model_dump())


@router.post("/auth/fleet/refresh", status_code=HTTPStatus.OK)
async def refresh_fleet_tokens(
    service: Annotated[Any, Depends(get_account_link_service)],
    user_id: UserIdQuery,
) -> dict:
    try:
        await service.refresh_tokens(user_id)
    except LinkingError as exc:
        raise _linking_error(exc) from exc
    except UserNotFoundError as exc:
        raise _user_not_found(exc) from exc
    return {"success": True}


@router.delete("/auth/fleet/unlink", status_code=HTTPStatus.OK)
async def unlink_fleet_account(
    service: Annotated[Any, Depends(get_account_link_service)],
    user_id: UserIdQuery,
) -> AccountLinkView:
    try:
        link = await service.unlink(user_id)
    except LinkingError as exc:
        raise _linking_error(exc) from exc
    except UserNotFoundError as exc:
        raise _user_not_found(exc) from exc
    return AccountLinkView.model_validate(link, from_attributes=True)


@router.post("/auth/fleet/reactivate", status_code=HTTPStatus.OK)
async def reactivate_fleet_account(
    service: Annotated[Any, Depends(get_account_link_service)],
    user_id: UserIdQuery,
) -> AccountLinkView:
    try:
        link = service.reactivate(user_id)
    except LinkingError as exc:
        raise _linking_error(exc) from exc
    except UserNotFoundError as exc:
        raise _user_not_found(exc) from exc
    return AccountLinkView.model_validate(link, from_attributes=True)


@router.get("/vehicles", status_code=HTTPStatus.OK)
async def list_vehicles(
    service: Annotated[Any, Depends(get_account_link_service)],
    user_id: UserIdQuery,
) -> list[VehicleView]:
    try:
        vehicles = service.list_vehicles(user_id)
    except LinkingError as exc:
        raise _linking_error(exc) from exc
    except UserNotFoundError as exc:
        raise _user_not_found(exc) from exc
    return [VehicleView.model_validate(vehicle, from_attributes=True) for vehicle in vehicles]


@router.post("/vehicles/sync", status_code=HTTPStatus.OK)
async def sync_vehicles(
    service: Annotated[Any, Depends(get_account_link_service)],
    user_id: UserIdQuery,
) -> VehicleSyncResponse:
    try:
        synced = await service.sync_vehicles(user_id)
    except LinkingError as exc:
        raise _linking_error(exc) from exc
    except UserNotFoundError as exc:
        raise _user_not_found(exc) from exc
    except (FleetApiError, TokenDecryptionError) as exc:
        logger.error("Failed to sync vehicles for %s: %s", user_id, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY, detail="Failed to sync vehicles"
        ) from exc
    return VehicleSyncResponse(synced_count=synced)
