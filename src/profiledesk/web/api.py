"""FastAPI app: CRM proxy API, OTP auth routes and the profile pages."""

from __future__ import annotations

import contextlib
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Literal, cast

import httpx
import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field, ValidationError

from profiledesk.clients.attio import AttioClient, AttioConfig, LookupStatus
from profiledesk.fields import FieldRegistry, load_field_registry
from profiledesk.logging import configure_logging
from profiledesk.mapping import attributes_from_record
from profiledesk.web.auth import (
    OTP_TYPES,
    AuthProviderError,
    AuthSession,
    OTPAuthClient,
    build_confirm_redirect,
    normalize_email,
    session_expiry,
)
from profiledesk.web.config import settings
from profiledesk.web.profile import (
    SaveStatus,
    load_profile_view,
    notification_for,
    save_profile,
)

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

LOGIN_PATH = "/"
PROFILE_PATH = "/profile"


class UserUpsertRequest(BaseModel):
    """Request schema for creating or updating the caller's Person record."""

    record_id: str | None = Field(default=None, alias="recordId")
    attributes: dict[str, Any]


def _attio_client_from_app(app: FastAPI) -> AttioClient:
    client = getattr(app.state, "attio_client", None)
    if isinstance(client, AttioClient):
        return client
    raise RuntimeError("Attio client not configured")


def _field_registry_from_app(app: FastAPI) -> FieldRegistry:
    registry = getattr(app.state, "field_registry", None)
    if isinstance(registry, FieldRegistry):
        return registry
    raise RuntimeError("Field registry not configured")


def _auth_client_from_app(app: FastAPI) -> OTPAuthClient:
    client = getattr(app.state, "auth_client", None)
    if isinstance(client, OTPAuthClient):
        return client
    raise RuntimeError("Auth client not configured")


def _http_client_from_app(app: FastAPI) -> httpx.AsyncClient:
    client = getattr(app.state, "http_client", None)
    if isinstance(client, httpx.AsyncClient):
        return client
    raise RuntimeError("HTTP client not configured")


async def _current_session(request: Request) -> AuthSession | None:
    access_token = request.cookies.get(settings.auth_session_cookie_name)
    if not access_token:
        return None

    auth_client = _auth_client_from_app(request.app)
    return await auth_client.resolve_session(
        _http_client_from_app(request.app), access_token=access_token
    )


def _set_session_cookie(
    response: HTMLResponse | RedirectResponse, access_token: str, *, max_age: int
) -> None:
    samesite = cast(
        Literal["lax", "strict", "none"],
        settings.auth_cookie_samesite,
    )
    response.set_cookie(
        key=settings.auth_session_cookie_name,
        value=access_token,
        max_age=max_age,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=samesite,
        path="/",
    )


def _clear_session_cookie(
    response: JSONResponse | HTMLResponse | RedirectResponse,
) -> None:
    response.delete_cookie(key=settings.auth_session_cookie_name, path="/")


def _render_login(
    request: Request,
    *,
    email: str = "",
    pending: bool = False,
    error: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "login.html",
        {"email": email, "pending": pending, "error": error},
        status_code=status_code,
    )


async def health_handler() -> JSONResponse:
    """Simple health endpoint."""
    return JSONResponse({"status": "healthy"})


async def options_handler(request: Request, slug: str) -> JSONResponse:
    """List non-archived CRM options for one select attribute."""
    client = _attio_client_from_app(request.app)
    listing = await client.list_select_options(slug)
    if not listing.ok:
        return JSONResponse({"error": listing.error}, status_code=listing.status_code)

    return JSONResponse({"options": [option.to_dict() for option in listing.options]})


async def user_lookup_handler(
    request: Request,
    email: str | None = Query(default=None),
) -> JSONResponse:
    """Return the mapped Person record for an email, or `{"data": null}`."""
    normalized_email = (email or "").strip()
    if not normalized_email:
        return JSONResponse({"error": "email_required"}, status_code=400)

    client = _attio_client_from_app(request.app)
    registry = _field_registry_from_app(request.app)
    lookup = await client.find_person_by_email(normalized_email)

    if lookup.status is LookupStatus.TRANSPORT_ERROR:
        logger.warning(
            "Returning empty user after CRM lookup failure email=%s detail=%s",
            normalized_email,
            lookup.detail,
        )
    if lookup.record is None:
        return JSONResponse({"data": None})

    attributes = attributes_from_record(
        lookup.record,
        registry,
        email_slug=client.config.email_attribute,
        email=normalized_email,
    )
    return JSONResponse(
        {"data": {"recordId": lookup.record.record_id, "attributes": attributes}}
    )


async def user_upsert_handler(request: Request) -> JSONResponse:
    """Create or update a Person record and return the CRM response as-is."""
    body = await request.body()
    if not body.strip():
        logger.error("Rejecting user upsert with empty request body")
        return JSONResponse({"error": "Empty request body"}, status_code=400)

    try:
        payload_data = json.loads(body)
    except json.JSONDecodeError:
        return JSONResponse({"error": "invalid_json"}, status_code=400)

    try:
        payload = UserUpsertRequest.model_validate(payload_data)
    except ValidationError as exc:
        return JSONResponse(
            {"error": "invalid_payload", "detail": str(exc)}, status_code=400
        )

    client = _attio_client_from_app(request.app)
    try:
        result = await client.upsert_person(payload.record_id, payload.attributes)
    except Exception:
        logger.exception("User upsert failed record_id=%s", payload.record_id)
        return JSONResponse(
            {"error": "Failed to update/create user in Attio"}, status_code=500
        )
    return JSONResponse(result)


async def login_page_handler(request: Request) -> HTMLResponse | RedirectResponse:
    """Login form; signed-in users go straight to their profile."""
    session = await _current_session(request)
    if session is not None:
        return RedirectResponse(url=PROFILE_PATH, status_code=302)
    return _render_login(request)


async def auth_login_handler(request: Request) -> HTMLResponse:
    """Send the magic link / code and show the pending-confirmation state."""
    form = await request.form()
    email = normalize_email(form.get("email"))
    if email is None:
        return _render_login(
            request, error="Enter a valid email address.", status_code=400
        )

    auth_client = _auth_client_from_app(request.app)
    if not auth_client.configured:
        return _render_login(
            request, email=email, error="Login is not configured.", status_code=503
        )

    redirect_to = build_confirm_redirect(
        settings, request_base_url=str(request.base_url)
    )
    try:
        await auth_client.send_otp(
            _http_client_from_app(request.app), email=email, redirect_to=redirect_to
        )
    except AuthProviderError as exc:
        logger.warning("Sending login OTP failed email=%s error=%s", email, exc)
        return _render_login(
            request,
            email=email,
            error="Could not send the login email. Try again.",
            status_code=502,
        )

    return _render_login(request, email=email, pending=True)


async def _start_session(
    request: Request, verify: Any
) -> HTMLResponse | RedirectResponse:
    try:
        issued = await verify
    except AuthProviderError as exc:
        logger.warning("OTP verification failed error=%s", exc)
        return _render_login(
            request,
            error="That login link or code is invalid or has expired.",
            status_code=400 if exc.is_client_error else 502,
        )

    response = RedirectResponse(url=PROFILE_PATH, status_code=303)
    _set_session_cookie(
        response,
        issued.access_token,
        max_age=session_expiry(
            issued, max_ttl_seconds=settings.auth_session_ttl_seconds
        ),
    )
    logger.info("Session established email=%s", issued.email)
    return response


async def auth_confirm_handler(
    request: Request,
    token_hash: str | None = Query(default=None),
    otp_type: str = Query(default="email", alias="type"),
) -> HTMLResponse | RedirectResponse:
    """Magic-link landing: verify the token hash and set the session cookie."""
    if not token_hash or otp_type not in OTP_TYPES:
        return _render_login(request, error="Invalid login link.", status_code=400)

    auth_client = _auth_client_from_app(request.app)
    return await _start_session(
        request,
        auth_client.verify_token_hash(
            _http_client_from_app(request.app),
            token_hash=token_hash,
            otp_type=otp_type,
        ),
    )


async def auth_verify_handler(request: Request) -> HTMLResponse | RedirectResponse:
    """Verify a one-time code typed into the pending-confirmation form."""
    form = await request.form()
    email = normalize_email(form.get("email"))
    token = str(form.get("token") or "").strip()
    if email is None or not token:
        return _render_login(
            request,
            email=email or "",
            pending=True,
            error="Enter the code from your email.",
            status_code=400,
        )

    auth_client = _auth_client_from_app(request.app)
    return await _start_session(
        request,
        auth_client.verify_code(
            _http_client_from_app(request.app), email=email, token=token
        ),
    )


async def auth_me_handler(request: Request) -> JSONResponse:
    """Return the current session email for API clients."""
    session = await _current_session(request)
    if session is None:
        response = JSONResponse({"error": "unauthorized"}, status_code=401)
        _clear_session_cookie(response)
        return response

    return JSONResponse({"email": session.email, "expires_at": session.expires_at})


async def auth_logout_handler(request: Request) -> RedirectResponse:
    """Invalidate the provider session, clear the cookie and go to login."""
    access_token = request.cookies.get(settings.auth_session_cookie_name)
    if access_token:
        auth_client = _auth_client_from_app(request.app)
        try:
            await auth_client.sign_out(
                _http_client_from_app(request.app), access_token=access_token
            )
        except httpx.HTTPError:
            logger.warning("Auth provider sign-out failed", exc_info=True)

    response = RedirectResponse(url=LOGIN_PATH, status_code=303)
    _clear_session_cookie(response)
    return response


async def profile_page_handler(
    request: Request,
    status: str | None = Query(default=None),
) -> HTMLResponse | RedirectResponse:
    """Render the profile form for the signed-in user."""
    session = await _current_session(request)
    if session is None:
        response = RedirectResponse(url=LOGIN_PATH, status_code=302)
        _clear_session_cookie(response)
        return response

    client = _attio_client_from_app(request.app)
    view = await load_profile_view(
        client, _field_registry_from_app(request.app), email=session.email
    )
    return templates.TemplateResponse(
        request,
        "profile.html",
        {
            "view": view,
            "email_slug": client.config.email_attribute,
            "notification": notification_for(status),
            "notification_error": status == SaveStatus.ERROR,
            "notification_ms": max(0, settings.notification_seconds) * 1000,
        },
    )


async def profile_submit_handler(request: Request) -> RedirectResponse:
    """Save the profile form, then reload the page with a status banner."""
    session = await _current_session(request)
    if session is None:
        response = RedirectResponse(url=LOGIN_PATH, status_code=303)
        _clear_session_cookie(response)
        return response

    form = await request.form()
    try:
        await save_profile(
            _attio_client_from_app(request.app),
            _field_registry_from_app(request.app),
            email=session.email,
            form={key: value for key, value in form.items() if isinstance(value, str)},
        )
    except Exception:
        logger.exception("Profile save failed email=%s", session.email)
        status = SaveStatus.ERROR
    else:
        status = SaveStatus.SAVED

    return RedirectResponse(url=f"{PROFILE_PATH}?status={status}", status_code=303)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> Any:
    http_client = httpx.AsyncClient(follow_redirects=False)
    app.state.http_client = http_client
    app.state.attio_client = AttioClient(AttioConfig.from_settings(settings), http_client)

    if not settings.attio_api_key:
        logger.warning("ATTIO_API_KEY is not set; CRM calls will be rejected")

    try:
        yield
    finally:
        with contextlib.suppress(Exception):
            await http_client.aclose()


def create_app(*, run_lifespan: bool = True) -> FastAPI:
    """Create configured FastAPI app."""
    app = FastAPI(
        title="Profile Desk",
        version="0.1.0",
        lifespan=_lifespan if run_lifespan else None,
    )

    app.state.field_registry = load_field_registry(settings.fields_config_path)
    app.state.auth_client = OTPAuthClient(settings)

    app.add_api_route("/health", health_handler, methods=["GET"])

    app.add_api_route("/api/options/{slug}", options_handler, methods=["GET"])
    app.add_api_route("/api/user", user_lookup_handler, methods=["GET"])
    app.add_api_route("/api/user", user_upsert_handler, methods=["POST"])

    app.add_api_route(
        LOGIN_PATH, login_page_handler, methods=["GET"], response_model=None
    )
    app.add_api_route(
        "/auth/login", auth_login_handler, methods=["POST"], response_model=None
    )
    app.add_api_route(
        "/auth/confirm", auth_confirm_handler, methods=["GET"], response_model=None
    )
    app.add_api_route(
        "/auth/verify", auth_verify_handler, methods=["POST"], response_model=None
    )
    app.add_api_route("/auth/me", auth_me_handler, methods=["GET"])
    app.add_api_route(
        "/auth/logout", auth_logout_handler, methods=["POST"], response_model=None
    )

    app.add_api_route(
        PROFILE_PATH, profile_page_handler, methods=["GET"], response_model=None
    )
    app.add_api_route(
        PROFILE_PATH, profile_submit_handler, methods=["POST"], response_model=None
    )

    return app


def run() -> None:
    """Entrypoint for the profile web service."""
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(),
        host=settings.web_host,
        port=settings.web_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
