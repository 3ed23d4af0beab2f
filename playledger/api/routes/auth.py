"""Spotify OAuth: start authorization and handle the redirect callback."""
import html
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel

from playledger.api.state import AppState, get_state
from playledger.core.errors import AuthError

router = APIRouter()
callback_router = APIRouter()


class AuthorizeBody(BaseModel):
    """Empty fields reuse the client id/secret already stored for the actor."""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None


@router.post("/{actor}")
def authorize(
    actor: str,
    body: AuthorizeBody | None = Body(None),
    state: AppState = Depends(get_state),
):
    """Return the Spotify authorization URL for actor."""
    body = body or AuthorizeBody()
    url = state.service.authorize(actor, body.client_id or "", body.client_secret or "")
    return {"auth_url": url}


@router.get("/{actor}")
def authorize_redirect(actor: str, state: AppState = Depends(get_state)):
    """Browser flow: redirect straight to Spotify using the stored client credentials."""
    url = state.service.authorize(actor)
    return RedirectResponse(url=url, status_code=307)


@callback_router.get("/auth/callback")
def spotify_callback(
    code: str | None = None,
    state_: str | None = Query(None, alias="state"),
    error: str | None = None,
    state: AppState = Depends(get_state),
):
    """Exchange code for a token and store it with the actor the state belongs to."""
    if error:
        return HTMLResponse(f"<body><p>Spotify denied access: {html.escape(error)}</p></body>", status_code=400)
    if not code or not state_:
        return HTMLResponse(
            "<body><p>Missing code or state. Start the authorization again.</p></body>",
            status_code=400,
        )
    actor = state.service.actor_for_state(state_)
    if actor is None:
        raise AuthError("authorization state does not match any pending request")
    state.service.callback(actor, state_, code)
    return HTMLResponse("<body><p>Spotify linked successfully. You can close this window.</p></body>")
