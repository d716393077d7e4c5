from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import RedirectResponse

from ..auth.oauth import OAuthFlowOrchestrator, post_logout_url
from ..auth.sessions import current_session, discard_pending, new_session
from ..auth.users import clear_session_principal


router = APIRouter(prefix="/securityRealm", tags=["security-realm"])
logout_router = APIRouter(tags=["security-realm"])


def get_orchestrator(request: Request) -> OAuthFlowOrchestrator:
    return request.app.state.orchestrator


@router.get("/commenceLogin")
def commence_login(
    request: Request,
    from_url: Optional[str] = Query(default=None, alias="from"),
    referer: Optional[str] = Header(default=None),
    orchestrator: OAuthFlowOrchestrator = Depends(get_orchestrator),
):
    session = current_session(request, create=True)
    location = orchestrator.commence_login(session, from_url, referer)
    return RedirectResponse(location, status_code=302)


@router.get("/finishLogin")
def finish_login(
    request: Request,
    orchestrator: OAuthFlowOrchestrator = Depends(get_orchestrator),
):
    result = orchestrator.finish_login(current_session(request), request.query_params)
    return RedirectResponse(result.redirect_url, status_code=302)


@logout_router.get("/logout")
def logout(request: Request):
    previous = current_session(request)
    if previous is not None:
        clear_session_principal(previous)
        discard_pending(previous)
        request.app.state.session_store.invalidate(previous.id)
    session = new_session(request)
    url = post_logout_url(str(request.url.replace(query="")), session)
    return RedirectResponse(url, status_code=302)
