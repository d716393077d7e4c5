from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from ..auth.discovery import ConfigResolver
from ..auth.oauth import LOGIN_URL
from ..auth.sync import AuthenticatedToken
from ..auth.users import get_display_name


router = APIRouter(tags=["status"])


def get_resolver(request: Request) -> ConfigResolver:
    return request.app.state.orchestrator.resolver


@router.get("/status", response_model=dict)
def get_status():
    return {"ok": True}


@router.get("/status/config", response_model=dict)
def config_status(resolver: ConfigResolver = Depends(get_resolver)):
    config, fully_discovered = resolver.resolve()
    return {
        "fully_discovered": fully_discovered,
        "login_url": LOGIN_URL,
        "config": config.summary(),
    }


@router.get("/whoAmI", response_model=dict)
def who_am_i(request: Request) -> Dict[str, Any]:
    principal: AuthenticatedToken | None = getattr(request.state, "principal", None)
    if principal is None:
        return {"name": "anonymous", "anonymous": True, "authorities": []}
    return {
        "name": principal.name,
        "display_name": get_display_name(principal.name) or principal.display_name,
        "tier": principal.tier.verb,
        "anonymous": False,
        "authorities": list(principal.authorities),
    }
