"""Host permission constants and the privilege-tier escalation table.

Tier assignments
----------------
- ``view`` grants the baseline read/discover set.
- ``edit`` adds build, configure, create, delete, cancel, workspace, tag and
  script execution on top of ``view``.
- ``admin`` adds administer, agent management, run and view management, and
  credentials management on top of ``edit``.

The table is monotonic: every tier's set is a superset of the tier below it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Mapping, Tuple

from .roles import PrivilegeTier

PERMISSION_OVERALL_READ = "Overall/Read"
PERMISSION_OVERALL_ADMINISTER = "Overall/Administer"
PERMISSION_OVERALL_RUN_SCRIPTS = "Overall/RunScripts"
PERMISSION_JOB_READ = "Job/Read"
PERMISSION_JOB_DISCOVER = "Job/Discover"
PERMISSION_JOB_BUILD = "Job/Build"
PERMISSION_JOB_CONFIGURE = "Job/Configure"
PERMISSION_JOB_CREATE = "Job/Create"
PERMISSION_JOB_DELETE = "Job/Delete"
PERMISSION_JOB_CANCEL = "Job/Cancel"
PERMISSION_JOB_WORKSPACE = "Job/Workspace"
PERMISSION_SCM_TAG = "SCM/Tag"
PERMISSION_COMPUTER_CONFIGURE = "Agent/Configure"
PERMISSION_COMPUTER_DELETE = "Agent/Delete"
PERMISSION_RUN_DELETE = "Run/Delete"
PERMISSION_RUN_UPDATE = "Run/Update"
PERMISSION_VIEW_CONFIGURE = "View/Configure"
PERMISSION_VIEW_CREATE = "View/Create"
PERMISSION_VIEW_DELETE = "View/Delete"
PERMISSION_CREDENTIALS_VIEW = "Credentials/View"
PERMISSION_CREDENTIALS_CREATE = "Credentials/Create"
PERMISSION_CREDENTIALS_UPDATE = "Credentials/Update"
PERMISSION_CREDENTIALS_DELETE = "Credentials/Delete"
PERMISSION_CREDENTIALS_MANAGE_DOMAINS = "Credentials/ManageDomains"


@dataclass(frozen=True)
class PermissionGroup:
    """A titled set of related host permissions."""

    title: str
    permissions: Tuple[str, ...]


PERMISSION_GROUPS: Tuple[PermissionGroup, ...] = (
    PermissionGroup(
        "Overall",
        (PERMISSION_OVERALL_ADMINISTER, PERMISSION_OVERALL_READ, PERMISSION_OVERALL_RUN_SCRIPTS),
    ),
    PermissionGroup(
        "Credentials",
        (
            PERMISSION_CREDENTIALS_CREATE,
            PERMISSION_CREDENTIALS_DELETE,
            PERMISSION_CREDENTIALS_MANAGE_DOMAINS,
            PERMISSION_CREDENTIALS_UPDATE,
            PERMISSION_CREDENTIALS_VIEW,
        ),
    ),
    PermissionGroup("Agent", (PERMISSION_COMPUTER_CONFIGURE, PERMISSION_COMPUTER_DELETE)),
    PermissionGroup(
        "Job",
        (
            PERMISSION_JOB_BUILD,
            PERMISSION_JOB_CANCEL,
            PERMISSION_JOB_CONFIGURE,
            PERMISSION_JOB_CREATE,
            PERMISSION_JOB_DELETE,
            PERMISSION_JOB_DISCOVER,
            PERMISSION_JOB_READ,
            PERMISSION_JOB_WORKSPACE,
        ),
    ),
    PermissionGroup("Run", (PERMISSION_RUN_DELETE, PERMISSION_RUN_UPDATE)),
    PermissionGroup("View", (PERMISSION_VIEW_CONFIGURE, PERMISSION_VIEW_CREATE, PERMISSION_VIEW_DELETE)),
    PermissionGroup("SCM", (PERMISSION_SCM_TAG,)),
)

ALL_PERMISSIONS: FrozenSet[str] = frozenset(
    permission for group in PERMISSION_GROUPS for permission in group.permissions
)

_VIEW_PERMISSIONS: FrozenSet[str] = frozenset(
    {
        PERMISSION_OVERALL_READ,
        PERMISSION_JOB_READ,
        PERMISSION_JOB_DISCOVER,
        PERMISSION_CREDENTIALS_VIEW,
    }
)

_EDIT_PERMISSIONS: FrozenSet[str] = _VIEW_PERMISSIONS | frozenset(
    {
        PERMISSION_JOB_BUILD,
        PERMISSION_JOB_CONFIGURE,
        PERMISSION_JOB_CREATE,
        PERMISSION_JOB_DELETE,
        PERMISSION_JOB_CANCEL,
        PERMISSION_JOB_WORKSPACE,
        PERMISSION_SCM_TAG,
        PERMISSION_OVERALL_RUN_SCRIPTS,
    }
)

_ADMIN_PERMISSIONS: FrozenSet[str] = _EDIT_PERMISSIONS | frozenset(
    {
        PERMISSION_COMPUTER_CONFIGURE,
        PERMISSION_COMPUTER_DELETE,
        PERMISSION_OVERALL_ADMINISTER,
        PERMISSION_RUN_DELETE,
        PERMISSION_RUN_UPDATE,
        PERMISSION_VIEW_CONFIGURE,
        PERMISSION_VIEW_CREATE,
        PERMISSION_VIEW_DELETE,
        PERMISSION_CREDENTIALS_CREATE,
        PERMISSION_CREDENTIALS_UPDATE,
        PERMISSION_CREDENTIALS_DELETE,
        PERMISSION_CREDENTIALS_MANAGE_DOMAINS,
    }
)

TIER_PERMISSIONS: Mapping[PrivilegeTier, FrozenSet[str]] = {
    PrivilegeTier.VIEW: _VIEW_PERMISSIONS,
    PrivilegeTier.EDIT: _EDIT_PERMISSIONS,
    PrivilegeTier.ADMIN: _ADMIN_PERMISSIONS,
}


def permissions_for_tier(tier: PrivilegeTier) -> FrozenSet[str]:
    """Return the full host permission set granted to ``tier``."""

    return TIER_PERMISSIONS[tier]


__all__ = [
    "ALL_PERMISSIONS",
    "PERMISSION_GROUPS",
    "PermissionGroup",
    "TIER_PERMISSIONS",
    "permissions_for_tier",
]
