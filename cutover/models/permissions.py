"""Permission names and grant sets issued to pipeline stages."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Permission(str, Enum):
    """A single capability a stage may be granted."""

    SOURCE_FETCH = "source:Fetch"
    SECRET_READ = "secret:Read"
    ARTIFACT_READ = "artifact:Read"
    ARTIFACT_WRITE = "artifact:Write"
    FUNCTION_GET_ALIAS = "function:GetAlias"
    FUNCTION_GET_VERSION = "function:GetVersion"
    FUNCTION_UPDATE_CODE = "function:UpdateFunctionCode"
    FUNCTION_PUBLISH_VERSION = "function:PublishVersion"
    FUNCTION_UPDATE_ALIAS = "function:UpdateAlias"
    FUNCTION_CREATE_ALIAS = "function:CreateAlias"


# Compute-host mutations. Only the deploy stage may hold any of these.
MUTATING_PERMISSIONS: frozenset[Permission] = frozenset({
    Permission.FUNCTION_UPDATE_CODE,
    Permission.FUNCTION_PUBLISH_VERSION,
    Permission.FUNCTION_UPDATE_ALIAS,
    Permission.FUNCTION_CREATE_ALIAS,
})


class PermissionSet(BaseModel):
    """An immutable grant of permissions to one stage."""

    model_config = ConfigDict(frozen=True)

    permissions: frozenset[Permission] = frozenset()

    def allows(self, permission: Permission) -> bool:
        return permission in self.permissions

    def issubset(self, other: PermissionSet) -> bool:
        return self.permissions <= other.permissions

    @property
    def mutating(self) -> frozenset[Permission]:
        """The compute-host mutation permissions contained in this set."""
        return self.permissions & MUTATING_PERMISSIONS

    def names(self) -> list[str]:
        return sorted(p.value for p in self.permissions)
