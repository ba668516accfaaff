"""Least-privilege permission scoping per stage.

``PermissionScoper.scope_for`` is a pure function of stage kind. Pipelines
validate declared grants against it at construction time, so a stage that
asks for more than its scope is a configuration error, not a runtime one.
"""

from __future__ import annotations

from cutover.models.permissions import Permission, PermissionSet
from cutover.models.stages import StageDefinition, StageKind

_SCOPES: dict[StageKind, frozenset[Permission]] = {
    StageKind.SOURCE: frozenset({
        Permission.SOURCE_FETCH,
        Permission.SECRET_READ,
        Permission.ARTIFACT_WRITE,
    }),
    StageKind.BUILD: frozenset({
        Permission.ARTIFACT_READ,
        Permission.ARTIFACT_WRITE,
    }),
    StageKind.DEPLOY: frozenset({
        Permission.ARTIFACT_READ,
        Permission.FUNCTION_GET_ALIAS,
        Permission.FUNCTION_GET_VERSION,
        Permission.FUNCTION_UPDATE_CODE,
        Permission.FUNCTION_PUBLISH_VERSION,
        Permission.FUNCTION_UPDATE_ALIAS,
        Permission.FUNCTION_CREATE_ALIAS,
    }),
}


class PermissionScopeError(ValueError):
    """Raised when a stage's grant exceeds its least-privilege scope."""


class PermissionScoper:
    """Issues the minimal permission set for each stage kind."""

    def scope_for(self, stage: StageDefinition) -> PermissionSet:
        try:
            return PermissionSet(permissions=_SCOPES[stage.kind])
        except KeyError:
            raise PermissionScopeError(
                f"No permission scope defined for stage kind {stage.kind!r}"
            ) from None

    def validate(self, stage: StageDefinition) -> PermissionSet:
        """Return the grant for *stage*, rejecting anything beyond its scope.

        A stage without an explicit grant receives its full scope.
        """
        scope = self.scope_for(stage)
        granted = stage.permissions if stage.permissions is not None else scope

        if stage.kind != StageKind.DEPLOY and granted.mutating:
            raise PermissionScopeError(
                f"Stage {stage.name!r} ({stage.kind.value}) may not hold "
                f"compute-host mutation permissions: "
                f"{sorted(p.value for p in granted.mutating)}"
            )
        if not granted.issubset(scope):
            extra = sorted(p.value for p in granted.permissions - scope.permissions)
            raise PermissionScopeError(
                f"Stage {stage.name!r} requests permissions outside its "
                f"scope: {extra}"
            )
        return granted

