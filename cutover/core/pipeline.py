"""Immutable pipeline definition with producer/consumer validation.

A Pipeline is an ordered list of stages. Construction validates that:
- stage names are unique and every artifact name has exactly one producer;
- every artifact name is one the artifact store accepts;
- every declared input is produced by an *earlier* stage (or is one of the
  pipeline's initial inputs), so there are no forward references or cycles;
- every stage's permission grant stays within its least-privilege scope.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from cutover.core.artifact_store import is_valid_name
from cutover.core.permission_scoper import PermissionScopeError, PermissionScoper
from cutover.models.ledger import RUN_STAGE_ID
from cutover.models.stages import StageDefinition, default_stage_definitions


class PipelineConfigError(ValueError):
    """Raised when a pipeline definition is invalid."""


def _check_artifact_names(owner: str, names: Iterable[str]) -> None:
    bad = sorted(n for n in names if not is_valid_name(n))
    if bad:
        raise PipelineConfigError(
            f"Invalid artifact names in {owner}: {bad}"
        )


class Pipeline:
    """Validated, immutable sequence of stages.

    Parameters
    ----------
    stages:
        Stage definitions in execution order.
    initial_inputs:
        Artifact names available before the first stage runs.
    scoper:
        Permission scoper used to fill in and validate grants.
    """

    def __init__(
        self,
        stages: Iterable[StageDefinition],
        *,
        initial_inputs: Iterable[str] = (),
        scoper: PermissionScoper | None = None,
    ) -> None:
        scoper = scoper or PermissionScoper()
        stage_list = list(stages)
        if not stage_list:
            raise PipelineConfigError("A pipeline needs at least one stage")

        self._initial_inputs = frozenset(initial_inputs)
        _check_artifact_names("initial inputs", self._initial_inputs)
        self._producers: dict[str, str] = {}
        seen_names: set[str] = set()
        available: set[str] = set(self._initial_inputs)
        resolved: list[StageDefinition] = []

        for stage in stage_list:
            if stage.name == RUN_STAGE_ID:
                raise PipelineConfigError(
                    f"Stage name {RUN_STAGE_ID!r} is reserved for run records"
                )
            if stage.name in seen_names:
                raise PipelineConfigError(f"Duplicate stage name {stage.name!r}")
            seen_names.add(stage.name)

            _check_artifact_names(f"stage {stage.name!r}", (*stage.inputs, *stage.outputs))
            missing = [name for name in stage.inputs if name not in available]
            if missing:
                raise PipelineConfigError(
                    f"Stage {stage.name!r} consumes {missing} which no earlier "
                    f"stage produces"
                )

            for name in stage.outputs:
                if name in available:
                    raise PipelineConfigError(
                        f"Artifact {name!r} from stage {stage.name!r} is already "
                        f"produced by {self._producers.get(name, 'the initial inputs')!r}"
                    )
                self._producers[name] = stage.name
                available.add(name)

            try:
                granted = scoper.validate(stage)
            except PermissionScopeError as exc:
                raise PipelineConfigError(str(exc)) from exc
            resolved.append(stage.model_copy(update={"permissions": granted}))

        self._stages: tuple[StageDefinition, ...] = tuple(resolved)

    @classmethod
    def default(cls) -> Pipeline:
        """The standard Source -> Build -> Deploy pipeline."""
        return cls(default_stage_definitions())

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    @property
    def stages(self) -> tuple[StageDefinition, ...]:
        return self._stages

    @property
    def initial_inputs(self) -> frozenset[str]:
        return self._initial_inputs

    def producer_of(self, artifact_name: str) -> str | None:
        """Return the stage name that produces *artifact_name*, if any."""
        return self._producers.get(artifact_name)

    def stage(self, name: str) -> StageDefinition:
        for stage in self._stages:
            if stage.name == name:
                return stage
        raise KeyError(name)

    def __iter__(self) -> Iterator[StageDefinition]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        return f"<Pipeline {' -> '.join(s.name for s in self._stages)}>"
