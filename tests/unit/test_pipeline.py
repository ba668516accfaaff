"""Tests for Pipeline: ordering, producer/consumer wiring, grants."""

from __future__ import annotations

import pytest

from cutover.core.pipeline import Pipeline, PipelineConfigError
from cutover.models.permissions import Permission, PermissionSet
from cutover.models.stages import StageDefinition, StageKind


class TestDefaultPipeline:
    def test_order_and_wiring(self):
        p = Pipeline.default()
        assert [s.name for s in p] == ["Source", "Build", "Deploy"]
        assert len(p) == 3
        assert p.producer_of("source") == "Source"
        assert p.producer_of("package") == "Build"
        assert p.producer_of("nothing") is None
        assert p.stage("Build").inputs == ("source",)
        assert repr(p) == "<Pipeline Source -> Build -> Deploy>"

    def test_grants_resolved(self):
        p = Pipeline.default()
        assert all(s.permissions is not None for s in p)
        assert p.stage("Deploy").permissions.allows(Permission.FUNCTION_UPDATE_ALIAS)
        assert not p.stage("Build").permissions.allows(Permission.FUNCTION_UPDATE_ALIAS)

    def test_unknown_stage_raises_key_error(self):
        with pytest.raises(KeyError):
            Pipeline.default().stage("Test")


class TestValidation:
    def test_empty_pipeline_rejected(self):
        with pytest.raises(PipelineConfigError):
            Pipeline([])

    def test_duplicate_names_rejected(self):
        stages = [
            StageDefinition(name="Source", kind=StageKind.SOURCE, outputs=("source",)),
            StageDefinition(name="Source", kind=StageKind.BUILD),
        ]
        with pytest.raises(PipelineConfigError, match="Duplicate"):
            Pipeline(stages)

    def test_reserved_name_rejected(self):
        with pytest.raises(PipelineConfigError, match="reserved"):
            Pipeline([StageDefinition(name="run", kind=StageKind.SOURCE)])

    def test_forward_reference_rejected(self):
        stages = [
            StageDefinition(name="Build", kind=StageKind.BUILD, inputs=("source",), outputs=("package",)),
            StageDefinition(name="Source", kind=StageKind.SOURCE, outputs=("source",)),
        ]
        with pytest.raises(PipelineConfigError, match="no earlier stage"):
            Pipeline(stages)

    def test_unproduced_input_rejected(self):
        stages = [StageDefinition(name="Deploy", kind=StageKind.DEPLOY, inputs=("package",))]
        with pytest.raises(PipelineConfigError):
            Pipeline(stages)

    def test_initial_inputs_satisfy_consumers(self):
        stages = [StageDefinition(name="Deploy", kind=StageKind.DEPLOY, inputs=("package",))]
        p = Pipeline(stages, initial_inputs=["package"])
        assert p.initial_inputs == frozenset({"package"})
        assert p.producer_of("package") is None

    @pytest.mark.parametrize("bad", ["package v1", "../escape", "", ".hidden"])
    def test_unstorable_initial_input_name_rejected(self, bad):
        stages = [StageDefinition(name="Deploy", kind=StageKind.DEPLOY, inputs=(bad,))]
        with pytest.raises(PipelineConfigError, match="Invalid artifact names"):
            Pipeline(stages, initial_inputs=[bad])

    def test_unstorable_output_name_rejected(self):
        stages = [StageDefinition(name="Source", kind=StageKind.SOURCE, outputs=("src/tree",))]
        with pytest.raises(PipelineConfigError, match="stage 'Source'"):
            Pipeline(stages)

    def test_duplicate_producer_rejected(self):
        stages = [
            StageDefinition(name="Source", kind=StageKind.SOURCE, outputs=("source",)),
            StageDefinition(name="Build", kind=StageKind.BUILD, inputs=("source",), outputs=("source",)),
        ]
        with pytest.raises(PipelineConfigError, match="already produced"):
            Pipeline(stages)

    def test_excess_grant_is_configuration_error(self):
        grant = PermissionSet(permissions=frozenset({Permission.FUNCTION_PUBLISH_VERSION}))
        stages = [StageDefinition(name="Source", kind=StageKind.SOURCE, outputs=("source",), permissions=grant)]
        with pytest.raises(PipelineConfigError):
            Pipeline(stages)
