"""Shared test fixtures for Cutover."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from cutover.core.artifact_store import ContentAddressedStore
from cutover.core.orchestrator import PipelineOrchestrator
from cutover.core.permission_scoper import PermissionScoper
from cutover.core.pipeline import Pipeline
from cutover.core.run_ledger import RunLedger
from cutover.models.artifacts import ArtifactRef
from cutover.models.config import PipelineConfig
from cutover.models.stages import StageDefinition
from cutover.providers import (
    InMemoryComputeHost,
    InMemoryCredentialVault,
    InMemorySourceProvider,
    StaticToolchain,
)
from cutover.stages import StageContext

FUNCTION = "hello-fn"
OWNER = "acme"
REPO = "hello"
TOKEN = "tok"


def main_go(greeting: str) -> str:
    return (
        "package main\n\n"
        'import "github.com/aws/aws-lambda-go/lambda"\n\n'
        f'func handler() (string, error) {{ return "{greeting}", nil }}\n\n'
        "func main() { lambda.Start(handler) }\n"
    )


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def ledger(tmp_dir: Path) -> RunLedger:
    """Provide a fresh RunLedger backed by a temp SQLite database."""
    return RunLedger(tmp_dir / "test_ledger.db")


@pytest.fixture
def artifact_store(tmp_dir: Path) -> ContentAddressedStore:
    """Provide a fresh ContentAddressedStore in a temp directory."""
    return ContentAddressedStore(tmp_dir / "artifacts")


@pytest.fixture
def run_id() -> str:
    """Provide a deterministic test run ID."""
    return "run-test-001"


@pytest.fixture
def host() -> InMemoryComputeHost:
    """An in-memory compute host with one function and no versions yet."""
    return InMemoryComputeHost([FUNCTION])


@pytest.fixture
def source_provider() -> InMemorySourceProvider:
    """A source provider whose main branch holds a first revision."""
    provider = InMemorySourceProvider(required_token=TOKEN)
    provider.add_branch(OWNER, REPO, "main", {"main.go": main_go("f1"), "go.mod": "module hello\n"})
    return provider


@pytest.fixture
def vault() -> InMemoryCredentialVault:
    return InMemoryCredentialVault({"github-token": json.dumps({"github-token": TOKEN})})


@pytest.fixture
def toolchain() -> StaticToolchain:
    return StaticToolchain()


@pytest.fixture
def config(tmp_dir: Path) -> PipelineConfig:
    return PipelineConfig(
        source_owner=OWNER,
        source_repo=REPO,
        function_name=FUNCTION,
        artifact_store_path=tmp_dir / "artifacts",
        ledger_db_path=tmp_dir / "test_ledger.db",
        external_call_timeout_seconds=5.0,
        build_timeout_seconds=5.0,
    )


@pytest.fixture
def pipeline() -> Pipeline:
    return Pipeline.default()


@pytest.fixture
def orchestrator(
    config: PipelineConfig,
    source_provider: InMemorySourceProvider,
    toolchain: StaticToolchain,
    host: InMemoryComputeHost,
    vault: InMemoryCredentialVault,
    artifact_store: ContentAddressedStore,
    ledger: RunLedger,
) -> PipelineOrchestrator:
    """The standard executors wired to the in-memory providers."""
    return PipelineOrchestrator.with_providers(
        config,
        source=source_provider,
        toolchain=toolchain,
        host=host,
        vault=vault,
        store=artifact_store,
        ledger=ledger,
    )


# ---------------------------------------------------------------------------
# Factories shared across test modules
# ---------------------------------------------------------------------------


@pytest.fixture
def commit(source_provider: InMemorySourceProvider) -> Callable[[str], str]:
    """Factory fixture: push a new head to main; returns its revision."""

    def _factory(greeting: str) -> str:
        return source_provider.add_branch(
            OWNER, REPO, "main", {"main.go": main_go(greeting), "go.mod": "module hello\n"}
        )

    return _factory


@pytest.fixture
def make_context(
    config: PipelineConfig, artifact_store: ContentAddressedStore, run_id: str
) -> Callable[..., StageContext]:
    """Factory fixture: a StageContext for one stage of the default pipeline.

    ``artifacts`` maps input names to bytes; they are stored in the run as if
    their declared producer wrote them.
    """
    pipeline = Pipeline.default()

    def _factory(
        stage_name: str,
        artifacts: dict[str, bytes] | None = None,
        *,
        stage: StageDefinition | None = None,
        **config_overrides,
    ) -> StageContext:
        definition = stage or pipeline.stage(stage_name)
        grant = definition.permissions or PermissionScoper().scope_for(definition)
        inputs: dict[str, ArtifactRef] = {}
        for name, data in (artifacts or {}).items():
            inputs[name] = artifact_store.put(
                run_id, name, data, producer_stage=pipeline.producer_of(name) or ""
            )
        cfg = config.model_copy(update=config_overrides) if config_overrides else config
        return StageContext(
            run_id=run_id,
            stage=definition,
            source_ref=cfg.source_ref(),
            config=cfg,
            grant=grant,
            store=artifact_store,
            inputs=inputs,
        )

    return _factory
