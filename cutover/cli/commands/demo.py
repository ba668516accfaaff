"""``cutover demo``: run Source -> Build -> Deploy against in-memory providers.

Each run commits a new revision of a small Go function to the in-memory
source provider, builds it with the static toolchain and cuts the alias
over. The ledger and artifact store are real, so ``cutover history`` shows
the demo runs afterwards.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console

from cutover.config import ReleaseSettings
from cutover.core.orchestrator import PipelineOrchestrator
from cutover.core.pipeline import Pipeline
from cutover.models.config import PipelineConfig
from cutover.monitor.renderer import MonitorRenderer
from cutover.providers import (
    AliasNotFoundError,
    InMemoryComputeHost,
    InMemoryCredentialVault,
    InMemorySourceProvider,
    StaticToolchain,
)

console = Console()

_DEMO_TOKEN = "demo-token"

_MAIN_GO = """package main

import (
\t"context"

\t"github.com/aws/aws-lambda-go/lambda"
)

func Handler(ctx context.Context) (string, error) {
\treturn "%s", nil
}

func main() {
\tlambda.Start(Handler)
}
"""

_BUILD_ERROR = "./main.go:14:9: undefined: lambda.Strat\n"


def demo_cmd(
    runs: int = typer.Option(
        2,
        "--runs",
        "-n",
        min=1,
        help="Number of consecutive runs, each on a new revision.",
    ),
    function_name: str = typer.Option(
        "lambda-go-hola",
        "--function",
        "-f",
        help="Function to deploy.",
    ),
    alias_name: str = typer.Option(
        "live",
        "--alias",
        help="Traffic-facing alias.",
    ),
    fail_build: bool = typer.Option(
        False,
        "--fail-build",
        help="Make the build of the last run fail.",
    ),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (default: CUTOVER_LEDGER_PATH).",
    ),
    artifact_dir: str = typer.Option(
        None,
        "--artifacts",
        "-a",
        help="Path to the artifact store directory (default: CUTOVER_ARTIFACT_STORE_PATH).",
    ),
) -> None:
    """Run the pipeline end-to-end with in-memory providers."""
    settings = ReleaseSettings()
    overrides = {}
    if ledger_db:
        overrides["ledger_db_path"] = Path(ledger_db)
    if artifact_dir:
        overrides["artifact_store_path"] = Path(artifact_dir)
    config = PipelineConfig.from_settings(
        settings,
        source_owner="demo",
        source_repo="lambda-cicd",
        function_name=function_name,
        alias_name=alias_name,
        **overrides,
    )

    source = InMemorySourceProvider(required_token=_DEMO_TOKEN)
    vault = InMemoryCredentialVault({
        config.source_secret_name: json.dumps({config.source_secret_field: _DEMO_TOKEN}),
    })
    host = InMemoryComputeHost([function_name])
    pipeline = Pipeline.default()
    renderer = MonitorRenderer(console=console)

    console.print(f"[bold cyan]Demo:[/bold cyan] {runs} run(s) deploying {function_name}:{alias_name}")
    console.print(f"[dim]Ledger: {config.ledger_db_path}  Artifacts: {config.artifact_store_path}[/dim]")
    console.print()

    failed = 0
    for i in range(1, runs + 1):
        source.add_branch(
            config.source_owner,
            config.source_repo,
            config.branch,
            {
                "main.go": _MAIN_GO % f"Hola Mundo desde Lambda en Go f{i}!",
                "go.mod": "module hola\n\ngo 1.21\n",
            },
        )
        if fail_build and i == runs:
            toolchain = StaticToolchain(fail_with=_BUILD_ERROR, exit_code=1)
        else:
            toolchain = StaticToolchain()

        orchestrator = PipelineOrchestrator.with_providers(
            config, source=source, toolchain=toolchain, host=host, vault=vault
        )
        result = orchestrator.run(pipeline)
        renderer.print_result(result)
        if not result.succeeded:
            failed += 1

    try:
        live = host.get_alias(function_name, alias_name)
    except AliasNotFoundError:
        live = None
    versions = ", ".join(host.list_versions(function_name)) or "-"
    console.print(
        f"[bold]{function_name}:{alias_name}[/bold] -> {live or '[dim]unresolved[/dim]'}"
        f"  [dim](published versions: {versions})[/dim]"
    )

    if failed:
        raise typer.Exit(code=1)
