"""
causalprobe CLI - causal model disagreement and stress testing.

Usage:
    causalprobe compare left.yaml right.json --outcome Y --intervention X
    causalprobe compare health@v1 health@v2 --registry registry.yaml --outcome Risk
    causalprobe presets model.yaml --mode full
    causalprobe lifecycle hypotheses.json --top 5
    causalprobe oracle observations.json
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, NoReturn, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from causalprobe import __version__
from causalprobe.audit import ComparisonAudit, render_audit_report
from causalprobe.config import describe_config, get_config
from causalprobe.disagreement import CompareRequest, DisagreementDetector, Severity
from causalprobe.exceptions import CausalProbeError
from causalprobe.lifecycle import Hypothesis, order_for_recommendation, select_recommendations
from causalprobe.oracle import Observation, OracleDetector, parse_timestamp
from causalprobe.presets import PresetMode, available_operations, generate_presets
from causalprobe.scm import InlineSpec, ModelRef, ModelResolver, load_registry
from causalprobe.scm.registry import InMemoryModelRegistry


class ModeChoice(str, Enum):
    """Preset modes accepted on the command line."""
    quick = "quick"
    full = "full"


app = typer.Typer(
    name="causalprobe",
    help="Causal model disagreement detection and stress testing",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

SEVERITY_STYLES = {
    Severity.HIGH: "red bold",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"causalprobe version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """causalprobe - causal model disagreement and stress testing."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ── Input helpers ─────────────────────────────────────────────────────


def load_document(path: Path) -> Any:
    """Read a JSON or YAML file (by suffix)."""
    try:
        with open(path) as f:
            if path.suffix in (".yaml", ".yml"):
                return yaml.safe_load(f)
            return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise CausalProbeError(f"Failed to read {path}: {e}") from e


def load_model_registry(path: Path | None) -> InMemoryModelRegistry | None:
    if path is None:
        return None
    try:
        return load_registry(path)
    except (OSError, ValueError, KeyError, yaml.YAMLError) as e:
        raise CausalProbeError(f"Failed to load registry from {path}: {e}") from e


def parse_model_argument(value: str) -> tuple[ModelRef | None, InlineSpec | None]:
    """A path to an existing file is an inline spec; anything else is ``key@version``."""
    path = Path(value)
    if path.is_file():
        data = load_document(path)
        if not isinstance(data, dict):
            raise CausalProbeError(f"Model file {path} must contain a mapping")
        return None, InlineSpec.from_payload(data)
    return ModelRef.parse(value), None


def _list_payload(data: Any, key: str) -> list[Any]:
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise CausalProbeError(f"Expected a list of {key}")
    return data


def _fail(error: CausalProbeError | ValidationError) -> NoReturn:
    if isinstance(error, ValidationError):
        detail = "; ".join(
            f"{'.'.join(str(p) for p in e['loc']) or 'input'}: {e['msg']}"
            for e in error.errors()
        )
        message = f"Invalid input: {detail}"
    else:
        message = error.message
    error_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code=1)


# ── Commands ──────────────────────────────────────────────────────────


@app.command()
def compare(
    left: Annotated[str, typer.Argument(help="Left model: file path or key@version")],
    right: Annotated[str, typer.Argument(help="Right model: file path or key@version")],
    outcome: Annotated[
        str,
        typer.Option("--outcome", "-o", help="Outcome variable for intervention checks"),
    ],
    interventions: Annotated[
        Optional[list[str]],
        typer.Option("--intervention", "-i", help="Intervention variable (repeatable)"),
    ] = None,
    registry_file: Annotated[
        Optional[Path],
        typer.Option("--registry", "-r", help="Registry file (JSON/YAML) with models and ontology"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output the report as JSON"),
    ] = False,
    audit: Annotated[
        bool,
        typer.Option("--audit", help="Output a Markdown audit record"),
    ] = False,
) -> None:
    """
    Compare two causal models and list their disagreements.

    Examples:

        $ causalprobe compare left.yaml right.yaml --outcome Risk -i Treatment
    """
    try:
        registry = load_model_registry(registry_file)
        left_ref, left_spec = parse_model_argument(left)
        right_ref, right_spec = parse_model_argument(right)

        detector = DisagreementDetector(registry)
        report = detector.compare(CompareRequest(
            left_ref=left_ref,
            left_spec=left_spec,
            right_ref=right_ref,
            right_spec=right_spec,
            outcome=outcome,
            interventions=tuple(interventions or ()),
        ))
    except (CausalProbeError, ValidationError) as e:
        _fail(e)

    if audit:
        console.print(render_audit_report(ComparisonAudit.from_report(report, detector.config)))
        return

    if json_output:
        console.print_json(report.model_dump_json(by_alias=True))
        return

    if not report.atoms:
        console.print(Panel(
            f"[green]{report.summary}[/green]\n\n"
            f"{report.left_model} vs {report.right_model}",
            title="causalprobe",
            border_style="green",
        ))
        return

    console.print(f"[bold]{report.left_model}[/bold] vs [bold]{report.right_model}[/bold]")
    console.print(f"[dim]{report.summary}[/dim]\n")

    table = Table()
    table.add_column("Severity")
    table.add_column("Type", style="cyan")
    table.add_column("Subject")
    table.add_column("Left")
    table.add_column("Right")

    for atom in report.atoms:
        style = SEVERITY_STYLES[atom.severity]
        subject = f"{atom.edge.source} -> {atom.edge.target}" if atom.edge else (atom.variable or "-")
        table.add_row(
            f"[{style}]{atom.severity.value.upper()}[/{style}]",
            atom.type.value,
            subject,
            atom.left_value,
            atom.right_value,
        )

    console.print(table)
    quality = report.alignment_quality
    console.print(
        f"\n[bold]Score:[/bold] {report.score:.4f}   "
        f"[dim]alignment {quality.coverage:.0%} (threshold {quality.threshold:.0%})[/dim]"
    )


@app.command()
def presets(
    model: Annotated[str, typer.Argument(help="Model: file path or key@version")],
    mode: Annotated[
        ModeChoice,
        typer.Option("--mode", "-m", help="Preset mode"),
    ] = ModeChoice.quick,
    registry_file: Annotated[
        Optional[Path],
        typer.Option("--registry", "-r", help="Registry file (JSON/YAML)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output presets as JSON"),
    ] = False,
) -> None:
    """
    Suggest stress-test edits for one causal model.
    """
    try:
        registry = load_model_registry(registry_file)
        ref, spec = parse_model_argument(model)
        resolved = ModelResolver(registry).resolve(ref, spec)
    except (CausalProbeError, ValidationError) as e:
        _fail(e)

    preset_mode = PresetMode.from_string(mode.value)
    by_operation = generate_presets(resolved, preset_mode)

    if json_output:
        console.print_json(json.dumps({
            "model": resolved.identity,
            "mode": preset_mode.value,
            "presets": {
                op.value: [p.to_dict() for p in items]
                for op, items in by_operation.items()
            },
        }))
        return

    console.print(f"[bold]Stress-test presets for {resolved.identity}[/bold] ({preset_mode.value})\n")
    for operation in available_operations({preset_mode: by_operation}, preset_mode):
        table = Table(title=operation.value)
        table.add_column("ID", style="cyan")
        table.add_column("Suggestion")
        table.add_column("Rationale", style="dim")
        for preset in by_operation[operation]:
            table.add_row(preset.id, preset.display_label, preset.rationale)
        console.print(table)
        console.print()


@app.command()
def lifecycle(
    hypotheses_file: Annotated[
        Path,
        typer.Argument(help="JSON/YAML list of hypotheses", exists=True, readable=True),
    ],
    top: Annotated[
        Optional[int],
        typer.Option("--top", "-n", help="Only show the top N eligible hypotheses"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output hypotheses as JSON"),
    ] = False,
) -> None:
    """
    Run the hypothesis lifecycle and rank recommendations.
    """
    try:
        raw = _list_payload(load_document(hypotheses_file), "hypotheses")
        hypotheses = [Hypothesis.from_dict(item) for item in raw]
        if top is not None:
            ranked = select_recommendations(hypotheses, top)
        else:
            ranked = order_for_recommendation(hypotheses)
    except (CausalProbeError, KeyError, TypeError, ValueError, AttributeError) as e:
        _fail(e if isinstance(e, CausalProbeError) else CausalProbeError(f"Invalid hypothesis: {e}"))

    if json_output:
        console.print_json(json.dumps([h.to_dict() for h in ranked]))
        return

    table = Table()
    table.add_column("#")
    table.add_column("ID", style="cyan")
    table.add_column("State")
    table.add_column("Score", justify="right")
    table.add_column("Last Rationale", style="dim")
    for index, h in enumerate(ranked, 1):
        last = h.events[-1].rationale if h.events else ""
        table.add_row(str(index), h.id, h.effective_state.value, f"{h.recommendation_score:.2f}", last)
    console.print(table)


@app.command()
def oracle(
    observations_file: Annotated[
        Path,
        typer.Argument(help="JSON/YAML list of {score, confidence[, timestamp]}", exists=True, readable=True),
    ],
    session: Annotated[
        Optional[str],
        typer.Option("--session", "-s", help="Session id"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output the final state as JSON"),
    ] = False,
) -> None:
    """
    Replay an observation stream through the Oracle phase detector.

    Observations without a timestamp are spaced one minute apart; naive
    timestamps are read as UTC.
    """
    try:
        raw = _list_payload(load_document(observations_file), "observations")
        clock = datetime.now(timezone.utc)
        observations = [
            (
                Observation.from_dict(item),
                parse_timestamp(item.get("timestamp")) or clock + timedelta(minutes=index),
            )
            for index, item in enumerate(raw)
        ]
    except (CausalProbeError, KeyError, TypeError, ValueError, AttributeError) as e:
        _fail(e if isinstance(e, CausalProbeError) else CausalProbeError(f"Invalid observation: {e}"))

    detector = OracleDetector()
    state = detector.initial_state(session)
    transitions = []

    for index, (observation, timestamp) in enumerate(observations):
        transition = detector.process(state, observation, timestamp)
        state = transition.state
        if transition.message:
            transitions.append((index, transition))

    if json_output:
        console.print_json(json.dumps({
            "state": state.to_dict(),
            "streak": detector.streak_summary(state),
        }))
        return

    for index, transition in transitions:
        style = "green" if transition.entered else "yellow"
        console.print(
            f"[{style}]#{index + 1}[/{style}] {transition.message} "
            f"[dim](posterior {transition.posterior:.3f})[/dim]"
        )

    status = "[green]ACTIVE[/green]" if state.is_active else "[dim]inactive[/dim]"
    streak = detector.streak_summary(state)
    console.print(
        f"\nOracle phase: {status}   posterior {state.posterior:.3f}   "
        f"streak {streak['count']} (avg confidence {streak['average_confidence']:.2f})"
    )


@app.command("config")
def show_config(
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the active configuration."""
    try:
        values = describe_config(get_config())
    except (CausalProbeError, ValidationError) as e:
        _fail(e)

    if json_output:
        console.print_json(json.dumps(values, default=str))
        return

    table = Table()
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in values.items():
        table.add_row(key, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
