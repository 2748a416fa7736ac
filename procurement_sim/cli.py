"""
Command-line interface for the procurement simulator.
Runs sourcing scenarios against scripted agents, shows the decision and
saves results, scores and charts.
"""

import asyncio
import json
import logging.config
from pathlib import Path
from typing import Dict, List, Optional

import typer
import yaml
from pydantic import Field, ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from .agents import scripted_brand_factory, scripted_supplier_factory
from .catalog import DEFAULT_COUNTERPARTIES, default_order, load_catalog, load_counterparties
from .config import settings
from .exceptions import NegotiationError
from .guidance import UserIntervention, build_guidance_context, format_guidance
from .models import LineItemRequest, PriorityWeights, WireModel
from .scoring import scores_frame
from .storage import MessageStore
from .visualization import plot_price_progression, plot_score_breakdown
from .workflow import WorkflowResult, run_sourcing_workflow

app = typer.Typer(help="Procurement Negotiation Simulator")
console = Console()


class Scenario(WireModel):
    """A sourcing scenario as read from YAML."""

    quote_id: Optional[str] = None
    suppliers: List[str] = Field(default_factory=lambda: list(DEFAULT_COUNTERPARTIES))
    products: List[LineItemRequest] = Field(default_factory=default_order)
    priorities: PriorityWeights = Field(default_factory=PriorityWeights)
    max_rounds: Optional[int] = None
    user_notes: str = ""
    terminate_on_impasse: Optional[bool] = None
    brand: Dict[str, float] = Field(default_factory=dict)
    catalog_file: Optional[Path] = None
    counterparties_file: Optional[Path] = None


# ===== COMMANDS =====

@app.command()
def run(
    scenario_file: Path = typer.Argument(..., help="Path to YAML scenario file"),
    output: Optional[Path] = typer.Option(None, help="Output file for results (.json or .yaml)"),
    scores_csv: Optional[Path] = typer.Option(None, "--scores-csv", help="Write supplier scores as CSV"),
    visualize: bool = typer.Option(False, "--viz", help="Save price and score charts"),
    seed: Optional[int] = typer.Option(None, help="Seed for round-count jitter"),
    db: Optional[str] = typer.Option(None, help="Database URL for message persistence"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Run a multi-supplier sourcing scenario."""
    logging.config.dictConfig(settings.get_logging_config("DEBUG" if verbose else None))

    console.print(f"[cyan]Loading scenario from {scenario_file}...[/cyan]")
    scenario = load_scenario(scenario_file)

    store = MessageStore.from_url(db) if db else None

    console.print(f"[yellow]Negotiating with {len(scenario.suppliers)} supplier(s)...[/yellow]")
    try:
        result = asyncio.run(run_scenario(scenario, seed=seed, store=store))
    except NegotiationError as exc:
        console.print(f"[red]Sourcing failed: {exc}[/red]")
        raise typer.Exit(code=1)

    display_result(result, verbose)

    if output:
        save_result(result, output)
        console.print(f"[green]Results saved to {output}[/green]")

    if scores_csv:
        scores_frame(result.decision).to_csv(scores_csv)
        console.print(f"[green]Scores saved to {scores_csv}[/green]")

    if visualize:
        settings.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        prices_path = settings.OUTPUT_DIR / f"{result.quote_id}_prices.png"
        scores_path = settings.OUTPUT_DIR / f"{result.quote_id}_scores.png"
        plot_price_progression(result.negotiations, save_path=prices_path)
        plot_score_breakdown(result.decision, save_path=scores_path)
        console.print(f"[green]Charts saved to {settings.OUTPUT_DIR}/[/green]")


@app.command()
def example(
    output: Path = typer.Option(Path("examples") / "sourcing_scenario.yaml", help="Where to write the scenario"),
):
    """Generate an example scenario file."""
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, 'w') as f:
        yaml.dump(create_example_scenario(), f, default_flow_style=False, sort_keys=False)
    console.print(f"[green]Example scenario created at {output}[/green]")


@app.command()
def guidance(
    messages: List[str] = typer.Argument(..., help="One or more user instructions"),
):
    """Show how user instructions are interpreted."""
    interventions = [
        UserIntervention(content=text, timestamp=float(i), message_id=f"cli-{i}")
        for i, text in enumerate(messages, 1)
    ]
    formatted = format_guidance(interventions)
    instructions = formatted.instructions()

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Instruction")
    table.add_column("Value", justify="right")
    table.add_row("Price limit", f"${instructions.price_limit:.2f}" if instructions.price_limit else "-")
    table.add_row("Lead time limit", f"{instructions.lead_time_limit} days" if instructions.lead_time_limit else "-")
    table.add_row("Accept if met", "✅" if instructions.accept_if_met else "-")
    table.add_row("Walk away", "✅" if instructions.walk_away else "-")
    table.add_row("Focus", ", ".join(instructions.focus_areas or []) or "-")
    table.add_row("Urgent", "✅" if formatted.has_urgent_request else "-")
    console.print(table)
    console.print(build_guidance_context(formatted))


# ===== HELPER FUNCTIONS =====

def load_scenario(scenario_file: Path) -> Scenario:
    """Load a scenario from YAML; exits on malformed input."""
    with open(scenario_file, 'r') as f:
        data = yaml.safe_load(f) or {}
    try:
        scenario = Scenario.model_validate(data)
    except ValidationError as exc:
        console.print(f"[red]Invalid scenario {scenario_file}:[/red]\n{exc}")
        raise typer.Exit(code=2)

    # Relative data files resolve against the scenario's directory
    for attr in ("catalog_file", "counterparties_file"):
        path = getattr(scenario, attr)
        if path is not None and not path.is_absolute():
            setattr(scenario, attr, scenario_file.parent / path)
    return scenario


async def run_scenario(scenario: Scenario, seed: Optional[int] = None,
                       store: Optional[MessageStore] = None) -> WorkflowResult:
    return await run_sourcing_workflow(
        scenario.products,
        scenario.suppliers,
        scripted_brand_factory(**scenario.brand),
        scripted_supplier_factory(),
        callbacks_factory=store.callbacks if store else None,
        priorities=scenario.priorities,
        quote_id=scenario.quote_id,
        max_rounds=scenario.max_rounds,
        user_notes=scenario.user_notes,
        profiles=load_counterparties(scenario.counterparties_file) if scenario.counterparties_file else None,
        catalog=load_catalog(scenario.catalog_file) if scenario.catalog_file else None,
        seed=seed,
        terminate_on_impasse=scenario.terminate_on_impasse,
    )


def display_result(result: WorkflowResult, verbose: bool = False):
    """Display negotiation outcomes and the decision."""
    console.print(f"\n[bold]Quote {result.quote_id}[/bold]")
    for negotiation in result.negotiations:
        console.print(f"  {negotiation.summary()}")
        if negotiation.substitution_summary:
            console.print(f"    [dim]{negotiation.substitution_summary}[/dim]")
    for counterparty_id, exc in result.failures:
        console.print(f"  [red]❌ {counterparty_id}: {exc}[/red]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Rank", justify="right")
    table.add_column("Supplier")
    table.add_column("Quality", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Lead Time", justify="right")
    table.add_column("Payment", justify="right")
    table.add_column("Total", justify="right")
    for entry in result.decision.ranking:
        s = result.decision.scores[entry.counterparty_id]
        table.add_row(
            str(entry.rank), entry.name,
            f"{s.quality_score:g}", f"{s.cost_score:g}", f"{s.lead_time_score:g}",
            f"{s.payment_terms_score:g}", f"{s.total_score:.2f}",
        )
    console.print(table)
    console.print(f"\n[green]{result.decision.summary}[/green]")

    if verbose:
        console.print(Markdown(result.decision.reasoning))
        for negotiation in result.negotiations:
            console.print(f"\n[yellow]Transcript: {negotiation.counterparty_name}[/yellow]")
            for message in negotiation.messages:
                console.print(f"  [{message.sender}] {message.content}")


def save_result(result: WorkflowResult, output_path: Path):
    """Save the workflow outcome to file."""
    data = {
        'quote_id': result.quote_id,
        'decision': result.decision.model_dump(mode='json'),
        'negotiations': [
            {
                'negotiation_id': n.negotiation_id,
                'counterparty_id': n.counterparty_id,
                'status': n.status.value,
                'round_count': n.round_count,
                'final_offer': n.final_offer.model_dump(mode='json') if n.final_offer else None,
                'substitution_summary': n.substitution_summary,
                'impasse_reason': n.impasse_reason,
            }
            for n in result.negotiations
        ],
        'failures': [{'counterparty_id': cid, 'error': str(exc)} for cid, exc in result.failures],
    }

    if output_path.suffix == '.json':
        with open(output_path, 'w') as f:
            json.dump(data, f, indent=2)
    else:
        with open(output_path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False)


def create_example_scenario() -> dict:
    """Three-supplier sneaker sourcing scenario."""
    return {
        'quote_id': 'q-example',
        'suppliers': list(DEFAULT_COUNTERPARTIES),
        'products': [item.model_dump() for item in default_order()],
        'priorities': {'quality': 30, 'cost': 40, 'lead_time': 20, 'payment_terms': 10},
        'max_rounds': 4,
        'user_notes': 'Spring collection launch, delivery needed within 60 days.',
        'brand': {'target_discount': 0.15, 'accept_threshold': 0.02},
    }


if __name__ == "__main__":
    app()
