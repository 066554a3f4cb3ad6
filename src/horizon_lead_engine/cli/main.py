"""Main CLI entry point for the horizon-leads command."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..analytics import AnalyticsEngine, Timeframe
from ..core.config import EngineConfigManager
from ..core.scorer import LeadScorer

console = Console()

GRADE_COLORS = {"A": "red", "B": "yellow", "C": "blue", "D": "dim", "F": "dim red"}


def _load_records(path: Path) -> Any:
    """Load a JSON document, or a list of records from a .jsonl file."""
    try:
        with open(path, 'r') as f:
            if path.suffix == ".jsonl":
                return [json.loads(line) for line in f if line.strip()]
            return json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}")


def _group_interactions(data: Any) -> Dict[str, List[Dict]]:
    """Accept either {lead_id: [...]} or a flat list of interactions with lead_id."""
    if data is None:
        return {}
    if isinstance(data, dict):
        return {str(k): v for k, v in data.items()}
    if isinstance(data, list):
        grouped: Dict[str, List[Dict]] = {}
        for item in data:
            if isinstance(item, dict) and item.get("lead_id") is not None:
                grouped.setdefault(str(item["lead_id"]), []).append(item)
        return grouped
    raise click.BadParameter("interactions must be a JSON object or list", param_hint="--interactions")


def _get_config_manager(config_path: Optional[str]) -> EngineConfigManager:
    return EngineConfigManager(Path(config_path) if config_path else None)


@click.group()
@click.version_option(version=__version__, prog_name="horizon-leads")
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ...)")
@click.option("--config", "config_path", help="Custom engine config path")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], config_path: Optional[str]):
    """Horizon Lead Engine - housing lead qualification and analytics.

    \b
    Quick Start:
      horizon-leads score lead.json -i interactions.json   # Score one lead
      horizon-leads rank leads.json -i interactions.json   # Rank many leads
      horizon-leads replay events.jsonl --timeframe 7d     # Rebuild analytics
    """
    manager = _get_config_manager(config_path)
    level = (log_level or manager.config.log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))

    ctx.ensure_object(dict)
    ctx.obj["config_manager"] = manager


# ============================================================================
# SCORING COMMANDS
# ============================================================================

@cli.command()
@click.argument("lead_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--interactions", "-i", "interactions_file",
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON list of the lead's interactions")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def score(lead_file: Path, interactions_file: Optional[Path], as_json: bool):
    """Score a single lead."""
    lead = _load_records(lead_file)
    if not isinstance(lead, dict):
        raise click.BadParameter("lead file must contain a JSON object", param_hint="LEAD_FILE")

    interactions = _load_records(interactions_file) if interactions_file else []
    if not isinstance(interactions, list):
        raise click.BadParameter("interactions must be a JSON list", param_hint="--interactions")

    scorer = LeadScorer()
    result = scorer.score(lead, interactions)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    color = GRADE_COLORS.get(result.grade.value, "")
    console.print(Panel.fit(
        scorer.explain_score(result),
        title=f"[{color}]{lead.get('name') or lead.get('id') or 'Lead'}[/{color}]",
    ))


@cli.command()
@click.argument("leads_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--interactions", "-i", "interactions_file",
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Interactions keyed by lead id, or a list with lead_id fields")
@click.option("--grade", "-g", type=click.Choice(["A", "B", "C", "D", "F"]), help="Filter by grade")
@click.option("--limit", "-n", default=20, help="Number of leads to show")
@click.option("--json", "as_json", is_flag=True, help="Print the ranking as JSON")
def rank(leads_file: Path, interactions_file: Optional[Path], grade: Optional[str], limit: int, as_json: bool):
    """Score a batch of leads and display them by score."""
    leads = _load_records(leads_file)
    if not isinstance(leads, list):
        raise click.BadParameter("leads file must contain a JSON list", param_hint="LEADS_FILE")

    interaction_map = _group_interactions(_load_records(interactions_file) if interactions_file else None)
    ranked = LeadScorer().score_leads([l for l in leads if isinstance(l, dict)], interaction_map)

    if grade:
        ranked = [s for s in ranked if s.result.grade.value == grade]
    ranked = ranked[:limit]

    if as_json:
        click.echo(json.dumps([s.to_dict() for s in ranked], indent=2))
        return

    if not ranked:
        console.print("[yellow]No leads found matching criteria.[/yellow]")
        return

    table = Table(title=f"Leads ({len(ranked)})" + (f" - grade {grade}" if grade else ""))
    table.add_column("ID", style="dim")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Grade", justify="center")
    table.add_column("Priority")
    table.add_column("Name", style="cyan", max_width=25)
    table.add_column("Source")
    table.add_column("Next Action")

    for scored in ranked:
        result = scored.result
        style = GRADE_COLORS.get(result.grade.value, "")
        table.add_row(
            str(scored.lead.id or ""),
            str(result.score),
            f"[{style}]{result.grade.value}[/{style}]",
            result.priority.value,
            scored.lead.name[:25],
            scored.lead.source,
            result.next_action.action.value if result.next_action else "",
        )

    console.print(table)


# ============================================================================
# ANALYTICS COMMANDS
# ============================================================================

@cli.command()
@click.argument("events_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--timeframe", "-t", type=click.Choice([t.value for t in Timeframe]), default="30d",
              help="Window for source and funnel analysis")
@click.option("--json", "as_json", is_flag=True, help="Print the analytics as JSON")
@click.pass_context
def replay(ctx: click.Context, events_file: Path, timeframe: str, as_json: bool):
    """Rebuild analytics from an event log and print the dashboard."""
    records = _load_records(events_file)
    if not isinstance(records, list):
        raise click.BadParameter("events file must contain a list of records", param_hint="EVENTS_FILE")

    engine = AnalyticsEngine(ctx.obj["config_manager"].config)
    applied = engine.replay(r for r in records if isinstance(r, dict))

    dashboard = engine.get_dashboard_metrics()
    sources = engine.get_lead_source_analysis(timeframe)
    funnel = engine.get_conversion_funnel(timeframe)

    if as_json:
        click.echo(json.dumps({
            "applied": applied,
            "dashboard": dashboard.to_dict(),
            "sources": {name: m.to_dict() for name, m in sources.items()},
            "funnel": funnel.to_dict(),
        }, indent=2))
        return

    console.print(Panel.fit(
        f"[bold]Leads:[/bold] today {dashboard.leads_today}, "
        f"week {dashboard.leads_this_week}, month {dashboard.leads_this_month}\n"
        f"[bold]Emails:[/bold] {dashboard.emails_sent} sent, "
        f"{dashboard.open_rate}% opened, {dashboard.click_rate}% clicked\n"
        f"[bold]Conversions:[/bold] {dashboard.conversions_total} (${dashboard.revenue:,.2f})\n"
        f"[bold]Avg response:[/bold] {dashboard.avg_response_time}ms",
        title=f"Dashboard ({applied} events replayed)",
    ))

    table = Table(title=f"Lead Sources ({timeframe})")
    table.add_column("Source", style="cyan")
    table.add_column("Leads", justify="right")
    table.add_column("Converted", justify="right")
    table.add_column("Conv. Rate", justify="right")
    table.add_column("Avg Value", justify="right")
    for name, m in sorted(sources.items(), key=lambda x: x[1].count, reverse=True):
        table.add_row(name, str(m.count), str(m.converted), f"{m.conversion_rate:.1f}%", f"{m.avg_value:.0f}")
    console.print(table)

    funnel_table = Table(title=f"Conversion Funnel ({timeframe})")
    funnel_table.add_column("Stage")
    funnel_table.add_column("Leads", justify="right")
    for stage, count in funnel.to_dict().items():
        funnel_table.add_row(stage, str(count))
    console.print(funnel_table)


# ============================================================================
# CONFIGURATION
# ============================================================================

@cli.group()
def config():
    """View or change engine settings."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context):
    """Show the effective engine configuration."""
    manager = ctx.obj["config_manager"]
    table = Table(title=str(manager.config_path))
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in manager.config.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str):
    """Change a setting and save it."""
    manager = ctx.obj["config_manager"]
    try:
        manager.set_value(key, value)
    except KeyError:
        raise click.BadParameter(f"unknown setting '{key}'", param_hint="KEY")
    except ValueError:
        raise click.BadParameter(f"invalid value '{value}' for {key}", param_hint="VALUE")
    console.print(f"[green]✓ {key} = {getattr(manager.config, key)}[/green]")


if __name__ == "__main__":
    cli()
