"""
PATCHBAY CLI

  patchbay ask <file> [--action ...] [--agent] [--apply]   (send code, optionally apply edits)
  patchbay apply <reply.md> --workspace <dir>             (apply a saved reply)
  patchbay tokens <file> [--aux <file>]                   (estimate request size)
  patchbay status                                         (config + API keys)
  patchbay init [<dir>]                                   (bootstrap .patchbay)
"""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text

from patchbay.applier import ApplyReport
from patchbay.audit_logger import AuditLogger
from patchbay.config_loader import PatchbayConfig, load_config, validate_api_keys
from patchbay.controller import Controller
from patchbay.event_bus import EventBus
from patchbay.identity import BANNER, __codename__, __tagline__, __version__
from patchbay.router import Router
from patchbay.tokens import estimate_tokens_sync

load_dotenv()
load_dotenv(Path.home() / ".patchbay" / ".env")

app = typer.Typer(
    name="patchbay",
    help=f"{__codename__}: {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

LANGUAGES = {
    ".py": "python", ".ts": "typescript", ".tsx": "typescriptreact",
    ".js": "javascript", ".jsx": "javascriptreact", ".rs": "rust",
    ".go": "go", ".java": "java", ".c": "c", ".h": "c", ".cpp": "cpp",
    ".cs": "csharp", ".rb": "ruby", ".php": "php", ".swift": "swift",
    ".kt": "kotlin", ".sh": "shellscript", ".sql": "sql", ".md": "markdown",
    ".json": "json", ".yaml": "yaml", ".yml": "yaml", ".html": "html", ".css": "css",
}


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


def _print_banner():
    console.print(f"[bright_cyan]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} · {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def ask(
    file: Path = typer.Argument(..., help="Source file to send"),
    action: str = typer.Option("explain", "--action", "-a", help="What to ask, e.g. 'refactor'"),
    language: Optional[str] = typer.Option(None, "--language", help="Language id (default: from extension)"),
    agent: bool = typer.Option(False, "--agent", help="Ask for file edits in agent-mode format"),
    apply_edits: bool = typer.Option(False, "--apply", help="Apply the returned edits (implies --agent)"),
    workspace: Path = typer.Option(Path("."), "--workspace", "-w", help="Workspace root for edits"),
    aux: Optional[List[Path]] = typer.Option(None, "--aux", help="Extra files counted toward the token budget"),
    save: bool = typer.Option(False, "--save", help="Save the raw reply as a markdown file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Send a file to the model and show (or apply) the reply."""
    _print_banner()
    _configure_logging(verbose)

    if not file.exists():
        console.print(f"[red]File not found: {file}[/]")
        raise typer.Exit(1)

    workspace = workspace.resolve()
    config = load_config(workspace)
    controller = _build_controller(config, workspace)

    code = file.read_text(encoding="utf-8")
    lang = language or LANGUAGES.get(file.suffix.lower(), "plaintext")
    agent_mode = agent or apply_edits

    cancel = threading.Event()
    try:
        with console.status("[cyan]Waiting for the model...[/]"):
            result = controller.request(
                code, lang, action,
                aux_files=[str(p) for p in aux or []],
                agent_mode=agent_mode,
                cancel=cancel,
            )
    except KeyboardInterrupt:
        cancel.set()
        console.print("[yellow]Cancelled.[/]")
        raise typer.Exit(130)

    if not result.ok:
        console.print(f"[red]✗ {result.failure.value}: {result.detail}[/]")
        raise typer.Exit(1)

    usage = getattr(controller.backend, "usage", None)
    if usage is not None:
        logger.debug(f"[ROUTER] Usage: {usage.summary()}")

    source = "cache" if result.cached else "model"
    console.print(f"[dim]~{result.estimated_tokens} tokens · from {source}[/]\n")
    console.print(Markdown(result.text))

    if save:
        saved = _save_reply(result.text, Path.cwd())
        console.print(f"\n[green]✅ Reply saved to {saved.name}[/]")

    if apply_edits:
        report = controller.apply_response(result.text, workspace)
        _print_apply_report(report)
        if not report.ok:
            raise typer.Exit(1)


@app.command()
def apply(
    reply: Path = typer.Argument(..., help="Markdown reply containing FILE blocks"),
    workspace: Path = typer.Option(Path("."), "--workspace", "-w", help="Workspace root for edits"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Apply the FILE blocks of a saved model reply."""
    _configure_logging(verbose)

    if not reply.exists():
        console.print(f"[red]Reply file not found: {reply}[/]")
        raise typer.Exit(1)

    workspace = workspace.resolve()
    config = load_config(workspace)
    controller = _build_controller(config, workspace)

    report = controller.apply_response(reply.read_text(encoding="utf-8"), workspace)
    _print_apply_report(report)
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def tokens(
    file: Path = typer.Argument(..., help="File to estimate"),
    aux: Optional[List[Path]] = typer.Option(None, "--aux", help="Extra files to include"),
    multiplier: Optional[float] = typer.Option(None, "--multiplier", help="Override the configured multiplier"),
):
    """Estimate how many tokens a request would use."""
    if not file.exists():
        console.print(f"[red]File not found: {file}[/]")
        raise typer.Exit(1)

    config = load_config(Path.cwd())
    mult = multiplier if multiplier is not None else config.limits.token_multiplier
    count = estimate_tokens_sync(
        file.read_text(encoding="utf-8"), [str(p) for p in aux or []], mult,
    )
    limit = config.limits.max_tokens
    color = "green" if count <= limit else "red"
    console.print(f"[{color}]~{count:,} tokens[/] (limit {limit:,})")


@app.command()
def status(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r"),
):
    """Check PATCHBAY configuration and readiness."""
    _print_banner()

    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")
    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)
    console.print(key_table)

    config = load_config(repo.resolve() if repo else None)
    console.print("\n[bold]Completion:[/]")
    console.print(f"  Model:       {config.completion.model}")
    console.print(f"  Stream:      {config.completion.stream}")
    console.print("\n[bold]Cache:[/]")
    console.print(f"  Enabled:     {config.cache.enable_cache}")
    console.print(f"  Max items:   {config.cache.max_items}")
    console.print(f"  TTL:         {config.cache.ttl_minutes} min")
    console.print("\n[bold]Limits:[/]")
    console.print(f"  Max tokens:  {config.limits.max_tokens:,}")
    console.print(f"  Multiplier:  {config.limits.token_multiplier}")
    console.print(
        f"  Rate:        {config.limits.max_requests_per_window} / {config.limits.window_ms} ms"
    )


@app.command()
def init(
    repo: Optional[Path] = typer.Argument(None, help="Path to repository"),
):
    """Initialize a .patchbay directory in a repository."""
    repo = (repo or Path.cwd()).resolve()
    pb_dir = repo / ".patchbay"
    (pb_dir / "logs").mkdir(parents=True, exist_ok=True)

    config_path = pb_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text("""# PATCHBAY repo-level config overrides
# These merge with the built-in defaults.

# completion:
#   model: "openai/gpt-4o"

# cache:
#   ttl_minutes: 30

# limits:
#   max_tokens: 6000
#   max_requests_per_window: 10
""")

    gitignore = repo / ".gitignore"
    entry = ".patchbay/logs/"
    if gitignore.exists():
        content = gitignore.read_text()
        if entry not in content:
            with open(gitignore, "a") as f:
                f.write(f"\n# PATCHBAY\n{entry}\n")
    else:
        gitignore.write_text(f"# PATCHBAY\n{entry}\n")

    console.print(f"[green]✓ Initialized {pb_dir}[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _build_controller(config: PatchbayConfig, workspace: Path) -> Controller:
    bus = EventBus()
    if config.workspace.audit_log:
        AuditLogger(str(workspace / config.workspace.log_dir / "events.jsonl"), bus)
    backend = Router(timeout=config.completion.timeout_seconds)
    return Controller(config=config, backend=backend, bus=bus)


def _save_reply(text: str, directory: Path) -> Path:
    stamp = datetime.now().strftime("%d%m%Y-%H%M%S")
    path = directory / f"{stamp}-response.md"
    path.write_text(text, encoding="utf-8")
    return path


def _print_apply_report(report: ApplyReport) -> None:
    if not report.results:
        console.print("[red]No code changes found in reply.[/]")
        return

    table = Table(title="Applied Changes", border_style="bright_cyan")
    table.add_column("File")
    table.add_column("Action")
    table.add_column("Outcome")
    table.add_column("Detail")

    for r in report.results:
        color = "green" if r.ok else "red"
        table.add_row(r.file_path, r.action, f"[{color}]{r.outcome}[/]", r.detail[:80])

    console.print(table)
    if report.parse_incomplete:
        console.print(f"[yellow]⚠ Reply was incomplete; {len(report.skipped)} entr(ies) skipped[/]")

    s = report.summary()
    console.print(f"\n[bold]{s['applied']}/{len(report.results)} applied[/]")


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(Text(str(msg).rstrip(), style="dim"), highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(Text(str(msg).rstrip(), style="dim"), highlight=False),
            level="WARNING",
            format="{message}",
        )
