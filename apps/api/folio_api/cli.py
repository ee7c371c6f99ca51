from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from folio_api.build import SiteBuilder
from folio_api.config import Settings, load_settings, load_site_config
from folio_api.content import CONTENT_DIR, ContentTree
from folio_api.domain.exceptions import ConfigError, FolioError
from folio_api.gitinfo import GitCommandError, GitLastmod, GitRepo, git_available
from folio_api.log import configure_logging
from folio_api.modules import ModuleResolver
from folio_api.pipeline import Pipeline, RunRecord

app = typer.Typer(name="folio", help="Build and publish a Markdown blog.")
mod_app = typer.Typer(name="mod", help="Commands for theme and content modules.")
app.add_typer(mod_app)

console = Console()

SiteOption = typer.Option(None, "--site", "-s", help="Site directory (defaults to $SITE_DIR or ./site).")


def _settings(site: Optional[Path]) -> Settings:
    try:
        settings = load_settings(site)
    except ConfigError as e:
        _fail(e)
    configure_logging(settings.log_level)
    return settings


def _fail(err: Exception) -> NoReturn:
    console.print(f"[bold red]error:[/bold red] {err}")
    raise typer.Exit(code=1)


@mod_app.command("get")
def mod_get(
    update: bool = typer.Option(False, "--update", "-u", help="Re-download modules that are already present."),
    site: Optional[Path] = SiteOption,
):
    """
    Fetch the modules declared in site.yaml.
    """
    settings = _settings(site)
    try:
        config = load_site_config(settings.site_dir)
        results = ModuleResolver(settings.site_dir, settings.state_dir).fetch(config.modules, update=update)
    except FolioError as e:
        _fail(e)
    for r in results:
        state = "[green]fetched[/green]" if r.fetched else "[dim]cached[/dim]"
        console.print(f"{state} {r.path} ({r.sha256[:12]})")
    if not results:
        console.print("No modules declared.")


@app.command()
def build(
    minify: bool = typer.Option(False, "--minify/--no-minify", help="Minify HTML and XML output."),
    drafts: bool = typer.Option(False, "--drafts", "-D", help="Include draft content."),
    out: Optional[Path] = typer.Option(None, "--out", "-d", help="Output directory (defaults to <site>/public)."),
    site: Optional[Path] = SiteOption,
):
    """
    Render content and templates into a static tree.
    """
    settings = _settings(site)
    output_dir = out.resolve() if out else settings.output_dir
    repo = GitRepo(settings.site_dir)
    lastmod = GitLastmod(repo, settings.site_dir / CONTENT_DIR) if git_available() and repo.is_repo() else None
    try:
        config = load_site_config(settings.site_dir)
        report = SiteBuilder(
            settings.site_dir,
            config,
            minify=minify,
            build_drafts=drafts,
            lastmod_source=lastmod,
        ).build(output_dir)
    except (FolioError, GitCommandError) as e:
        _fail(e)
    for w in report.warnings:
        console.print(f"[yellow]warning:[/yellow] {w}")
    console.print(
        f"[bold green]Built[/bold green] {len(report.pages)} pages, {report.files} files "
        f"({len(report.drafts_skipped)} drafts skipped) in {report.duration_ms:.0f} ms -> {report.output_dir}"
    )


@app.command()
def check(site: Optional[Path] = SiteOption):
    """
    Validate front matter and report series ordering problems.
    """
    settings = _settings(site)
    errors, warnings = ContentTree(settings.site_dir).check()
    for w in warnings:
        console.print(f"[yellow]warning:[/yellow] {w}")
    for e in errors:
        console.print(f"[bold red]error:[/bold red] {e.code} {e.path}")
    if errors:
        raise typer.Exit(code=1)
    console.print("[bold green]Content OK[/bold green]")


@app.command()
def deploy(
    commit: Optional[str] = typer.Option(None, "--commit", help="Check out this commit before building."),
    no_update: bool = typer.Option(False, "--no-update", help="Reuse modules that are already present."),
    site: Optional[Path] = SiteOption,
):
    """
    Run checkout, provision, modules, build and publish.
    """
    settings = _settings(site)
    record = Pipeline(settings, update_modules=not no_update).run(RunRecord.new("cli", commit=commit))

    table = Table(title=f"run {record.id}")
    table.add_column("stage")
    table.add_column("status")
    table.add_column("ms", justify="right")
    table.add_column("error")
    for s in record.stages:
        colour = {"succeeded": "green", "failed": "red"}.get(s.status, "dim")
        table.add_row(s.name, f"[{colour}]{s.status}[/{colour}]", f"{s.duration_ms:.0f}", s.error or "")
    console.print(table)
    if record.status != "succeeded":
        raise typer.Exit(code=1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """
    Serve the webhook and content API.
    """
    import uvicorn

    uvicorn.run("folio_api.main:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    app()
