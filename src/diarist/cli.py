"""Command line interface for Diarist."""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import click
import yaml
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.syntax import Syntax

from diarist.config import (
    ConfigError,
    ConfigManager,
    DiaristConfig,
    assign_nested,
    default_store_root,
    resolve_with_precedence,
)
from diarist.logs import LOG_FILENAME, configure_logging
from diarist.pages import PageParseError, image_prefix, parse_page, render_editable
from diarist.store import Page, ShardStore, StoreError
from diarist.store.backup import BackupManager
from diarist.store.errors import SchemaVersionMismatch
from diarist.store.migration import (
    CURRENT_PAGE_VERSION,
    SchemaMigrator,
    VersionMarker,
    require_current,
)
from diarist.sync import DropboxClient, Reconciler, run_sync

LOGGER = logging.getLogger(__name__)

ACCESS_TOKEN_FILENAME = "access_token"

console = Console()


class VersionMismatchError(click.ClickException):
    """Signals that the store must be migrated before use."""

    exit_code = 2


@dataclass
class AppContext:
    """Per-invocation state shared by all commands."""

    root: Path
    _config: Optional[DiaristConfig] = field(default=None, repr=False)

    @property
    def config_manager(self) -> ConfigManager:
        return ConfigManager.for_store(self.root)

    @property
    def config(self) -> DiaristConfig:
        if self._config is None:
            try:
                self._config = self.config_manager.load()
            except ConfigError as exc:
                raise click.ClickException(str(exc)) from exc
            configure_logging(self._config.logging, self.root / LOG_FILENAME)
        return self._config

    def open_store(self, *, check_version: bool = True) -> ShardStore:
        """Prepare the store directories and enforce the page format version."""
        store = ShardStore(self.root)
        store.initialize()
        try:
            self.config_manager.ensure_exists()
        except OSError as exc:
            raise click.ClickException(f"Unable to create configuration: {exc}") from exc
        # Loading the config also installs the log handler.
        _ = self.config
        if check_version:
            try:
                require_current(VersionMarker(self.root))
            except SchemaVersionMismatch as exc:
                raise VersionMismatchError(str(exc)) from exc
            except StoreError as exc:
                raise click.ClickException(str(exc)) from exc
        return store


pass_app = click.make_pass_decorator(AppContext)


def _run(action: Callable[[], Any], failure: str) -> Any:
    """Invoke ``action``, turning store failures into CLI errors."""
    try:
        return action()
    except StoreError as exc:
        LOGGER.error("%s: %s", failure, exc)
        raise click.ClickException(f"{failure}: {exc}") from exc


def _local_tz():
    return datetime.now().astimezone().tzinfo


def _format_local(moment: datetime) -> str:
    return moment.astimezone(_local_tz()).strftime("%Y/%m/%d %H:%M")


def _print_headers(pages: list[Page]) -> None:
    for page in pages:
        console.print(f"{escape(page.title)} [yellow]{_format_local(page.created_at)}[/yellow]")


def _print_page(page: Page) -> None:
    console.print(f"## {escape(page.title)} [yellow]{_format_local(page.created_at)}[/yellow]")
    console.print(Markdown(page.text))
    console.print()


def parse_date_str(value: str, today: date | None = None) -> Optional[date]:
    """Parse ``D``, ``M/D`` or ``Y/M/D`` (``-`` also separates) into a date.

    Missing components default to the current year and month.
    """
    value = value.strip()
    if not value:
        return None
    today = today or date.today()
    try:
        parts = [int(part) for part in value.replace("-", "/").split("/")]
    except ValueError:
        return None

    try:
        if len(parts) == 1:
            return date(today.year, today.month, parts[0])
        if len(parts) == 2:
            return date(today.year, parts[0], parts[1])
        if len(parts) == 3:
            return date(parts[0], parts[1], parts[2])
    except ValueError:
        return None
    return None


def _edit(text: str, app: AppContext) -> Optional[str]:
    return click.edit(
        text,
        editor=app.config.editor.command,
        extension=".md",
        require_save=True,
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="diarist")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Store directory (defaults to $DIARIST_HOME or ~/.config/diarist).",
)
@click.pass_context
def cli(ctx: click.Context, root: Path | None) -> None:
    """Diarist keeps a weekly-sharded journal and syncs it to remote storage."""
    ctx.obj = AppContext(root=(root or default_store_root()).expanduser())


@cli.command("list")
@click.option("-l", "--limit", type=click.IntRange(min=0), help="Number of pages to show.")
@pass_app
def list_pages(app: AppContext, limit: Optional[int]) -> None:
    """List the newest visible pages."""
    store = app.open_store()
    count = app.config.listing.default_limit if limit is None else limit
    pages = _run(
        lambda: store.list_with_filter(count, lambda page: not page.hidden),
        "Unable to read pages",
    )
    _print_headers(pages)


cli.add_command(list_pages, name="ls")


def _store_images(store: ShardStore, images: list[tuple[Path, str]], *, strict: bool) -> bool:
    for source, file_name in images:
        if not source.is_file():
            shown = escape(str(source))
            if strict:
                console.print(f"[red]Image file `{shown}` does not exist.[/red]")
                return False
            console.print(f"[yellow]Image file `{shown}` does not exist; ignored.[/yellow]")
            continue
        _run(lambda: store.write_image(source, file_name), "Unable to store image")
    return True


@cli.command()
@click.option("-d", "--hidden", is_flag=True, help="Hide the page from list and show.")
@pass_app
def new(app: AppContext, hidden: bool) -> None:
    """Write a new page in the editor."""
    store = app.open_store()
    created_at = datetime.now(timezone.utc)

    edited = _edit("", app)
    try:
        parsed = parse_page(edited or "", image_prefix(created_at))
    except PageParseError as exc:
        console.print(f"[yellow]{escape(str(exc))}[/yellow]")
        return

    if not _store_images(store, parsed.images, strict=True):
        return

    page = Page.create(parsed.title, parsed.text, hidden=hidden, created_at=created_at)
    _run(lambda: store.write(page), "Unable to write page")
    console.print(f"[green]Saved {escape(page.title)}.[/green]")


@cli.command()
@pass_app
def amend(app: AppContext) -> None:
    """Edit the most recent page."""
    store = app.open_store()
    page = _run(store.latest, "Unable to read pages")
    if page is None:
        console.print("[yellow]No pages yet.[/yellow]")
        return

    edited = _edit(render_editable(page), app)
    try:
        parsed = parse_page(edited or "", image_prefix(page.created_at))
    except PageParseError as exc:
        console.print(f"[yellow]{escape(str(exc))}[/yellow]")
        return

    _store_images(store, parsed.images, strict=False)
    amended = page.amend(parsed.title, parsed.text)
    _run(lambda: store.write(amended), "Unable to write page")
    console.print(f"[green]Updated {escape(amended.title)}.[/green]")


@cli.command()
@pass_app
def lastdt(app: AppContext) -> None:
    """Print the creation time of the most recent page."""
    store = app.open_store()
    page = _run(store.latest, "Unable to read pages")
    if page is None:
        console.print("[yellow]No pages yet.[/yellow]")
        return
    click.echo(page.created_at.isoformat())


@cli.command()
@click.argument("day", required=False)
@pass_app
def show(app: AppContext, day: Optional[str]) -> None:
    """Print the visible pages written on DAY (D, M/D or Y/M/D; default today)."""
    store = app.open_store()
    target = parse_date_str(day) if day else date.today()
    if target is None:
        raise click.ClickException(f"Unable to parse date: {day}")

    pages = _run(lambda: store.pages_on(target, _local_tz()), "Unable to read pages")
    visible = sorted((page for page in pages if not page.hidden), key=lambda page: page.created_at)
    if not visible:
        console.print(f"[yellow]No pages on {target:%Y/%m/%d}.[/yellow]")
        return

    console.print(f"# {target:%Y/%m/%d}\n")
    for page in visible:
        _print_page(page)


@cli.command()
@click.argument("query")
@click.option("-t", "--title", "title_only", is_flag=True, help="Match titles only.")
@click.option("-b", "--text", "text_only", is_flag=True, help="Match bodies only.")
@click.option("-f", "--show-first", is_flag=True, help="Print the newest match in full.")
@click.option("-l", "--limit", type=click.IntRange(min=0), help="Maximum number of matches.")
@pass_app
def search(
    app: AppContext,
    query: str,
    title_only: bool,
    text_only: bool,
    show_first: bool,
    limit: Optional[int],
) -> None:
    """Find visible pages whose title or body contains QUERY."""
    store = app.open_store()
    if show_first:
        count = 1
    else:
        count = app.config.listing.default_limit if limit is None else limit

    def _matches(page: Page) -> bool:
        if page.hidden:
            return False
        if title_only:
            return query in page.title
        if text_only:
            return query in page.text
        return query in page.title or query in page.text

    pages = _run(lambda: store.list_with_filter(count, _matches), "Unable to read pages")
    if show_first:
        if pages:
            _print_page(pages[0])
        else:
            console.print("[yellow]No matching pages.[/yellow]")
        return
    _print_headers(pages)


@cli.command()
@click.option(
    "--token",
    prompt="Access token",
    hide_input=True,
    help="Bearer token for the remote store.",
)
@pass_app
def auth(app: AppContext, token: str) -> None:
    """Store the access token used by `sync`."""
    app.root.mkdir(parents=True, exist_ok=True)
    (app.root / ACCESS_TOKEN_FILENAME).write_text(token.strip(), encoding="utf-8")
    console.print("[green]Access token saved.[/green]")


@cli.command()
@pass_app
def sync(app: AppContext) -> None:
    """Reconcile local pages and images with the remote store."""
    store = app.open_store()
    token_path = app.root / ACCESS_TOKEN_FILENAME
    if not token_path.exists():
        raise click.ClickException("Not authenticated; run `diarist auth` first.")
    token = token_path.read_text(encoding="utf-8").strip()

    remote_settings = app.config.remote
    client = DropboxClient(
        token,
        timeout=remote_settings.timeout_seconds,
        api_url=remote_settings.api_url,
        content_url=remote_settings.content_url,
    )
    reconciler = Reconciler(
        store,
        client,
        pages_folder=remote_settings.pages_folder,
        images_folder=remote_settings.images_folder,
    )
    backups = BackupManager(store.root, store.page_dir)

    report = _run(lambda: run_sync(reconciler, backups), "Sync failed")
    parts = ", ".join(
        f"{kind}: {counts['downloaded']} down, {counts['uploaded']} up, {counts['merged']} merged"
        for kind, counts in report.as_dict().items()
    )
    console.print(f"[green]Sync complete ({parts}).[/green]")


@cli.command()
@pass_app
def fixpage(app: AppContext) -> None:
    """Upgrade stored pages to the current format."""
    store = app.open_store(check_version=False)
    marker = VersionMarker(store.root)
    stored = _run(marker.read, "Unable to read page version")
    migrator = SchemaMigrator(store.page_dir)

    changed = _run(lambda: migrator.migrate(stored, CURRENT_PAGE_VERSION), "Migration failed")
    if not changed:
        console.print("[yellow]Pages are already in the current format.[/yellow]")
        return
    _run(lambda: marker.write(CURRENT_PAGE_VERSION), "Unable to record page version")
    console.print(
        f"[green]Migrated pages from version {stored} to {CURRENT_PAGE_VERSION}.[/green]"
    )


@cli.group()
def config() -> None:
    """Manage Diarist configuration."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
@pass_app
def config_view(app: AppContext, no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = app.config_manager
    try:
        manager.ensure_exists()
        settings = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(settings.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
@pass_app
def config_set(app: AppContext, key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY."""
    manager = app.config_manager
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must be a dotted path such as 'listing.default_limit'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=DiaristConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()
    diff = list(
        difflib.unified_diff(
            before, after, fromfile="config.yaml (before)", tofile="config.yaml (after)", lineterm=""
        )
    )
    if diff:
        console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


@config.command("edit")
@pass_app
def config_edit(app: AppContext) -> None:
    """Open the configuration file in an editor."""
    manager = app.config_manager
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")
    if edited is None or edited == original:
        console.print("[yellow]No changes applied.[/yellow]")
        return

    try:
        parsed = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc
    if not isinstance(parsed, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")

    try:
        resolve_with_precedence(defaults=DiaristConfig(), file_overrides=parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(parsed)
    console.print("[green]Configuration updated successfully.[/green]")


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
