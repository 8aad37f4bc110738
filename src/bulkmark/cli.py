"""CLI entry point for bulkmark."""

import logging
import sys

import click

from .background import HEARTBEAT_STORAGE_KEY, OrganizeWorker, ThreadedWorker, heartbeat_ping
from .bookmarks import ChromiumBookmarksFile
from .config import Config, load_config
from .display import format_path, group_by_root_folder
from .exceptions import BulkmarkError, ConfigError, InvalidTransitionError, LLMError
from .llm import check_api_key
from .messaging import Channel
from .models import (
    COMPLETED,
    ERROR,
    ORGANIZING,
    REVIEWING_ASSIGNMENTS,
    REVIEWING_PLAN,
    SELECTING,
    OrganizeSession,
)
from .orchestrator import OrganizeOrchestrator
from .scanner import bookmark_stats
from .services import DEFAULT_SERVICE_ID, get_service, get_service_ids
from .storage import CredentialStore, JsonFileStore, SessionStore
from .utils import now_ms, split_path
from .worker import DetachedLauncher


class App:
    """Collaborators shared by the commands of one CLI invocation."""

    def __init__(self, config: Config):
        self.config = config
        self.kv = JsonFileStore(config.data_dir)
        self.sessions = SessionStore(self.kv)
        self.credentials = CredentialStore(self.kv, config.env_api_keys)
        self.channel = Channel()
        self._orchestrator = None

    def orchestrator(self, needs_bookmarks: bool = False) -> OrganizeOrchestrator:
        """The attached orchestrator; scan and apply need the bookmarks file."""
        if needs_bookmarks:
            self.config.validate()
        if self._orchestrator is None:
            bookmarks_file = self.config.bookmarks_file
            store = None
            if bookmarks_file is not None and bookmarks_file.is_file():
                store = ChromiumBookmarksFile(bookmarks_file)
            self._orchestrator = OrganizeOrchestrator(
                self.sessions,
                store,
                self.credentials,
                self.channel,
                default_service_id=self.config.provider or DEFAULT_SERVICE_ID,
            )
            self._orchestrator.attach()
        return self._orchestrator

    def threaded_worker(self) -> ThreadedWorker:
        worker = OrganizeWorker(
            self.sessions,
            self.credentials,
            channel=self.channel,
            model=self.config.model or None,
            keepalive_interval=self.config.keepalive_interval,
            ping=heartbeat_ping(self.kv),
        )
        return ThreadedWorker(worker, self.channel)


def _fail(message: str, code: int = 2) -> None:
    click.echo(message, err=True)
    sys.exit(code)


def _root_names(session: OrganizeSession) -> list[str]:
    names = []
    for path in session.path_to_id_map:
        segments = split_path(path)
        if len(segments) == 1:
            names.append(segments[0])
    return names


def _echo_plan(session: OrganizeSession) -> None:
    plan = session.folder_plan
    if plan is None:
        return
    if plan.summary:
        click.echo(plan.summary)
    counts: dict[str, int] = {}
    for assignment in session.assignments:
        counts[assignment.suggested_path] = counts.get(assignment.suggested_path, 0) + 1
    for group, folders in group_by_root_folder(plan.folders, lambda f: f.path, _root_names(session)):
        click.echo(f"\n{group}")
        for folder in folders:
            marks = []
            if folder.is_new:
                marks.append("new")
            if folder.is_excluded:
                marks.append("excluded")
            suffix = f" [{', '.join(marks)}]" if marks else ""
            click.echo(f"  {format_path(folder.path)} ({counts.get(folder.path, 0)}){suffix}")
            if folder.description:
                click.echo(f"      {folder.description}")


def _echo_assignments(session: OrganizeSession) -> None:
    roots = _root_names(session)
    for group, assignments in group_by_root_folder(session.assignments, lambda a: a.suggested_path, roots):
        click.echo(f"\n{group}")
        for a in assignments:
            mark = "x" if a.is_approved else " "
            new = " (new)" if a.is_new_folder else ""
            click.echo(f"  [{mark}] {a.bookmark_id}  {a.bookmark_title}")
            click.echo(f"        {format_path(a.current_path)} -> {format_path(a.suggested_path)}{new}")
    click.echo(f"\n{session.approved_count} approved, {session.rejected_count} rejected")


def _echo_session(app: App, session: OrganizeSession) -> None:
    click.echo(f"Status: {session.status}")
    if session.status == SELECTING:
        selected = session.selected_folder_ids or []
        click.echo(f"{len(session.all_bookmarks)} bookmarks, {len(selected)} folder(s) selected")
    elif session.status == ORGANIZING:
        click.echo(f"Waiting for {session.service_id} to organize "
                   f"{len(session.bookmarks_to_organize)} bookmark(s)...")
        heartbeat = app.kv.get(HEARTBEAT_STORAGE_KEY)
        if heartbeat:
            click.echo(f"Last worker heartbeat {(now_ms() - heartbeat) // 1000}s ago")
    elif session.status == REVIEWING_PLAN:
        _echo_plan(session)
    elif session.status == REVIEWING_ASSIGNMENTS:
        _echo_assignments(session)
    elif session.status == COMPLETED:
        click.echo(f"Moved {session.applied_count} bookmark(s), skipped {session.skipped_count}")
    elif session.status == ERROR:
        click.echo(f"Error: {session.error_message}", err=True)


def _run(ctx: click.Context, action, needs_bookmarks: bool = False) -> OrganizeSession:
    """Run an orchestrator action and map failures to exit codes."""
    app: App = ctx.obj
    try:
        session = action(app.orchestrator(needs_bookmarks))
    except ConfigError as e:
        _fail(f"Configuration error: {e}")
    except InvalidTransitionError as e:
        _fail(str(e))
    except BulkmarkError as e:
        _fail(f"Error: {e}", 1)
    _echo_session(app, session)
    if session.status == ERROR:
        sys.exit(1)
    return session


@click.group()
@click.option(
    "--bookmarks",
    type=click.Path(),
    default=None,
    help="Path to the browser Bookmarks file (or BULKMARK_BOOKMARKS_FILE env var)",
)
@click.option(
    "--data-dir",
    type=click.Path(),
    default=None,
    help="Where the session and keys are stored (default: ~/.bulkmark)",
)
@click.option(
    "--provider",
    type=click.Choice(get_service_ids()),
    default=None,
    help="AI service used when none was chosen with 'use'",
)
@click.option(
    "--model",
    type=str,
    default=None,
    help="Model to use instead of the service default",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output",
)
@click.pass_context
def main(ctx, bookmarks, data_dir, provider, model, verbose):
    """Reorganize browser bookmarks with an AI-proposed folder plan.

    Typical run: scan, select, organize, approve-plan, apply.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(
            data_dir=data_dir,
            bookmarks_file=bookmarks,
            provider=provider,
            model=model,
            verbose=verbose,
            validate=False,
        )
    except ConfigError as e:
        _fail(f"Configuration error: {e}")
    ctx.obj = App(config)


@main.command()
@click.pass_context
def scan(ctx):
    """Read the bookmark tree and start a new session."""
    def action(orchestrator: OrganizeOrchestrator) -> OrganizeSession:
        if orchestrator.session.status in (COMPLETED, ERROR):
            orchestrator.acknowledge()
        return orchestrator.start_scan()
    _run(ctx, action, needs_bookmarks=True)


@main.command()
@click.pass_context
def folders(ctx):
    """List folders that hold bookmarks, marking the selected ones."""
    session = _run(ctx, lambda o: o.session)
    if session.status != SELECTING:
        return
    selected = set(session.selected_folder_ids or [])
    stats = bookmark_stats(session.all_bookmarks)
    seen = set()
    for bookmark in session.all_bookmarks:
        folder_id = bookmark.current_folder_id
        if folder_id in seen:
            continue
        seen.add(folder_id)
        mark = "x" if folder_id in selected else " "
        count = stats.by_folder.get(bookmark.current_folder_path, 0)
        click.echo(f"  [{mark}] {folder_id:>6}  {format_path(bookmark.current_folder_path)} ({count})")


@main.command()
@click.argument("folder_ids", nargs=-1)
@click.option("--all", "select_all", is_flag=True, default=False, help="Select every folder")
@click.option("--none", "select_none", is_flag=True, default=False, help="Deselect every folder")
@click.pass_context
def select(ctx, folder_ids, select_all, select_none):
    """Toggle folders in or out of the selection."""
    if select_all and select_none:
        _fail("Use only one of --all and --none")

    def action(orchestrator: OrganizeOrchestrator) -> OrganizeSession:
        if select_all:
            orchestrator.select_all_folders()
        elif select_none:
            orchestrator.deselect_all_folders()
        for folder_id in folder_ids:
            orchestrator.toggle_folder(folder_id)
        return orchestrator.session
    _run(ctx, action)


@main.command()
@click.option(
    "--detach",
    is_flag=True,
    default=False,
    help="Run the AI call in a background process and return at once",
)
@click.pass_context
def organize(ctx, detach):
    """Ask the AI service for a folder plan for the selected bookmarks."""
    app: App = ctx.obj
    if detach:
        launcher = DetachedLauncher(
            app.channel,
            app.sessions,
            app.config.data_dir,
            model=app.config.model,
            keepalive_interval=app.config.keepalive_interval,
        )
        launcher.attach()
        session = _run(ctx, lambda o: o.start_organizing())
        if session.status == ORGANIZING:
            click.echo("Running in the background; check progress with 'bulkmark status'.")
        return

    worker = app.threaded_worker()
    worker.start()
    try:
        def action(orchestrator: OrganizeOrchestrator) -> OrganizeSession:
            orchestrator.start_organizing()
            if orchestrator.waiting_for_ai:
                click.echo("Organizing...")
                worker.wait_idle()
                orchestrator.refresh()
            return orchestrator.session
        _run(ctx, action)
    finally:
        worker.stop(timeout=1.0)


@main.command()
@click.pass_context
def status(ctx):
    """Show the current session."""
    _run(ctx, lambda o: o.session)


@main.command()
@click.argument("path")
@click.pass_context
def exclude(ctx, path):
    """Toggle whether a proposed folder is excluded from the plan."""
    _run(ctx, lambda o: o.toggle_plan_folder(path))


@main.command("approve-plan")
@click.pass_context
def approve_plan(ctx):
    """Accept the plan, dropping moves into excluded folders."""
    _run(ctx, lambda o: o.approve_plan())


@main.command("reject-plan")
@click.pass_context
def reject_plan(ctx):
    """Discard the plan and go back to folder selection."""
    _run(ctx, lambda o: o.reject_plan())


@main.command()
@click.argument("bookmark_id")
@click.pass_context
def toggle(ctx, bookmark_id):
    """Approve or reject one proposed move."""
    _run(ctx, lambda o: o.toggle_assignment(bookmark_id))


@main.command("approve-all")
@click.pass_context
def approve_all(ctx):
    """Approve every proposed move."""
    _run(ctx, lambda o: o.approve_all_assignments())


@main.command("reject-all")
@click.pass_context
def reject_all(ctx):
    """Reject every proposed move."""
    _run(ctx, lambda o: o.reject_all_assignments())


@main.command()
@click.pass_context
def apply(ctx):
    """Move every approved bookmark."""
    _run(ctx, lambda o: o.apply_moves(), needs_bookmarks=True)


@main.command()
@click.pass_context
def reset(ctx):
    """Throw the session away."""
    app: App = ctx.obj
    app.orchestrator().reset()
    click.echo("Session cleared.")


@main.command()
@click.argument("service_id", type=click.Choice(get_service_ids()))
@click.pass_context
def use(ctx, service_id):
    """Choose the AI service for future organize runs."""
    app: App = ctx.obj
    app.credentials.select_service(service_id)
    click.echo(f"Using {get_service(service_id).name}")


@main.group()
def keys():
    """Manage API keys."""


@keys.command("set")
@click.argument("service_id", type=click.Choice(get_service_ids()))
@click.argument("api_key")
@click.pass_context
def keys_set(ctx, service_id, api_key):
    """Store the API key for a service."""
    app: App = ctx.obj
    service = get_service(service_id)
    api_key = api_key.strip()
    if not service.validate_key(api_key):
        _fail(f"That doesn't look like a {service.name} key (expected '{service.key_prefix}...').")
    app.credentials.set_api_key(service_id, api_key)
    click.echo(f"Saved {service.name} API key.")


@keys.command("test")
@click.argument("service_id", type=click.Choice(get_service_ids()))
@click.pass_context
def keys_test(ctx, service_id):
    """Check that the stored key for a service works."""
    app: App = ctx.obj
    service = get_service(service_id)
    try:
        api_key = app.credentials.get_api_key(service_id)
    except ConfigError as e:
        _fail(str(e))
    try:
        check_api_key(service_id, api_key, model=app.config.model or None)
    except LLMError as e:
        _fail(f"{service.name} key check failed: {e}", 1)
    click.echo(f"{service.name} API key works.")
