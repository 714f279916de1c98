"""Operator CLI for projects, repositories, tasks and workspaces."""

import threading
from pathlib import Path
from typing import Callable, List, TypeVar

import click
from rich.console import Console
from rich.table import Table

from ..core.config import DEFAULT_CONFIG_PATH, load_config
from ..core.errors import WorkspaceError
from ..core.models import CleanupReport, CleanupState, ExecutorProfileId, WorkspaceRepoInput
from ..services import build_services
from ..utils.rich_logging import setup_rich_logging

console = Console()

T = TypeVar("T")


def _services(ctx):
    return ctx.obj["services"]


def _run_cancellable(fn: Callable[[threading.Event], T]) -> T:
    """Run ``fn`` in a worker thread; Ctrl-C cancels pending steps instead of killing scripts."""
    cancel = threading.Event()
    result: dict = {}

    def target():
        try:
            result["value"] = fn(cancel)
        except BaseException as e:
            result["error"] = e

    worker = threading.Thread(target=target, daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.2)
        except KeyboardInterrupt:
            if not cancel.is_set():
                console.print("[yellow]Cancelling: waiting for the running script to finish...[/]")
                cancel.set()
    if "error" in result:
        raise result["error"]
    return result["value"]


def _print_report(report: CleanupReport) -> None:
    color = "green" if report.state == CleanupState.DONE else "red"
    console.print(f"[bold]Workspace {report.workspace_id}[/]: [{color}]{report.state.value}[/]"
                  + (" [yellow](cancelled)[/]" if report.cancelled else ""))
    if report.is_empty:
        console.print("  Nothing to clean up")
        return

    table = Table()
    table.add_column("Repository")
    table.add_column("Script")
    table.add_column("Worktree")
    failed = {f.repo_id: f.cause for f in report.worktrees_failed_to_remove}
    for outcome in report.per_repo:
        if outcome.repo_id in report.worktrees_removed:
            worktree = "[green]removed[/]"
        elif outcome.repo_id in failed:
            worktree = f"[red]{failed[outcome.repo_id]}[/]"
        else:
            worktree = "kept"
        script = outcome.script_status.value
        if outcome.error:
            script += f" ({outcome.error})"
        table.add_row(outcome.repo_id, script, worktree)
    console.print(table)
    project_status = report.project_script_status.value if report.project_script_status else "-"
    console.print(f"  Project script: {project_status}"
                  + (f" ({report.project_script_error})" if report.project_script_error else ""))


@click.group()
@click.option("--config", "-c", "config_path", default=str(DEFAULT_CONFIG_PATH), help="Config file")
@click.pass_context
def cli(ctx, config_path):
    """Workspace Orchestrator - multi-repo worktrees for task attempts."""
    config = load_config(Path(config_path))
    setup_rich_logging(config.log_level, config.log_file)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["services"] = build_services(config)


# ============== Projects ==============


@cli.group()
def project():
    """Manage projects."""


@project.command("create")
@click.argument("name")
@click.option("--cleanup-script", default=None, help="Runs once per cleanup event")
@click.pass_context
def project_create(ctx, name, cleanup_script):
    created = _services(ctx).registry.create_project(name, cleanup_script)
    console.print(f"[green]✓ Created project {created.name}[/] ({created.id})")


@project.command("list")
@click.pass_context
def project_list(ctx):
    table = Table()
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Cleanup script")
    for p in _services(ctx).registry.list_projects():
        table.add_row(p.id, p.name, p.worktree_cleanup_script or "-")
    console.print(table)


@project.command("set-cleanup-script")
@click.argument("project_id")
@click.argument("script", required=False)
@click.pass_context
def project_set_cleanup_script(ctx, project_id, script):
    """Set (or clear, when SCRIPT is omitted) the project cleanup script."""
    _services(ctx).registry.update_project(project_id, worktree_cleanup_script=script)
    console.print("[green]✓ Updated[/]" if script else "[green]✓ Cleared[/]")


@project.command("delete")
@click.argument("project_id")
@click.pass_context
def project_delete(ctx, project_id):
    """Clean up every task of a project, then delete it."""
    services = _services(ctx)
    services.registry.get_project(project_id)
    for task in services.registry.list_tasks(project_id):
        reports = _run_cancellable(lambda cancel, t=task: services.cleanup.delete_task(t.id, cancel))
        for report in reports:
            _print_report(report)
    if services.registry.list_tasks(project_id):
        console.print("[red]Some tasks could not be cleaned up; project kept[/]")
        raise SystemExit(1)
    services.registry.delete_project(project_id)
    console.print(f"[green]✓ Deleted project {project_id}[/]")


# ============== Repositories ==============


@cli.group()
def repo():
    """Manage repositories within a project."""


@repo.command("add")
@click.argument("project_id")
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option("--name", "display_name", default=None, help="Display name")
@click.option("--cleanup-script", default=None, help="Runs once per repository before its worktree is removed")
@click.option("--copy-files", default=None, help="Comma-separated files copied into new worktrees")
@click.pass_context
def repo_add(ctx, project_id, path, display_name, cleanup_script, copy_files):
    added = _services(ctx).registry.add_repo_to_project(
        project_id, path, display_name, cleanup_script, copy_files
    )
    console.print(f"[green]✓ Added {added.display_name}[/] ({added.id})")


@repo.command("list")
@click.argument("project_id")
@click.pass_context
def repo_list(ctx, project_id):
    table = Table()
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Path")
    table.add_column("Cleanup script")
    for r in _services(ctx).registry.find_repos_for_project(project_id):
        table.add_row(r.id, r.display_name, r.git_repo_path, r.worktree_cleanup_script or "-")
    console.print(table)


@repo.command("set-cleanup-script")
@click.argument("project_id")
@click.argument("repo_id")
@click.argument("script", required=False)
@click.pass_context
def repo_set_cleanup_script(ctx, project_id, repo_id, script):
    """Set (or clear, when SCRIPT is omitted) a repository cleanup script."""
    _services(ctx).registry.update_project_repo(project_id, repo_id, worktree_cleanup_script=script)
    console.print("[green]✓ Updated[/]" if script else "[green]✓ Cleared[/]")


@repo.command("remove")
@click.argument("project_id")
@click.argument("repo_id")
@click.pass_context
def repo_remove(ctx, project_id, repo_id):
    _services(ctx).registry.remove_repo_from_project(project_id, repo_id)
    console.print(f"[green]✓ Removed {repo_id}[/]")


# ============== Tasks ==============


@cli.group()
def task():
    """Manage tasks."""


@task.command("create")
@click.argument("project_id")
@click.argument("title")
@click.pass_context
def task_create(ctx, project_id, title):
    created = _services(ctx).registry.create_task(project_id, title)
    console.print(f"[green]✓ Created task[/] ({created.id})")


@task.command("delete")
@click.argument("task_id")
@click.pass_context
def task_delete(ctx, task_id):
    """Run cleanup for every attempt of a task, then delete it."""
    services = _services(ctx)
    reports = _run_cancellable(lambda cancel: services.cleanup.delete_task(task_id, cancel))
    for report in reports:
        _print_report(report)
    if any(r.state != CleanupState.DONE or r.cancelled for r in reports):
        raise SystemExit(1)


# ============== Attempts ==============


@cli.group()
def attempt():
    """Create and clean up task attempts (workspaces)."""


def _parse_repo_inputs(values: List[str]) -> List[WorkspaceRepoInput]:
    inputs = []
    for value in values:
        repo_id, _, base_ref = value.partition(":")
        inputs.append(WorkspaceRepoInput(project_repo_id=repo_id, base_ref=base_ref or None))
    return inputs


@attempt.command("create")
@click.argument("task_id")
@click.option("--executor", "-e", required=True, help="Executor profile, e.g. CLAUDE_CODE")
@click.option("--variant", default=None, help="Executor profile variant")
@click.option("--repo", "-r", "repos", multiple=True, required=True, help="REPO_ID[:BASE_REF], repeatable")
@click.option("--branch", default=None, help="Branch name (derived when omitted)")
@click.pass_context
def attempt_create(ctx, task_id, executor, variant, repos, branch):
    workspace = _services(ctx).provisioner.create(
        task_id=task_id,
        executor_profile_id=ExecutorProfileId(executor=executor, variant=variant),
        repos=_parse_repo_inputs(list(repos)),
        branch_name=branch,
    )
    console.print(f"[green]✓ Created workspace {workspace.id}[/] on {workspace.branch_name}")
    for record in workspace.worktrees:
        console.print(f"  {record.repo_name}: {record.path}")


@attempt.command("list")
@click.argument("task_id")
@click.pass_context
def attempt_list(ctx, task_id):
    table = Table()
    table.add_column("ID")
    table.add_column("Created")
    table.add_column("Executor")
    table.add_column("Branch")
    table.add_column("Worktrees")
    for ws in _services(ctx).workspaces.list_for_task(task_id):
        table.add_row(
            ws.id,
            ws.created_at.strftime("%Y-%m-%d %H:%M"),
            ws.executor_profile_id.executor,
            ws.branch_name or "-",
            str(len(ws.worktrees)),
        )
    console.print(table)


@attempt.command("cleanup")
@click.argument("workspace_id")
@click.pass_context
def attempt_cleanup(ctx, workspace_id):
    """Run cleanup scripts and remove a workspace's worktrees."""
    services = _services(ctx)
    report = _run_cancellable(lambda cancel: services.cleanup.cleanup_workspace(workspace_id, cancel))
    _print_report(report)
    if report.state != CleanupState.DONE:
        raise SystemExit(1)


# ============== Server ==============


@cli.command()
@click.option("--host", default="127.0.0.1")
@click.option("--port", "-p", default=8080, type=int)
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP API."""
    from ..web.server import run_server

    run_server(ctx.obj["config"], host=host, port=port)


def main():
    try:
        cli(standalone_mode=True)
    except WorkspaceError as e:
        console.print(f"[red]Error ({e.kind}): {e.message}[/]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
