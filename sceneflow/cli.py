"""CLI entry-point: build, run, schedule and export scene queues."""

import asyncio
import json
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from sceneflow.config import QueueSettings, get_settings
from sceneflow.delivery.notify import ConsoleNotifier
from sceneflow.delivery.webhook import WEBHOOK_EVENTS, WebhookConfig
from sceneflow.enhance import CAMERA_STYLES, STYLES, SceneContext, generate_variations
from sceneflow.jobs.models import RepeatInterval
from sceneflow.logging_utils import configure_logging, export_logs
from sceneflow.runtime import Runtime
from sceneflow.tasks.export import ProfileFormatError, build_profile, read_profile, write_profile, write_results_csv
from sceneflow.tasks.models import TaskKind
from sceneflow.tasks.queue import SceneQueue, split_lines

app = typer.Typer(help="Bulk scene submission and orchestration")

_STATUS_STYLES = {"pending": "white", "generating": "cyan", "done": "green", "failed": "red"}


def _runtime(console: Console) -> Runtime:
    settings = get_settings()
    configure_logging(settings.sceneflow_log_level)
    return Runtime(settings, notifier=ConsoleNotifier(console))


def _stamp() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S")


def _parse_when(at: str | None, in_minutes: int | None) -> int:
    if at:
        return int(datetime.fromisoformat(at).timestamp() * 1000)
    if in_minutes is not None:
        return int((datetime.now().timestamp() + in_minutes * 60) * 1000)
    raise typer.BadParameter("Provide --at or --in-minutes")


def _fmt_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


# ---------------------------------------------------------------------------
# Queue building
# ---------------------------------------------------------------------------

@app.command("import")
def import_prompts(
    prompts_file: str = typer.Argument(..., help="Text file, one prompt per line"),
    variations: int = typer.Option(0, "--variations", help="Expand each line into N camera/time variations"),
    replace: bool = typer.Option(False, "--replace", help="Clear the current queue first"),
):
    """Append text scenes from a line-delimited file."""
    console = Console()
    path = Path(prompts_file)
    if not path.exists():
        console.print(f"[red]Error: file not found: {path}[/red]")
        raise typer.Exit(1)
    runtime = _runtime(console)
    session = runtime.session

    if replace or session.queue.mode is not TaskKind.TEXT:
        if session.queue.tasks and not replace:
            console.print("[red]Error: current queue holds image scenes. Use --replace.[/red]")
            raise typer.Exit(1)
        session.queue = SceneQueue(mode=TaskKind.TEXT, strategy=session.settings.queue_strategy)

    lines = split_lines(path.read_text(encoding="utf-8"))
    if variations > 0:
        lines = [v for line in lines for v in generate_variations(line, variations)]
    added = session.queue.add_prompts("\n".join(lines))
    session.save_state()
    console.print(f"Added {len(added)} scenes ({len(session.queue)} in queue)")


@app.command()
def images(
    paths: list[str] = typer.Argument(..., help="Image files"),
    prompts: str | None = typer.Option(None, "--prompts", help="Prompt file applied to images in order (cycled)"),
    sort: str | None = typer.Option(None, "--sort", help="name_asc | name_desc"),
    replace: bool = typer.Option(False, "--replace", help="Clear the current queue first"),
):
    """Append image scenes."""
    console = Console()
    missing = [p for p in paths if not Path(p).is_file()]
    if missing:
        console.print(f"[red]Error: not found: {', '.join(missing)}[/red]")
        raise typer.Exit(1)
    runtime = _runtime(console)
    session = runtime.session

    if replace or session.queue.mode is not TaskKind.IMAGE:
        if session.queue.tasks and not replace:
            console.print("[red]Error: current queue holds text scenes. Use --replace.[/red]")
            raise typer.Exit(1)
        session.queue = SceneQueue(mode=TaskKind.IMAGE, strategy=session.settings.queue_strategy)

    added = session.queue.add_images(paths)
    if sort:
        session.queue.sort_images(sort)
    if prompts:
        session.queue.apply_prompts_to_images(Path(prompts).read_text(encoding="utf-8"))
    session.save_state()
    console.print(f"Added {len(added)} images ({len(session.queue)} in queue)")


@app.command("list")
def list_queue(
    strategy: str | None = typer.Option(None, help="Display order: fifo | priority | short-first | shuffle"),
):
    """Show the queue and dashboard statistics."""
    console = Console()
    session = _runtime(console).session
    table = Table(title=f"{session.queue.mode.value.title()} queue")
    for column in ("Scene", "ID", "Status", "Progress", "Retries", "Prio", "Prompt"):
        table.add_column(column)
    for task in session.queue.display_order(strategy):
        style = _STATUS_STYLES.get(task.status.value, "white")
        prompt = task.text or (task.image.name if task.image else "")
        table.add_row(
            task.label,
            task.id,
            f"[{style}]{task.status.value}[/{style}]",
            f"{task.progress}%",
            str(task.retry_count),
            str(task.priority),
            prompt[:60],
        )
    console.print(table)
    stats = session.stats()
    console.print(
        f"Total {stats['total']} | done {stats['done']} | generating {stats['generating']} | "
        f"pending {stats['pending']} | failed {stats['failed']} | ETA {stats['etaMs'] // 60000} min"
    )


@app.command()
def configure(
    options: list[str] = typer.Argument(None, help="key=value pairs, e.g. batch_size=6 prompt_style=cinematic"),
):
    """Show or change the queue settings."""
    console = Console()
    runtime = _runtime(console)
    current = runtime.session.settings.model_dump()
    for option in options or []:
        if "=" not in option:
            console.print(f"[red]Error: expected key=value, got {option}[/red]")
            raise typer.Exit(1)
        key, value = option.split("=", 1)
        if key not in current:
            console.print(f"[red]Error: unknown setting {key}[/red]")
            raise typer.Exit(1)
        current[key] = value
    if options:
        if current["prompt_style"] not in STYLES and current["prompt_style"] != "none":
            console.print(f"[red]Error: unknown style. Choose from: none, {', '.join(STYLES)}[/red]")
            raise typer.Exit(1)
        runtime.session.update_settings(QueueSettings.model_validate(current))
        runtime.session.save_state()
    console.print_json(json.dumps(runtime.session.settings.model_dump(mode="json")))


@app.command()
def context(
    subject: str | None = typer.Option(None, help="Main character / subject"),
    setting: str | None = typer.Option(None, help="Location"),
    style: str | None = typer.Option(None, help="Visual style phrase"),
    mood: str | None = typer.Option(None, help="Mood"),
    camera: str | None = typer.Option(None, help=f"Camera style: {', '.join(CAMERA_STYLES)}"),
    clear: bool = typer.Option(False, "--clear", help="Reset the scene context"),
):
    """Show or change the scene context applied to every text scene."""
    console = Console()
    runtime = _runtime(console)
    session = runtime.session
    if camera and camera not in CAMERA_STYLES:
        console.print(f"[red]Error: unknown camera style. Choose from: {', '.join(CAMERA_STYLES)}[/red]")
        raise typer.Exit(1)
    data = {} if clear else session.context.model_dump()
    for key, value in (("subject", subject), ("setting", setting), ("style", style), ("mood", mood), ("camera", camera)):
        if value is not None:
            data[key] = value
    session.context = SceneContext.model_validate(data)
    session.save_state()
    console.print_json(json.dumps(session.context.model_dump()))


@app.command()
def webhook(
    url: str = typer.Argument("", help="Receiver URL (empty disables)"),
    event: list[str] = typer.Option(["task_complete", "queue_complete"], "--event", help="Events to send"),
):
    """Configure the webhook receiver."""
    console = Console()
    unknown = [e for e in event if e not in WEBHOOK_EVENTS]
    if unknown:
        console.print(f"[red]Error: unknown events {unknown}. Choose from {list(WEBHOOK_EVENTS)}[/red]")
        raise typer.Exit(1)
    runtime = _runtime(console)
    runtime.save_webhook_config(WebhookConfig(url=url, events=event))
    console.print("[green]Webhook saved.[/green]" if url else "Webhook disabled.")


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

@app.command()
def run(
    headless: bool = typer.Option(False, "--headless", help="Run the browser without a window"),
):
    """Open the host page and drive the queue until it drains (Ctrl-C stops)."""
    console = Console()
    runtime = _runtime(console)
    if headless:
        runtime.settings.sceneflow_headless = True
    if not runtime.session.has_work():
        console.print("[yellow]Queue is empty or already complete.[/yellow]")
        raise typer.Exit(1)

    async def _run() -> None:
        try:
            await runtime.attach_browser()
            await runtime.session.run()
        finally:
            await runtime.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")
    stats = runtime.session.stats()
    console.print(f"[green]Done.[/green] {stats['done']}/{stats['total']} scenes complete, {stats['failed']} failed")


@app.command()
def schedule(
    at: str | None = typer.Option(None, "--at", help="ISO date/time, e.g. 2026-01-31T09:00"),
    in_minutes: int | None = typer.Option(None, "--in-minutes", help="Fire N minutes from now"),
    repeat: RepeatInterval = typer.Option(RepeatInterval.NONE, "--repeat", help="none | hourly | daily | weekly"),
    name: str = typer.Option("", "--name", help="Label for the job"),
):
    """Schedule the current queue (tasks + settings) to run later. Requires `sceneflow daemon`."""
    console = Console()
    runtime = _runtime(console)
    snapshot = runtime.session.snapshot()
    if not snapshot["tasks"]:
        console.print("[red]Error: queue is empty[/red]")
        raise typer.Exit(1)
    firing_time = _parse_when(at, in_minutes)

    async def _schedule():
        return runtime.scheduler.create(firing_time, snapshot["tasks"], snapshot["settings"], repeat, name)

    job = asyncio.run(_schedule())
    console.print(f"Scheduled {job.id} at {_fmt_ms(job.firing_time)} (repeat: {job.repeat_interval.value})")


@app.command()
def jobs():
    """List scheduled jobs."""
    console = Console()
    runtime = _runtime(console)
    table = Table(title="Scheduled jobs")
    for column in ("ID", "Name", "Next run", "Repeat", "Tasks", "Status", "Fired"):
        table.add_column(column)
    for job in runtime.scheduler.list_jobs():
        table.add_row(
            job.id,
            job.name,
            _fmt_ms(job.firing_time),
            job.repeat_interval.value,
            str(len(job.task_snapshot)),
            job.status.value,
            str(job.fire_count),
        )
    console.print(table)


@app.command("cancel-job")
def cancel_job(job_id: str = typer.Argument(..., help="Job id")):
    """Cancel a scheduled job."""
    console = Console()
    runtime = _runtime(console)
    if not runtime.scheduler.cancel(job_id):
        console.print(f"[red]Error: job not found: {job_id}[/red]")
        raise typer.Exit(1)
    console.print(f"Cancelled {job_id}")


@app.command()
def daemon():
    """Restore scheduled jobs and wait for their wake-ups (Ctrl-C stops)."""
    console = Console()
    runtime = _runtime(console)

    async def _serve() -> None:
        count = runtime.scheduler.restore()
        console.print(f"Waiting on {count} scheduled job(s)...")
        try:
            await asyncio.Event().wait()
        finally:
            await runtime.close()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print("[yellow]Daemon stopped.[/yellow]")


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------

@app.command("export-csv")
def export_csv(out: str | None = typer.Option(None, "--out", help="Output file")):
    """Export task results as CSV."""
    console = Console()
    runtime = _runtime(console)
    path = Path(out) if out else runtime.settings.exports_dir / f"sceneflow-results-{_stamp()}.csv"
    write_results_csv(path, runtime.session.queue.tasks)
    console.print(f"Wrote {path}")


@app.command("export-profile")
def export_profile(out: str | None = typer.Option(None, "--out", help="Output file")):
    """Export settings, tasks and webhook config as a portable profile."""
    console = Console()
    runtime = _runtime(console)
    session = runtime.session
    path = Path(out) if out else runtime.settings.exports_dir / f"sceneflow-profile-{_stamp()}.json"
    write_profile(path, build_profile(session.queue.tasks, session.settings, runtime.webhook.config))
    console.print(f"Wrote {path}")


@app.command("import-profile")
def import_profile(profile_path: str = typer.Argument(..., help="Profile JSON")):
    """Replace the queue and settings with a profile's contents (tasks reset to Pending)."""
    console = Console()
    runtime = _runtime(console)
    try:
        profile = read_profile(Path(profile_path))
    except (ProfileFormatError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    session = runtime.session
    session.update_settings(profile.settings)
    mode = profile.tasks[0].kind if profile.tasks else session.queue.mode
    session.queue = SceneQueue(mode=mode, strategy=profile.settings.queue_strategy, tasks=profile.tasks)
    if profile.webhook is not None:
        runtime.save_webhook_config(profile.webhook)
    session.save_state()
    console.print(f"Imported {len(profile.tasks)} scenes")


@app.command("learn-selector")
def learn_selector(
    element: str = typer.Argument(..., help="Element name, e.g. generateButton"),
    pattern: str = typer.Argument(..., help="CSS selector or XPath (starting with //)"),
):
    """Teach the locator a new pattern; it is tried first from now on."""
    from sceneflow.locator import DEFAULT_PATTERNS, SelectorEngine

    console = Console()
    runtime = _runtime(console)
    if element not in DEFAULT_PATTERNS:
        console.print(f"[yellow]Warning: {element} is not a built-in element name[/yellow]")
    engine = SelectorEngine(host=None, clock=runtime.clock, store=runtime.store)
    engine.load_patterns()
    engine.learn(element, pattern)
    console.print(f"Learned {element}: {pattern}")


@app.command("export-logs")
def export_logs_cmd(out: str | None = typer.Option(None, "--out", help="Output file")):
    """Write the log entries captured during the last `run` or `daemon` session as JSON."""
    console = Console()
    runtime = _runtime(console)
    path = Path(out) if out else runtime.settings.exports_dir / f"sceneflow-logs-{_stamp()}.json"
    entries = runtime.last_run_logs()
    export_logs(path, entries)
    console.print(f"{len(entries)} entries")
    console.print(f"Wrote {path}")


if __name__ == "__main__":
    app()
