"""
TalkBridge CLI - operator commands for the bot backend.

Runs the webhook server and the queue worker, manages the job queue,
ingests knowledge base documents and edits bot settings.
"""

import uuid
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from talkbridge.logging_config import setup_logging

app = typer.Typer(
    name="talkbridge",
    help="TalkBridge - Nextcloud Talk bot backend",
    no_args_is_help=True,
)

console = Console()


def _init_logging() -> None:
    try:
        setup_logging(context="cli")
    except PermissionError:
        import logging

        logging.basicConfig(level=logging.INFO)


def _build_gateway():
    from talkbridge.config import settings
    from talkbridge.llm.gateway import LLMGateway

    if not settings.ai_api_key:
        console.print("[bold red]Error:[/bold red] AI_API_KEY not set in environment")
        raise typer.Exit(1)
    return LLMGateway.from_settings(settings)


def _build_worker(batch_size: Optional[int] = None):
    from talkbridge.config import settings
    from talkbridge.db.connection import get_background_session_factory
    from talkbridge.jobs.worker import QueueWorker
    from talkbridge.talk.client import TalkClient, TalkConfig

    return QueueWorker(
        session_factory=get_background_session_factory(),
        gateway=_build_gateway(),
        talk_client=TalkClient(TalkConfig.from_settings(settings)),
        batch_size=batch_size or settings.worker_batch_size,
        poll_interval=settings.worker_poll_interval,
    )


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """
    Start the webhook server.
    """
    import uvicorn

    console.print("[bold green]Starting TalkBridge API server...[/bold green]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Reload: {reload}")
    console.print(f"\n  Webhook URL: http://{host}:{port}/webhook")

    uvicorn.run(
        "talkbridge.api.app:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def worker(
    batch_size: Optional[int] = typer.Option(None, help="Jobs claimed per batch"),
) -> None:
    """
    Run the queue worker until interrupted.
    """
    try:
        setup_logging(context="worker")
    except PermissionError:
        _init_logging()

    queue_worker = _build_worker(batch_size)
    console.print("[bold green]Queue worker running[/bold green] (Ctrl+C to stop)")
    try:
        queue_worker.run()
    except KeyboardInterrupt:
        queue_worker.stop()
    stats = queue_worker.get_stats()
    console.print(
        f"Completed: {stats['jobs_completed']}, Failed: {stats['jobs_failed']}"
    )


@app.command("process-queue")
def process_queue(
    limit: Optional[int] = typer.Option(None, help="Maximum jobs to process"),
) -> None:
    """
    Process one batch of queued jobs and exit (for cron).
    """
    _init_logging()
    stats = _build_worker(limit).process_queue(limit)
    console.print(
        f"[green]✓[/green] Processed: {stats.processed}, Failed: {stats.failed}, "
        f"Total: {stats.total}"
    )


@app.command("queue-stats")
def queue_stats() -> None:
    """
    Show job counts by status.
    """
    from talkbridge.db.connection import db_session
    from talkbridge.jobs.queue import JobQueue

    with db_session() as session:
        stats = JobQueue(session).get_stats()

    table = Table(title="Job queue")
    table.add_column("Status")
    table.add_column("Jobs", justify="right")
    for name in ("pending", "processing", "completed", "failed", "total"):
        table.add_row(name, str(getattr(stats, name)))
    console.print(table)


@app.command()
def requeue(
    stale_minutes: Optional[int] = typer.Option(
        None,
        "--stale-minutes",
        help="Instead of failed jobs, reclaim jobs stuck in processing for this long",
    ),
    job_id: Optional[list[int]] = typer.Option(None, "--job-id", help="Only these job ids"),
) -> None:
    """
    Move failed (or stale processing) jobs back to pending.
    """
    from talkbridge.db.connection import db_session
    from talkbridge.jobs.queue import JobQueue

    with db_session() as session:
        queue = JobQueue(session)
        if stale_minutes is not None:
            count = queue.reclaim_stale(stale_minutes)
            console.print(f"[green]✓[/green] Reclaimed {count} stale job(s)")
        else:
            count = queue.requeue(job_ids=job_id or None)
            console.print(f"[green]✓[/green] Requeued {count} failed job(s)")


@app.command("purge-jobs")
def purge_jobs(
    status: str = typer.Option(
        "completed", help="Status to purge: completed, failed or all"
    ),
    older_than_days: int = typer.Option(0, help="Only jobs older than this many days"),
) -> None:
    """
    Delete finished jobs.
    """
    from talkbridge.db.connection import db_session
    from talkbridge.jobs.queue import JobQueue
    from talkbridge.models.db import JobStatus

    choices = {
        "completed": (JobStatus.COMPLETED,),
        "failed": (JobStatus.FAILED,),
        "all": (JobStatus.COMPLETED, JobStatus.FAILED),
    }
    if status not in choices:
        console.print(f"[bold red]Error:[/bold red] Unknown status: {status}")
        raise typer.Exit(1)

    with db_session() as session:
        count = JobQueue(session).purge(choices[status], older_than_days)
    console.print(f"[green]✓[/green] Purged {count} job(s)")


def _build_processor(session, gateway):
    from talkbridge.db.repositories.setting import SettingRepository
    from talkbridge.rag.documents import DocumentProcessor

    bot_settings = SettingRepository(session).load_snapshot()
    return DocumentProcessor(
        session,
        gateway,
        chunk_size=bot_settings.rag_chunk_size,
        chunk_overlap=bot_settings.rag_chunk_overlap,
        embedding_model=bot_settings.embedding_model,
    )


def _parse_document_id(document_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(document_id)
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Invalid document id: {document_id}")
        raise typer.Exit(1)


@app.command()
def ingest(
    path: str = typer.Argument(..., help="Path to a text, markdown, csv, json, html, pdf or docx file"),
    mime_type: Optional[str] = typer.Option(None, help="Override the detected MIME type"),
    embed: bool = typer.Option(
        True, "--embed/--no-embed", help="Embed now, or leave it for process-documents"
    ),
) -> None:
    """
    Add a document to the knowledge base and embed it.
    """
    from talkbridge.db.connection import db_session
    from talkbridge.exceptions import DocumentProcessingError

    _init_logging()
    file_path = Path(path)
    if not file_path.is_file():
        console.print(f"[bold red]Error:[/bold red] File not found: {path}")
        raise typer.Exit(1)

    gateway = _build_gateway()
    with db_session() as session:
        processor = _build_processor(session, gateway)
        try:
            document = processor.add_document(file_path.name, file_path.read_bytes(), mime_type)
        except DocumentProcessingError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)
        document_id = document.id
        if not embed:
            console.print(f"[green]✓[/green] Document {document_id} registered")
            return
        result = processor.process_document(document.id)

    if result.success:
        console.print(f"[green]✓[/green] Document {document_id}: {result.stored} chunk(s) embedded")
    else:
        console.print(
            f"[yellow]⚠[/yellow] Document {document_id}: {result.stored} chunk(s) embedded, "
            f"failed chunks: {result.failed_chunks}"
        )
        raise typer.Exit(1)


@app.command("process-documents")
def process_documents(
    limit: Optional[int] = typer.Option(None, help="Maximum documents to process"),
) -> None:
    """
    Embed every document registered with --no-embed.
    """
    from talkbridge.db.connection import db_session

    _init_logging()
    gateway = _build_gateway()
    with db_session() as session:
        counts = _build_processor(session, gateway).process_pending(limit)

    console.print(
        f"[green]✓[/green] Processed {counts['processed']} document(s), "
        f"{counts['failed']} with failures"
    )
    if counts["failed"]:
        raise typer.Exit(1)


@app.command()
def reprocess(
    document_id: str = typer.Argument(..., help="Document UUID"),
) -> None:
    """
    Re-chunk and re-embed a document.
    """
    from talkbridge.db.connection import db_session
    from talkbridge.exceptions import DocumentProcessingError

    _init_logging()
    doc_uuid = _parse_document_id(document_id)

    gateway = _build_gateway()
    with db_session() as session:
        processor = _build_processor(session, gateway)
        try:
            result = processor.reprocess_document(doc_uuid)
        except DocumentProcessingError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)

    status = "[green]✓[/green]" if result.success else "[yellow]⚠[/yellow]"
    console.print(f"{status} {result.stored} chunk(s) embedded, failed: {result.failed_chunks}")


@app.command("delete-document")
def delete_document(
    document_id: str = typer.Argument(..., help="Document UUID"),
) -> None:
    """
    Remove a document with its chunks and embeddings.
    """
    from talkbridge.db.connection import db_session

    _init_logging()
    doc_uuid = _parse_document_id(document_id)

    gateway = _build_gateway()
    with db_session() as session:
        deleted = _build_processor(session, gateway).delete_document(doc_uuid)

    if not deleted:
        console.print(f"[bold red]Error:[/bold red] Document {document_id} not found")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Deleted document {document_id}")


@app.command()
def models() -> None:
    """
    List models offered by the LLM API.
    """
    gateway = _build_gateway()
    result = gateway.list_models()
    if not result.ok:
        console.print(f"[bold red]Error:[/bold red] {result.error}")
        raise typer.Exit(1)
    for entry in result.data.get("data", []):
        console.print(f"  {entry.get('id', '?')}")


@app.command("init-db")
def init_db_command() -> None:
    """
    Create database tables.
    """
    from talkbridge.db.connection import init_db

    init_db()
    console.print("[green]✓[/green] Database tables created")


@app.command("set-setting")
def set_setting(
    key: str = typer.Argument(..., help="Setting key"),
    value: str = typer.Argument(..., help="Setting value (JSON array for question lists)"),
) -> None:
    """
    Store a bot setting (system prompt, model, questions...).
    """
    from talkbridge.db.connection import db_session
    from talkbridge.db.repositories.setting import SettingRepository
    from talkbridge.models.bot_settings import BotSettings

    if key not in BotSettings.recognized_keys():
        console.print(f"[bold red]Error:[/bold red] Unknown setting: {key}")
        console.print(f"  Known settings: {', '.join(BotSettings.recognized_keys())}")
        raise typer.Exit(1)

    with db_session() as session:
        SettingRepository(session).set_value(key, value)
    console.print(f"[green]✓[/green] {key} updated")


@app.command("show-settings")
def show_settings() -> None:
    """
    Show the effective bot settings.
    """
    from talkbridge.db.connection import db_session
    from talkbridge.db.repositories.setting import SettingRepository

    with db_session() as session:
        snapshot = SettingRepository(session).load_snapshot()

    table = Table(title="Bot settings")
    table.add_column("Key")
    table.add_column("Value")
    for key, value in snapshot.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
