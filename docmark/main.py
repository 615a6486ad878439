import asyncio
import sys
from pathlib import Path

import click

from docmark.backend import BackendBundle, BackendFactory
from docmark.config.settings import Settings
from docmark.logging.logger import Log
from docmark.processor.models import Operation
from docmark.workflow.state import SETTLED_STATES, WorkflowState
from docmark.workflow.workflow import Workflow, build_workflow


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Embed and extract document watermarks through the watermark gateway."""
    settings = Settings()
    Log.configure(settings.log_level)
    ctx.obj = settings


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--policy", "policy_id", required=True, help="Watermark policy id")
@click.option("--text", "watermark_text", required=True, help="Watermark text to embed")
@click.option("--biz-id", default=None, help="Correlation id passed to the gateway")
@click.pass_obj
def embed(
    settings: Settings,
    path: Path,
    policy_id: str,
    watermark_text: str,
    biz_id: str | None,
) -> None:
    """Upload PATH and embed a watermark into it."""
    params = {"policy_id": policy_id, "watermark_text": watermark_text, "biz_id": biz_id}
    _exit_with(asyncio.run(_run_job(settings, path, Operation.EMBED, params)))


@cli.command()
@click.argument(
    "path", required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option("--url", "file_url", default=None, help="URL of a file the gateway already stores")
@click.option("--biz-id", default=None, help="Correlation id passed to the gateway")
@click.pass_obj
def extract(settings: Settings, path: Path | None, file_url: str | None, biz_id: str | None) -> None:
    """Extract the watermark from PATH (uploaded first) or from --url.

    Examples:
        docmark extract ./contract.pdf
        docmark extract --url https://files.example.com/contract_watermarked.pdf
    """
    if (path is None) == (file_url is None):
        raise click.UsageError("Pass either PATH or --url, not both")
    source = path if path is not None else file_url
    _exit_with(asyncio.run(_run_job(settings, source, Operation.EXTRACT, {"biz_id": biz_id})))


@cli.command()
@click.pass_obj
def policies(settings: Settings) -> None:
    """List the active watermark policies."""
    _exit_with(asyncio.run(_list_policies(settings)))


@cli.command()
@click.pass_obj
def health(settings: Settings) -> None:
    """Check that the watermark gateway answers."""
    _exit_with(asyncio.run(_check_health(settings)))


async def _run_job(
    settings: Settings, source: Path | str, operation: Operation, params: dict
) -> bool:
    bundle = BackendFactory.create(settings)
    workflow = build_workflow(settings, bundle)
    try:
        if isinstance(source, Path):
            if not workflow.select_path(source) or not await workflow.upload():
                return _report_error(workflow)
        elif not workflow.use_remote_file(source):
            return _report_error(workflow)
        if not await workflow.submit(operation, **params):
            return _report_error(workflow)
        click.echo(f"Task {workflow.task.task_id} submitted, waiting for the result...")
        state = await workflow.wait_until_settled()
        return _report_result(workflow, state)
    finally:
        workflow.close()
        await bundle.aclose()


async def _list_policies(settings: Settings) -> bool:
    bundle = BackendFactory.create(settings)
    workflow = build_workflow(settings, bundle)
    try:
        found = await workflow.list_policies()
        if workflow.error is not None:
            return _report_error(workflow)
        for policy in found:
            label = f" [{policy.sensitivity}]" if policy.sensitivity else ""
            click.echo(f"{policy.id}\t{policy.name}{label}\t{policy.watermark_text}")
        return True
    finally:
        await bundle.aclose()


async def _check_health(settings: Settings) -> bool:
    bundle: BackendBundle = BackendFactory.create(settings)
    try:
        healthy = await bundle.jobs.check_health()
    finally:
        await bundle.aclose()
    click.echo("healthy" if healthy else "unreachable")
    return healthy


def _report_result(workflow: Workflow, state: WorkflowState) -> bool:
    if state not in SETTLED_STATES:
        click.echo(f"Error: processing stopped while {state.value}", err=True)
        return False
    task = workflow.task
    if state is WorkflowState.COMPLETED and task is not None and task.result is not None:
        if task.result.download_url:
            click.echo(f"Download: {task.result.download_url}")
        if task.result.extracted_content:
            click.echo(f"Extracted: {task.result.extracted_content}")
        if task.result.confidence is not None:
            click.echo(f"Confidence: {task.result.confidence}")
        return True
    if state is WorkflowState.TIMED_OUT and workflow.notice is not None:
        click.echo(workflow.notice.message, err=True)
        return False
    return _report_error(workflow)


def _report_error(workflow: Workflow) -> bool:
    error = workflow.error
    message = error.message if error is not None else f"Workflow ended in {workflow.state.value}"
    click.echo(f"Error: {message}", err=True)
    return False


def _exit_with(ok: bool) -> None:
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    cli()
