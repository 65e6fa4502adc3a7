import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .core import DeploymentManager, DmngrError
from .errors import RolloutCancelledError, RolloutTimeoutError
from .models import ZERO_TIME
from .services.config_loader import ConfigLoader

console = Console()

EXIT_TIMEOUT = 2
EXIT_CANCELLED = 130


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _format_time(value) -> str:
    if value is None or value == ZERO_TIME:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML configuration file. Defaults to .dmngr.yml if present.",
)
@click.option("--kubeconfig", required=False, type=click.Path(), help="Path to the kubeconfig file")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(ctx, config, kubeconfig, verbose, log_file):
    """Inspect and roll out workloads across Kubernetes contexts."""
    logger = logging.getLogger("dmngr")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), ".dmngr.yml")
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except DmngrError as exc:
        raise click.ClickException(str(exc)) from exc

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    ctx.obj = {
        "config": config_values,
        "kubeconfig": _resolve_option(kubeconfig, config_values, "kubeconfig"),
    }


def _build_manager(ctx, namespace=None, context_pattern=None, rollout_timeout=None, max_workers=None):
    config_values = ctx.obj["config"]
    return DeploymentManager(
        kubeconfig=ctx.obj["kubeconfig"],
        namespace=_resolve_option(namespace, config_values, "namespace", default="default"),
        context_pattern=_resolve_option(context_pattern, config_values, "context_pattern", default="dev"),
        container=_resolve_option(None, config_values, "container", default="backend"),
        activity_marker=_resolve_option(None, config_values, "activity_marker", default='"UserID"'),
        rollout_timeout=float(
            _resolve_option(rollout_timeout, config_values, "rollout_timeout", default=60.0)
        ),
        poll_interval=float(_resolve_option(None, config_values, "poll_interval", default=5.0)),
        max_workers=int(_resolve_option(max_workers, config_values, "max_workers", default=1)),
        web_workload=_resolve_option(None, config_values, "web_workload", default="webapp"),
        api_workload=_resolve_option(None, config_values, "api_workload", default="omiq-api"),
    )


def _namespace(ctx, namespace):
    return _resolve_option(namespace, ctx.obj["config"], "namespace", default="default")


namespace_option = click.option("--namespace", "-n", required=False, help="Kubernetes namespace")
kind_option = click.option(
    "--kind",
    required=True,
    type=click.Choice(DeploymentManager.VALID_KINDS),
    help="Workload kind",
)


@main.command("contexts")
@click.option("--pattern", required=False, help="Only show contexts whose name contains this text")
@click.pass_context
def contexts_command(ctx, pattern):
    """List kubeconfig contexts."""
    manager = _build_manager(ctx)
    try:
        contexts = manager.context_service.list_contexts()
    except DmngrError as exc:
        raise click.ClickException(str(exc)) from exc
    if pattern:
        contexts = manager.context_service.filter_by_name_pattern(contexts, pattern)

    table = Table(title="Contexts")
    table.add_column("Context")
    table.add_column("Cluster")
    table.add_column("Active")
    for context in contexts:
        table.add_row(context.name, context.cluster, "*" if context.active else "")
    console.print(table)


@main.command("pods")
@click.argument("context")
@namespace_option
@click.option("--selector", "-l", required=False, help="Label selector, e.g. app=omiq-api")
@click.pass_context
def pods_command(ctx, context, namespace, selector):
    """List pod names in a namespace."""
    manager = _build_manager(ctx, namespace=namespace)
    try:
        pods = manager.list_pods(context, _namespace(ctx, namespace), label_selector=selector)
    except DmngrError as exc:
        raise click.ClickException(str(exc)) from exc
    for pod in pods:
        console.print(pod)


@main.command("restart-time")
@click.argument("context")
@click.argument("pod")
@namespace_option
@click.pass_context
def restart_time_command(ctx, context, pod, namespace):
    """Show when a pod was last (re)started."""
    namespace = _namespace(ctx, namespace)
    manager = _build_manager(ctx, namespace=namespace)
    try:
        restarted = manager.restart_time(context, namespace, pod)
    except DmngrError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"Pod {pod} in {namespace} restarted at: [bold]{_format_time(restarted)}[/bold]")


@main.command("last-log")
@click.argument("context")
@click.argument("pod")
@namespace_option
@click.pass_context
def last_log_command(ctx, context, pod, namespace):
    """Show the last user activity logged by a pod."""
    namespace = _namespace(ctx, namespace)
    manager = _build_manager(ctx, namespace=namespace)
    try:
        logged = manager.last_log_time(context, namespace, pod)
    except DmngrError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"Last user activity on {pod}: [bold]{_format_time(logged)}[/bold]")


@main.command("image")
@click.argument("context")
@click.argument("name")
@kind_option
@namespace_option
@click.pass_context
def image_command(ctx, context, name, kind, namespace):
    """Show a workload's current image and when it changed."""
    namespace = _namespace(ctx, namespace)
    manager = _build_manager(ctx, namespace=namespace)
    try:
        updated, image = manager.last_image_update(context, namespace, name, kind)
    except DmngrError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"{kind}/{name} runs [bold]{image}[/bold], updated at {_format_time(updated)}")


@main.command("update-image")
@click.argument("context")
@click.argument("name")
@click.argument("image")
@kind_option
@namespace_option
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Validate the update server-side and print the resulting object without applying it.",
)
@click.option(
    "--timeout",
    "rollout_timeout",
    required=False,
    type=float,
    default=None,
    help="Seconds to wait for the rollout (default: 60).",
)
@click.pass_context
def update_image_command(ctx, context, name, image, kind, namespace, dry_run, rollout_timeout):
    """Push IMAGE to a workload and wait for the rollout."""
    logger = logging.getLogger("dmngr")
    namespace = _namespace(ctx, namespace)
    manager = _build_manager(ctx, namespace=namespace, rollout_timeout=rollout_timeout)

    try:
        result = manager.update_image(context, name, namespace, image, kind, dry_run=dry_run)
    except RolloutTimeoutError as exc:
        console.print(f"[bold red]Timeout:[/bold red] {exc}")
        logger.error(str(exc))
        raise SystemExit(EXIT_TIMEOUT)
    except RolloutCancelledError as exc:
        console.print(f"[bold red]Cancelled:[/bold red] {exc}")
        raise SystemExit(EXIT_CANCELLED)
    except KeyboardInterrupt:
        console.print("[bold red]Operation cancelled by user.[/bold red]")
        logger.info("Operation cancelled by user")
        raise SystemExit(EXIT_CANCELLED)
    except DmngrError as exc:
        raise click.ClickException(str(exc)) from exc

    if dry_run:
        console.print("[yellow]Dry run, nothing was changed. Proposed object:[/yellow]")
        console.print_json(result.summary)
        return

    console.print(f"[green]{result.summary}[/green]")
    logger.info("Rollout finished in %.1fs after %s poll(s).", result.elapsed_seconds, result.polls)


@main.command("report")
@click.option("--pattern", "context_pattern", required=False, help="Context name filter (default: dev)")
@namespace_option
@click.option("--max-workers", type=int, default=None, help="Probe this many contexts in parallel.")
@click.pass_context
def report_command(ctx, context_pattern, namespace, max_workers):
    """Show the status of the watched workloads in every matching context."""
    manager = _build_manager(
        ctx,
        namespace=namespace,
        context_pattern=context_pattern,
        max_workers=max_workers,
    )
    try:
        targets = manager.all_clusters_info()
    except DmngrError as exc:
        raise click.ClickException(str(exc)) from exc

    table = Table(title="Cluster status")
    for column in ("Context", "Workload", "Image", "Image updated", "Restarted", "Last activity"):
        table.add_column(column)
    for target in targets:
        table.add_row(
            target.context,
            target.name,
            target.current_image,
            _format_time(target.last_image_update),
            _format_time(target.last_restart),
            _format_time(target.last_log_time),
        )
    console.print(table)


if __name__ == "__main__":
    main()
