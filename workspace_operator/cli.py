import click


@click.group()
def main() -> None:
    """wsop - WorkspaceTemplate controller and admission webhook."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from WSOP_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from WSOP_PORT or 9443).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def run(host: str | None, port: int | None, reload: bool) -> None:
    """Start the controller and the admission webhook server."""
    import uvicorn

    from workspace_operator.controller.settings import get_settings

    settings = get_settings()

    uvicorn.run(
        "workspace_operator.controller.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        ssl_certfile=settings.webhook_cert_file,
        ssl_keyfile=settings.webhook_key_file,
        # Operator stop timeout plus a buffer for in-flight webhook requests.
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout + 10,
    )


# ---------------------------------------------------------------------------
# One-shot inspection against the configured store
# ---------------------------------------------------------------------------

_KIND_ALIASES = {
    "workspace": "Workspace",
    "workspaces": "Workspace",
    "ws": "Workspace",
    "workspacetemplate": "WorkspaceTemplate",
    "workspacetemplates": "WorkspaceTemplate",
    "wst": "WorkspaceTemplate",
}


def _open_store():
    from workspace_operator.controller.app import create_store
    from workspace_operator.controller.log import setup_logging
    from workspace_operator.controller.settings import get_settings

    settings = get_settings()
    setup_logging("WARNING")
    return settings, create_store(settings)


@main.command()
@click.argument("name")
@click.option("-n", "--namespace", required=True, help="Namespace of the workspace being resolved.")
@click.option(
    "--template-namespace",
    default=None,
    help="Explicit templateRef.namespace; disables the fallback tiers.",
)
def resolve(name: str, namespace: str, template_namespace: str | None) -> None:
    """Show which template NAME resolves to for a workspace in NAMESPACE."""
    import asyncio

    from workspace_operator.controller.core.resolver import TemplateNotFoundError, resolve_template
    from workspace_operator.controller.models.workspace import TemplateRef

    settings, store = _open_store()
    ref = TemplateRef(name=name, namespace=template_namespace)
    try:
        resolution = asyncio.run(
            resolve_template(store, ref, namespace, default_namespace=settings.default_template_namespace)
        )
    except TemplateNotFoundError as exc:
        raise click.ClickException(str(exc)) from None
    click.echo(f"{resolution.key} (tier: {resolution.tier})")


@main.command()
@click.argument("kind")
@click.argument("name")
@click.option("-n", "--namespace", required=True, help="Namespace of the object.")
@click.option("-o", "--output", default=None, help="Output format: 'json' (default) or 'jsonpath=<expr>'.")
def get(kind: str, name: str, namespace: str, output: str | None) -> None:
    """Print a Workspace or WorkspaceTemplate."""
    import asyncio
    import json

    from workspace_operator.controller.fieldpath import format_field, get_field
    from workspace_operator.controller.models.template import WorkspaceTemplate
    from workspace_operator.controller.models.workspace import Workspace
    from workspace_operator.controller.store.base import NotFoundError

    kind_name = _KIND_ALIASES.get(kind.lower())
    if kind_name is None:
        raise click.BadParameter(f"unknown kind {kind!r}", param_hint="KIND")
    model = Workspace if kind_name == "Workspace" else WorkspaceTemplate

    _, store = _open_store()
    try:
        obj = asyncio.run(store.get(model, namespace, name))
    except NotFoundError as exc:
        raise click.ClickException(str(exc)) from None
    data = obj.to_wire()

    if output is None or output == "json":
        click.echo(json.dumps(data, indent=2))
    elif output.startswith("jsonpath="):
        try:
            value = get_field(data, output.removeprefix("jsonpath="))
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--output") from None
        click.echo(format_field(value))
    else:
        raise click.BadParameter(f"unsupported output format {output!r}", param_hint="--output")


if __name__ == "__main__":
    main()
