"""
Command-line interface for Twergstack

Thin request layer: turns commands into pipeline calls and renders the results.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import click

from .config import TwergstackConfig, load_config
from .environment.config import ServiceConfigParser
from .environment.orchestrator import ProvisioningPipeline
from .errors import TwergstackError
from .logging_config import setup_logging
from .migrations import MigrationRunner
from .persistence import PostgresProvider


class UUIDParamType(click.ParamType):
    name = "uuid"

    def convert(self, value, param, ctx):
        if isinstance(value, UUID):
            return value
        try:
            return UUID(value)
        except ValueError:
            self.fail(f"{value!r} is not a valid UUID", param, ctx)


UUID_TYPE = UUIDParamType()


def _run_pipeline(ctx: click.Context, call: Callable[[ProvisioningPipeline], Awaitable[Any]]) -> Any:
    """Run one pipeline call and exit with an error message on failure."""
    config: TwergstackConfig = ctx.obj["config"]

    async def _main() -> Any:
        pipeline = ctx.obj.get("pipeline") or ProvisioningPipeline.from_config(config)
        try:
            return await call(pipeline)
        finally:
            if "pipeline" not in ctx.obj:
                await pipeline.close()

    try:
        return asyncio.run(_main())
    except TwergstackError as e:
        click.echo(f"❌ {e}", err=True)
        for resource in e.created_resources:
            click.echo(f"   left in place: {resource}", err=True)
        sys.exit(1)


def _print_environment(env) -> None:
    click.echo(f"🌐 {env.name}  port={env.port}  id={env.id}")
    for index in env.indexes:
        regions = ", ".join(index.regions)
        click.echo(
            f"   📋 {index.index_type} from {index.data_source} [{regions}] "
            f"{index.status.display_name} id={index.id}"
        )


@click.group()
@click.option(
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .env-style configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--log-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory for log files",
)
@click.option(
    "--store",
    type=click.Choice(["postgres", "memory"], case_sensitive=False),
    default=None,
    help="Data provider to record environments in (memory keeps records for this command only)",
)
@click.version_option(package_name="twergstack")
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Optional[Path],
    log_level: Optional[str],
    verbose: bool,
    log_dir: Optional[Path],
    store: Optional[str],
) -> None:
    """
    Twergstack: isolated multi-container environments

    Provision named environments on the local Docker host and record them
    in PostgreSQL.
    """
    ctx.ensure_object(dict)

    if "config" not in ctx.obj:
        overrides = {
            k: v for k, v in {
                "log_level": log_level.upper() if log_level else None,
                "verbose": verbose or None,
                "log_dir": str(log_dir) if log_dir else None,
                "store": store,
            }.items() if v is not None
        }
        try:
            ctx.obj["config"] = load_config(
                config_file=str(config_file) if config_file else None,
                cli_overrides=overrides,
            )
        except ValueError as e:
            click.echo(f"❌ Invalid configuration: {e}", err=True)
            sys.exit(1)

    config: TwergstackConfig = ctx.obj["config"]
    setup_logging(
        log_dir=config.log_dir,
        verbose=config.verbose,
        log_level=config.log_level,
        enable_file_logging=config.enable_file_logging,
    )


@cli.group()
def env() -> None:
    """Manage environments."""
    pass


@env.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def list_environments(ctx: click.Context, as_json: bool) -> None:
    """List environments with their indexes."""
    response = _run_pipeline(ctx, lambda pipeline: pipeline.list_environments())

    if as_json:
        click.echo(json.dumps(response.to_dict(), indent=2))
        return

    click.echo(f"📊 {response.count} environment(s)")
    for environment in response.environments:
        _print_environment(environment)


@env.command("create")
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def create_environment(ctx: click.Context, name: str, as_json: bool) -> None:
    """Provision environment NAME and record it."""
    if not as_json:
        click.echo(f"🚀 Creating environment {name}...")
    response = _run_pipeline(ctx, lambda pipeline: pipeline.create_environment(name))

    if as_json:
        click.echo(json.dumps(response.to_dict(), indent=2))
        return

    click.echo(f"✅ Environment {name} created")
    _print_environment(response.environment)


@env.command("show")
@click.argument("environment_id", type=UUID_TYPE)
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def show_environment(ctx: click.Context, environment_id: UUID, as_json: bool) -> None:
    """Show one environment with its indexes."""
    response = _run_pipeline(ctx, lambda pipeline: pipeline.get_environment(environment_id))

    if as_json:
        click.echo(json.dumps(response.to_dict(), indent=2))
        return

    _print_environment(response.environment)


@env.command("delete")
@click.argument("environment_id", type=UUID_TYPE)
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def delete_environment(ctx: click.Context, environment_id: UUID, as_json: bool) -> None:
    """Delete the record of an environment (containers are left running)."""
    response = _run_pipeline(ctx, lambda pipeline: pipeline.delete_environment(environment_id))

    if as_json:
        click.echo(json.dumps(response.to_dict(), indent=2))
        return

    click.echo(f"🗑️  Environment {response.environment.name} deleted")


@cli.group()
def index() -> None:
    """Manage indexes."""
    pass


@index.command("create")
@click.argument("environment_id", type=UUID_TYPE)
@click.option("--type", "index_type", required=True, help="Index type")
@click.option("--source", "data_source", required=True, help="Data source")
@click.option("--region", "regions", multiple=True, required=True, help="Region tag (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def create_index(
    ctx: click.Context,
    environment_id: UUID,
    index_type: str,
    data_source: str,
    regions: tuple,
    as_json: bool,
) -> None:
    """Attach an index to an environment."""
    response = _run_pipeline(
        ctx,
        lambda pipeline: pipeline.create_index(environment_id, index_type, data_source, list(regions)),
    )

    if as_json:
        click.echo(json.dumps(response.to_dict(), indent=2))
        return

    click.echo(f"✅ Index {response.index.id} created ({response.index.status.display_name})")


@cli.group()
def database() -> None:
    """Manage the database schema."""
    pass


@database.command()
@click.argument("direction", type=click.Choice(["up", "down", "reset"]), default="up")
@click.pass_context
def migrate(ctx: click.Context, direction: str) -> None:
    """Run the schema migration tool (up, down, or reset)."""
    config: TwergstackConfig = ctx.obj["config"]
    runner = MigrationRunner(config)

    click.echo(f"🔄 Running migration {direction}...")
    try:
        asyncio.run(getattr(runner, direction)())
    except TwergstackError as e:
        click.echo(f"❌ Migration failed: {e}", err=True)
        sys.exit(1)
    click.echo("✅ Migration completed")


@database.command("test-connection")
@click.pass_context
def test_connection(ctx: click.Context) -> None:
    """Test database connection."""
    config: TwergstackConfig = ctx.obj["config"]
    database_url = config.effective_database_url()

    if not database_url:
        click.echo(
            "❌ Database not configured. Set TWERGSTACK_DATABASE_URL or DATABASE_URL",
            err=True,
        )
        sys.exit(1)

    async def _check() -> str:
        provider = PostgresProvider(database_url, max_connections=1)
        try:
            return await provider.check_connection()
        finally:
            await provider.close()

    click.echo("🔌 Testing database connection...")
    try:
        version = asyncio.run(_check())
    except TwergstackError as e:
        click.echo(f"❌ Connection failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✅ Connection successful! {version}")


@cli.command("config-show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Display current configuration."""
    config: TwergstackConfig = ctx.obj["config"]
    masked = config.mask_sensitive_values()

    click.echo("Current Twergstack Configuration:")
    click.echo("=" * 40)
    click.echo(f"Store               : {config.store}")
    click.echo(f"Database URL        : {masked['database_url'] or '(not set)'}")
    click.echo(f"Log Level           : {config.log_level}")
    click.echo(f"Log Dir             : {config.log_dir}")
    click.echo(f"Verbose             : {config.verbose}")
    click.echo(f"Registry Host       : {config.registry_host}")
    click.echo(f"Services File       : {config.services_config_file}")
    click.echo(f"Ingress             : {config.ingress_service}:{config.ingress_container_port}")
    click.echo(f"Port Range          : {config.port_base}-{config.port_base + config.port_window - 1}")
    click.echo(f"Migration Command   : {config.migration_command}")


@cli.command("config-validate")
@click.pass_context
def config_validate(ctx: click.Context) -> None:
    """Validate current configuration."""
    config: TwergstackConfig = ctx.obj["config"]

    click.echo("🔍 Validating configuration...")

    errors = []
    if config.store == "postgres" and not config.is_database_configured:
        errors.append("Database URL not configured")

    try:
        services = ServiceConfigParser(config).load()
        click.echo(f"✅ {len(services)} service(s) in {config.services_config_file}")
        if config.ingress_service not in [service.service_name for service in services]:
            click.echo(f"⚠️  No '{config.ingress_service}' service: no container will be bound to the host port")
    except TwergstackError as e:
        errors.append(str(e))

    if errors:
        for error in errors:
            click.echo(f"❌ {error}", err=True)
        sys.exit(1)

    click.echo("✅ Configuration is valid!")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
