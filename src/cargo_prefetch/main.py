import logging
import sys
import time
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel

from . import __version__
from .aggregate import collect_crates
from .cli_config import (
    POLICY_ERROR,
    POLICY_SKIP,
    ComprehensiveConfig,
    apply_config_data,
    create_sample_config,
    get_config,
    load_config,
    load_config_file,
    validate_config_values,
)
from .error_handling import (
    PrefetchError,
    format_error_chain,
    get_error_handler,
    setup_error_handling,
)
from .materializer import make_project, render_manifest
from .structured_logging import (
    clear_run_context,
    configure_logging,
    log_run_summary,
    set_run_context,
)

console = Console()
error_console = Console(stderr=True)


def print_error_chain(error: BaseException) -> None:
    """Print ``Error: ...`` followed by one ``Caused by: ...`` line per cause."""
    for index, line in enumerate(format_error_chain(error)):
        error_console.print(
            line,
            style="red" if index == 0 else "dim",
            markup=False,
            highlight=False,
            soft_wrap=True,
        )


def setup_error_reports(log_level: str, log_format: str) -> None:
    """
    Configure the error handler for a CLI run.

    Fatal errors reach the user as the printed error chain, so the handler's
    own stderr lines only appear when INFO or DEBUG diagnostics were asked for.
    """
    level = getattr(logging, log_level.upper(), logging.WARNING)
    if level > logging.INFO:
        level = logging.CRITICAL + 1
    setup_error_handling(log_level=level, log_format=log_format)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    📦 cargo-prefetch: warm the Cargo registry cache

    Collects the dependencies of any number of Cargo.toml files into a
    throwaway project; run `cargo fetch` inside it to download every crate
    ahead of an offline or layered build.
    """
    if version:
        console.print(f"cargo-prefetch version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command("prefetch-dependencies")
@click.argument(
    "manifests",
    nargs=-1,
    required=True,
    type=click.Path(dir_okay=False),
)
@click.option(
    "--output",
    "-o",
    required=True,
    type=click.Path(file_okay=False),
    help="Existing directory where the prefetch project is written",
)
@click.option(
    "--atomic",
    is_flag=True,
    help="Stage the project in a temporary directory and move it into place",
)
@click.option(
    "--skip-missing-version",
    is_flag=True,
    help="Skip table entries without a version (path/git crates) instead of failing",
)
@click.option(
    "--strict-versions",
    is_flag=True,
    help="Fail on invalid version requirements instead of dropping them",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Print the generated Cargo.toml and write nothing",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-error output")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Emit structured JSON events on stderr",
)
def prefetch_dependencies(
    manifests: Tuple[str, ...],
    output: str,
    atomic: bool,
    skip_missing_version: bool,
    strict_versions: bool,
    dry_run: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """
    Prefetch dependencies of cargo manifests.

    Examples:

      cargo-prefetch prefetch-dependencies -o /tmp/prefetch Cargo.toml

      cargo-prefetch prefetch-dependencies -o out crates/*/Cargo.toml --atomic

      cargo-prefetch prefetch-dependencies -o out Cargo.toml --dry-run
    """
    settings = load_config()
    log_level = "INFO" if verbose else settings.logging.log_level
    configure_logging(log_level)
    setup_error_reports(log_level, settings.logging.log_format)

    missing_policy: Optional[str] = POLICY_SKIP if skip_missing_version else None
    invalid_policy: Optional[str] = POLICY_ERROR if strict_versions else None

    set_run_context(
        run_id=f"prefetch_{int(time.time())}",
        output_dir=output,
        manifest_count=len(manifests),
    )
    try:
        crates = collect_crates(
            manifests,
            missing_version_policy=missing_policy,
            invalid_version_policy=invalid_policy,
        )

        if dry_run:
            click.echo(render_manifest(crates), nl=False)
            return

        manifest_path = make_project(
            output, crates, atomic=atomic or settings.prefetch.atomic_write
        )
    except (PrefetchError, ValueError) as e:
        print_error_chain(e)
        sys.exit(1)
    finally:
        log_run_summary(get_error_handler().get_error_stats())
        clear_run_context()

    if not quiet:
        console.print(
            f"✅ Wrote {manifest_path} with {len(crates)} crates "
            f"from {len(manifests)} manifest(s)",
            style="green",
            markup=False,
            highlight=False,
            soft_wrap=True,
        )


@cli.command()
def info():
    """Show how the prefetch project is built and how to use it."""
    info_text = """
[bold blue]📋 What gets collected:[/bold blue]

• [green]\\[dependencies][/green] and [green]\\[dev-dependencies][/green] of every manifest
• Plain strings: [cyan]serde = "1.0"[/cyan]
• Tables with a version: [cyan]tokio = { version = "1", features = ["full"] }[/cyan]

[bold blue]🚦 Entry handling:[/bold blue]

• [yellow]Invalid version requirement[/yellow] - dropped (use --strict-versions to fail)
• [yellow]Table without version[/yellow] (path/git crates) - fails (use --skip-missing-version)
• [yellow]Same crate, same requirement[/yellow] - declared once
• [yellow]Same crate, different requirements[/yellow] - declared once per requirement

[bold blue]🌍 Environment Variables:[/bold blue]

• [cyan]CARGO_PREFETCH_MISSING_VERSION_POLICY[/cyan] - error | skip
• [cyan]CARGO_PREFETCH_INVALID_VERSION_POLICY[/cyan] - skip | error
• [cyan]CARGO_PREFETCH_ATOMIC[/cyan] - always stage before writing
• [cyan]CARGO_PREFETCH_LOG_LEVEL[/cyan] - structured log level

[bold blue]📄 Configuration Files:[/bold blue]

• [green].cargo-prefetch.json[/green] / [green].cargo-prefetch.yaml[/green] - Project-level config
• [green]~/.config/cargo-prefetch/config.json[/green] - User-level config

[bold blue]💡 Usage Examples:[/bold blue]

  # Build the prefetch project, then warm the cache
  cargo-prefetch prefetch-dependencies -o /tmp/prefetch Cargo.toml
  cd /tmp/prefetch && cargo fetch

  # Whole workspace
  cargo-prefetch prefetch-dependencies -o out */Cargo.toml
"""
    console.print(
        Panel(
            info_text,
            title="[bold]cargo-prefetch Information[/bold]",
            border_style="blue",
        )
    )


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".cargo-prefetch.json",
    help="Path where to create the config file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)

    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())
    except OSError as e:
        error_console.print(f"❌ Failed to create config file: {e}", style="red")
        sys.exit(1)

    console.print(f"✅ Created configuration file at {config_path}", style="green")
    console.print("Edit this file to customize your settings", style="dim")


@config.command("show")
def config_show():
    """Show current configuration settings."""
    current_config = get_config()

    console.print(
        Panel("[bold blue]🔧 Current Configuration[/bold blue]", border_style="blue")
    )

    console.print("\n[bold cyan]📦 Prefetch Settings:[/bold cyan]")
    console.print(
        f"  Missing Version Policy: {current_config.prefetch.missing_version_policy}"
    )
    console.print(
        f"  Invalid Version Policy: {current_config.prefetch.invalid_version_policy}"
    )
    console.print(f"  Atomic Write: {current_config.prefetch.atomic_write}")

    console.print("\n[bold cyan]🔒 Security Settings:[/bold cyan]")
    console.print(f"  Max File Size: {current_config.security.max_file_size_mb} MB")
    console.print(
        f"  Allowed Extensions: {', '.join(current_config.security.allowed_file_extensions)}"
    )

    console.print("\n[bold cyan]📝 Logging Settings:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def config_validate(config_file: str):
    """Validate a configuration file."""
    config_data = load_config_file(Path(config_file))

    if config_data is None:
        error_console.print(f"❌ Could not load config from {config_file}", style="red")
        sys.exit(1)

    candidate = ComprehensiveConfig()
    apply_config_data(candidate, config_data)
    errors = validate_config_values(candidate)

    if errors:
        error_console.print("❌ Configuration validation failed:", style="red")
        for error in errors:
            error_console.print(f"  • {error}", style="red")
        sys.exit(1)

    console.print(f"✅ Configuration file {config_file} is valid", style="green")


if __name__ == "__main__":
    cli()
