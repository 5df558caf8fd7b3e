"""Command-line interface for pii-shield."""

import json
import sys
import logging
from pathlib import Path
from typing import Optional

import click

from piishield import __version__
from piishield.config import build_router, default_options, load_config, load_from_yaml
from piishield.engine import Engine, restore as restore_text, summarize_stats
from piishield.exceptions import RedactionCapacityError
from piishield.registry import load_registry


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _read_input(text: Optional[str], input_file: Optional[Path]) -> str:
    if text is None and input_file is None:
        click.echo("Error: Must provide --text or --in", err=True)
        sys.exit(1)
    if input_file:
        return input_file.read_text(encoding="utf-8")
    assert text is not None
    return text


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """pii-shield: Detect and reversibly redact personal information."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@main.command()
@click.option(
    "--text",
    "-t",
    help="Text to redact (use --in for file input)",
)
@click.option(
    "--in",
    "input_file",
    type=click.Path(exists=True, path_type=Path),
    help="Input file to redact",
)
@click.option(
    "--out",
    "output_file",
    type=click.Path(path_type=Path),
    help="Output file (prints to stdout if not specified)",
)
@click.option(
    "--map-out",
    "map_file",
    type=click.Path(path_type=Path),
    help="Write the redaction map as JSON to this file",
)
@click.option("--no-names", is_flag=True, help="Disable the person-name heuristic")
@click.option("--no-addresses", is_flag=True, help="Disable the address heuristic")
@click.option(
    "--patterns",
    "-p",
    type=click.Path(exists=True, path_type=Path),
    multiple=True,
    help="Pattern files to load (uses the built-in catalog if not specified)",
)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file (enables remote mode when its policy says so)",
)
@click.option("--scope", help="Scope id used for the remote-mode policy lookup")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@click.option(
    "--stats",
    is_flag=True,
    help="Print redaction statistics",
)
@click.pass_context
def redact(
    ctx: click.Context,
    text: Optional[str],
    input_file: Optional[Path],
    output_file: Optional[Path],
    map_file: Optional[Path],
    no_names: bool,
    no_addresses: bool,
    patterns: tuple[Path, ...],
    config_file: Optional[Path],
    scope: Optional[str],
    as_json: bool,
    stats: bool,
) -> None:
    """Redact PII from text or file."""
    text = _read_input(text, input_file)

    config = load_from_yaml(config_file) if config_file else load_config()
    if patterns:
        config["registry"]["paths"] = [str(p) for p in patterns]

    router = build_router(config)
    options = default_options(config)
    if no_names:
        options.include_names = False
    if no_addresses:
        options.include_addresses = False

    try:
        result = router.redact(text, options, scope_id=scope)
    except RedactionCapacityError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not result.safe_to_forward:
        click.echo(f"Error: Redaction failed ({result.error}); output withheld", err=True)
        sys.exit(3)

    if map_file:
        map_file.write_text(json.dumps(result.redaction_map, indent=2), encoding="utf-8")

    output = json.dumps(result.to_dict(), indent=2) if as_json else result.redacted_content
    if output_file:
        output_file.write_text(output, encoding="utf-8")
        if stats:
            click.echo(f"Redacted {len(result.redaction_map)} items to {output_file}")
    else:
        click.echo(output)

    if stats:
        summary = summarize_stats(result.detection_stats)
        click.echo(
            f"\n[Redacted {summary['total_pii_detected']} items, "
            f"most common: {summary['most_common_type']}, mode: {result.mode.value}]",
            err=True,
        )
        for pii_type, count in sorted(result.detection_stats.items()):
            click.echo(f"  {pii_type:<20} {count}", err=True)


@main.command()
@click.option(
    "--text",
    "-t",
    help="Text to scan (use --in for file input)",
)
@click.option(
    "--in",
    "input_file",
    type=click.Path(exists=True, path_type=Path),
    help="Input file to scan",
)
@click.option("--no-names", is_flag=True, help="Disable the person-name heuristic")
@click.option("--no-addresses", is_flag=True, help="Disable the address heuristic")
@click.option(
    "--patterns",
    "-p",
    type=click.Path(exists=True, path_type=Path),
    multiple=True,
    help="Pattern files to load (uses the built-in catalog if not specified)",
)
@click.option("--json", "as_json", is_flag=True, help="Print detections as JSON")
@click.option(
    "--include-text",
    is_flag=True,
    help="Include the detected values in output",
)
def detect(
    text: Optional[str],
    input_file: Optional[Path],
    no_names: bool,
    no_addresses: bool,
    patterns: tuple[Path, ...],
    as_json: bool,
    include_text: bool,
) -> None:
    """Show where PII occurs and which placeholder each value would get."""
    text = _read_input(text, input_file)

    pattern_paths = [str(p) for p in patterns] if patterns else None
    engine = Engine(load_registry(paths=pattern_paths))
    options = default_options(load_config())
    if no_names:
        options.include_names = False
    if no_addresses:
        options.include_addresses = False

    result = engine.detect(text, options)

    if as_json:
        click.echo(json.dumps(result.to_dict(include_text=include_text), indent=2))
        return

    click.echo(f"Found {result.pii_count} PII occurrences:")
    for d in result.detections:
        line = f"  {d.type:<20} {d.start}-{d.end}  {d.placeholder}"
        if include_text:
            line += f"  {d.original}"
        click.echo(line)


@main.command()
@click.option(
    "--text",
    "-t",
    help="Redacted text (use --in for file input)",
)
@click.option(
    "--in",
    "input_file",
    type=click.Path(exists=True, path_type=Path),
    help="Redacted input file",
)
@click.option(
    "--map",
    "map_file",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Redaction map JSON written by 'redact --map-out'",
)
def restore(text: Optional[str], input_file: Optional[Path], map_file: Path) -> None:
    """Restore original values into redacted text."""
    text = _read_input(text, input_file)

    try:
        redaction_map = json.loads(map_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid map file: {e}", err=True)
        sys.exit(1)
    if not isinstance(redaction_map, dict):
        click.echo("Error: Map file must contain a JSON object", err=True)
        sys.exit(1)

    click.echo(restore_text(text, redaction_map))


@main.command()
@click.option(
    "--text",
    "-t",
    required=True,
    help="Value to validate",
)
@click.option(
    "--type",
    "pattern_type",
    required=True,
    help="Pattern type (e.g., CREDIT_CARD)",
)
@click.option(
    "--patterns",
    "-p",
    type=click.Path(exists=True, path_type=Path),
    multiple=True,
    help="Pattern files to load",
)
def validate(text: str, pattern_type: str, patterns: tuple[Path, ...]) -> None:
    """Validate a value against a specific pattern type."""
    pattern_paths = [str(p) for p in patterns] if patterns else None
    engine = Engine(load_registry(paths=pattern_paths))

    try:
        result = engine.validate(text, pattern_type)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if result.is_valid:
        click.echo(f"✓ Valid {pattern_type}")
        sys.exit(0)
    click.echo(f"✗ Invalid {pattern_type}")
    sys.exit(1)


@main.command()
@click.option(
    "--port",
    "-p",
    type=int,
    default=8080,
    help="Port to listen on",
)
@click.option(
    "--host",
    "-h",
    default="0.0.0.0",
    help="Host to bind to",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file",
)
@click.pass_context
def serve(
    ctx: click.Context,
    port: int,
    host: str,
    config: Optional[Path],
) -> None:
    """Start HTTP server."""
    try:
        import uvicorn
        from piishield.server import create_app
    except ImportError:
        click.echo(
            "Error: Server dependencies not installed. Install with: pip install pii-shield[server]",
            err=True,
        )
        sys.exit(1)

    config_data = load_from_yaml(config) if config else load_config()

    server_config = config_data.get("server", {})
    port = port or server_config.get("port", 8080)
    host = host or server_config.get("host", "0.0.0.0")

    click.echo(f"Starting server on {host}:{port}")

    app = create_app(config_data)

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info" if ctx.obj.get("verbose") else "warning",
    )


@main.command()
@click.option(
    "--patterns",
    "-p",
    type=click.Path(exists=True, path_type=Path),
    multiple=True,
    help="Pattern files to list",
)
def list_patterns(patterns: tuple[Path, ...]) -> None:
    """List available patterns in resolution order."""
    pattern_paths = [str(p) for p in patterns] if patterns else None
    registry = load_registry(paths=pattern_paths)

    click.echo(f"Loaded {len(registry)} patterns from {len(registry.namespaces)} namespaces\n")

    for pattern in registry.get_patterns():
        validator = pattern.validator_name or "-"
        click.echo(
            f"  {pattern.type:<20} {pattern.priority:>4}  {pattern.severity.value:<9}"
            f"{validator:<16} {pattern.description}"
        )


if __name__ == "__main__":
    main()
