"""textprov command line interface (provctl)."""

from __future__ import annotations

import json
import sys
import traceback
from pathlib import Path

import click

from textprov import __version__
from textprov.config import Settings
from textprov.diff import compute_word_diff
from textprov.provenance.actions import created_action
from textprov.provenance.builder import ManifestBuilder
from textprov.provenance.embedded import embed_manifest, extract_manifest
from textprov.provenance.manifest import ExternalManifest
from textprov.provenance.signing import PRIVATE_KEY_ENV, KeyPair, SigningError
from textprov.provenance.transparency import service_from_settings
from textprov.provenance.verifier import ManifestVerifier


def handle_error(error: Exception, debug: bool) -> None:
    """Handle errors with structured output.

    Args:
        error: The exception that occurred
        debug: Whether to show full traceback
    """
    if debug:
        traceback.print_exc()
    else:
        click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def read_text(path: Path) -> str:
    """Read a text file byte-for-byte (no newline translation)."""
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def write_text(path: Path, text: str) -> None:
    """Write a text file byte-for-byte (no newline translation)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)


def load_key_pair(key: Path | None) -> KeyPair:
    """Load the signing key from a PEM file or the environment.

    Raises:
        SigningError: If no key is configured or it cannot be loaded
    """
    if key is not None:
        return KeyPair.from_pem(key.read_bytes())
    key_pair = KeyPair.from_env()
    if key_pair is None:
        raise SigningError(f"No signing key: pass --key or set {PRIVATE_KEY_ENV}")
    return key_pair


@click.group()
@click.version_option(version=__version__, prog_name="provctl")
@click.option('--config', '-c', type=click.Path(exists=True, path_type=Path), help='YAML settings file')
@click.option('--debug', is_flag=True, help='Enable debug mode (show full tracebacks)')
@click.pass_context
def cli(ctx: click.Context, config: Path | None, debug: bool):
    """provctl - Tamper-evident provenance for edited text."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    try:
        ctx.obj['settings'] = Settings.from_yaml(config) if config else Settings.from_env()
    except (OSError, ValueError) as e:
        handle_error(e, debug)


@cli.command()
@click.option(
    '--private-key-out',
    type=click.Path(path_type=Path),
    help='Also write the private key as PEM to this file',
)
@click.pass_context
def generate_keys(ctx: click.Context, private_key_out: Path | None):
    """Generate an ECDSA P-256 signing key.

    Outputs environment variable format for TEXTPROV_SIGNING_PRIVATE_KEY.
    """
    debug = ctx.obj.get('debug', False)

    try:
        click.echo("Generating new ECDSA P-256 key pair...")
        key_pair = KeyPair.generate()

        click.echo(f"\nKey ID: {key_pair.key_id}")
        click.echo("\nAdd this to your environment:")
        click.echo(f"export {PRIVATE_KEY_ENV}={key_pair.to_env_format()}")
        click.echo("\nPublic key (JWK):")
        click.echo(key_pair.export_public_key())

        if private_key_out:
            private_key_out.parent.mkdir(parents=True, exist_ok=True)
            private_key_out.write_bytes(key_pair.private_pem())
            click.echo(f"\nPrivate key written to: {private_key_out} (keep it secure!)")
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.argument('content', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--out', '-o', required=True, type=click.Path(path_type=Path), help='Output manifest (or embedded document)')
@click.option('--key', '-k', type=click.Path(exists=True, dir_okay=False, path_type=Path), help='PEM private key')
@click.option('--title', help='Title recorded in the claim')
@click.option('--embed', is_flag=True, help='Write the content with the manifest appended instead of a manifest file')
@click.option('--anchor', is_flag=True, help='Attach a transparency receipt')
@click.pass_context
def sign(
    ctx: click.Context,
    content: Path,
    out: Path,
    key: Path | None,
    title: str | None,
    embed: bool,
    anchor: bool,
):
    """Sign a text file, recording its creation.

    Examples:
      provctl sign draft.txt --out draft.manifest.json --key signing.pem
      provctl sign draft.txt --out draft.signed.txt --embed --anchor
    """
    debug = ctx.obj.get('debug', False)
    settings: Settings = ctx.obj['settings']

    try:
        key_pair = load_key_pair(key)
        text = read_text(content)

        builder = ManifestBuilder.from_settings(settings)
        manifest = builder.create_manifest(text, [created_action(text)], key_pair, title=title)
        if anchor:
            manifest = service_from_settings(settings).anchor(manifest)

        if embed:
            write_text(out, embed_manifest(text, manifest))
            click.echo(f"✅ Signed document written to: {out}")
        else:
            manifest.write_json(out)
            click.echo(f"✅ Manifest written to: {out}")

        click.echo(f"  Instance ID: {manifest.claim.instance_id}")
        click.echo(f"  Content hash: {manifest.claim.content_hash}")
        click.echo(f"  Key ID: {key_pair.key_id}")
        if manifest.scitt is not None:
            click.echo(f"  Receipt: {manifest.scitt.service_url} ({manifest.scitt.entry_id})")
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.argument('content', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('manifest', required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--embedded', is_flag=True, help='CONTENT carries its own manifest')
@click.option('--trusted-key', 'trusted_keys', multiple=True, help='Accept only these key ids (repeatable)')
@click.option('--parallel', is_flag=True, help='Run checks in parallel')
@click.option('--out', '-o', type=click.Path(path_type=Path), help='Output directory for verification reports')
@click.pass_context
def verify(
    ctx: click.Context,
    content: Path,
    manifest: Path | None,
    embedded: bool,
    trusted_keys: tuple[str, ...],
    parallel: bool,
    out: Path | None,
):
    """Verify content against its manifest.

    Exits with status 1 when any check fails.

    Examples:
      provctl verify draft.txt draft.manifest.json
      provctl verify draft.signed.txt --embedded --out ./report
    """
    debug = ctx.obj.get('debug', False)
    settings: Settings = ctx.obj['settings']

    try:
        if not embedded and manifest is None:
            raise click.UsageError("MANIFEST is required unless --embedded is given")

        verifier = ManifestVerifier(
            transparency=service_from_settings(settings),
            trusted_key_ids=set(trusted_keys) if trusted_keys else None,
            parallel=parallel,
        )
        text = read_text(content)
        if embedded:
            result = verifier.verify_embedded(text)
        else:
            result = verifier.verify(text, read_text(manifest))

        if out:
            json_path = out / "verification_report.json"
            md_path = out / "verification_report.md"
            result.write_json(json_path)
            result.write_markdown(md_path)
            click.echo("Verification reports written to:")
            click.echo(f"  - JSON: {json_path}")
            click.echo(f"  - MD:   {md_path}")

        click.echo(f"\nVerification Result: {'✅ VALID' if result.valid else '❌ INVALID'}")
        for name, check in result.checks.items():
            click.echo(f"  {'✅' if check.passed else '❌'} {name}: {check.message}")

        if not result.valid:
            sys.exit(1)
    except click.UsageError:
        raise
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.argument('content', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('manifest', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--out', '-o', required=True, type=click.Path(path_type=Path), help='Output document')
@click.pass_context
def embed(ctx: click.Context, content: Path, manifest: Path, out: Path):
    """Append a manifest footer to a text file."""
    debug = ctx.obj.get('debug', False)

    try:
        loaded = ExternalManifest.load(manifest)
        write_text(out, embed_manifest(read_text(content), loaded))
        click.echo(f"✅ Embedded document written to: {out}")
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.argument('document', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--content-out', type=click.Path(path_type=Path), help='Write the clean content here')
@click.option('--manifest-out', type=click.Path(path_type=Path), help='Write the manifest JSON here')
@click.pass_context
def extract(ctx: click.Context, document: Path, content_out: Path | None, manifest_out: Path | None):
    """Split a document into clean content and its manifest.

    Without output options the manifest JSON is printed.
    """
    debug = ctx.obj.get('debug', False)

    try:
        extracted = extract_manifest(read_text(document))
        if content_out:
            write_text(content_out, extracted.content)
            click.echo(f"Content written to: {content_out}")
        if manifest_out:
            write_text(manifest_out, extracted.manifest_json)
            click.echo(f"Manifest written to: {manifest_out}")
        if not content_out and not manifest_out:
            click.echo(extracted.manifest_json)
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.argument('manifest', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--out', '-o', type=click.Path(path_type=Path), help='Output manifest (default: overwrite input)')
@click.pass_context
def anchor(ctx: click.Context, manifest: Path, out: Path | None):
    """Attach a transparency receipt to a manifest file."""
    debug = ctx.obj.get('debug', False)
    settings: Settings = ctx.obj['settings']

    try:
        anchored = service_from_settings(settings).anchor(ExternalManifest.load(manifest))
        target = out or manifest
        anchored.write_json(target)
        click.echo(f"✅ Anchored manifest written to: {target}")
        click.echo(f"  Service: {anchored.scitt.service_url}")
        click.echo(f"  Entry: {anchored.scitt.entry_id}")
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.argument('original', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('proposed', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--format', 'output_format', type=click.Choice(['unified', 'json']), default='unified')
@click.pass_context
def diff(ctx: click.Context, original: Path, proposed: Path, output_format: str):
    """Word-level diff between two text files."""
    debug = ctx.obj.get('debug', False)

    try:
        word_diff = compute_word_diff(read_text(original), read_text(proposed))
        if output_format == 'json':
            data = word_diff.to_dict()
            data['summary'] = word_diff.summary()
            click.echo(json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False))
        else:
            click.echo(word_diff.unified_text)
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.option('--host', '-h', default='127.0.0.1', help='Host to bind to')
@click.option('--port', '-p', default=8000, help='Port to listen on')
@click.option('--key', '-k', type=click.Path(exists=True, dir_okay=False, path_type=Path), help='PEM private key')
@click.pass_context
def serve(ctx: click.Context, host: str, port: int, key: Path | None):
    """Start the textprov HTTP server.

    Examples:
      provctl serve                           # Start server on default port
      provctl serve --port 8080 --key signing.pem
    """
    import uvicorn

    from textprov.server import create_app

    debug = ctx.obj.get('debug', False)

    try:
        key_pair = KeyPair.from_pem(key.read_bytes()) if key else None
        app = create_app(settings=ctx.obj['settings'], key_pair=key_pair, debug=debug)

        click.echo(f"Starting textprov server on http://{host}:{port}")
        click.echo(f"API documentation: http://{host}:{port}/docs")
        uvicorn.run(app, host=host, port=port, log_level="debug" if debug else "info")
    except Exception as e:
        handle_error(e, debug)


def main() -> None:
    """Entry point."""
    cli()


if __name__ == '__main__':
    main()
