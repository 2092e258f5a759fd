#!/usr/bin/env python3
"""CLI for running the voicegate server and calling its API."""

import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import httpx

DEFAULT_BASE_URL = "http://localhost:3000"


def get_client(base_url: str) -> httpx.Client:
    """Get HTTP client."""
    return httpx.Client(base_url=base_url, timeout=120.0)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message", str(error))
    return str(body)


def _call(base_url: str, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
    """Send a request and exit with a readable message on failure."""
    with get_client(base_url) as client:
        try:
            resp = client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            click.echo(f"Connection error: {e}", err=True)
            click.echo(f"Is the API running at {base_url}?", err=True)
            sys.exit(1)

    if resp.is_error:
        click.echo(f"API error ({resp.status_code}): {_error_message(resp)}", err=True)
        sys.exit(1)
    return resp.json()


@click.group()
@click.option("--url", default=DEFAULT_BASE_URL, help="API base URL")
@click.pass_context
def cli(ctx: click.Context, url: str) -> None:
    """voicegate: text-to-speech and voice conversion gateway."""
    ctx.ensure_object(dict)
    ctx.obj["base_url"] = url.rstrip("/")


@cli.command()
@click.option("--host", default=None, help="Bind address (default: API_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool) -> None:
    """Run the API server."""
    import uvicorn

    from .config import get_settings

    settings = get_settings()
    uvicorn.run(
        "voicegate.cli:build_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


def build_app():
    """App factory used by ``serve``."""
    from .main import create_app

    return create_app(configure_logging=True)


@cli.command()
@click.argument("text")
@click.option("--voice", default=None, help="Voice ID (default: server default)")
@click.option("--stability", default=0.5, show_default=True, type=float)
@click.option("--similarity", default=0.5, show_default=True, type=float)
@click.option("--style", default=None, type=float)
@click.pass_context
def generate(
    ctx: click.Context,
    text: str,
    voice: Optional[str],
    stability: float,
    similarity: float,
    style: Optional[float],
) -> None:
    """Synthesize TEXT and print the audio URL."""
    payload: Dict[str, Any] = {
        "text": text,
        "stability": stability,
        "similarity": similarity,
    }
    if voice:
        payload["voice"] = voice
    if style is not None:
        payload["style"] = style

    data = _call(ctx.obj["base_url"], "POST", "/api/generateAudio", json=payload)
    click.echo(f"{ctx.obj['base_url']}/{data['audioUrl']}")


@cli.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--voice", required=True, help="Target voice ID")
@click.pass_context
def convert(ctx: click.Context, audio_file: Path, voice: str) -> None:
    """Convert AUDIO_FILE to another voice and print the audio URL."""
    with audio_file.open("rb") as f:
        data = _call(
            ctx.obj["base_url"],
            "POST",
            "/api/speech-to-speech",
            files={"audio": (audio_file.name, f)},
            data={"voice": voice},
        )
    click.echo(f"{ctx.obj['base_url']}/{data['audioUrl']}")


@cli.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def upload(ctx: click.Context, audio_file: Path) -> None:
    """Upload AUDIO_FILE and print the stored filename."""
    with audio_file.open("rb") as f:
        data = _call(
            ctx.obj["base_url"],
            "POST",
            "/api/upload",
            files={"audio": (audio_file.name, f)},
        )
    click.echo(data["file"])


@cli.command("create-project")
@click.argument("name")
@click.pass_context
def create_project(ctx: click.Context, name: str) -> None:
    """Create a project folder NAME."""
    data = _call(
        ctx.obj["base_url"], "POST", "/api/createProject", json={"projectName": name}
    )
    click.echo(data["message"])


@cli.command()
@click.pass_context
def voices(ctx: click.Context) -> None:
    """List available voices."""
    data = _call(ctx.obj["base_url"], "GET", "/api/voices")
    items = data.get("voices", [])
    if not items:
        click.echo("No voices found.")
        return

    click.echo(f"\n{'VOICE ID':<28} {'NAME':<30} {'CATEGORY':<15}")
    click.echo("-" * 73)
    for voice in items:
        click.echo(
            f"{voice.get('voice_id') or '':<28} {voice.get('name') or '':<30} "
            f"{voice.get('category') or '':<15}"
        )


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
