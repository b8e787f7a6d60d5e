"""CLI entrypoint for knowbase."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import requests
import typer
import uvicorn

app = typer.Typer(name="knb", help="knowbase command-line interface")
sessions_app = typer.Typer(name="sessions", help="Manage chat sessions")
app.add_typer(sessions_app, name="sessions")

DEFAULT_HOST = "http://127.0.0.1:5173"
DEFAULT_PORT = 5173


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("KNB_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    try:
        resp = requests.request(method, url, timeout=300, **kwargs)
    except requests.ConnectionError as exc:
        typer.echo(f"Cannot reach knowbase at {base}: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    if not resp.ok:
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


@sessions_app.command("list")
def list_sessions(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List chat sessions, newest first."""
    resp = _request("GET", "/sessions", host=host)
    _echo_json(resp.json())


@sessions_app.command("create")
def create_session(
    name: str = typer.Argument(..., help="Session name"),
    model: Optional[str] = typer.Option(None, "--model", help="Chat model for this session"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Create a chat session."""
    resp = _request("POST", "/sessions", host=host, json={"name": name, "model": model})
    _echo_json(resp.json())


@sessions_app.command("delete")
def delete_session(
    session_id: str = typer.Argument(..., help="Session identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete a session with its transcript, index cache and files."""
    resp = _request("DELETE", f"/sessions/{session_id}", host=host)
    _echo_json(resp.json())


@app.command("import")
def import_resource(
    session_id: str = typer.Argument(..., help="Session identifier"),
    path: Path = typer.Argument(..., help="File to add to the knowledgebase"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Import a file into a session's knowledgebase and index it."""
    resp = _request(
        "POST",
        f"/sessions/{session_id}/resources",
        host=host,
        json={"path": str(path.expanduser().resolve())},
    )
    _echo_json(resp.json())


@app.command()
def resources(
    session_id: str = typer.Argument(..., help="Session identifier"),
    details: bool = typer.Option(False, "--details", help="Include character counts"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List the files in a session's knowledgebase."""
    resp = _request("GET", f"/sessions/{session_id}/resources", host=host, params={"details": details})
    for item in resp.json():
        marker = "indexed" if item["indexed"] else "pending"
        size = f"  {item['size_label']}" if item.get("size_label") else ""
        typer.echo(f"{item['name']}  [{marker}]{size}")


@app.command()
def show(
    session_id: str = typer.Argument(..., help="Session identifier"),
    file_name: str = typer.Argument(..., help="Knowledgebase file to display"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Print the extracted text of a knowledgebase file."""
    resp = _request("GET", f"/sessions/{session_id}/resources/{quote(file_name)}", host=host)
    payload = resp.json()
    typer.echo(f"{payload['name']} ({payload['size_label']})\n")
    typer.echo(payload["content"])


@app.command()
def index(
    session_id: str = typer.Argument(..., help="Session identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Index new and modified files and evict deleted ones."""
    resp = _request("POST", f"/sessions/{session_id}/index", host=host)
    payload = resp.json()
    for event in payload["events"]:
        typer.echo(f"[{event['current']}/{event['total']}] {event['message']}")
    _echo_json(payload["report"])


@app.command()
def ask(
    session_id: str = typer.Argument(..., help="Session identifier"),
    message: str = typer.Argument(..., help="Question to ask"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask a question answered from the session's knowledgebase."""
    resp = _request("POST", f"/sessions/{session_id}/query", host=host, json={"message": message})
    payload = resp.json()
    typer.echo(payload["answer"])
    if payload["sources"]:
        typer.echo(f"\nSources: {', '.join(payload['sources'])}")


@app.command()
def history(
    session_id: str = typer.Argument(..., help="Session identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Print a session's transcript."""
    resp = _request("GET", f"/sessions/{session_id}/history", host=host)
    for message in resp.json()["messages"]:
        speaker = "you" if message["is_user"] else "assistant"
        typer.echo(f"{speaker}: {message['content']}")
        if message["sources"]:
            typer.echo(f"  sources: {', '.join(message['sources'])}")


@app.command()
def serve(
    bind: str = typer.Option("127.0.0.1", "--bind", help="Interface to listen on"),
    port: int = typer.Option(DEFAULT_PORT, "--port", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
) -> None:
    """Run the knowbase API server."""
    uvicorn.run("knowbase.app:app", host=bind, port=port, reload=reload)


if __name__ == "__main__":
    app()
