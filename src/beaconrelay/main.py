from __future__ import annotations

import json
import os
from typing import List, Optional

import httpx
import typer
from rich.console import Console

from beaconrelay_server.security import OriginPolicy, host_from_origin
from beaconrelay_server.settings import Settings

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()

CONTENT_TYPES = {
    "json": "application/json",
    "text": "text/plain;charset=UTF-8",
    "beacon": "application/octet-stream",
}


def _parse_params(params: List[str]) -> dict:
    out = {}
    for item in params:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            console.print(f"[red]--param must look like key=value[/red] (got {item!r})")
            raise typer.Exit(code=2)
        out[key] = value
    return out


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Bind host (default: BEACONRELAY_HOST or 0.0.0.0)."),
    port: Optional[int] = typer.Option(None, help="Bind port (default: BEACONRELAY_PORT or 3000)."),
    root_domain: Optional[str] = typer.Option(None, "--root-domain", help="Root domain to admit, with subdomains."),
    extra_origins: Optional[str] = typer.Option(None, "--extra-origins", help="Comma-separated extra origins/domains."),
    webhook_url: Optional[str] = typer.Option(None, "--webhook-url", help="Destination webhook URL."),
):
    if root_domain is not None:
        os.environ["BEACONRELAY_ALLOWED_ROOT_DOMAIN"] = root_domain
    if extra_origins is not None:
        os.environ["BEACONRELAY_EXTRA_ALLOWED_ORIGINS"] = extra_origins
    if webhook_url is not None:
        os.environ["BEACONRELAY_WEBHOOK_URL"] = webhook_url

    settings = Settings()
    bind_host = host or settings.host
    bind_port = port or settings.port

    if not settings.webhook_url:
        console.print("[yellow]Warning:[/yellow] no webhook URL configured; beacons will be answered with 502.")

    console.print(f"Starting server on http://{bind_host}:{bind_port}")
    console.print(f"Allowed domain: {settings.allowed_root_domain}")
    if settings.extra_origins_list():
        console.print(f"Extra allowed origins: {', '.join(settings.extra_origins_list())}")
    console.print(f"Collect paths:  {', '.join(settings.collect_paths_list())}")

    import uvicorn
    uvicorn.run("beaconrelay_server.main:app", host=bind_host, port=bind_port, reload=False, log_level="info")


@app.command("send")
def send(
    url: str = typer.Argument(..., help="Collect URL, e.g. http://127.0.0.1:3000/collect"),
    event_type: str = typer.Option("page_view", "--event-type", help="event_type field."),
    client_id: str = typer.Option("cli-test", "--client-id", help="client_id field."),
    param: Optional[List[str]] = typer.Option(None, "--param", help="event_params entry as key=value (repeatable)."),
    origin: Optional[str] = typer.Option(None, "--origin", help="Origin header to send."),
    mode: str = typer.Option("json", help="Body encoding: json, text (sendBeacon string) or beacon (Blob)."),
    timeout: float = typer.Option(10.0, help="Request timeout seconds."),
):
    mode = mode.lower().strip()
    if mode not in CONTENT_TYPES:
        console.print("[red]mode must be 'json', 'text' or 'beacon'[/red]")
        raise typer.Exit(code=2)

    payload = {"event_type": event_type, "client_id": client_id}
    params = _parse_params(param or [])
    if params:
        payload["event_params"] = params

    headers = {"Content-Type": CONTENT_TYPES[mode]}
    if origin:
        headers["Origin"] = origin

    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            r = client.post(url, content=json.dumps(payload).encode("utf-8"), headers=headers)
    except httpx.HTTPError as ex:
        console.print(f"[red]send error[/red]: {ex}")
        raise typer.Exit(code=1)

    color = "green" if r.status_code < 300 else "red"
    console.print(f"[{color}]{r.status_code}[/{color}] {r.reason_phrase}")
    rid = r.headers.get("x-request-id")
    if rid:
        console.print(f"request id: {rid}")
    if r.content:
        try:
            console.print_json(data=r.json())
        except ValueError:
            console.print(r.text)
    if r.status_code >= 300:
        raise typer.Exit(code=1)


@app.command("check-origin")
def check_origin(
    origin: str = typer.Argument(..., help="Origin header value to test."),
    root_domain: Optional[str] = typer.Option(None, "--root-domain", help="Override the configured root domain."),
    extra_origins: Optional[str] = typer.Option(None, "--extra-origins", help="Override the configured extra origins."),
):
    settings = Settings()
    extras = settings.extra_origins_list()
    if extra_origins is not None:
        extras = [o.strip() for o in extra_origins.split(",") if o.strip()]
    policy = OriginPolicy.build(root_domain or settings.allowed_root_domain, extras)

    console.print(f"host:    {host_from_origin(origin) or '-'}")
    console.print(f"root:    {policy.root_domain}")
    if policy.extra_hosts:
        console.print(f"extras:  {', '.join(policy.extra_hosts)}")
    if policy.admits(origin):
        console.print("[green]admitted[/green]")
        return
    console.print("[red]denied[/red]")
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
