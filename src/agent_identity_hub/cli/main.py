"""CLI entry point for agent-identity-hub.

Invoked as::

    agent-identity-hub [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m agent_identity_hub.cli.main

Commands
--------
version          Show version information
config show      Print the effective configuration (secret masked)
did create       Create a did:key or did:ethr DID and print its document
did resolve      Resolve a DID (locally, by did:key, or via the configured resolver)
token inspect    Decode a capability token payload
demo             Run the capability and trust scenarios in-process
"""
from __future__ import annotations

import datetime
import logging
import sys

import click
from pydantic import ValidationError as ConfigValidationError
from rich.console import Console
from rich.table import Table

from agent_identity_hub.config import HubConfig
from agent_identity_hub.did import ServiceEndpoint

console = Console()


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="agent-identity-hub")
@click.option(
    "--log-level",
    default=None,
    help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Agent DIDs, capability tokens, attestations and trust scoring"""
    overrides: dict[str, object] = {}
    if log_level is not None:
        overrides["log_level"] = log_level
    try:
        config = HubConfig.from_env(**overrides)
    except ConfigValidationError as exc:
        console.print(f"[red]Error:[/red] invalid configuration: {exc}")
        sys.exit(1)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config


# ------------------------------------------------------------------
# version
# ------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from agent_identity_hub import __version__

    console.print(f"[bold]agent-identity-hub[/bold] v{__version__}")


# ------------------------------------------------------------------
# config command group
# ------------------------------------------------------------------


@cli.group(name="config")
def config_group() -> None:
    """Inspect hub configuration."""


@config_group.command(name="show")
@click.pass_obj
def config_show_command(config: HubConfig) -> None:
    """Print the effective configuration with the token secret masked."""
    table = Table(title="Hub configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in config.redacted().items():
        table.add_row(key, "(unset)" if value is None else str(value))
    console.print(table)


# ------------------------------------------------------------------
# did command group
# ------------------------------------------------------------------


@cli.group(name="did")
def did_group() -> None:
    """Create and resolve DIDs."""


def _parse_service(raw: str) -> ServiceEndpoint:
    parts = [p.strip() for p in raw.split(",", 2)]
    if len(parts) != 3 or not all(parts):
        raise click.BadParameter(f"expected 'id,type,url', got {raw!r}", param_hint="--service")
    return ServiceEndpoint(id=parts[0], type=parts[1], endpoint=parts[2])


@did_group.command(name="create")
@click.option(
    "--method",
    "-m",
    type=click.Choice(["key", "ethr"]),
    default=None,
    help="DID method. Defaults to AGENT_HUB_DID_METHOD or 'key'.",
)
@click.option(
    "--service",
    "-s",
    multiple=True,
    help="Service endpoint as 'id,type,url' (repeatable, e.g. -s '#mcp,MCPService,https://a/mcp').",
)
@click.pass_obj
def did_create_command(config: HubConfig, method: str | None, service: tuple[str, ...]) -> None:
    """Create a DID with a fresh key pair and print its document."""
    from agent_identity_hub.did import DIDService
    from agent_identity_hub.errors import DIDError
    from agent_identity_hub.store import InMemoryIdentityStore

    services = [_parse_service(raw) for raw in service]
    dids = DIDService(InMemoryIdentityStore())
    try:
        did, document = dids.create_did(method or config.default_did_method, services=services)
    except DIDError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    console.print(f"[green]Created[/green] [bold]{did}[/bold]", soft_wrap=True)
    console.print_json(data=document.to_dict())


@did_group.command(name="resolve")
@click.argument("did")
@click.pass_obj
def did_resolve_command(config: HubConfig, did: str) -> None:
    """Resolve DID and print the resolution result."""
    from agent_identity_hub.hub import IdentityHub

    with IdentityHub.from_config(config) as hub:
        result = hub.dids.resolve_did(did)

    console.print_json(data=result.to_dict())
    if result.error is not None:
        sys.exit(1)


# ------------------------------------------------------------------
# token command group
# ------------------------------------------------------------------


@cli.group(name="token")
def token_group() -> None:
    """Work with capability tokens."""


@token_group.command(name="inspect")
@click.argument("token")
@click.option(
    "--verify",
    is_flag=True,
    default=False,
    help="Also check the signature against the configured token secret.",
)
@click.pass_obj
def token_inspect_command(config: HubConfig, token: str, verify: bool) -> None:
    """Decode the payload of TOKEN without requiring the signing secret."""
    from agent_identity_hub.capabilities import CapabilityTokenCodec, TokenError

    try:
        payload = CapabilityTokenCodec.peek(token)
    except TokenError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    console.print_json(data=payload)
    for claim in ("iat", "nbf", "exp"):
        value = payload.get(claim)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            stamp = datetime.datetime.fromtimestamp(value, tz=datetime.timezone.utc)
            console.print(f"  {claim}: {stamp.isoformat()}")

    if verify:
        try:
            CapabilityTokenCodec(config.token_secret).decode(token)
        except TokenError as exc:
            console.print(f"  [red]FAIL[/red]  {exc}")
            sys.exit(1)
        console.print("  [green]PASS[/green]  Signature valid")


# ------------------------------------------------------------------
# demo
# ------------------------------------------------------------------


@cli.command(name="demo")
@click.pass_obj
def demo_command(config: HubConfig) -> None:
    """Run the capability and trust scenarios against an in-memory hub."""
    from agent_identity_hub.attestations import AttestationRequest, ClaimInput
    from agent_identity_hub.capabilities import CapabilityRequest, CapabilityVerificationRequest
    from agent_identity_hub.hub import IdentityHub
    from agent_identity_hub.identity import CreateAgentRequest
    from agent_identity_hub.models import AgentType, AttestationType

    hub = IdentityHub(config=config)
    create = hub.identities.create_agent

    # Capability scenario
    worker, _ = create(CreateAgentRequest(name="worker-a", type=AgentType.WORKER))
    validator, _ = create(CreateAgentRequest(name="validator-b", type=AgentType.VALIDATOR))
    issued = hub.capabilities.issue_capability(
        validator.did,
        CapabilityRequest(
            subject=worker.did, actions=["read"], resources=["data/*"], expires_in_hours=1
        ),
    )

    checks = [("read", "data/42", "active"), ("write", "data/42", "active")]
    rows: list[tuple[str, str, str, bool, str]] = []
    for action, resource, phase in checks:
        result = hub.capabilities.verify_capability(
            CapabilityVerificationRequest(token=issued.token, action=action, resource=resource)
        )
        rows.append((phase, action, resource, result.valid, "; ".join(result.errors or [])))
    hub.capabilities.revoke_capability(issued.capability.id, validator.did, reason="demo")
    result = hub.capabilities.verify_capability(
        CapabilityVerificationRequest(token=issued.token, action="read", resource="data/42")
    )
    rows.append(("revoked", "read", "data/42", result.valid, "; ".join(result.errors or [])))

    table = Table(title="Capability verification", show_header=True)
    table.add_column("Phase", style="cyan")
    table.add_column("Action")
    table.add_column("Resource")
    table.add_column("Valid", justify="center")
    table.add_column("Errors")
    for phase, action, resource, valid, errors in rows:
        table.add_row(
            phase, action, resource, "[green]yes[/green]" if valid else "[red]no[/red]", errors
        )
    console.print(table)

    # Trust scenario
    trusted, _ = create(CreateAgentRequest(name="agent-c", type=AgentType.SPECIALIST))
    untrusted, _ = create(CreateAgentRequest(name="agent-d", type=AgentType.SPECIALIST))
    for index in range(3):
        voucher, _ = create(CreateAgentRequest(name=f"voucher-{index}", type=AgentType.VALIDATOR))
        hub.attestations.create_attestation(
            voucher.did,
            AttestationRequest(
                type=AttestationType.TRUST_ASSERTION,
                subject=trusted.did,
                claims=[ClaimInput(type="reliability", value="high")],
            ),
        )

    scores = Table(title="Trust scores", show_header=True)
    scores.add_column("Agent", style="cyan")
    scores.add_column("Attestations", justify="right")
    scores.add_column("Score", justify="right")
    scores.add_column("Level")
    for agent in (trusted, untrusted):
        calculation = hub.trust.calculate_trust_score(agent.id)
        scores.add_row(
            agent.name,
            str(calculation.attestations),
            f"{calculation.final_score:.3f}",
            calculation.level.name,
        )
    console.print(scores)


if __name__ == "__main__":
    cli()
