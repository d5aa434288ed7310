#!/usr/bin/env python3
"""Example: Quickstart

Creates two agents on an in-memory hub, grants one a capability, proves DID
ownership with a signature and prints the resulting trust score.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install agent-identity-hub
"""
from __future__ import annotations

import agent_identity_hub
from agent_identity_hub import AgentType, CreateAgentRequest, IdentityHub
from agent_identity_hub.capabilities import CapabilityRequest, CapabilityVerificationRequest


def main() -> None:
    print(f"agent-identity-hub version: {agent_identity_hub.__version__}")
    hub = IdentityHub()

    # Step 1: Register two agents
    worker, _ = hub.identities.create_agent(CreateAgentRequest(name="worker", type=AgentType.WORKER))
    validator, _ = hub.identities.create_agent(
        CreateAgentRequest(name="validator", type=AgentType.VALIDATOR)
    )
    print(f"Worker DID:    {worker.did}")
    print(f"Validator DID: {validator.did}")

    # Step 2: Prove control of the worker DID
    signature = hub.dids.sign_message(worker.did, "hello")
    print(f"Ownership verified: {hub.dids.verify_did_ownership(worker.did, signature, 'hello')}")

    # Step 3: Grant and check a capability
    issued = hub.capabilities.issue_capability(
        validator.did,
        CapabilityRequest(subject=worker.did, actions=["read"], resources=["data/*"], expires_in_hours=1),
    )
    for action in ("read", "write"):
        result = hub.capabilities.verify_capability(
            CapabilityVerificationRequest(token=issued.token, action=action, resource="data/42")
        )
        print(f"{action} data/42: valid={result.valid} errors={result.errors}")

    # Step 4: Trust score
    calculation = hub.trust.calculate_trust_score(worker.id)
    print(f"Trust score: {calculation.final_score:.3f} ({calculation.level.name})")

    print("\nQuickstart complete.")


if __name__ == "__main__":
    main()
