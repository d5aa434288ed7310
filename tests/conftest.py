"""Shared fixtures: a hub pinned to a controllable clock and a few agents."""
from __future__ import annotations

import datetime

import pytest

from agent_identity_hub.config import HubConfig
from agent_identity_hub.hub import IdentityHub
from agent_identity_hub.identity import CreateAgentRequest
from agent_identity_hub.models import Agent, AgentType

START = datetime.datetime(2025, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime.datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **delta: float) -> datetime.datetime:
        self.now += datetime.timedelta(**delta)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def config() -> HubConfig:
    return HubConfig(token_secret="unit-test-secret")


@pytest.fixture()
def hub(config: HubConfig, clock: FakeClock) -> IdentityHub:
    return IdentityHub(config=config, clock=clock)


def make_agent(hub: IdentityHub, name: str, agent_type: AgentType = AgentType.WORKER) -> Agent:
    agent, _ = hub.identities.create_agent(CreateAgentRequest(name=name, type=agent_type))
    return agent


@pytest.fixture()
def worker(hub: IdentityHub) -> Agent:
    return make_agent(hub, "worker-a", AgentType.WORKER)


@pytest.fixture()
def validator(hub: IdentityHub) -> Agent:
    return make_agent(hub, "validator-b", AgentType.VALIDATOR)
