"""Shared fixtures: cheap hashing parameters, ephemeral keys and in-memory collaborators."""

from __future__ import annotations

import json

import pytest

from identity_service.context import RequestContext
from identity_service.domain.service import AccountLifecycle
from identity_service.errors import DeliveryError
from identity_service.repository import InMemoryIdentityStore
from identity_service.security.encryption import EncryptionCodec
from identity_service.security.passwords import CredentialHasher, HashParams
from identity_service.security.tokens import TokenIssuer, generate_signing_keys

TOPIC = "identity.account.created"
FAST_PARAMS = HashParams(memory=1024, iterations=1, parallelism=1)


class RecordingBus:
    """Message bus double that records publishes and can be told to fail."""

    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []
        self.fail_with: str | None = None

    def publish(self, topic: str, payload: str, *, ctx: RequestContext | None = None) -> None:
        if self.fail_with is not None:
            raise DeliveryError(self.fail_with)
        self.published.append((topic, payload))

    def events(self) -> list[dict]:
        return [json.loads(payload) for _, payload in self.published]


@pytest.fixture(scope="session")
def access_keys():
    return generate_signing_keys(ttl_seconds=900)


@pytest.fixture(scope="session")
def refresh_keys():
    return generate_signing_keys(ttl_seconds=3600)


@pytest.fixture
def token_issuer(access_keys, refresh_keys) -> TokenIssuer:
    return TokenIssuer(access_keys, refresh_keys, issuer="identity-test")


@pytest.fixture
def hasher() -> CredentialHasher:
    return CredentialHasher(FAST_PARAMS)


@pytest.fixture
def codec() -> EncryptionCodec:
    return EncryptionCodec(EncryptionCodec.generate_key())


@pytest.fixture
def store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def service(store, bus, hasher, token_issuer, codec) -> AccountLifecycle:
    return AccountLifecycle(
        store,
        bus,
        hasher=hasher,
        tokens=token_issuer,
        codec=codec,
        events_topic=TOPIC,
    )
