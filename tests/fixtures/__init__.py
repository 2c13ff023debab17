"""
Test fixtures package for anchor core tests.

This package provides factory functions and fakes:
- anchor_fixtures.py: commitments, deposit events, prover config, and
  in-memory stand-ins for the contract client and proving backend

Usage:
    from fixtures.anchor_fixtures import FakeBridgeClient, make_deposit_events

    def test_something():
        client = FakeBridgeClient(make_deposit_events(make_commitments(3)))
"""

from .anchor_fixtures import (
    DEST_ANCHOR,
    HANDLER,
    RECIPIENT,
    RELAYER,
    SAMPLE_PROOF,
    FakeBridgeClient,
    FakeDepositSource,
    FakeProvingBackend,
    make_commitments,
    make_deposit_events,
    make_prover_config,
)

__all__ = [
    "DEST_ANCHOR",
    "HANDLER",
    "RECIPIENT",
    "RELAYER",
    "SAMPLE_PROOF",
    "FakeBridgeClient",
    "FakeDepositSource",
    "FakeProvingBackend",
    "make_commitments",
    "make_deposit_events",
    "make_prover_config",
]
