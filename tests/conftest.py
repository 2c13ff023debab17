"""
Pytest configuration and shared fixtures for anchor core tests.

This conftest.py:
1. Adds project root to sys.path for imports
2. Provides hash engines, codecs and small trees as fixtures
3. Configures pytest markers
"""

import sys
from pathlib import Path

import pytest

# =============================================================================
# Path Setup - Must happen before any local imports
# =============================================================================

# Get the project root (parent of tests/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_TESTS_ROOT = Path(__file__).resolve().parent

# Add both project root and tests root to sys.path
for _path in [str(_PROJECT_ROOT), str(_TESTS_ROOT)]:
    if _path not in sys.path:
        sys.path.insert(0, _path)

# =============================================================================
# Import fixtures using importlib (more robust for pytest loading)
# =============================================================================

import importlib

_anchor = importlib.import_module("fixtures.anchor_fixtures")

make_commitments = _anchor.make_commitments
make_prover_config = _anchor.make_prover_config

from anchor_core.crypto.poseidon import KeccakHasher, PoseidonHasher
from anchor_core.merkle.merkle_tree import IncrementalMerkleTree
from anchor_core.utxo.utxo import UtxoCodec


# =============================================================================
# Pytest Fixtures (autodiscovered by pytest)
# =============================================================================

@pytest.fixture(scope="session")
def keccak_hasher():
    """Fast hash engine for structural tests."""
    return KeccakHasher()


@pytest.fixture(scope="session")
def poseidon_hasher():
    """Reference Poseidon engine (parameters are cached per width)."""
    return PoseidonHasher()


@pytest.fixture
def codec(keccak_hasher):
    """UTXO codec over the keccak engine."""
    return UtxoCodec(keccak_hasher)


@pytest.fixture
def small_tree(keccak_hasher):
    """Empty height-4 tree."""
    return IncrementalMerkleTree(4, keccak_hasher)


@pytest.fixture
def commitments():
    """Three distinct stand-in commitments."""
    return make_commitments(3)


@pytest.fixture
def prover_config():
    """Prover config with per-arity artifact paths."""
    return make_prover_config()


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
