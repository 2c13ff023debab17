"""
Runtime Configuration

Central configuration for anchor instances, the relayer's chain access and
the proving backend.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Optional
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


@dataclass
class TreeConfig:
    """Configuration for the local commitment tree."""
    height: int = 30
    enforce_capacity: bool = False


@dataclass
class AnchorConfig:
    """Configuration for one anchor instance."""
    chain_id: int = 31337
    max_edges: int = 1
    linked_chain_ids: list[int] = field(default_factory=list)


@dataclass
class HasherConfig:
    """Configuration for the field hash engine."""
    kind: str = "poseidon"
    constants_path: Optional[str] = None

    def build(self):
        """Construct the configured HashEngine."""
        from anchor_core.crypto.poseidon import KeccakHasher, PoseidonHasher

        if self.kind == "poseidon":
            if self.constants_path:
                return PoseidonHasher.from_constants_file(self.constants_path)
            return PoseidonHasher()
        if self.kind == "keccak":
            return KeccakHasher()
        raise ValueError(f"Unknown hasher kind: {self.kind}")


@dataclass
class BridgeConfig:
    """Configuration for chain RPC access and bridge contracts."""
    rpc_url: Optional[str] = None
    anchor_address: Optional[str] = None
    bridge_address: Optional[str] = None
    handler_address: Optional[str] = None
    private_key: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    start_block: int = 0
    log_chunk_size: int = 5000
    min_log_chunk_size: int = 10

    def __post_init__(self):
        # Signing key comes from the environment unless given explicitly
        if self.private_key is None:
            self.private_key = os.getenv("ANCHOR_PRIVATE_KEY")


@dataclass
class ProverConfig:
    """
    Configuration for the proving backend.

    Artifact paths may contain ``{arity}``, filled with the circuit's input
    count (2 or 16).
    """
    snarkjs_bin: str = "snarkjs"
    circuit_wasm: Optional[str] = None
    proving_key: Optional[str] = None
    verifying_key: Optional[str] = None
    timeout_s: float = 300.0
    input_arities: list[int] = field(default_factory=lambda: [2, 16])


@dataclass
class RuntimeConfig:
    """
    Complete runtime configuration for an anchor relayer.

    Can be loaded from:
    - Environment variables
    - YAML file
    - Programmatic construction
    """
    tree: TreeConfig = field(default_factory=TreeConfig)
    anchor: AnchorConfig = field(default_factory=AnchorConfig)
    hasher: HasherConfig = field(default_factory=HasherConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    prover: ProverConfig = field(default_factory=ProverConfig)
    record_receipts: bool = True
    debug: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def _get_env_overrides() -> dict[str, Any]:
        """
        Get configuration overrides from environment variables.

        This is the SINGLE source of truth for all env var reading.

        Supported variables:
        - ANCHOR_CHAIN_ID: Local chain id
        - ANCHOR_MAX_EDGES: Maximum number of linked chains
        - ANCHOR_TREE_HEIGHT: Commitment tree height
        - ANCHOR_HASHER: Hash engine kind (poseidon/keccak)
        - ANCHOR_POSEIDON_CONSTANTS: Path to a Poseidon constants JSON file
        - ANCHOR_RPC_URL: Chain RPC endpoint
        - ANCHOR_CONTRACT_ADDRESS: Anchor contract address
        - ANCHOR_BRIDGE_ADDRESS: Bridge contract address
        - ANCHOR_HANDLER_ADDRESS: Anchor handler contract address
        - ANCHOR_RPC_TIMEOUT: RPC timeout in seconds
        - ANCHOR_SNARKJS_BIN: snarkjs executable
        - ANCHOR_PROVER_TIMEOUT: Proving timeout in seconds
        - ANCHOR_DEBUG: Enable debug mode (true/false)
        """
        overrides: dict[str, Any] = {}

        # Anchor settings
        if os.getenv("ANCHOR_CHAIN_ID"):
            overrides.setdefault("anchor", {})["chain_id"] = int(os.getenv("ANCHOR_CHAIN_ID"))
        if os.getenv("ANCHOR_MAX_EDGES"):
            overrides.setdefault("anchor", {})["max_edges"] = int(os.getenv("ANCHOR_MAX_EDGES"))

        # Tree and hasher settings
        if os.getenv("ANCHOR_TREE_HEIGHT"):
            overrides.setdefault("tree", {})["height"] = int(os.getenv("ANCHOR_TREE_HEIGHT"))
        if os.getenv("ANCHOR_HASHER"):
            overrides.setdefault("hasher", {})["kind"] = os.getenv("ANCHOR_HASHER")
        if os.getenv("ANCHOR_POSEIDON_CONSTANTS"):
            overrides.setdefault("hasher", {})["constants_path"] = os.getenv("ANCHOR_POSEIDON_CONSTANTS")

        # Bridge settings
        if os.getenv("ANCHOR_RPC_URL"):
            overrides.setdefault("bridge", {})["rpc_url"] = os.getenv("ANCHOR_RPC_URL")
        if os.getenv("ANCHOR_CONTRACT_ADDRESS"):
            overrides.setdefault("bridge", {})["anchor_address"] = os.getenv("ANCHOR_CONTRACT_ADDRESS")
        if os.getenv("ANCHOR_BRIDGE_ADDRESS"):
            overrides.setdefault("bridge", {})["bridge_address"] = os.getenv("ANCHOR_BRIDGE_ADDRESS")
        if os.getenv("ANCHOR_HANDLER_ADDRESS"):
            overrides.setdefault("bridge", {})["handler_address"] = os.getenv("ANCHOR_HANDLER_ADDRESS")
        if os.getenv("ANCHOR_RPC_TIMEOUT"):
            overrides.setdefault("bridge", {})["timeout"] = float(os.getenv("ANCHOR_RPC_TIMEOUT"))

        # Prover settings
        if os.getenv("ANCHOR_SNARKJS_BIN"):
            overrides.setdefault("prover", {})["snarkjs_bin"] = os.getenv("ANCHOR_SNARKJS_BIN")
        if os.getenv("ANCHOR_PROVER_TIMEOUT"):
            overrides.setdefault("prover", {})["timeout_s"] = float(os.getenv("ANCHOR_PROVER_TIMEOUT"))

        if os.getenv("ANCHOR_DEBUG"):
            overrides["debug"] = os.getenv("ANCHOR_DEBUG", "false").lower() == "true"

        return overrides

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """
        Load configuration purely from environment variables.

        Uses defaults for any values not specified in env vars.
        """
        overrides = cls._get_env_overrides()
        return cls.from_dict(overrides)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "RuntimeConfig":
        """Load configuration from a YAML file."""
        import yaml
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RuntimeConfig":
        """Load configuration from a dictionary (supports partial data)."""
        tree_data = data.get("tree", {})
        anchor_data = data.get("anchor", {})
        hasher_data = data.get("hasher", {})
        bridge_data = data.get("bridge", {})
        prover_data = data.get("prover", {})

        return cls(
            tree=TreeConfig(**tree_data) if tree_data else TreeConfig(),
            anchor=AnchorConfig(**anchor_data) if anchor_data else AnchorConfig(),
            hasher=HasherConfig(**hasher_data) if hasher_data else HasherConfig(),
            bridge=BridgeConfig(**bridge_data) if bridge_data else BridgeConfig(),
            prover=ProverConfig(**prover_data) if prover_data else ProverConfig(),
            record_receipts=data.get("record_receipts", True),
            debug=data.get("debug", False),
            extra=data.get("extra", {}),
        )

    def with_env_overrides(self) -> "RuntimeConfig":
        """
        Return a new config with environment variable overrides applied.

        This allows loading from a config file first, then overlaying env vars.
        """
        overrides = self._get_env_overrides()
        if not overrides:
            return self

        import copy
        new_config = copy.deepcopy(self)

        for section in ("tree", "anchor", "hasher", "bridge", "prover"):
            if section in overrides:
                target = getattr(new_config, section)
                for key, value in overrides[section].items():
                    setattr(target, key, value)

        if "debug" in overrides:
            new_config.debug = overrides["debug"]

        return new_config

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary (the signing key is never included)."""
        return {
            "tree": {
                "height": self.tree.height,
                "enforce_capacity": self.tree.enforce_capacity,
            },
            "anchor": {
                "chain_id": self.anchor.chain_id,
                "max_edges": self.anchor.max_edges,
                "linked_chain_ids": list(self.anchor.linked_chain_ids),
            },
            "hasher": {
                "kind": self.hasher.kind,
                "constants_path": self.hasher.constants_path,
            },
            "bridge": {
                "rpc_url": self.bridge.rpc_url,
                "anchor_address": self.bridge.anchor_address,
                "bridge_address": self.bridge.bridge_address,
                "handler_address": self.bridge.handler_address,
                "timeout": self.bridge.timeout,
                "max_retries": self.bridge.max_retries,
                "retry_delay": self.bridge.retry_delay,
                "start_block": self.bridge.start_block,
                "log_chunk_size": self.bridge.log_chunk_size,
                "min_log_chunk_size": self.bridge.min_log_chunk_size,
            },
            "prover": {
                "snarkjs_bin": self.prover.snarkjs_bin,
                "circuit_wasm": self.prover.circuit_wasm,
                "proving_key": self.prover.proving_key,
                "verifying_key": self.prover.verifying_key,
                "timeout_s": self.prover.timeout_s,
                "input_arities": list(self.prover.input_arities),
            },
            "record_receipts": self.record_receipts,
            "debug": self.debug,
            "extra": self.extra,
        }


# Global default configuration
_default_config: Optional[RuntimeConfig] = None


def get_default_config() -> RuntimeConfig:
    """Get the default runtime configuration."""
    global _default_config
    if _default_config is None:
        _default_config = RuntimeConfig.from_env()
    return _default_config


def set_default_config(config: RuntimeConfig) -> None:
    """Set the default runtime configuration."""
    global _default_config
    _default_config = config
