"""
Anchor Core - Proof Input Builder
Assembles the witness object the proving backend consumes and the public
inputs the contract receives with the proof.

This module provides:
- ExtData: transaction metadata bound into the proof through ext_data_hash
- Witness: public and private circuit signals
- PublicInputs: hex-encoded contract-facing arguments
- ProofInputBuilder: build_witness / public_inputs

Witness Rules (Hard Contracts):
1. ext_data_hash = keccak256(abi.encode((address recipient, int256 extAmount,
   address relayer, uint256 fee, bytes encryptedOutput1,
   bytes encryptedOutput2, bool flag))) mod FIELD_SIZE
2. public_amount = (ext_amount - fee) mod FIELD_SIZE
3. Exactly two outputs
4. Inputs are padded to the circuit arity (2 or 16) with zero-amount notes
   at index 0 whose diffs and path elements are all zero
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from eth_abi import encode as abi_encode
from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

from anchor_core.crypto.field import FieldElement
from anchor_core.crypto.hashing import address_to_bytes, keccak256, to_fixed_hex, to_hex
from anchor_core.merkle.merkle_proofs import MerklePath
from anchor_core.proof.calldata import roots_bytes
from anchor_core.schemas.errors import CryptoPreconditionError, StructuralError
from anchor_core.schemas.roots import RootInfo
from anchor_core.utxo.utxo import Utxo, UtxoCodec


logger = logging.getLogger(__name__)


EXT_DATA_ABI_TYPE = "(address,int256,address,uint256,bytes,bytes,bool)"

SUPPORTED_INPUT_ARITIES = (2, 16)
OUTPUT_COUNT = 2

INT256_MIN = -(2 ** 255)
INT256_MAX = 2 ** 255 - 1


def checksum_address(address: str) -> str:
    """Validate a 20-byte address and return its checksummed form."""
    return Web3.to_checksum_address(to_hex(address_to_bytes(address)))


class ExtData(BaseModel):
    """Transaction metadata that the proof commits to but does not hide."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    recipient: str = Field(..., description="Withdrawal recipient address")
    ext_amount: int = Field(
        ...,
        description="Signed public amount: positive deposits, negative withdraws",
        ge=INT256_MIN,
        le=INT256_MAX,
    )
    relayer: str = Field(..., description="Relayer address receiving the fee")
    fee: int = Field(..., description="Relayer fee", ge=0, lt=2 ** 256)
    encrypted_output1: bytes = Field(..., description="Sealed note of output 0")
    encrypted_output2: bytes = Field(..., description="Sealed note of output 1")
    flag: bool = Field(default=False, description="Withdraw-to-L1 flag")

    @field_validator("recipient", "relayer")
    @classmethod
    def _normalize_address(cls, v: str) -> str:
        return checksum_address(v)

    def abi_encode(self) -> bytes:
        return abi_encode(
            [EXT_DATA_ABI_TYPE],
            [(
                self.recipient,
                self.ext_amount,
                self.relayer,
                self.fee,
                self.encrypted_output1,
                self.encrypted_output2,
                self.flag,
            )],
        )

    def hash(self) -> FieldElement:
        return FieldElement.from_bytes(keccak256(self.abi_encode()))

    def to_contract_args(self) -> dict[str, Any]:
        return {
            "recipient": self.recipient,
            "extAmount": to_fixed_hex(self.ext_amount),
            "relayer": self.relayer,
            "fee": to_fixed_hex(self.fee),
            "encryptedOutput1": to_hex(self.encrypted_output1),
            "encryptedOutput2": to_hex(self.encrypted_output2),
            "isL1Withdrawal": self.flag,
        }


class Witness(BaseModel):
    """
    Circuit input signals. Public signals first, private after.

    Per-input lists all have the circuit's input arity; per-output lists
    have length two.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    # Public
    roots: list[FieldElement]
    chain_id: int
    input_nullifier: list[FieldElement]
    output_commitment: list[FieldElement]
    public_amount: FieldElement
    ext_data_hash: FieldElement

    # Private, per input
    in_amount: list[int]
    in_private_key: list[FieldElement]
    in_blinding: list[FieldElement]
    in_path_indices: list[int]
    in_path_elements: list[list[FieldElement]]
    diffs: list[list[FieldElement]]

    # Private, per output
    out_chain_id: list[int]
    out_amount: list[int]
    out_blinding: list[FieldElement]
    out_pubkey: list[FieldElement]

    def to_circuit_input(self) -> dict[str, Any]:
        """Decimal-string JSON object in the circuit's signal names."""
        def dec(values: Sequence[Any]) -> list[str]:
            return [str(int(v)) for v in values]

        return {
            "roots": dec(self.roots),
            "chainID": str(self.chain_id),
            "inputNullifier": dec(self.input_nullifier),
            "outputCommitment": dec(self.output_commitment),
            "publicAmount": str(int(self.public_amount)),
            "extDataHash": str(int(self.ext_data_hash)),
            "inAmount": dec(self.in_amount),
            "inPrivateKey": dec(self.in_private_key),
            "inBlinding": dec(self.in_blinding),
            "inPathIndices": dec(self.in_path_indices),
            "inPathElements": [dec(p) for p in self.in_path_elements],
            "diffs": [dec(d) for d in self.diffs],
            "outChainID": dec(self.out_chain_id),
            "outAmount": dec(self.out_amount),
            "outBlinding": dec(self.out_blinding),
            "outPubkey": dec(self.out_pubkey),
        }


class PublicInputs(BaseModel):
    """Proof arguments as the contract receives them (0x hex)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    proof: str = Field(..., description="256-byte proof call-data")
    roots: str = Field(..., description="Concatenated 32-byte roots")
    input_nullifiers: list[str]
    output_commitments: list[str]
    public_amount: str
    ext_data_hash: str

    def to_contract_args(self) -> dict[str, Any]:
        return {
            "proof": self.proof,
            "roots": self.roots,
            "inputNullifiers": self.input_nullifiers,
            "outputCommitments": self.output_commitments,
            "publicAmount": self.public_amount,
            "extDataHash": self.ext_data_hash,
        }


@dataclass(frozen=True)
class WitnessBundle:
    """Result of build_witness: the witness plus what produced it."""
    witness: Witness
    ext_data: ExtData
    inputs: tuple[Utxo, ...]
    outputs: tuple[Utxo, ...]
    roots: tuple[RootInfo, ...]


class ProofInputBuilder:
    """
    Builds witnesses for one circuit family.

    Attributes:
        codec: UTXO codec (and thus hash engine) used for padding notes
        tree_height: Height of the trees the paths come from
        arities: Supported input counts, smallest first
    """

    def __init__(
        self,
        codec: UtxoCodec,
        tree_height: int,
        arities: Sequence[int] = SUPPORTED_INPUT_ARITIES,
    ) -> None:
        self.codec = codec
        self.tree_height = tree_height
        self.arities = tuple(sorted(arities))

    def arity_for(self, input_count: int) -> int:
        for arity in self.arities:
            if input_count <= arity:
                return arity
        raise CryptoPreconditionError(
            f"{input_count} inputs exceed the largest circuit arity {self.arities[-1]}",
            details={"inputs": input_count, "arities": list(self.arities)},
        )

    def build_witness(
        self,
        roots: Sequence[RootInfo],
        chain_id: int,
        inputs: Sequence[Utxo],
        outputs: Sequence[Utxo],
        ext_amount: int,
        fee: int,
        recipient: str,
        relayer: str,
        flag: bool = False,
        merkle_proofs: Optional[Sequence[MerklePath]] = None,
    ) -> WitnessBundle:
        """
        Assemble the witness for a transaction.

        ``merkle_proofs`` holds one path per real input, in input order.
        Inputs without a known index are placed at their path's leaf; the
        caller's notes are left unchanged.

        Raises:
            StructuralError: If there are not exactly two outputs, the proof
                count does not match the input count, or an input's index
                differs from its path's leaf
            CryptoPreconditionError: If an input's origin chain is not in
                ``roots`` or an input cannot produce its nullifier
        """
        if len(outputs) != OUTPUT_COUNT:
            raise StructuralError(
                f"Transactions have exactly {OUTPUT_COUNT} outputs, got {len(outputs)}"
            )
        proofs = list(merkle_proofs or [])
        if len(proofs) != len(inputs):
            raise StructuralError(
                f"Got {len(proofs)} Merkle paths for {len(inputs)} inputs"
            )
        for path in proofs:
            if path.height != self.tree_height:
                raise StructuralError(
                    f"Merkle path height {path.height} does not match tree height {self.tree_height}"
                )

        placed: list[Utxo] = []
        for i, (utxo, path) in enumerate(zip(inputs, proofs)):
            if utxo.index is None:
                utxo = utxo.with_index(path.index)
            elif utxo.index != path.index:
                raise StructuralError(
                    f"Input {i} is at leaf {utxo.index} but its Merkle path is for leaf {path.index}",
                    index=utxo.index,
                    details={"input": i, "path_index": path.index},
                )
            placed.append(utxo)

        arity = self.arity_for(len(placed))
        padding = [self.codec.zero_utxo(chain_id) for _ in range(arity - len(inputs))]
        all_inputs = placed + padding
        zero_path = MerklePath.zero(self.tree_height)
        all_paths = proofs + [zero_path] * len(padding)

        zero_diffs = [FieldElement(0)] * len(roots)
        diffs = [u.get_diffs(roots) for u in placed] + [list(zero_diffs) for _ in padding]

        ext_data = ExtData(
            recipient=recipient,
            ext_amount=ext_amount,
            relayer=relayer,
            fee=fee,
            encrypted_output1=outputs[0].encrypt(),
            encrypted_output2=outputs[1].encrypt(),
            flag=flag,
        )

        witness = Witness(
            roots=[r.merkle_root for r in roots],
            chain_id=chain_id,
            input_nullifier=[u.nullifier for u in all_inputs],
            output_commitment=[u.commitment for u in outputs],
            public_amount=FieldElement(ext_amount - fee),
            ext_data_hash=ext_data.hash(),
            in_amount=[u.amount for u in all_inputs],
            in_private_key=[u.keypair.privkey for u in all_inputs],
            in_blinding=[u.blinding for u in all_inputs],
            in_path_indices=[p.index for p in all_paths],
            in_path_elements=[list(p.path_elements) for p in all_paths],
            diffs=diffs,
            out_chain_id=[u.chain_id for u in outputs],
            out_amount=[u.amount for u in outputs],
            out_blinding=[u.blinding for u in outputs],
            out_pubkey=[u.keypair.pubkey for u in outputs],
        )
        logger.debug(
            "Built witness: %d inputs (%d padding), %d roots",
            len(all_inputs), len(padding), len(roots),
        )
        return WitnessBundle(
            witness=witness,
            ext_data=ext_data,
            inputs=tuple(all_inputs),
            outputs=tuple(outputs),
            roots=tuple(roots),
        )

    @staticmethod
    def public_inputs(bundle: WitnessBundle, proof_calldata: bytes) -> PublicInputs:
        witness = bundle.witness
        return PublicInputs(
            proof=to_hex(proof_calldata),
            roots=to_hex(roots_bytes(bundle.roots)),
            input_nullifiers=[n.to_hex() for n in witness.input_nullifier],
            output_commitments=[c.to_hex() for c in witness.output_commitment],
            public_amount=witness.public_amount.to_hex(),
            ext_data_hash=witness.ext_data_hash.to_hex(),
        )


__all__ = [
    "ExtData",
    "Witness",
    "PublicInputs",
    "WitnessBundle",
    "ProofInputBuilder",
    "checksum_address",
    "SUPPORTED_INPUT_ARITIES",
]
