"""
Anchor Core - Bridge Proposal Codec

Root-update proposal encoding, data hashes, resource ids and typed chain ids.
"""
from .proposal import (
    ChainType,
    Proposal,
    ProposalStatus,
    decode_proposal,
    encode_proposal,
    parse_resource_id,
    parse_typed_chain_id,
    proposal_data_hash,
    resource_id,
    typed_chain_id,
)

__all__ = [
    "Proposal",
    "ProposalStatus",
    "ChainType",
    "typed_chain_id",
    "parse_typed_chain_id",
    "encode_proposal",
    "decode_proposal",
    "proposal_data_hash",
    "resource_id",
    "parse_resource_id",
]
