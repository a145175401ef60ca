"""
Forward hash chains.

    output[0] = H(seed)
    output[i] = H(output[i-1])

The last link is published as the commitment before any roll is served.
Once the seed is revealed anyone can hash forward and match every link.
Links and seeds are lowercase hex; H is SHA-256 over the raw bytes.
"""
from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from typing import Callable, Iterator, List, Tuple

from .exceptions import IndexOutOfRange, InvalidLength

SEED_BYTES = 32

# A round keeps one link past its playable rolls so the published commitment
# never equals a link that is turned into a roll.
SEALING_LINKS = 1


def sha256_hex(value_hex: str) -> str:
    return hashlib.sha256(bytes.fromhex(value_hex)).hexdigest()


@dataclass(frozen=True)
class Commitment:
    seed_commitment: str
    chain_length: int

    def to_dict(self) -> dict:
        return {"seed_commitment": self.seed_commitment, "chain_length": self.chain_length}

    @classmethod
    def from_dict(cls, data: dict) -> "Commitment":
        return cls(str(data["seed_commitment"]).lower(), int(data["chain_length"]))


def _check_length(chain_length: int) -> None:
    if isinstance(chain_length, bool) or not isinstance(chain_length, int) or chain_length <= 0:
        raise InvalidLength(f"chain length must be a positive integer, got {chain_length!r}")


def iter_chain(seed: str, chain_length: int) -> Iterator[str]:
    _check_length(chain_length)
    link = seed
    for _ in range(chain_length):
        link = sha256_hex(link)
        yield link


def build_chain(seed: str, chain_length: int) -> List[str]:
    return list(iter_chain(seed, chain_length))


def value_at(seed: str, index: int, chain_length: int) -> str:
    """Recompute output[index] by hashing forward from the seed index+1 times."""
    _check_length(chain_length)
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < chain_length:
        raise IndexOutOfRange(f"index {index!r} outside chain of length {chain_length}")

    link = seed
    for _ in range(index + 1):
        link = sha256_hex(link)
    return link


def generate_seed(entropy_source: Callable[[int], bytes] = secrets.token_bytes) -> str:
    return entropy_source(SEED_BYTES).hex()


def create_chain(
    chain_length: int,
    entropy_source: Callable[[int], bytes] = secrets.token_bytes,
) -> Tuple[Commitment, str]:
    """
    Draw a fresh seed and commit to the chain it generates.
    Returns (public commitment, secret seed).
    """
    _check_length(chain_length)
    seed = generate_seed(entropy_source)

    last = seed
    for last in iter_chain(seed, chain_length):
        pass

    return Commitment(seed_commitment=last, chain_length=chain_length), seed
