from __future__ import annotations

import hashlib
import logging
from typing import Callable, Optional

from .identifier import MAX_DESIGNATION
from .models import AllocationRange

logger = logging.getLogger(__name__)

Digest = Callable[[bytes], bytes]

DEFAULT_SALT = "beatschain-isrc-salt"
DEFAULT_BASE = 200
DEFAULT_BLOCK_SIZE = 1000
DEFAULT_BUCKET_COUNT = 90
MIN_DIGEST_BYTES = 16

DEFAULT_RANGE = AllocationRange(start=200, end=1199, owner_key="default", range_index=0)


def sha256_digest(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


class RangeAllocator:
    """Maps an owner identity onto a fixed block of designations.

    The block is derived from a salted digest of the owner key, so every
    process that knows the key and salt computes the same block without a
    shared allocation table. Designations below ``base`` are never handed out.

    Distinct owners can land in the same bucket; nothing here detects that.
    """

    def __init__(
        self,
        salt: str = DEFAULT_SALT,
        *,
        digest: Digest = sha256_digest,
        bucket_count: int = DEFAULT_BUCKET_COUNT,
        block_size: int = DEFAULT_BLOCK_SIZE,
        base: int = DEFAULT_BASE,
    ) -> None:
        if bucket_count < 1 or block_size < 1 or base < 1:
            raise ValueError("bucket_count, block_size and base must be positive")
        last_end = base + bucket_count * block_size - 1
        if last_end > MAX_DESIGNATION:
            raise ValueError(
                f"{bucket_count} blocks of {block_size} from {base} end at {last_end}, "
                f"beyond the 5-digit designation limit {MAX_DESIGNATION}"
            )
        self.salt = salt
        self.bucket_count = bucket_count
        self.block_size = block_size
        self.base = base
        self._digest = digest

    def range_for(self, owner_key: Optional[str]) -> AllocationRange:
        key = (owner_key or "").strip()
        if not key:
            logger.warning(
                "No owner identity available; using default designation range %d-%d",
                DEFAULT_RANGE.start,
                DEFAULT_RANGE.end,
            )
            return DEFAULT_RANGE
        index = self.index_for(key)
        start = self.base + index * self.block_size
        allocation = AllocationRange(
            start=start,
            end=start + self.block_size - 1,
            owner_key=key,
            range_index=index,
        )
        logger.debug(
            "Range for %s: index %d, %d-%d", key[:8], index, allocation.start, allocation.end
        )
        return allocation

    def index_for(self, owner_key: str) -> int:
        digest = self._digest((owner_key + self.salt).encode("utf-8"))
        if len(digest) < MIN_DIGEST_BYTES:
            raise ValueError(
                f"Digest must produce at least {MIN_DIGEST_BYTES} bytes, got {len(digest)}"
            )
        return int.from_bytes(digest[:4], "big") % self.bucket_count


def range_for(owner_key: Optional[str], salt: str = DEFAULT_SALT) -> AllocationRange:
    return RangeAllocator(salt).range_for(owner_key)


def collides(first: AllocationRange, second: AllocationRange) -> bool:
    """True when two different owners were hashed onto overlapping blocks."""
    return first.owner_key != second.owner_key and first.overlaps(second)
