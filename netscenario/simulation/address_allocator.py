"""
Address allocation for scenario topologies.

Hands out aligned, non-overlapping IPv4 blocks from a single pool. The
allocator is deterministic for a fixed call order; changing the order in
which links request subnets changes the resulting addressing.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Union

from .errors import AddressConflict, AddressSpaceExhausted


class SizeClass(IntEnum):
    """Common block sizes, expressed as prefix lengths."""

    POINT_TO_POINT = 30
    SEGMENT = 24


@dataclass
class Subnet:
    """An allocated block with its own host-assignment cursor."""

    network: ipaddress.IPv4Network
    _next_host: int = field(default=1, repr=False)

    @property
    def base(self) -> str:
        return str(self.network.network_address)

    @property
    def prefix_length(self) -> int:
        return self.network.prefixlen

    @property
    def mask(self) -> str:
        return str(self.network.netmask)

    @property
    def capacity(self) -> int:
        """Usable host addresses (network and broadcast excluded)."""
        return max(self.network.num_addresses - 2, 0)

    @property
    def assigned(self) -> int:
        return self._next_host - 1

    def next_host(self) -> str:
        """Assign the next free host address in this subnet."""
        if self._next_host > self.capacity:
            raise AddressSpaceExhausted(
                f"Subnet {self.network} has no free host addresses "
                f"({self.capacity} already assigned)"
            )
        addr = self.network.network_address + self._next_host
        self._next_host += 1
        return str(addr)

    def overlaps(self, other: "Subnet") -> bool:
        return self.network.overlaps(other.network)

    def __str__(self) -> str:
        return str(self.network)


class AddressAllocator:
    """
    Cursor-based allocator over one IPv4 pool.

    Each block is aligned to its own size. The cursor only moves forward, so
    a later, larger block never reuses the gap left by alignment.
    """

    def __init__(self, pool: str = "10.0.0.0/8", base: Optional[str] = None) -> None:
        self.pool = ipaddress.IPv4Network(pool)
        start = ipaddress.IPv4Address(base) if base else self.pool.network_address
        if start not in self.pool:
            raise AddressConflict(f"Base {start} lies outside pool {self.pool}")
        self._cursor = int(start)
        self._allocated: List[Subnet] = []

    # ── Public API ──────────────────────────────────────────────────

    def allocate(
        self,
        size_class: Union[SizeClass, int],
        requested_base: Optional[str] = None,
    ) -> Subnet:
        """
        Reserve the next block of the given prefix length.

        Args:
            size_class: Prefix length of the block (e.g. 30 or 24).
            requested_base: Explicit network address for the block. Must be
                aligned, inside the pool, and free.

        Returns:
            The newly reserved Subnet.
        """
        prefix = int(size_class)
        if not self.pool.prefixlen <= prefix <= 32:
            raise AddressConflict(
                f"Prefix /{prefix} does not fit inside pool {self.pool}"
            )
        block = 1 << (32 - prefix)

        if requested_base is not None:
            subnet = self._reserve_requested(requested_base, prefix)
        else:
            aligned = -(-self._cursor // block) * block
            if aligned + block - 1 > int(self.pool.broadcast_address):
                raise AddressSpaceExhausted(
                    f"Pool {self.pool} cannot hold another /{prefix} "
                    f"after {ipaddress.IPv4Address(self._cursor)}"
                )
            subnet = Subnet(ipaddress.IPv4Network((aligned, prefix)))

        self._allocated.append(subnet)
        end = int(subnet.network.broadcast_address) + 1
        self._cursor = max(self._cursor, end)
        return subnet

    @property
    def allocated(self) -> List[Subnet]:
        return list(self._allocated)

    @property
    def cursor(self) -> str:
        return str(ipaddress.IPv4Address(min(self._cursor, int(self.pool.broadcast_address))))

    # ── Internal ────────────────────────────────────────────────────

    def _reserve_requested(self, requested_base: str, prefix: int) -> Subnet:
        try:
            network = ipaddress.IPv4Network(f"{requested_base}/{prefix}")
        except ValueError as exc:
            raise AddressConflict(
                f"Requested base {requested_base} is not aligned to /{prefix}"
            ) from exc
        if not network.subnet_of(self.pool):
            raise AddressConflict(f"Requested block {network} lies outside pool {self.pool}")
        for existing in self._allocated:
            if existing.network.overlaps(network):
                raise AddressConflict(
                    f"Requested block {network} overlaps allocated {existing.network}"
                )
        return Subnet(network)
