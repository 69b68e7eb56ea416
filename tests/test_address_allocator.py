"""Tests for the address allocator: alignment, sequencing, exhaustion, conflicts."""

import itertools
import random

import pytest

from netscenario.simulation.address_allocator import AddressAllocator, SizeClass, Subnet
from netscenario.simulation.errors import AddressConflict, AddressSpaceExhausted
from netscenario.simulation.network_topology import NodeRole, TopologyBuilder


class TestSequentialAllocation:
    def test_point_to_point_sequence(self):
        alloc = AddressAllocator(pool="10.0.0.0/8", base="10.1.0.0")
        subnets = [alloc.allocate(SizeClass.POINT_TO_POINT) for _ in range(3)]
        assert [str(s) for s in subnets] == ["10.1.0.0/30", "10.1.0.4/30", "10.1.0.8/30"]

    def test_segment_is_aligned_after_small_blocks(self):
        alloc = AddressAllocator(base="10.1.0.0")
        alloc.allocate(SizeClass.POINT_TO_POINT)
        seg = alloc.allocate(SizeClass.SEGMENT)
        assert str(seg) == "10.1.1.0/24"

    def test_cursor_never_moves_back(self):
        alloc = AddressAllocator(base="10.1.0.0")
        alloc.allocate(SizeClass.SEGMENT)
        p2p = alloc.allocate(SizeClass.POINT_TO_POINT)
        assert str(p2p) == "10.1.1.0/30"
        assert alloc.cursor == "10.1.1.4"

    def test_host_assignment(self):
        subnet = AddressAllocator(base="10.1.0.0").allocate(SizeClass.POINT_TO_POINT)
        assert subnet.capacity == 2
        assert subnet.next_host() == "10.1.0.1"
        assert subnet.next_host() == "10.1.0.2"
        assert subnet.assigned == 2
        assert subnet.mask == "255.255.255.252"
        with pytest.raises(AddressSpaceExhausted):
            subnet.next_host()


class TestExhaustionAndConflicts:
    def test_pool_exhausted(self):
        alloc = AddressAllocator(pool="192.168.0.0/29")
        alloc.allocate(30)
        alloc.allocate(30)
        with pytest.raises(AddressSpaceExhausted):
            alloc.allocate(30)

    def test_block_larger_than_pool(self):
        alloc = AddressAllocator(pool="192.168.0.0/28")
        with pytest.raises(AddressConflict):
            alloc.allocate(SizeClass.SEGMENT)

    def test_base_outside_pool(self):
        with pytest.raises(AddressConflict):
            AddressAllocator(pool="10.0.0.0/8", base="172.16.0.0")

    def test_requested_base_misaligned(self):
        alloc = AddressAllocator()
        with pytest.raises(AddressConflict):
            alloc.allocate(SizeClass.SEGMENT, requested_base="10.0.0.128")

    def test_requested_base_overlaps(self):
        alloc = AddressAllocator(base="10.1.0.0")
        alloc.allocate(SizeClass.SEGMENT)
        with pytest.raises(AddressConflict):
            alloc.allocate(SizeClass.POINT_TO_POINT, requested_base="10.1.0.8")

    def test_requested_base_outside_pool(self):
        alloc = AddressAllocator(pool="10.0.0.0/16")
        with pytest.raises(AddressConflict):
            alloc.allocate(SizeClass.SEGMENT, requested_base="10.9.0.0")

    def test_requested_base_accepted(self):
        alloc = AddressAllocator(base="10.1.0.0")
        subnet = alloc.allocate(SizeClass.SEGMENT, requested_base="10.200.0.0")
        assert isinstance(subnet, Subnet)
        assert subnet.base == "10.200.0.0"
        # Later sequential blocks continue after the explicit one
        assert str(alloc.allocate(SizeClass.POINT_TO_POINT)) == "10.200.1.0/30"


class TestDisjointness:
    @pytest.mark.parametrize("seed", range(8))
    def test_random_topologies_have_disjoint_subnets(self, seed):
        rng = random.Random(seed)
        counts = {
            NodeRole.ENTERPRISE_CLIENT: rng.randint(0, 60),
            NodeRole.DMZ_SERVER: rng.randint(1, 20),
            NodeRole.WIFI_STATION: rng.randint(0, 40),
            NodeRole.REMOTE_CLIENT: rng.randint(0, 50),
            NodeRole.DISTRIBUTION_SWITCH: rng.randint(2, 4),
        }
        alloc = AddressAllocator(base="10.1.0.0")
        topo = TopologyBuilder(alloc, node_counts=counts).build()

        subnets = topo.subnets
        for a, b in itertools.combinations(subnets, 2):
            assert not a.overlaps(b), f"{a} overlaps {b}"

        addresses = [i.address for n in topo.nodes.values() for i in n.interfaces]
        assert len(addresses) == len(set(addresses))

    def test_mixed_sizes_disjoint(self):
        rng = random.Random(7)
        alloc = AddressAllocator(pool="10.0.0.0/16")
        for _ in range(50):
            alloc.allocate(rng.choice([24, 26, 28, 30]))
        for a, b in itertools.combinations(alloc.allocated, 2):
            assert not a.overlaps(b)
