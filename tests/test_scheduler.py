"""Tests for the scenario scheduler and the compiled Timeline."""

import json

import pytest

from netscenario.simulation.address_allocator import AddressAllocator
from netscenario.simulation.attack_generator import AttackCatalog
from netscenario.simulation.distributions import Distribution, RandomStreams
from netscenario.simulation.errors import CatalogValidationError, PortConflictError
from netscenario.simulation.events import EventRole
from netscenario.simulation.network_topology import NodeRole, ServiceSpec, TopologyBuilder
from netscenario.simulation.scenario_scheduler import ScenarioScheduler
from netscenario.simulation.traffic_generator import FlowCatalog


SERVICES = [
    ServiceSpec("http", NodeRole.DMZ_SERVER, 0, 80),
    ServiceSpec("dns", NodeRole.DMZ_SERVER, 2, 53, transport="udp"),
]

FLOWS = [
    {
        "name": "enterprise_http",
        "archetype": "http",
        "clients": "enterprise_client",
        "target": "http",
        "app": "on_off",
        "start": {"base": 5.0, "per_client": 1.0, "jitter": {"kind": "exponential", "mean": 0.5}},
        "params": {"data_rate_bps": 1.0e6, "off_time": {"kind": "exponential", "mean": 1.5}},
    },
    {
        "name": "wifi_dns",
        "archetype": "dns",
        "clients": "wifi_station",
        "target": "dns",
        "app": "echo",
        "transport": "udp",
        "start": {"base": 15.0, "per_client": 0.2},
        "params": {"packet_size": {"kind": "uniform", "min": 50, "max": 256}, "max_packets": 10},
    },
]

ATTACKS = [
    {
        "name": "syn_flood",
        "family": "flood",
        "target": "http",
        "window": [60.0, 100.0],
        "attackers": [{"role": "remote_client", "count": 3}],
        "attacker_spacing": 0.1,
        "params": {"size_bytes": 0},
    },
    {
        "name": "late_mitm",
        "family": "redirection",
        "target": "http",
        "decoy": "fake_http",
        "window": [500.0, 520.0],
        "victims": {"role": "enterprise_client", "count": 2},
        "installs": [{"name": "fake_http", "role": "dmz_server", "index": 1,
                      "port": 8081, "start": 10.0, "stop": 450.0}],
    },
]


def make_scheduler(flows=FLOWS, attacks=ATTACKS, services=SERVICES, seed=42, horizon=1500.0):
    streams = RandomStreams(seed)
    flow_cat = FlowCatalog.from_config(flows, streams, horizon)
    attack_cat = AttackCatalog.from_config(attacks, streams, horizon)
    topo = TopologyBuilder(AddressAllocator(base="10.1.0.0"), horizon=horizon).build(
        list(services) + attack_cat.required_services()
    )
    return ScenarioScheduler(topo, flow_cat, attack_cat, horizon)


# ── Timeline ────────────────────────────────────────────────────────

class TestTimeline:
    @pytest.fixture
    def timeline(self):
        return make_scheduler().compile()

    def test_event_counts(self, timeline):
        counts = timeline.label_counts()
        assert counts == {"http": 10, "dns": 10, "syn_flood": 3, "late_mitm": 2}
        assert len(timeline.server_events()) == 3

    def test_sorted_with_sequential_ids(self, timeline):
        starts = [e.start for e in timeline]
        assert starts == sorted(starts)
        assert [e.event_id for e in timeline][:3] == ["EV000001", "EV000002", "EV000003"]

    def test_start_never_after_stop(self, timeline):
        assert all(e.start <= e.stop for e in timeline)

    def test_events_inside_service_windows(self):
        scheduler = make_scheduler()
        timeline = scheduler.compile()
        for e in timeline.client_events():
            binding = next(
                b for b in scheduler.topology.directory
                if b.node.node_id == e.target_node and b.port == e.port
            )
            assert binding.start <= e.start <= e.stop <= binding.stop

    def test_server_events_are_sinks(self, timeline):
        for e in timeline.server_events():
            assert e.role == EventRole.SERVER
            assert e.source_node is None
            assert e.category == "service"

    def test_malicious_flag(self, timeline):
        assert all(e.is_malicious for e in timeline.by_provenance("syn_flood"))
        assert not any(e.is_malicious for e in timeline.by_provenance("wifi_dns"))

    def test_records(self, timeline):
        rec = next(r for r in timeline.to_records() if r["label"] == "syn_flood")
        assert rec["remote_endpoint"] == "10.1.3.1:80"
        assert rec["role"] == "client"
        assert rec["size_or_rate"] == {"size_bytes": 0}

    def test_write(self, timeline, tmp_path):
        out = timeline.write(tmp_path / "out" / "timeline.json")
        data = json.loads(out.read_text(encoding="utf-8"))
        assert len(data) == len(timeline)


# ── Validation and truncation ───────────────────────────────────────

class TestValidation:
    def test_window_after_service_stop_is_annotated(self):
        timeline = make_scheduler().compile()
        late = timeline.by_provenance("late_mitm")
        assert len(late) == 2
        for e in late:
            assert e.truncated
            assert e.start == e.stop == 450.0
            assert any("truncated to availability of fake_http" in a for a in e.annotations)
            assert "empty window" in e.annotations

    def test_horizon_shortens_windows(self):
        timeline = make_scheduler(horizon=80.0).compile()
        floods = timeline.by_provenance("syn_flood")
        assert all(e.stop == 80.0 and e.truncated for e in floods)
        http = timeline.by_provenance("enterprise_http")
        assert all(e.stop == 80.0 for e in http)

    def test_truncation_reported(self):
        scheduler = make_scheduler()
        scheduler.compile()
        assert len(scheduler.report.truncated) == 2

    def test_unresolved_spec_is_skipped(self):
        flows = FLOWS + [{**FLOWS[0], "name": "telnet_flow", "target": "telnet"}]
        scheduler = make_scheduler(flows=flows)
        timeline = scheduler.compile()
        assert timeline.by_provenance("telnet_flow") == []
        assert len(timeline.by_provenance("enterprise_http")) == 10
        assert [s["spec"] for s in scheduler.report.skipped] == ["telnet_flow"]

    def test_port_conflict(self):
        services = SERVICES + [ServiceSpec("alt_http", NodeRole.DMZ_SERVER, 0, 80, start=50.0)]
        with pytest.raises(PortConflictError):
            make_scheduler(services=services).compile()

    def test_sequential_services_share_port(self):
        services = [
            ServiceSpec("http", NodeRole.DMZ_SERVER, 0, 80, start=1.0, stop=100.0),
            ServiceSpec("http_v2", NodeRole.DMZ_SERVER, 0, 80, start=100.0, stop=200.0),
            SERVICES[1],
        ]
        timeline = make_scheduler(services=services).compile()
        assert len(timeline.server_events()) == 4

    def test_inverted_service_window(self):
        services = SERVICES + [ServiceSpec("ftp", NodeRole.DMZ_SERVER, 3, 21, start=50.0, stop=10.0)]
        with pytest.raises(CatalogValidationError):
            make_scheduler(services=services).compile()

    def test_invalid_spec_fails_before_build(self):
        bad = [{**FLOWS[0], "params": {"size_bytes": {"kind": "uniform", "min": 9, "max": 1}}}]
        with pytest.raises(CatalogValidationError):
            make_scheduler(flows=bad)


# ── Determinism ─────────────────────────────────────────────────────

class TestDeterminism:
    def test_same_seed_identical_timeline(self):
        a = make_scheduler(seed=7).compile()
        b = make_scheduler(seed=7).compile()
        assert a.to_json() == b.to_json()

    def test_different_seed_same_structure(self):
        a = make_scheduler(seed=1).compile()
        b = make_scheduler(seed=2).compile()
        assert a.label_counts() == b.label_counts()
        assert a.to_json() != b.to_json()

    def test_recompile_is_identical(self):
        scheduler = make_scheduler(seed=11)
        first = scheduler.compile().to_json()
        assert scheduler.compile().to_json() == first

    def test_recompile_after_partial_draws(self):
        scheduler = make_scheduler(seed=11)
        expected = make_scheduler(seed=11).compile().to_json()
        spec = scheduler.flows.specs[0]
        scheduler.flows.generate(spec, scheduler.topology)
        assert scheduler.compile().to_json() == expected


class TestStreamIsolation:
    def test_flow_and_attack_streams_differ(self):
        streams = RandomStreams(42)
        dist = Distribution.uniform(0, 1000)
        flow_sampler = FlowCatalog([], streams)._sampler("x", "packet_size", dist)
        attack_sampler = AttackCatalog([], streams)._sampler("x", "packet_size", dist)
        assert [flow_sampler.draw() for _ in range(3)] != [attack_sampler.draw() for _ in range(3)]

    def test_victim_draws_do_not_follow_attack_params(self):
        streams = RandomStreams(42)
        dist = Distribution.uniform(0, 1000)
        cat = AttackCatalog([], streams)
        own = cat._sampler("mitm", "size_bytes", dist)
        victim = cat._sampler("mitm", "victim.size_bytes", dist)
        assert [own.draw() for _ in range(3)] != [victim.draw() for _ in range(3)]

    def test_name_shared_by_flow_and_attack_rejected(self):
        flows = FLOWS + [{**FLOWS[0], "name": "syn_flood"}]
        with pytest.raises(CatalogValidationError):
            make_scheduler(flows=flows).compile()
