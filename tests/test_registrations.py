"""Tests for the agent registration table."""
from __future__ import annotations

import threading

from clubhouse.engine.registrations import AgentRegistry, generate_nonce


def test_register_and_lookup():
    registry = AgentRegistry()
    reg = registry.register("a1", "/ws", "codex-cli")
    assert registry.get("a1") is reg
    assert reg.workspace_path == "/ws"
    assert reg.provider_id == "codex-cli"
    assert registry.nonce_for("a1") == reg.nonce
    assert "a1" in registry
    assert len(registry) == 1


def test_nonces_are_unique_and_long():
    nonces = {generate_nonce() for _ in range(50)}
    assert len(nonces) == 50
    assert all(len(n) >= 40 for n in nonces)


def test_reregister_rotates_nonce():
    registry = AgentRegistry()
    first = registry.register("a1", "/ws").nonce
    second = registry.register("a1", "/ws").nonce
    assert first != second
    assert registry.nonce_for("a1") == second


def test_explicit_nonce():
    registry = AgentRegistry()
    assert registry.register("a1", "/ws", nonce="fixed").nonce == "fixed"


def test_remove_revokes():
    registry = AgentRegistry()
    registry.register("a1", "/ws")
    assert registry.remove("a1") is not None
    assert registry.get("a1") is None
    assert registry.nonce_for("a1") is None
    assert registry.remove("a1") is None


def test_nonce_not_in_repr():
    reg = AgentRegistry().register("a1", "/ws", nonce="secret-value")
    assert "secret-value" not in repr(reg)


def test_concurrent_register_remove():
    registry = AgentRegistry()

    def worker(prefix: str) -> None:
        for i in range(200):
            agent_id = f"{prefix}-{i}"
            registry.register(agent_id, "/ws")
            if i % 2:
                registry.remove(agent_id)

    threads = [threading.Thread(target=worker, args=(f"t{n}",)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(registry) == 4 * 100
    assert sorted(registry.list_ids())[0] == "t0-0"
