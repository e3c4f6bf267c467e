"""
Unit tests for ServerRegistry and Watchdog.
Tests: get_or_create, add_server, remove, list_all, restore, close_all, sweep
"""
import threading
import pytest

from shared.events import EventType
from worldhost.errors import Evicted
from worldhost.managed_server import ManagedServer
from worldhost.process import ProcessHandle
from worldhost.remote_server import RemoteServer
from worldhost.server_registry import ServerRegistry
from worldhost.watchdog import Watchdog


@pytest.fixture
def registry(make_server):
    """Registry building managed servers on the shared test allocator."""
    return ServerRegistry(factory=lambda world: make_server(world=world))


class TestGetOrCreate:
    """Tests for get-or-create access."""

    def test_creates_once(self, registry, make_world):
        """The same world always maps to the same server."""
        world = make_world()
        first = registry.get_or_create_server(world)
        second = registry.get_or_create_server(world)

        assert first is second
        assert len(registry) == 1
        assert world.id in registry

    def test_concurrent_first_access(self, make_world, mocker):
        """Concurrent first access builds exactly one server."""
        factory = mocker.MagicMock(side_effect=lambda: object())
        registry = ServerRegistry()
        world = make_world()
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(registry.get_or_create(world.id, factory))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert factory.call_count == 1
        assert all(r is results[0] for r in results)

    def test_get_missing(self, registry):
        assert registry.get_server('nope') is None

    def test_no_factory(self, make_world):
        with pytest.raises(RuntimeError):
            ServerRegistry().get_or_create_server(make_world())

    def test_add_server(self, registry, make_server):
        """add_server refuses an id that is already registered."""
        server = make_server()
        assert registry.add_server(server) is True
        assert registry.add_server(make_server(world=server.world)) is False
        assert registry.get_server(server.id) is server


class TestRemove:
    """Tests for remove method."""

    def test_remove_exited(self, registry, make_world):
        world = make_world()
        registry.get_or_create_server(world)

        assert registry.remove(world.id) is True
        assert world.id not in registry

    def test_running_server_is_kept(self, registry, make_world):
        """A running server is never evicted."""
        world = make_world()
        server = registry.get_or_create_server(world)
        server.start()

        assert registry.remove(world.id) is False
        assert registry.get_server(world.id) is server

    def test_server_mid_start_is_kept(self, registry, make_world, mocker):
        """A start that has taken a port but not spawned yet blocks eviction."""
        world = make_world()
        server = registry.get_or_create_server(world)
        spawning = threading.Event()
        proceed = threading.Event()
        real_spawn = ProcessHandle.spawn

        def slow_spawn(*args, **kwargs):
            spawning.set()
            proceed.wait(timeout=5)
            return real_spawn(*args, **kwargs)

        mocker.patch.object(ProcessHandle, 'spawn', side_effect=slow_spawn)
        starter = threading.Thread(target=server.start)
        starter.start()
        assert spawning.wait(timeout=5)

        removed = registry.remove(world.id)
        proceed.set()
        starter.join()

        assert removed is False
        assert registry.get_server(world.id) is server
        assert server.is_running

    def test_evicted_server_is_replaced(self, registry, make_world):
        """After eviction the old object can't start; the next access builds a new one."""
        world = make_world()
        old = registry.get_or_create_server(world)

        assert registry.remove(world.id) is True

        with pytest.raises(Evicted):
            old.update(world)
        new = registry.get_or_create_server(world)
        assert new is not old
        new.update(world)
        assert new.is_running

    def test_remove_missing(self, registry):
        assert registry.remove('nope') is False

    def test_publishes_removed_event(self, make_server, make_world, mock_events):
        registry = ServerRegistry(factory=lambda world: make_server(world=world), events=mock_events)
        world = make_world()
        registry.get_or_create_server(world)

        registry.remove(world.id)

        event = mock_events.publish_world_event.call_args[0][0]
        assert event.type == EventType.SERVER_REMOVED
        assert event.world_id == world.id


class TestListing:
    """Tests for list_all and list_all_worlds."""

    def test_list_all_is_snapshot(self, registry, make_world):
        registry.get_or_create_server(make_world())
        servers = registry.list_all()
        registry.get_or_create_server(make_world())

        assert len(servers) == 1
        assert len(registry.list_all()) == 2

    def test_list_all_worlds(self, registry, make_world):
        world = make_world(name="Skyblock")
        registry.get_or_create_server(world)

        assert registry.list_all_worlds() == [world]


class TestRestore:
    """Tests for startup restore."""

    def test_starts_enabled_worlds(self, registry, make_world):
        """Enabled worlds are started, disabled ones skipped."""
        enabled = make_world()
        disabled = make_world(enabled=False)

        started = registry.restore([enabled, disabled])

        assert started == 1
        assert registry.get_server(enabled.id).is_running
        assert disabled.id not in registry

    def test_failure_is_logged_per_world(self, registry, make_world, caplog):
        """One broken world doesn't keep the others from starting."""
        broken = make_world(version_id='missing')
        good = make_world()

        started = registry.restore([broken, good])

        assert started == 1
        assert registry.get_server(good.id).is_running
        assert "Failed to start world" in caplog.text

    def test_close_all_kills_everything(self, registry, make_world):
        worlds = [make_world(), make_world()]
        registry.restore(worlds)

        registry.close_all()

        assert not any(s.is_running for s in registry.list_all())


class TestFromConfig:
    """Tests for the configured server factory."""

    def test_internal(self, tmp_path, make_world, allocator):
        registry = ServerRegistry.from_config({
            'SERVER_TYPE': 'internal',
            'VERSIONS_DIR': str(tmp_path),
            'WORLDS_DIR': str(tmp_path),
        }, allocator)
        server = registry.get_or_create_server(make_world())

        assert isinstance(server, ManagedServer)
        assert server.allocator is allocator

    def test_remote(self, make_world):
        registry = ServerRegistry.from_config({
            'SERVER_TYPE': 'remote',
            'REMOTE_HOST': 'http://node-2:3031',
        })
        server = registry.get_or_create_server(make_world())

        assert isinstance(server, RemoteServer)
        assert server.host == 'node-2'

    def test_unknown(self):
        with pytest.raises(ValueError):
            ServerRegistry.from_config({'SERVER_TYPE': 'docker'})


class TestWatchdog:
    """Tests for Watchdog sweeps."""

    def test_sweep_reclaims_exited(self, registry, make_world, allocator):
        """A crashed server's port is freed by the next sweep."""
        server = registry.get_or_create_server(make_world())
        server.start()
        server.write_console("crash 5\n")
        server._slot.handle.wait(timeout=5)

        inspected = Watchdog(registry).sweep()

        assert inspected == 1
        assert server.status.exit_code == 5
        assert allocator.taken == frozenset()

    def test_sweep_survives_errors(self, mocker, caplog):
        """A failing refresh is logged and the sweep goes on."""
        broken = mocker.MagicMock(id='broken')
        broken.refresh.side_effect = RuntimeError("boom")
        healthy = mocker.MagicMock(id='healthy')
        healthy.refresh.return_value = True
        registry = mocker.MagicMock()
        registry.list_all.return_value = [broken, healthy]

        assert Watchdog(registry).sweep() == 1
        healthy.refresh.assert_called_once()
        assert "Failed to refresh server broken" in caplog.text

    def test_skipped_servers_not_counted(self, mocker):
        busy = mocker.MagicMock(id='busy')
        busy.refresh.return_value = False
        registry = mocker.MagicMock()
        registry.list_all.return_value = [busy]

        assert Watchdog(registry).sweep() == 0

    def test_run_stops_on_event(self, mocker):
        registry = mocker.MagicMock()
        registry.list_all.return_value = []
        stop = threading.Event()
        stop.set()

        Watchdog(registry).run(stop, interval=0.01)

        registry.list_all.assert_not_called()
