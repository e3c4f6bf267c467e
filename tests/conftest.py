"""
Pytest configuration and fixtures for world host tests.
"""
import os
import shlex
import sys
from pathlib import Path
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from worldhost.app import create_app
from worldhost.managed_server import ManagedServer, ServerSettings
from worldhost.models import db
from worldhost.port_allocator import PortAllocator
from worldhost.world import World

FAKE_SERVER = Path(__file__).parent / 'fixtures' / 'fake_server.py'
VERSION_ID = '1.20.4'


def fake_command(mode: str = 'normal') -> str:
    """Launch command running the fake server in place of java."""
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(FAKE_SERVER))} --mode {mode} %jar%"


@pytest.fixture(name='fake_command')
def fake_command_fixture():
    """Build launch commands for the fake server in a given mode."""
    return fake_command


@pytest.fixture
def versions_dir(tmp_path):
    """Versions directory holding one installable version."""
    versions = tmp_path / 'versions'
    version = versions / VERSION_ID
    version.mkdir(parents=True)
    (version / 'server.jar').write_bytes(b'')
    (version / 'server.properties').write_text("motd=from the version\nserver-port=25565\n")
    return versions


@pytest.fixture
def settings(tmp_path, versions_dir):
    """Server settings pointing at temporary directories and the fake server."""
    return ServerSettings(
        versions_dir=versions_dir,
        worlds_dir=tmp_path / 'worlds',
        java_launch_command=fake_command(),
        stop_timeout=5,
    )


@pytest.fixture
def allocator():
    """The [25565, 25575] range with the proxy port reserved."""
    return PortAllocator(25565, 25575, reserved=[25565])


@pytest.fixture
def make_world():
    """Build World snapshots with sensible defaults."""
    counter = {'n': 0}

    def _make(**overrides):
        counter['n'] += 1
        data = {
            'id': f"w_{counter['n']}",
            'owner_id': 'u_1',
            'name': f"World {counter['n']}",
            'version_id': VERSION_ID,
            'allocated_memory': 1024,
            'enabled': True,
        }
        data.update(overrides)
        return World(**data)

    return _make


@pytest.fixture
def make_server(allocator, settings, make_world):
    """Build managed servers; every process is killed at teardown."""
    servers = []

    def _make(world=None, settings_override=None, events=None, **world_overrides):
        server = ManagedServer(
            world or make_world(**world_overrides),
            allocator,
            settings_override or settings,
            events=events,
        )
        servers.append(server)
        return server

    yield _make

    for server in servers:
        server.close()


@pytest.fixture
def app(tmp_path, versions_dir):
    """Create application for testing."""
    app = create_app('testing', overrides={
        'DATA_DIR': str(tmp_path),
        'VERSIONS_DIR': str(versions_dir),
        'WORLDS_DIR': str(tmp_path / 'worlds'),
        'PROXY_DIR': str(tmp_path / 'proxy'),
        'PORT_RANGE_START': 25565,
        'PORT_RANGE_END': 25575,
        'PROXY_PORT': 25565,
        'JAVA_LAUNCH_COMMAND': fake_command(),
    })

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()

    app.registry.close_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def mock_events(mocker):
    """Mock event publisher."""
    events = mocker.MagicMock()
    events.publish_world_event = mocker.MagicMock(return_value=True)
    events.report_server_status = mocker.MagicMock(return_value=True)
    return events
