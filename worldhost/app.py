import atexit
import logging
import os
from flask import Flask, jsonify

from shared.pubsub import PubSubClient

from .config import config
from .models import db, WorldRecord
from .port_allocator import PortAllocator
from .proxy import create_proxy
from .reconciler import Reconciler
from .server_registry import ServerRegistry

logger = logging.getLogger(__name__)


def create_app(config_name: str = None, overrides: dict = None, registry: ServerRegistry = None,
               proxy=None) -> Flask:
    """Application factory for the world host service."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    if overrides:
        app.config.update(overrides)

    os.makedirs(app.config['DATA_DIR'], exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    # Initialize services
    events = None
    if app.config.get('PUBLISH_EVENTS'):
        events = PubSubClient(app.config['REDIS_URL'])

    allocator = PortAllocator.from_config(app.config)
    if registry is None:
        registry = ServerRegistry.from_config(app.config, allocator, events=events)
    if proxy is None:
        proxy = create_proxy(app.config, events=events)
    reconciler = Reconciler.from_config(app.config, registry, proxy)

    # Create tables
    with app.app_context():
        db.create_all()

    # Store services on app for access in routes
    app.events = events
    app.allocator = allocator
    app.registry = registry
    app.proxy = proxy
    app.reconciler = reconciler

    from .routes import worlds
    app.register_blueprint(worlds.bp)
    register_health_routes(app)

    if app.config.get('START_BACKGROUND_TASKS'):
        start_background_tasks(app)

    return app


def start_background_tasks(app: Flask):
    """Bring enabled worlds back up and start reconciling the proxy."""
    with app.app_context():
        worlds = [record.to_world() for record in WorldRecord.enabled_worlds()]
    app.registry.restore(worlds)
    app.reconciler.start()
    atexit.register(shutdown, app)


def shutdown(app: Flask):
    logger.info("Shutting down, stopping reconciler and killing server processes")
    app.reconciler.stop()
    app.registry.close_all()


def register_health_routes(app: Flask):

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            db_ok = False

        servers = app.registry.list_all()
        status = 'healthy' if db_ok else 'unhealthy'
        code = 200 if db_ok else 503

        return jsonify({
            'status': status,
            'database': 'connected' if db_ok else 'disconnected',
            'servers': len(servers),
            'running': len([s for s in servers if s.is_running]),
            'free_ports': app.allocator.available,
            'reconciler': 'running' if app.reconciler.running else 'stopped',
            'proxy': app.proxy.status.to_dict(),
        }), code
