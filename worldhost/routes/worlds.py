"""
Management API for worlds hosted on this node.

A remote node's RemoteServer drives these same endpoints, so the request
and response bodies mirror World.to_dict() and ServerInfo.to_dict().
"""
import hmac
import logging
from flask import Blueprint, current_app, jsonify, request

from shared.state_machine import ServerStatus

from ..errors import (
    AlreadyRunning,
    CannotTerminate,
    Evicted,
    MissingArtifact,
    NoFreePorts,
    NotRunning,
    ServerError,
)
from ..managed_server import ServerInfo
from ..models import WorldRecord, db, new_world_id
from ..remote_server import RemoteServerError

logger = logging.getLogger(__name__)

bp = Blueprint('worlds', __name__, url_prefix='/api')

ERROR_STATUS = {
    MissingArtifact: 400,
    AlreadyRunning: 409,
    NotRunning: 409,
    NoFreePorts: 503,
    CannotTerminate: 500,
    Evicted: 409,
}


@bp.before_request
def check_api_secret():
    secret = current_app.config.get('API_SECRET')
    if not secret:
        return None
    header = request.headers.get('Authorization', '')
    if not hmac.compare_digest(header, f"Bearer {secret}"):
        return jsonify({'error': 'Unauthorized'}), 401
    return None


@bp.errorhandler(ServerError)
def handle_server_error(error: ServerError):
    code = ERROR_STATUS.get(type(error), 400)
    logger.warning(f"Request failed for {error.world_id}: {error.reason}")
    return jsonify({'error': error.reason, 'world_id': error.world_id}), code


@bp.errorhandler(RemoteServerError)
def handle_remote_error(error: RemoteServerError):
    return jsonify({'error': str(error)}), 502


@bp.errorhandler(NotImplementedError)
def handle_not_implemented(error: NotImplementedError):
    return jsonify({'error': str(error)}), 501


@bp.errorhandler(OSError)
def handle_os_error(error: OSError):
    logger.error(f"Request failed with an OS error: {error}")
    return jsonify({'error': str(error)}), 500


def _server_info(world_id: str):
    server = current_app.registry.get_server(world_id)
    if server is not None:
        return server.info()
    record = WorldRecord.query.filter_by(world_id=world_id).first()
    if record is None:
        return None
    return ServerInfo(world=record.to_world(), status=ServerStatus.exited(0), port=None)


# ==================== Worlds ====================

@bp.route('/worlds', methods=['GET'])
def list_worlds():
    """List the world snapshots of every registered server."""
    worlds = current_app.registry.list_all_worlds()
    return jsonify({
        'worlds': [w.to_dict() for w in worlds],
        'count': len(worlds)
    })


@bp.route('/worlds', methods=['POST', 'PUT'])
def create_or_update_world():
    """Persist a world and bring its server in line with it."""
    data = request.json or {}
    world_id = data.get('id')
    record = WorldRecord.query.filter_by(world_id=world_id).first() if world_id else None
    created = record is None

    if created:
        missing = [key for key in ('owner_id', 'name', 'version_id') if not data.get(key)]
        if missing:
            return jsonify({'error': f"Missing fields: {', '.join(missing)}"}), 400
        record = WorldRecord(
            world_id=str(world_id) if world_id else new_world_id(),
            owner_id=str(data['owner_id']),
            name=data['name'],
            version_id=str(data['version_id']),
            allocated_memory=current_app.config['DEFAULT_ALLOCATED_MEMORY'],
        )

    try:
        record.update_from(data)
    except (TypeError, ValueError) as e:
        db.session.rollback()
        return jsonify({'error': f"Invalid world: {e}"}), 400

    minimum = current_app.config['MINIMUM_MEMORY']
    if record.allocated_memory < minimum:
        db.session.rollback()
        return jsonify({'error': f"allocated_memory must be at least {minimum} MiB"}), 400

    if record.hostname:
        with db.session.no_autoflush:
            clash = WorldRecord.query.filter(
                WorldRecord.hostname == record.hostname,
                WorldRecord.world_id != record.world_id,
            ).first()
        if clash:
            db.session.rollback()
            return jsonify({'error': f"Hostname {record.hostname} is already taken"}), 409

    if created:
        db.session.add(record)
    db.session.commit()

    world = record.to_world()
    server = current_app.registry.get_or_create_server(world)
    server.update(world)

    return jsonify(server.info().to_dict()), 201 if created else 200


@bp.route('/worlds/<world_id>', methods=['GET'])
def get_world(world_id: str):
    """Get a world's server info."""
    info = _server_info(world_id)
    if info is None:
        return jsonify({'error': 'World not found'}), 404
    return jsonify(info.to_dict())


@bp.route('/worlds/<world_id>/remove', methods=['POST'])
def remove_world(world_id: str):
    """Evict an exited server from the registry."""
    server = current_app.registry.get_server(world_id)
    if server is None:
        return jsonify({'error': 'World not found'}), 404
    if not current_app.registry.remove(world_id):
        return jsonify({'error': f'Server {world_id} is running or busy'}), 422
    return jsonify({'message': f'Removed {world_id}'})


# ==================== Console ====================

@bp.route('/worlds/<world_id>/console', methods=['POST'])
def write_console(world_id: str):
    """Send one command line to the server console."""
    server = current_app.registry.get_server(world_id)
    if server is None:
        return jsonify({'error': 'World not found'}), 404

    data = request.json or {}
    command = data.get('command')
    if not command:
        return jsonify({'error': 'command is required'}), 400

    server.write_console(command.rstrip('\n') + '\n')
    return jsonify({'message': 'sent'})


@bp.route('/worlds/<world_id>/console', methods=['GET'])
def recent_console(world_id: str):
    """Return the most recent console lines."""
    server = current_app.registry.get_server(world_id)
    if server is None:
        return jsonify({'error': 'World not found'}), 404
    return jsonify({'lines': server.recent_console()})


# ==================== Properties ====================

@bp.route('/worlds/<world_id>/properties', methods=['GET', 'PUT'])
def world_properties(world_id: str):
    server = current_app.registry.get_server(world_id)
    if server is None:
        return jsonify({'error': 'World not found'}), 404

    if request.method == 'GET':
        return jsonify({'properties': server.properties()})

    data = request.json or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Expected a JSON object'}), 400
    return jsonify({'properties': server.set_properties(data)})


# ==================== Proxy ====================

@bp.route('/proxy', methods=['GET'])
def proxy_state():
    """Last route table handed to the reverse proxy."""
    proxy = current_app.proxy
    return jsonify({
        'proxy': proxy.name,
        'status': proxy.status.to_dict(),
        'routes': proxy.routes,
    })
