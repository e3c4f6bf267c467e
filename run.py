#!/usr/bin/env python3
"""
Entry point for the World Host service.

Usage:
    python run.py                    # Run the management API and background loops

Environment Variables:
    FLASK_ENV: development or production (default: development)
    PORT: Port the management API listens on (default: 3031)
    LOG_LEVEL: Logging level (default: INFO, DEBUG in development)
    SERVER_TYPE: internal or remote (default: internal)
    PROXY_TYPE: infrarust or velocity (default: infrarust)
"""
import logging
import os
import sys


def run_worldhost():
    """Run the world host service."""
    from worldhost.app import create_app
    from worldhost.config import config

    env = os.getenv('FLASK_ENV', 'development')
    if env not in config:
        print(f"Unknown FLASK_ENV: {env}")
        sys.exit(1)

    logging.basicConfig(
        level=config[env].LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    app = create_app(env)
    port = int(os.getenv('PORT', 3031))

    print(f"Starting World Host on port {port}...")
    # the reloader would spawn a second copy of every server process
    app.run(host='0.0.0.0', port=port, debug=app.config.get('DEBUG', False), use_reloader=False)


if __name__ == '__main__':
    run_worldhost()
