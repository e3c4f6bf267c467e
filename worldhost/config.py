import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


class Config:
    DATA_DIR = os.getenv('DATA_DIR', os.path.join(os.getcwd(), 'data'))
    VERSIONS_DIR = os.getenv('VERSIONS_DIR', os.path.join(DATA_DIR, 'versions'))
    WORLDS_DIR = os.getenv('WORLDS_DIR', os.path.join(DATA_DIR, 'worlds'))
    PROXY_DIR = os.getenv('PROXY_DIR', DATA_DIR)

    # Database
    DATABASE_URL = os.getenv('DATABASE_URL', f"sqlite:///{os.path.join(DATA_DIR, 'worldhost.db')}")
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Redis
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379')
    PUBLISH_EVENTS = _env_bool('PUBLISH_EVENTS', 'false')

    # Management API
    API_SECRET = os.getenv('API_SECRET', '')

    # Where servers run: internal (subprocesses of this node) or remote (another node's API)
    SERVER_TYPE = os.getenv('SERVER_TYPE', 'internal')
    REMOTE_HOST = os.getenv('REMOTE_HOST', 'http://localhost:3031')
    REMOTE_TIMEOUT = float(os.getenv('REMOTE_TIMEOUT', '30'))

    # Game servers
    SERVER_HOST = os.getenv('SERVER_HOST', '127.0.0.1')
    PORT_RANGE_START = int(os.getenv('PORT_RANGE_START', '24000'))
    PORT_RANGE_END = int(os.getenv('PORT_RANGE_END', '25000'))
    STOP_TIMEOUT = float(os.getenv('STOP_TIMEOUT', '15'))
    JAVA_LAUNCH_COMMAND = os.getenv('JAVA_LAUNCH_COMMAND', 'java -jar %min_mem% %max_mem% %jar% -nogui')
    # %command% is replaced with the java command, e.g. "firejail --caps.drop=all %command%"
    LAUNCH_COMMAND = os.getenv('LAUNCH_COMMAND', '%command%')
    MINIMUM_MEMORY = int(os.getenv('MINIMUM_MEMORY', '512'))
    DEFAULT_ALLOCATED_MEMORY = int(os.getenv('DEFAULT_ALLOCATED_MEMORY', '1024'))
    FORWARDING_SECRET = os.getenv('FORWARDING_SECRET', '')

    # Reverse proxy
    PROXY_TYPE = os.getenv('PROXY_TYPE', 'infrarust')
    PROXY_PORT = int(os.getenv('PROXY_PORT', '25565'))
    PROXY_HOSTNAME = os.getenv('PROXY_HOSTNAME', 'example.net')
    INFRARUST_EXECUTABLE_NAME = os.getenv('INFRARUST_EXECUTABLE_NAME', 'infrarust')
    VELOCITY_EXECUTABLE_NAME = os.getenv('VELOCITY_EXECUTABLE_NAME', 'velocity.jar')

    # Background loops (seconds)
    PROXY_INTERVAL = float(os.getenv('PROXY_INTERVAL', '60'))
    WATCHDOG_INTERVAL = float(os.getenv('WATCHDOG_INTERVAL', '1'))
    START_BACKGROUND_TASKS = _env_bool('START_BACKGROUND_TASKS', 'true')

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'DEBUG')


class ProductionConfig(Config):
    DEBUG = False
    PUBLISH_EVENTS = _env_bool('PUBLISH_EVENTS', 'true')


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    PUBLISH_EVENTS = False
    START_BACKGROUND_TASKS = False
    API_SECRET = ''
    STOP_TIMEOUT = 5


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
