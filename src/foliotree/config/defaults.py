"""
foliotree.config.defaults - Default configuration values
"""

CONFIG_FILENAME = ".foliotree.toml"

ENV_PREFIX = "FOLIOTREE_"

DEFAULT_CONFIG = {
    "store": {
        # "memory" keeps rows in-process; "postgrest" talks to a hosted database
        "backend": "memory",
        "url": "",
        "key": "",
        "table": "content_nodes",
        "timeout": 10.0,
        "seed_file": "",
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8080,
        "admin_token": "",
    },
    "site": {
        "url": "http://localhost:3000",
    },
    "tree": {
        "max_depth": 25,
    },
    "rate_limit": {
        "enabled": True,
        "capacity": 240,
        "window_seconds": 60,
        # Tracked client addresses before the least recently seen are dropped
        "max_buckets": 10000,
        # Reverse proxies in front of the server; 0 ignores X-Forwarded-For
        "trusted_proxies": 0,
    },
    "logging": {
        "level": "WARNING",
    },
}
