"""
Expose the loaded configuration as ``config``.

Importing from this module will load environment variables and
populate a singleton ``Config`` instance. Example:

    from simple_db_connect.config import config
    print(config.SIMPLEDB_EXECUTION_TIMEOUT)
"""

from .env import config, Config  # noqa: F401
