"""
Client Module

Access to a worker running in another process: the control API client and
a supervised connection that keeps it alive.

Example usage:
    from geotrack.client import SupervisedConnection, WorkerClient

    connection = SupervisedConnection(
        connect=lambda: WorkerClient("http://127.0.0.1:8000"),
        is_alive=WorkerClient.ping,
        disconnect=WorkerClient.close,
    )
    connection.bind()
    connection.get().upload_latest()
"""

from .api_client import WorkerClient
from .connection import ConnectionState, SupervisedConnection

__all__ = [
    'WorkerClient',
    'ConnectionState',
    'SupervisedConnection',
]
