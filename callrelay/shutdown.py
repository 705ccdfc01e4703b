# callrelay/shutdown.py
# Coordinated shutdown.
# Order matters: every open connection is told the server is going away and closed
# normally, those sends and closes are allowed to finish, and only then is the listener
# closed. The exit code is returned once the listener reports it has fully closed.

import asyncio
import logging


async def coordinate(hub, server, supervisor=None, hub_task=None):
    """
    Runs the shutdown sequence.

    Args:
        hub (Hub): The relay state; notifies and closes every open connection.
        server: The listening websockets Server (anything with close() and wait_closed()).
        supervisor (LivenessSupervisor, optional): Timers to stop first.
        hub_task (asyncio.Task, optional): The hub's consumer task, stopped last.

    Returns:
        int: The process exit code (0).
    """
    logging.info("Termination requested, shutting down gracefully...")
    if supervisor is not None:
        await supervisor.stop()

    # Apply everything already received before announcing the shutdown.
    if hub_task is not None:
        await hub.flush()

    channels = hub.shutdown()
    await asyncio.gather(*(channel.drain() for channel in channels), return_exceptions=True)

    server.close()
    await server.wait_closed()

    if hub_task is not None:
        # Disconnect events from the closes above are applied before the consumer stops.
        await hub.flush()
        hub_task.cancel()
        await asyncio.gather(hub_task, return_exceptions=True)

    logging.info("Server stopped cleanly")
    return 0
