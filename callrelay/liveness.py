# callrelay/liveness.py
# Liveness supervision.
# Two independent timers feed the hub's event queue: a sweep that evicts registry
# entries whose connection has closed, and a keep-alive probe that pings every open
# connection. A missed pong is only logged; eviction waits for the transport to report
# the connection closed, which the next sweep (or the disconnect event) observes.

import asyncio
import logging

from callrelay import config
from callrelay.hub import Probe, Sweep


class LivenessSupervisor:
    def __init__(self, hub, sweep_interval=None, ping_interval=None):
        self.hub = hub
        self.sweep_interval = sweep_interval if sweep_interval is not None else config.SWEEP_INTERVAL
        self.ping_interval = ping_interval if ping_interval is not None else config.PING_INTERVAL
        self._tasks = []

    def start(self):
        """Starts the sweep and probe timers on the running loop."""
        logging.info(f"Liveness supervisor: sweep every {self.sweep_interval}s, keep-alive ping every {self.ping_interval}s")
        self._tasks = [
            asyncio.create_task(self._tick(self.sweep_interval, Sweep)),
            asyncio.create_task(self._tick(self.ping_interval, Probe)),
        ]
        return self._tasks

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _tick(self, interval, event_type):
        while True:
            await asyncio.sleep(interval)
            self.hub.submit(event_type())
