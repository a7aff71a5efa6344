"""Example exposing a debug session over Redis.

Run with ``serve`` in one terminal and ``drive <session-id>`` in another.
Requires a Redis server on localhost.
"""

import asyncio
import sys

from stepflow import DebugManager, Workflow, WorkflowExecutor, get_transport
from stepflow.events import ExecutionCompleted, StartCommand, StopCommand
from stepflow.transports.bridge import SessionBridge, send_command, watch_events

WORKFLOW = {
    "id": "remote",
    "name": "Remote",
    "steps": [{"name": "uptime", "command": "uptime"}],
}


async def serve():
    transport = get_transport("redis")
    await transport.connect()

    manager = DebugManager(WorkflowExecutor())
    session = await manager.create_session(Workflow.from_dict(WORKFLOW))
    print(f"📋 Session ID: {session.id}")

    controller = await manager.get_controller(session.id)
    await SessionBridge(controller, transport).run()
    await manager.drop_session(session.id)
    await transport.disconnect()


async def drive(session_id):
    transport = get_transport("redis")
    await transport.connect()

    await send_command(transport, session_id, StartCommand())
    async for event in watch_events(transport, session_id):
        print(f"📨 {event.type}")
        if isinstance(event, ExecutionCompleted):
            await send_command(transport, session_id, StopCommand())

    await transport.disconnect()


if __name__ == "__main__":
    if sys.argv[1] == "serve":
        asyncio.run(serve())
    else:
        asyncio.run(drive(sys.argv[2]))
