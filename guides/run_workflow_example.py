"""Example showing how to run a workflow and follow its events."""

import asyncio
from pathlib import Path

from stepflow import EventBroadcaster, WorkflowExecutor, WorkflowLibrary
from stepflow.events import StepCompleted, StepFailed, WorkflowCompleted

WORKFLOWS = Path(__file__).parent / "workflows"


async def follow(subscription):
    async for event in subscription:
        if isinstance(event, StepCompleted):
            print(f"✅ {event.name}: {event.output.strip()}")
        elif isinstance(event, StepFailed):
            print(f"❌ {event.name}: {event.error}")
        elif isinstance(event, WorkflowCompleted):
            print(f"🏁 {event.name} finished (success={event.success})")


async def main():
    library = WorkflowLibrary()
    library.load_directory(WORKFLOWS)

    events = EventBroadcaster()
    executor = WorkflowExecutor(library=library, events=events)
    follower = asyncio.create_task(follow(events.subscribe()))

    outcome = await executor.run(library.get("greeting"), {"name": "stepflow"})

    events.close()
    await follower
    print(f"📋 Run ID: {outcome.run_id}")
    print(f"🔗 Variables: {outcome.variables}")


if __name__ == "__main__":
    asyncio.run(main())
