"""Example showing a scripted debug session with a breakpoint."""

import asyncio

from stepflow import DebugManager, Workflow, WorkflowExecutor
from stepflow.events import BreakpointHit, ExecutionCompleted

WORKFLOW = {
    "id": "counter",
    "name": "Counter",
    "arguments": [{"name": "start", "arg_type": "number", "default_value": 1}],
    "steps": [
        {"name": "first", "command": "echo {{start}}", "output_variable": "first"},
        {"name": "second", "command": "echo {{start}} again", "output_variable": "second"},
    ],
}


async def main():
    manager = DebugManager(WorkflowExecutor())
    session = await manager.create_session(Workflow.from_dict(WORKFLOW), breakpoints={1})
    events = await manager.subscribe(session.id)

    await manager.start(session.id)
    hit = await events.wait_for(BreakpointHit)
    print(f"⏸️  Suspended before step {hit.step_index} with {hit.variables}")

    # change a variable before the next step reads it
    await manager.set_variable(session.id, "start", 42)
    await manager.resume(session.id)
    await events.wait_for(ExecutionCompleted)

    print(await manager.get_execution_summary(session.id))
    for record in await manager.get_step_history(session.id):
        print(f"  [{record.step_index}] {record.step_name}: {record.output!r}")

    await manager.drop_session(session.id)


if __name__ == "__main__":
    asyncio.run(main())
