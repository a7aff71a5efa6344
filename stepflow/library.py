"""Named workflow catalog used to resolve sub-workflow steps."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import WorkflowNotFoundError, WorkflowValidationError
from .models import Workflow

logger = logging.getLogger(__name__)

WORKFLOW_SUFFIXES = (".yaml", ".yml")


class WorkflowLibrary:
    """Workflows addressable by id or by name."""

    def __init__(self, workflows: Optional[Iterable[Workflow]] = None) -> None:
        self._workflows: Dict[str, Workflow] = {}
        for workflow in workflows or []:
            self.add(workflow)

    def add(self, workflow: Workflow) -> None:
        if workflow.id in self._workflows:
            logger.warning(f"Replacing workflow '{workflow.id}' in library")
        self._workflows[workflow.id] = workflow

    def remove(self, name: str) -> None:
        workflow = self.get(name)
        del self._workflows[workflow.id]

    def get(self, name: str) -> Workflow:
        """Find a workflow by id, falling back to its display name.

        Raises:
            WorkflowNotFoundError: nothing matches ``name``.
        """
        workflow = self._workflows.get(name)
        if workflow is not None:
            return workflow
        for candidate in self._workflows.values():
            if candidate.name == name:
                return candidate
        raise WorkflowNotFoundError(name)

    def list(self) -> List[Workflow]:
        return sorted(self._workflows.values(), key=lambda wf: wf.name.lower())

    def __len__(self) -> int:
        return len(self._workflows)

    def __contains__(self, name: str) -> bool:
        try:
            self.get(name)
        except WorkflowNotFoundError:
            return False
        return True

    def load_directory(self, path: str | Path) -> List[Path]:
        """Load every workflow file below ``path``.

        Invalid files are logged and skipped. Returns the files that failed.
        """
        root = Path(path).expanduser()
        failed = []
        for file in sorted(root.rglob("*")):
            if file.suffix not in WORKFLOW_SUFFIXES or not file.is_file():
                continue
            try:
                self.add(Workflow.from_file(file))
            except (OSError, WorkflowValidationError) as e:
                logger.warning(f"Skipping workflow file {file}: {e}")
                failed.append(file)
        return failed

    def search(self, query: str) -> List[Tuple[Workflow, float]]:
        """Workflows relevant to ``query``, best match first."""
        scored = [(wf, wf.search_score(query)) for wf in self._workflows.values()]
        return sorted(
            [item for item in scored if item[1] > 0], key=lambda item: item[1], reverse=True
        )
