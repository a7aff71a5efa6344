"""Plugin host used by plugin action steps."""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Protocol, Tuple

from .errors import PluginActionError, PluginNotFoundError

logger = logging.getLogger(__name__)


class PluginHost(Protocol):
    async def run_action(
        self, plugin_name: str, action_name: str, arguments: Dict[str, Any]
    ) -> str:
        """Run ``plugin_name.action_name`` and return its textual result."""


class InMemoryPluginHost:
    """Hosts plugin actions registered as Python callables."""

    def __init__(self) -> None:
        self._actions: Dict[Tuple[str, str], Callable[..., Any]] = {}

    def register(self, plugin_name: str, action_name: str, function: Callable[..., Any]) -> None:
        self._actions[(plugin_name, action_name)] = function

    def action(self, plugin_name: str, action_name: str) -> Callable:
        """Decorator form of :meth:`register`."""

        def _decorator(function: Callable[..., Any]) -> Callable[..., Any]:
            self.register(plugin_name, action_name, function)
            return function

        return _decorator

    def actions(self) -> List[str]:
        return sorted(f"{plugin}.{action}" for plugin, action in self._actions)

    async def run_action(
        self, plugin_name: str, action_name: str, arguments: Dict[str, Any]
    ) -> str:
        function = self._actions.get((plugin_name, action_name))
        if function is None:
            raise PluginNotFoundError(plugin_name, action_name)

        logger.info(f"Running plugin action {plugin_name}.{action_name}")
        try:
            result = function(**arguments)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise PluginActionError(plugin_name, action_name, str(e)) from e
        if isinstance(result, str):
            return result
        return "" if result is None else json.dumps(result, default=str)
