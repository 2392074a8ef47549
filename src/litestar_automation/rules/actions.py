"""Registry of automation rule action handlers.

The registry maps every ``ActionType`` to an async handler. The default
handlers acknowledge the request and echo its parameters; applications that
deliver notifications, emails or webhooks register their own handlers over
them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anyio

from litestar_automation.core.types import ActionType

if TYPE_CHECKING:
    from collections.abc import Mapping

    from litestar_automation.core.protocols import ActionHandler

__all__ = ["DEFAULT_HANDLERS", "ActionRegistry"]

logger = logging.getLogger(__name__)


async def _update_field(config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    return {"field": config.get("field"), "value": config.get("value"), "updated": True}


async def _send_notification(config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    return {"template": config.get("template"), "userId": config.get("userId") or context.get("userId"), "sent": True}


async def _assign_user(config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    return {"userId": config.get("userId"), "assigned": True}


async def _create_issue(config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "title": config.get("title"),
        "description": config.get("description"),
        "type": config.get("type"),
        "priority": config.get("priority"),
        "created": True,
    }


async def _update_status(config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    return {"status": config.get("status"), "updated": True}


async def _send_email(config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    return {"template": config.get("template"), "to": config.get("to"), "subject": config.get("subject"), "sent": True}


async def _webhook_call(config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "url": config.get("url"),
        "method": config.get("method", "POST"),
        "headers": dict(config.get("headers") or {}),
        "body": config.get("body"),
        "called": True,
    }


async def _delay(config: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    delay = float(config.get("delay") or 0)
    if delay < 0:
        msg = f"Delay must not be negative, got {delay}"
        raise ValueError(msg)
    await anyio.sleep(delay)
    return {"delay": delay, "completed": True}


DEFAULT_HANDLERS: dict[ActionType, ActionHandler] = {
    ActionType.UPDATE_FIELD: _update_field,
    ActionType.SEND_NOTIFICATION: _send_notification,
    ActionType.ASSIGN_USER: _assign_user,
    ActionType.CREATE_ISSUE: _create_issue,
    ActionType.UPDATE_STATUS: _update_status,
    ActionType.SEND_EMAIL: _send_email,
    ActionType.WEBHOOK_CALL: _webhook_call,
    ActionType.DELAY: _delay,
}

_unhandled = set(ActionType) - DEFAULT_HANDLERS.keys()
if _unhandled:
    msg = f"Action types without a default handler: {sorted(_unhandled)}"
    raise RuntimeError(msg)


class ActionRegistry:
    """Registry mapping action types to their handlers.

    Attributes:
        _handlers: Map of action type to handler.
    """

    def __init__(self, handlers: Mapping[ActionType, ActionHandler] | None = None) -> None:
        """Initialize the registry.

        Args:
            handlers: Handlers overriding the defaults. Every action type
                without an override uses its default handler.
        """
        self._handlers: dict[ActionType, ActionHandler] = dict(DEFAULT_HANDLERS)
        for action_type, handler in (handlers or {}).items():
            self.register(action_type, handler)

    def register(self, action_type: ActionType | str, handler: ActionHandler) -> None:
        """Register a handler for an action type, replacing the current one.

        Args:
            action_type: The action type.
            handler: Async callable receiving ``(config, context)``.

        Raises:
            ValueError: If ``action_type`` is not a known action type.

        Example:
            >>> async def send_email(config, context):
            ...     await mailer.send(config["to"], config["subject"])
            ...     return {"sent": True}
            >>> registry.register(ActionType.SEND_EMAIL, send_email)
        """
        self._handlers[ActionType(action_type)] = handler

    def get_handler(self, action_type: ActionType | str) -> ActionHandler:
        """Retrieve the handler of an action type.

        Raises:
            KeyError: If the action type is unknown.
        """
        try:
            return self._handlers[ActionType(action_type)]
        except ValueError:
            msg = f"Unknown action type '{action_type}'"
            raise KeyError(msg) from None

    def has_handler(self, action_type: ActionType | str) -> bool:
        """Check whether an action type can be executed."""
        try:
            return ActionType(action_type) in self._handlers
        except ValueError:
            return False

    def list_action_types(self) -> list[ActionType]:
        """List the registered action types."""
        return list(self._handlers)

    async def execute_action(
        self,
        action_type: ActionType | str,
        config: Mapping[str, Any],
        context: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Run the handler of ``action_type``.

        Args:
            action_type: The action type.
            config: The action's configuration.
            context: The triggering context.

        Returns:
            What the handler reported.

        Raises:
            KeyError: If the action type is unknown.
        """
        handler = self.get_handler(action_type)
        logger.debug("Executing %s action", action_type)
        return await handler(config, context)
