import json
import logging

from agentkai.context import Context
from agentkai.instrumentation import record_error, tool_span
from agentkai.streaming import ToolCall
from agentkai.tools import LLMRecoverableError, ToolRegistry, ToolResult

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Runs one completed tool call against a registry.

    :meth:`execute` never raises for a tool's sake: an unknown tool,
    unparsable arguments, or an exception from the handler all come
    back as a :class:`ToolResult` carrying ``error``, so the model can
    recover in its next round.
    """

    async def execute(
        self, call: ToolCall, registry: ToolRegistry, context: Context | None = None,
    ) -> ToolResult:
        tool_obj = registry.get(call.name)
        if tool_obj is None:
            logger.warning(f"Tool not found: {call.name}")
            return ToolResult(
                call_id=call.id, tool_name=call.name,
                error=f"Error: tool '{call.name}' not found",
            )

        try:
            params = json.loads(call.arguments) if call.arguments.strip() else {}
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in arguments for {call.name}: {e}")
            return ToolResult(
                call_id=call.id, tool_name=call.name,
                error=f"Error: invalid arguments for {call.name}: {e}",
            )
        if not isinstance(params, dict):
            logger.warning(f"Non-object arguments for {call.name}: {call.arguments}")
            return ToolResult(
                call_id=call.id, tool_name=call.name,
                error=f"Error: arguments for {call.name} must be a JSON object",
            )

        logger.info(f"Calling {call.name} with {params}")
        kwargs = dict(params)
        if tool_obj.wants_context:
            kwargs["context"] = context

        round_index = context.round_index if context is not None else 0
        async with tool_span(call.name, call.id, round_index) as span:
            try:
                output = await tool_obj(**kwargs)
            except LLMRecoverableError as e:
                logger.info(f"Tool {call.name} requested retry: {e}")
                return ToolResult(
                    call_id=call.id, tool_name=call.name, arguments=params, output=str(e),
                )
            except Exception as e:
                logger.error(f"Tool {call.name} raised: {e}")
                record_error(span, e)
                return ToolResult(
                    call_id=call.id, tool_name=call.name, arguments=params,
                    error=f"Error calling {call.name}: {e}",
                )

        return ToolResult(call_id=call.id, tool_name=call.name, arguments=params, output=output)
