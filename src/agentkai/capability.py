from abc import ABC, abstractmethod

from agentkai.tools import Tool


class Capability(ABC):
    """A cohesive group of tools sharing one collaborator.

    Capabilities are how the orchestrator's own tools (memory, goals)
    get into a :class:`~agentkai.tools.ToolRegistry`. Tools typically
    close over ``self`` to reach the collaborator.

    Args:
        name: Unique name identifying this capability.

    Example::

        class Weather(Capability):
            def __init__(self, client: WeatherClient):
                super().__init__("weather")
                self.client = client

            def tools(self) -> list[Tool]:
                client = self.client

                @tool
                async def forecast(city: str, days: int = 1):
                    return await client.forecast(city, days)

                return [forecast]
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def tools(self) -> list[Tool]:
        """Return the tools this capability provides."""
        ...

    def on_attach(self, registry) -> None:
        """Called after the capability's tools are registered.

        Args:
            registry: The :class:`~agentkai.tools.ToolRegistry` it was
                added to.
        """
