from typing import Any

from pydantic import BaseModel


class ToolInput(BaseModel):
    """Subclass this for tool-specific input validation."""


class Tool:
    """A named capability the agent can invoke.

    Subclasses set ``name``, ``description`` and ``input_model`` and implement
    ``execute``. Returning a ToolResult gives full control over error and
    side-channel fields; any other return value becomes the result's output.
    """

    name: str
    description: str = ""
    input_model: type[BaseModel] = ToolInput

    def schema(self) -> dict:
        """Return JSON schema from Pydantic model."""
        return self.input_model.model_json_schema()

    def to_definition(self) -> dict:
        """Function-calling definition handed to the model."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.schema(),
            },
        }

    async def execute(self, **kwargs) -> Any:
        """Execute tool. Always async; sync tools wrap sync code.

        Pydantic validates inputs before this is called.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={getattr(self, 'name', None)!r}>"
