import asyncio

import pytest

from react_loop.agent import STUCK_PROMPT, Agent
from react_loop.config import DEFAULT_NEXT_STEP_PROMPT, AgentConfig
from react_loop.exceptions import InvalidArgument, InvalidState, UnrecoverableFault
from react_loop.memory import Memory
from react_loop.model import ModelAdaptor, ModelResponse
from react_loop.registry import ToolRegistry
from react_loop.schema import AgentState, Role, ToolCall, ToolChoice
from react_loop.strategy import ThinkStrategy
from react_loop.tools import Tool, ToolInput


# --- Test fixtures ---


class FakeModel(ModelAdaptor):
    """Model that returns a canned final response and records what it saw."""

    def __init__(self, response_text: str = "The answer is 42."):
        self.response_text = response_text
        self.calls = []

    async def call(self, messages, tools, **kwargs):
        self.calls.append({"messages": list(messages), "tools": tools, **kwargs})
        return ModelResponse(content=self.response_text)


class ScriptedModel(ModelAdaptor):
    """Replays responses in order, repeating the last one."""

    def __init__(self, *responses: ModelResponse):
        self.responses = list(responses)
        self.call_count = 0

    async def call(self, messages, tools, **kwargs):
        response = self.responses[min(self.call_count, len(self.responses) - 1)]
        self.call_count += 1
        return response


class NeverFinishModel(ModelAdaptor):
    """Model that always calls a tool and never finishes."""

    def __init__(self):
        self.call_count = 0
        self.seen = []

    async def call(self, messages, tools, **kwargs):
        self.call_count += 1
        self.seen.append(list(messages))
        return ModelResponse(
            content="Calling tool again.",
            tool_calls=[
                ToolCall(id=f"call_{self.call_count}", tool_name="echo", arguments={"text": "loop"})
            ],
        )


class FailingModel(ModelAdaptor):
    async def call(self, messages, tools, **kwargs):
        raise RuntimeError("model down")


class EchoInput(ToolInput):
    text: str


class EchoTool(Tool):
    name = "echo"
    description = "Echoes input"
    input_model = EchoInput

    async def execute(self, text: str) -> str:
        return text


class SilentTool(Tool):
    name = "silent"
    description = "Returns nothing"

    async def execute(self):
        return None


class SlowTool(Tool):
    name = "slow"
    description = "Sleeps for a long time"

    async def execute(self) -> str:
        await asyncio.sleep(10)
        return "finished"


def call(call_id: str, tool_name: str, arguments=None) -> ToolCall:
    return ToolCall(id=call_id, tool_name=tool_name, arguments=arguments)


# --- Tests ---


class TestAgentInit:
    def test_defaults(self):
        agent = Agent(model=FakeModel())
        assert agent.name == "Agent"
        assert agent.max_steps == 10
        assert agent.state is AgentState.IDLE
        assert agent.current_step == 0
        assert agent.registry.has("terminate")
        assert agent.memory.max_messages == 100

    def test_overrides(self):
        agent = Agent(model=FakeModel(), tools=[EchoTool()], name="Helper", max_steps=3)
        assert agent.name == "Helper"
        assert agent.max_steps == 3
        assert agent.registry.names == ["echo", "terminate"]

    def test_config_object(self):
        config = AgentConfig(name="FromConfig", max_messages=5)
        agent = Agent(model=FakeModel(), config=config)
        assert agent.name == "FromConfig"
        assert agent.memory.max_messages == 5

    def test_without_terminate_tool(self):
        agent = Agent(model=FakeModel(), add_terminate_tool=False)
        assert len(agent.registry) == 0

    def test_needs_model_or_strategy(self):
        with pytest.raises(InvalidArgument):
            Agent()

    def test_invalid_override(self):
        with pytest.raises(InvalidArgument):
            Agent(model=FakeModel(), max_steps=0)

    def test_shared_registry(self):
        registry = ToolRegistry([EchoTool()])
        first = Agent(model=FakeModel(), registry=registry)
        second = Agent(model=FakeModel(), registry=registry)
        assert first.registry is second.registry


class TestAgentRun:
    @pytest.mark.asyncio
    async def test_echo_then_terminate(self):
        model = ScriptedModel(
            ModelResponse(content="Echoing", tool_calls=[call("c1", "echo", '{"text": "hi"}')]),
            ModelResponse(content="Done", tool_calls=[call("c2", "terminate")]),
        )
        agent = Agent(model=model, tools=[EchoTool()])

        transcript = await agent.run_async("Echo hi")

        assert transcript == (
            "Step 1: hi\n"
            "Step 2: Execution terminated: Task completed successfully"
        )
        assert agent.state is AgentState.FINISHED
        messages = agent.memory.messages
        assert [m.role for m in messages] == [
            Role.USER,
            Role.ASSISTANT,
            Role.TOOL,
            Role.ASSISTANT,
            Role.TOOL,
        ]
        assert messages[2].content == "hi"
        assert messages[2].tool_call_id == "c1"
        assert messages[2].name == "echo"

    @pytest.mark.asyncio
    async def test_plain_answer_finishes(self):
        agent = Agent(model=FakeModel("Hello!"))
        transcript = await agent.run_async("Hi")
        assert transcript == "Step 1: Hello!"
        assert agent.state is AgentState.FINISHED
        assert [m.role for m in agent.memory] == [Role.USER, Role.ASSISTANT]

    @pytest.mark.asyncio
    async def test_plain_answer_can_continue(self):
        agent = Agent(model=FakeModel("Thinking..."), max_steps=2, finish_on_answer=False)
        transcript = await agent.run_async("Hi")
        assert transcript.splitlines()[-1] == "Terminated: Reached max steps (2)"
        assert agent.state is AgentState.IDLE

    def test_sync_run(self):
        agent = Agent(model=FakeModel("Hello!"))
        assert agent.run("Hi") == "Step 1: Hello!"

    @pytest.mark.asyncio
    async def test_step_budget(self):
        model = NeverFinishModel()
        agent = Agent(model=model, tools=[EchoTool()], max_steps=3)

        transcript = await agent.run_async("loop forever")

        lines = transcript.splitlines()
        assert lines[-1] == "Terminated: Reached max steps (3)"
        assert [line for line in lines if line.startswith("Step ")] == [
            "Step 1: loop",
            "Step 2: loop",
            "Step 3: loop",
        ]
        assert model.call_count == 3
        assert agent.state is AgentState.IDLE
        assert agent.current_step == 3

    @pytest.mark.asyncio
    async def test_memory_stays_bounded(self):
        agent = Agent(model=NeverFinishModel(), tools=[EchoTool()], max_steps=5, max_messages=3)
        await agent.run_async("loop")
        assert len(agent.memory) == 3

    @pytest.mark.asyncio
    async def test_next_step_prompt_sent_but_not_stored(self):
        model = FakeModel("ok")
        agent = Agent(model=model)
        await agent.run_async("Hi")

        sent = model.calls[0]["messages"]
        assert sent[-1].role is Role.USER
        assert sent[-1].content == DEFAULT_NEXT_STEP_PROMPT
        assert not agent.memory.find(DEFAULT_NEXT_STEP_PROMPT)
        assert model.calls[0]["system_prompt"] == agent.system_prompt

    @pytest.mark.asyncio
    async def test_run_without_request(self):
        agent = Agent(model=FakeModel("ok"), memory=Memory())
        await agent.run_async()
        assert [m.role for m in agent.memory] == [Role.ASSISTANT]


class TestSpecialTools:
    @pytest.mark.asyncio
    async def test_whole_batch_runs_before_finishing(self):
        model = ScriptedModel(
            ModelResponse(
                content="Wrapping up",
                tool_calls=[call("c1", "terminate"), call("c2", "echo", {"text": "after"})],
            )
        )
        agent = Agent(model=model, tools=[EchoTool()])

        transcript = await agent.run_async("go")

        assert agent.state is AgentState.FINISHED
        assert transcript == "Step 1: Execution terminated: Task completed successfully\n\nafter"
        assert [m.tool_call_id for m in agent.memory.by_role(Role.TOOL)] == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_failed_special_tool_still_finishes(self):
        model = ScriptedModel(
            ModelResponse(content="Stop", tool_calls=[call("c1", "terminate", "{oops")])
        )
        agent = Agent(model=model, max_steps=3)
        transcript = await agent.run_async("go")
        assert agent.state is AgentState.FINISHED
        assert transcript.startswith("Step 1: Error: failed to parse arguments for tool 'terminate'")

    @pytest.mark.asyncio
    async def test_special_names_are_case_insensitive(self):
        model = ScriptedModel(
            ModelResponse(content="Submitting", tool_calls=[call("c1", "echo", {"text": "x"})])
        )
        agent = Agent(model=model, tools=[EchoTool()], special_tool_names=("ECHO",))
        await agent.run_async("go")
        assert agent.state is AgentState.FINISHED


class TestToolFailures:
    @pytest.mark.asyncio
    async def test_unknown_tool_is_observed(self):
        model = ScriptedModel(
            ModelResponse(content="Try it", tool_calls=[call("c1", "nonexistent")]),
            ModelResponse(content="Giving up"),
        )
        agent = Agent(model=model)

        transcript = await agent.run_async("go")

        tool_message = agent.memory.by_role(Role.TOOL)[0]
        assert tool_message.content == "Error: tool not found: nonexistent"
        assert transcript.splitlines()[0] == "Step 1: Error: tool not found: nonexistent"
        assert agent.state is AgentState.FINISHED

    @pytest.mark.asyncio
    async def test_call_without_id_gets_one(self):
        model = ScriptedModel(
            ModelResponse(content="Try it", tool_calls=[call("", "nonexistent")]),
        )
        agent = Agent(model=model, max_steps=1)

        transcript = await agent.run_async("go")

        assert transcript.splitlines()[0] == "Step 1: Error: tool not found: nonexistent"
        assert agent.state is AgentState.IDLE
        assigned = agent.memory.by_role(Role.ASSISTANT)[0].tool_calls[0].id
        assert assigned.startswith("call_")
        assert agent.memory.by_role(Role.TOOL)[0].tool_call_id == assigned

    @pytest.mark.asyncio
    async def test_malformed_arguments_are_observed(self):
        model = ScriptedModel(
            ModelResponse(content="Echo", tool_calls=[call("c1", "echo", "not-json")]),
            ModelResponse(content="Sorry"),
        )
        agent = Agent(model=model, tools=[EchoTool()])
        await agent.run_async("go")

        tool_message = agent.memory.by_role(Role.TOOL)[0]
        assert tool_message.content.startswith("Error: failed to parse arguments for tool 'echo'")

    @pytest.mark.asyncio
    async def test_empty_output_placeholder(self):
        model = ScriptedModel(
            ModelResponse(content="Quiet", tool_calls=[call("c1", "silent")]),
            ModelResponse(content="Done"),
        )
        agent = Agent(model=model, tools=[SilentTool()])
        transcript = await agent.run_async("go")
        assert "Step 1: Tool `silent` completed with no output" in transcript

    @pytest.mark.asyncio
    async def test_max_observe_truncates(self):
        model = ScriptedModel(
            ModelResponse(content="Echo", tool_calls=[call("c1", "echo", {"text": "hello world"})]),
            ModelResponse(content="Done"),
        )
        agent = Agent(model=model, tools=[EchoTool()], max_observe=5)
        await agent.run_async("go")
        assert agent.memory.by_role(Role.TOOL)[0].content == "hello"

    @pytest.mark.asyncio
    async def test_tool_timeout(self):
        model = ScriptedModel(
            ModelResponse(content="Wait", tool_calls=[call("c1", "slow")]),
            ModelResponse(content="Done"),
        )
        agent = Agent(model=model, tools=[SlowTool()], tool_timeout=0.05)
        await agent.run_async("go")
        tool_message = agent.memory.by_role(Role.TOOL)[0]
        assert tool_message.content == "Error: cancelled: tool 'slow' timed out after 0.05s"


class TestThinkFailures:
    @pytest.mark.asyncio
    async def test_model_error_is_recorded_and_run_continues(self):
        agent = Agent(model=FailingModel(), max_steps=2)

        transcript = await agent.run_async("go")

        assert transcript.splitlines() == [
            "Step 1: Error encountered while processing: model down",
            "Step 2: Error encountered while processing: model down",
            "Terminated: Reached max steps (2)",
        ]
        assert agent.memory.messages[-1].role is Role.ASSISTANT
        assert agent.state is AgentState.IDLE

    @pytest.mark.asyncio
    async def test_reentrant_run_is_rejected(self):
        class ReentrantStrategy(ThinkStrategy):
            agent = None

            async def think(self, context):
                await self.agent.run_async("nested")
                return ModelResponse(content="unreachable")

        strategy = ReentrantStrategy()
        agent = Agent(strategy=strategy, max_steps=1)
        strategy.agent = agent

        transcript = await agent.run_async("outer")

        assert transcript.splitlines()[0] == (
            "Step 1: Error encountered while processing: Cannot run agent from state: running"
        )
        assert [m.content for m in agent.memory.by_role(Role.USER)] == ["outer"]

    @pytest.mark.asyncio
    async def test_unrecoverable_fault_moves_to_error(self):
        model = ScriptedModel(ModelResponse(content="bad", tool_calls=["not a tool call"]))
        agent = Agent(model=model)

        transcript = await agent.run_async("go")

        assert agent.state is AgentState.ERROR
        assert isinstance(agent.last_error, UnrecoverableFault)
        assert transcript.startswith("Error: ")
        with pytest.raises(InvalidState):
            await agent.run_async("again")


class TestToolChoice:
    @pytest.mark.asyncio
    async def test_required_without_calls(self):
        agent = Agent(model=FakeModel("just text"), tool_choice=ToolChoice.REQUIRED, max_steps=1)

        transcript = await agent.run_async("go")

        assert transcript.splitlines()[0] == (
            "Step 1: Error: tool calls required but none were proposed"
        )
        last = agent.memory.messages[-1]
        assert last.role is Role.SYSTEM
        assert agent.state is AgentState.IDLE

    @pytest.mark.asyncio
    async def test_none_drops_proposed_calls(self):
        model = ScriptedModel(
            ModelResponse(content="Answer", tool_calls=[call("c1", "echo", {"text": "x"})])
        )
        agent = Agent(model=model, tools=[EchoTool()], tool_choice="none")

        transcript = await agent.run_async("go")

        assert transcript == "Step 1: Answer"
        assert agent.memory.by_role(Role.TOOL) == []
        assert agent.memory.messages[-1].tool_calls is None

    @pytest.mark.asyncio
    async def test_none_hides_tools_from_model(self):
        model = FakeModel("ok")
        agent = Agent(model=model, tools=[EchoTool()], tool_choice=ToolChoice.NONE)
        await agent.run_async("go")
        assert model.calls[0]["tools"] == []
        assert model.calls[0]["tool_choice"] is ToolChoice.NONE


class TestStuckDetection:
    @pytest.mark.asyncio
    async def test_admonition_added_once(self):
        model = NeverFinishModel()
        agent = Agent(model=model, tools=[EchoTool()], max_steps=4, duplicate_threshold=1)
        await agent.run_async("loop")

        assert agent.next_step_prompt.startswith(STUCK_PROMPT)
        assert agent.next_step_prompt.count(STUCK_PROMPT) == 1
        assert agent.next_step_prompt.endswith(DEFAULT_NEXT_STEP_PROMPT)

        # Stuck is detected after step 2, so steps 3 and 4 see the admonition
        guidance = [messages[-1].content for messages in model.seen]
        assert guidance[:2] == [DEFAULT_NEXT_STEP_PROMPT, DEFAULT_NEXT_STEP_PROMPT]
        assert all(g.startswith(STUCK_PROMPT) for g in guidance[2:])
        assert len(guidance) == 4

    @pytest.mark.asyncio
    async def test_default_threshold_needs_three_repeats(self):
        agent = Agent(model=NeverFinishModel(), tools=[EchoTool()], max_steps=2)
        await agent.run_async("loop")
        assert agent.duplicate_count() == 1
        assert not agent.is_stuck()
        assert agent.next_step_prompt == DEFAULT_NEXT_STEP_PROMPT

    @pytest.mark.asyncio
    async def test_empty_content_never_stuck(self):
        model = ScriptedModel(
            ModelResponse(content="", tool_calls=[call("c1", "echo", {"text": "a"})]),
            ModelResponse(content="", tool_calls=[call("c2", "echo", {"text": "a"})]),
            ModelResponse(content="", tool_calls=[call("c3", "terminate")]),
        )
        agent = Agent(model=model, tools=[EchoTool()], duplicate_threshold=1)
        await agent.run_async("go")
        assert agent.duplicate_count() == 0
        assert agent.next_step_prompt == DEFAULT_NEXT_STEP_PROMPT

    def test_no_assistant_messages(self):
        agent = Agent(model=FakeModel())
        assert agent.duplicate_count() == 0
        assert not agent.is_stuck()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_finished_agent_must_be_shut_down(self):
        agent = Agent(model=FakeModel("Hello!"))
        await agent.run_async("Hi")

        with pytest.raises(InvalidState):
            await agent.run_async("Again")

        agent.shutdown()
        assert agent.state is AgentState.IDLE
        assert agent.current_step == 0
        await agent.run_async("Again")
        assert [m.content for m in agent.memory.by_role(Role.USER)] == ["Hi", "Again"]

    @pytest.mark.asyncio
    async def test_shutdown_restores_next_step_prompt(self):
        agent = Agent(
            model=NeverFinishModel(), tools=[EchoTool()], max_steps=3, duplicate_threshold=1
        )
        await agent.run_async("loop")
        agent.shutdown()
        assert agent.next_step_prompt == DEFAULT_NEXT_STEP_PROMPT

    @pytest.mark.asyncio
    async def test_reset_clears_memory(self):
        agent = Agent(model=FakeModel("Hello!"))
        await agent.run_async("Hi")
        agent.reset()
        assert agent.memory.is_empty
        assert agent.state is AgentState.IDLE
        assert agent.last_error is None

    @pytest.mark.asyncio
    async def test_reset_while_running_is_rejected(self):
        errors = []
        agent = Agent(model=FakeModel("Hello!"))

        @agent.hook("before_step")
        async def try_reset(event):
            try:
                event.agent.reset()
            except InvalidState as e:
                errors.append(e)

        await agent.run_async("Hi")
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_cancel_abandons_tool_and_stops(self):
        model = ScriptedModel(
            ModelResponse(content="Wait", tool_calls=[call("c1", "slow")]),
        )
        agent = Agent(model=model, tools=[SlowTool()])

        @agent.hook("before_tool_call")
        async def cancel_run(event):
            event.agent.cancel()

        transcript = await agent.run_async("go")

        assert transcript.splitlines() == [
            "Step 1: Error: cancelled: tool 'slow' was cancelled",
            "Cancelled: Stopped after step 1",
        ]
        assert agent.state is AgentState.IDLE

    @pytest.mark.asyncio
    async def test_shutdown_during_run_cancels(self):
        agent = Agent(model=NeverFinishModel(), tools=[EchoTool()], max_steps=5)

        @agent.hook("after_step")
        async def stop(event):
            event.agent.shutdown()

        transcript = await agent.run_async("loop")
        assert transcript.splitlines()[-1] == "Cancelled: Stopped after step 1"
        assert agent.state is AgentState.IDLE

    @pytest.mark.asyncio
    async def test_status(self):
        agent = Agent(model=FakeModel("Hello!"), name="Helper", max_steps=4)
        await agent.run_async("Hi")
        status = agent.status()
        assert status.state is AgentState.FINISHED
        assert status.current_step == 1
        assert status.message_count == 2
        assert str(status) == "Agent: Helper, State: finished, Step: 1/4, Messages: 2"

    @pytest.mark.asyncio
    async def test_status_after_budget_exhaustion(self):
        agent = Agent(model=NeverFinishModel(), tools=[EchoTool()], max_steps=2)
        await agent.run_async("loop")

        status = agent.status()
        assert status.state is AgentState.IDLE
        assert status.current_step == 2

        agent.shutdown()
        assert agent.status().current_step == 0

    @pytest.mark.asyncio
    async def test_step_requires_running(self):
        agent = Agent(model=FakeModel())
        with pytest.raises(InvalidState):
            await agent.step()
