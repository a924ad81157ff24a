import asyncio
import dataclasses
import logging
import time
import uuid
from typing import Optional

from react_loop.builtin import Terminate
from react_loop.config import AgentConfig
from react_loop.exceptions import InvalidArgument, InvalidState, ReactLoopError, UnrecoverableFault
from react_loop.hooks import (
    AfterRunEventData,
    AfterStepEventData,
    AfterThinkEventData,
    AfterToolCallEventData,
    BeforeRunEventData,
    BeforeStepEventData,
    BeforeThinkEventData,
    BeforeToolCallEventData,
    HookEvent,
    HookRegistry,
    Middleware,
    OnStuckEventData,
    OnToolErrorEventData,
)
from react_loop.memory import Memory
from react_loop.model import ModelAdaptor
from react_loop.registry import ToolRegistry
from react_loop.schema import (
    AgentState,
    AgentStatus,
    Message,
    Role,
    ToolCall,
    ToolChoice,
    ToolResult,
)
from react_loop.strategy import ModelThinkStrategy, ThinkContext, ThinkStrategy
from react_loop.tools import Tool

logger = logging.getLogger(__name__)

STUCK_PROMPT = (
    "Observed duplicate responses. Consider new strategies and avoid repeating "
    "ineffective paths already attempted."
)

_TRANSITIONS: dict[AgentState, frozenset[AgentState]] = {
    AgentState.IDLE: frozenset({AgentState.RUNNING}),
    AgentState.RUNNING: frozenset({AgentState.FINISHED, AgentState.IDLE, AgentState.ERROR}),
    AgentState.FINISHED: frozenset({AgentState.IDLE, AgentState.ERROR}),
    AgentState.ERROR: frozenset({AgentState.IDLE}),
}


class Agent:
    """Step-bounded ReAct agent.

    Each step is Think (ask the strategy for text and tool calls) followed,
    when calls were proposed, by Act (dispatch them through the registry and
    record observations in memory). The run ends when a special tool such as
    ``terminate`` has been executed, when the model answers without proposing calls,
    when ``max_steps`` is exhausted, or on an unrecoverable fault.

    Specialized agents are configuration, not subclasses: pass a different
    system prompt, tool registry, tool choice or think strategy.

    Usage:
        registry = ToolRegistry([EchoTool()])
        agent = Agent(model=OpenAIAdaptor(), registry=registry, max_steps=5)
        transcript = agent.run("Echo hello")
    """

    def __init__(
        self,
        model: Optional[ModelAdaptor] = None,
        registry: Optional[ToolRegistry] = None,
        *,
        tools: Optional[list[Tool]] = None,
        strategy: Optional[ThinkStrategy] = None,
        config: Optional[AgentConfig] = None,
        memory: Optional[Memory] = None,
        hooks: Optional[HookRegistry] = None,
        middlewares: Optional[list[Middleware]] = None,
        add_terminate_tool: bool = True,
        **overrides,
    ):
        if strategy is None:
            if model is None:
                raise InvalidArgument("Agent needs either a model or a think strategy")
            strategy = ModelThinkStrategy(model)
        self.strategy = strategy

        config = config or AgentConfig()
        if overrides:
            config = dataclasses.replace(config, **overrides)
        self.config = config

        self.registry = registry if registry is not None else ToolRegistry()
        for tool in tools or []:
            self.registry.register(tool)
        if add_terminate_tool and not self.registry.has(Terminate.name):
            self.registry.register(Terminate())

        self.memory = memory if memory is not None else Memory(config.max_messages)

        self.name = config.name
        self.system_prompt = config.system_prompt
        self.next_step_prompt = config.next_step_prompt
        self.tool_choice = config.tool_choice
        self.max_steps = config.max_steps
        self.duplicate_threshold = config.duplicate_threshold
        self.max_observe = config.max_observe
        self.tool_timeout = config.tool_timeout
        self.special_tool_names = {name.lower() for name in config.special_tool_names}
        self.finish_on_answer = config.finish_on_answer

        self.state = AgentState.IDLE
        self.current_step = 0
        self.last_error: Optional[ReactLoopError] = None
        self._pending_calls: list[ToolCall] = []
        self._think_failed = False
        self._cancel_event: Optional[asyncio.Event] = None

        self.hooks = hooks if hooks is not None else HookRegistry()
        if middlewares:
            self._register_middlewares(middlewares)

    def _register_middlewares(self, middlewares: list[Middleware]) -> None:
        """Convert middleware instances to HookRegistry handlers."""
        hook_names = [e.value for e in HookEvent]
        for middleware in middlewares:
            for hook_name in hook_names:
                handler = getattr(middleware, hook_name, None)
                if handler is not None and asyncio.iscoroutinefunction(handler):
                    self.hooks.register_handler(hook_name, handler)

    def hook(self, hook_name: str):
        """Decorator for registering hooks directly on agent.

        Usage:
            @agent.hook('after_tool_call')
            async def log_tool(event):
                print(f"Tool: {event.tool_name}")
        """
        return self.hooks.on(hook_name)

    # ------------------------------------------------------------------
    # Caller surface
    # ------------------------------------------------------------------

    def run(self, request: Optional[str] = None) -> str:
        """Run agent synchronously."""
        return asyncio.run(self.run_async(request))

    async def run_async(self, request: Optional[str] = None) -> str:
        """Run the step loop and return the transcript of step summaries.

        Failures inside the loop are narrated in the transcript, never raised.

        Raises:
            InvalidState: If the agent is not idle (already running, or a
                previous run finished or failed and ``shutdown`` wasn't called).
        """
        if self.state is not AgentState.IDLE:
            raise InvalidState(f"Cannot run agent from state: {self.state.value}")

        if request:
            self.memory.append(Message.user(request))

        start_time = time.time()
        results: list[str] = []
        self._transition(AgentState.RUNNING)
        self.current_step = 0
        self.last_error = None
        self._cancel_event = asyncio.Event()

        await self.hooks.trigger("before_run", BeforeRunEventData(agent=self, input=request))

        try:
            while (
                self.current_step < self.max_steps
                and self.state is AgentState.RUNNING
                and not self._cancel_event.is_set()
            ):
                self.current_step += 1
                step_start = time.time()
                logger.info(f"Executing step {self.current_step}/{self.max_steps} for agent {self.name}")
                await self.hooks.trigger(
                    "before_step", BeforeStepEventData(agent=self, step=self.current_step)
                )

                step_result = await self.step()

                if self.is_stuck():
                    await self.handle_stuck_state()

                results.append(f"Step {self.current_step}: {step_result}")
                await self.hooks.trigger(
                    "after_step",
                    AfterStepEventData(
                        agent=self,
                        step=self.current_step,
                        result=step_result,
                        elapsed_time_ms=(time.time() - step_start) * 1000,
                    ),
                )

            if self.state is AgentState.RUNNING:
                if self._cancel_event.is_set():
                    results.append(f"Cancelled: Stopped after step {self.current_step}")
                else:
                    results.append(f"Terminated: Reached max steps ({self.max_steps})")
                # Budget exhaustion is a normal outcome: back to idle, not finished
                self._transition(AgentState.IDLE)

        except Exception as e:
            logger.exception(f"Error during agent execution for {self.name}")
            self.last_error = e if isinstance(e, ReactLoopError) else UnrecoverableFault(str(e))
            self._transition(AgentState.ERROR)
            results.append(f"Error: {e}")

        finally:
            if self.state is AgentState.RUNNING:
                self._transition(AgentState.IDLE)
            self._pending_calls = []
            self._cancel_event = None
            transcript = "\n".join(results) if results else "No steps executed"
            await self.hooks.trigger(
                "after_run",
                AfterRunEventData(
                    agent=self,
                    state=self.state,
                    transcript=transcript,
                    total_time_ms=(time.time() - start_time) * 1000,
                ),
            )

        return transcript

    def cancel(self) -> None:
        """Ask a running loop to stop; an in-flight tool call is abandoned."""
        if self._cancel_event is not None:
            logger.info(f"Cancellation requested for agent {self.name}")
            self._cancel_event.set()

    def status(self) -> AgentStatus:
        return AgentStatus(
            name=self.name,
            state=self.state,
            current_step=self.current_step,
            max_steps=self.max_steps,
            message_count=len(self.memory),
        )

    def shutdown(self) -> None:
        """Return to idle. Memory is kept for inspection.

        Calling it during a run requests cancellation instead; the loop winds
        down to idle on its own.
        """
        if self.state is AgentState.RUNNING:
            self.cancel()
            return
        if self.state is not AgentState.IDLE:
            logger.info(f"Shutting down agent: {self.name}")
            self._transition(AgentState.IDLE)
        self.current_step = 0
        self._pending_calls = []
        self._think_failed = False
        self.next_step_prompt = self.config.next_step_prompt

    def reset(self) -> None:
        """Shut down and also forget the conversation."""
        if self.state is AgentState.RUNNING:
            raise InvalidState("Cannot reset a running agent")
        self.shutdown()
        self.memory.clear()
        self.last_error = None

    # ------------------------------------------------------------------
    # ReAct protocol
    # ------------------------------------------------------------------

    async def step(self) -> str:
        """Think, then act on whatever was proposed."""
        if self.state is not AgentState.RUNNING:
            raise InvalidState(f"Cannot step agent from state: {self.state.value}")

        logger.debug(f"Starting ReAct step for agent {self.name}")
        should_act = await self.think()
        if self._think_failed:
            return self.memory.messages[-1].content

        if not should_act:
            answer = await self.act()
            if self.finish_on_answer:
                logger.info(f"Agent {self.name} answered without tool calls, finishing")
                self._transition(AgentState.FINISHED)
            return answer

        logger.debug(f"Agent {self.name} proceeding to act")
        return await self.act()

    async def think(self) -> bool:
        """Ask the strategy for the next move and record it in memory.

        Returns:
            True when tool calls are pending, or when the tool choice policy
            is ``required`` (Act then reports the missing calls).
        """
        self._pending_calls = []
        self._think_failed = False
        context = ThinkContext(
            messages=self.memory.messages,
            tools=self.registry.definitions(),
            system_prompt=self.system_prompt,
            next_step_prompt=self.next_step_prompt,
            tool_choice=self.tool_choice,
            step=self.current_step,
        )
        await self.hooks.trigger("before_think", BeforeThinkEventData(agent=self, context=context))

        think_start = time.time()
        try:
            response = await self.strategy.think(context)
        except Exception as e:
            logger.exception(f"Error in {self.name} thinking phase")
            self.memory.append(Message.assistant(f"Error encountered while processing: {e}"))
            self._think_failed = True
            return False

        await self.hooks.trigger(
            "after_think",
            AfterThinkEventData(
                agent=self,
                response=response,
                response_time_ms=(time.time() - think_start) * 1000,
            ),
        )

        calls = list(response.tool_calls or [])
        if calls and self.tool_choice is ToolChoice.NONE:
            logger.warning(f"{self.name} ignored {len(calls)} tool calls: tool choice is 'none'")
            calls = []
        # Tool replies must reference a call id
        calls = [
            call if call.id else dataclasses.replace(call, id=f"call_{uuid.uuid4().hex[:12]}")
            for call in calls
        ]

        logger.info(f"{self.name}'s thoughts: {response.content}")
        logger.info(f"{self.name} selected {len(calls)} tools to use")

        self.memory.append(Message.assistant(response.content, tool_calls=calls or None))
        self._pending_calls = calls
        return bool(calls) or self.tool_choice is ToolChoice.REQUIRED

    async def act(self) -> str:
        """Execute pending tool calls in proposal order.

        Returns:
            Observations joined by blank lines, or the last message's content
            when there was nothing to execute.
        """
        if not self._pending_calls:
            if self.tool_choice is ToolChoice.REQUIRED:
                error = "Error: tool calls required but none were proposed"
                logger.error(f"{self.name}: {error}")
                self.memory.append(Message.system(error))
                return error

            messages = self.memory.messages
            last_content = messages[-1].content if messages else None
            return last_content or "No content or commands to execute"

        calls, self._pending_calls = self._pending_calls, []
        observations = []
        finished_by = None

        for index, call in enumerate(calls):
            result, observation = await self._execute_tool_call(call, index)
            self.memory.append(
                Message.tool(
                    observation,
                    tool_call_id=call.id,
                    name=call.tool_name,
                    base64_image=result.base64_image,
                )
            )
            observations.append(observation)

            if finished_by is None and self._is_special_tool(call.tool_name):
                finished_by = call.tool_name

        # Special tools end the run only once the whole batch has executed
        if finished_by is not None:
            logger.info(f"Special tool '{finished_by}' has completed the task!")
            self._transition(AgentState.FINISHED)

        return "\n\n".join(observations)

    async def _execute_tool_call(self, call: ToolCall, index: int) -> tuple[ToolResult, str]:
        before = await self.hooks.trigger(
            "before_tool_call",
            BeforeToolCallEventData(
                agent=self,
                tool_call=call,
                tool_name=call.tool_name,
                tool_index=index,
                step=self.current_step,
            ),
        )

        tool_start = time.time()
        if before and before.action == "skip" and before.cached_result is not None:
            result = ToolResult.success(before.cached_result)
        else:
            logger.info(f"Activating tool: '{call.tool_name}'...")
            result = await self.registry.execute_call(
                call, timeout=self.tool_timeout, cancel_event=self._cancel_event
            )

        observation = str(result) or f"Tool `{call.tool_name}` completed with no output"
        if self.max_observe is not None and len(observation) > self.max_observe:
            observation = observation[: self.max_observe]

        if result.failed:
            await self.hooks.trigger(
                "on_tool_error",
                OnToolErrorEventData(
                    agent=self,
                    tool_call=call,
                    tool_name=call.tool_name,
                    error_message=result.error,
                    error_kind=result.error_kind,
                ),
            )
        else:
            logger.info(f"Tool '{call.tool_name}' completed. Result: {observation}")

        await self.hooks.trigger(
            "after_tool_call",
            AfterToolCallEventData(
                agent=self,
                tool_call=call,
                tool_name=call.tool_name,
                result=result,
                observation=observation,
                execution_time_ms=(time.time() - tool_start) * 1000,
            ),
        )
        return result, observation

    def _is_special_tool(self, name: str) -> bool:
        return bool(name) and name.lower() in self.special_tool_names

    # ------------------------------------------------------------------
    # Stuck detection
    # ------------------------------------------------------------------

    def duplicate_count(self) -> int:
        """How many earlier assistant messages repeat the last one verbatim."""
        assistant_messages = self.memory.by_role(Role.ASSISTANT)
        if not assistant_messages:
            return 0
        last = assistant_messages[-1]
        if not last.content:
            return 0
        return sum(1 for m in assistant_messages[:-1] if m.content == last.content)

    def is_stuck(self) -> bool:
        return self.duplicate_count() >= self.duplicate_threshold

    async def handle_stuck_state(self) -> None:
        """Prepend the change-strategy admonition to the next-step guidance."""
        if not (self.next_step_prompt or "").startswith(STUCK_PROMPT):
            self.next_step_prompt = (
                f"{STUCK_PROMPT}\n{self.next_step_prompt}" if self.next_step_prompt else STUCK_PROMPT
            )
        logger.warning(f"Agent {self.name} detected stuck state. Added prompt: {STUCK_PROMPT}")

        last = self.memory.last_by_role(Role.ASSISTANT)
        await self.hooks.trigger(
            "on_stuck",
            OnStuckEventData(
                agent=self,
                step=self.current_step,
                duplicate_content=last.content if last else "",
                duplicate_count=self.duplicate_count(),
            ),
        )

    def _transition(self, new_state: AgentState) -> None:
        if new_state is self.state:
            return
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidState(
                f"Illegal state transition: {self.state.value} -> {new_state.value}"
            )
        logger.debug(f"Agent {self.name}: {self.state.value} -> {new_state.value}")
        self.state = new_state
