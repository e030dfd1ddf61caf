"""
Exceptions for Agent Planner.

Every error raised here is a PRECONDITION error: the caller asked for
something invalid (unknown tool, missing parameter, unapproved step, ...)
and nothing was changed. Failures of the command being executed are NOT
raised; the executor records them on the step and returns a failed
StepOutcome instead.
"""


class PlannerError(Exception):
    """Base exception for the plan executor."""


# =============================================================================
# PLAN CREATION
# =============================================================================

class ToolNotFoundError(PlannerError):
    def __init__(self, tool_id: str):
        self.tool_id = tool_id
        super().__init__(f'Tool "{tool_id}" not found')


class MissingToolError(PlannerError):
    def __init__(self):
        super().__init__("Step request does not name a tool")


class MissingParameterError(PlannerError):
    def __init__(self, tool_id: str, parameter: str):
        self.tool_id = tool_id
        self.parameter = parameter
        super().__init__(f'Missing required parameter: {parameter} (tool "{tool_id}")')


class InvalidParameterError(PlannerError):
    def __init__(self, tool_id: str, parameter: str, expected: str):
        self.tool_id = tool_id
        self.parameter = parameter
        self.expected = expected
        super().__init__(
            f'Parameter "{parameter}" of tool "{tool_id}" must be of type {expected}'
        )


# =============================================================================
# LOOKUPS AND STATE
# =============================================================================

class PlanNotFoundError(PlannerError):
    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f'Plan "{plan_id}" not found')


class StepNotFoundError(PlannerError):
    def __init__(self, plan_id: str, step_id: str):
        self.plan_id = plan_id
        self.step_id = step_id
        super().__init__(f'Step "{step_id}" not found in plan "{plan_id}"')


class StepNotApprovedError(PlannerError):
    def __init__(self, step_id: str, status: str):
        self.step_id = step_id
        self.status = status
        super().__init__(f'Step "{step_id}" is not approved (status: {status})')


class InvalidTransitionError(PlannerError):
    def __init__(self, step_id: str, status: str, target: str):
        self.step_id = step_id
        self.status = status
        self.target = target
        super().__init__(f'Step "{step_id}" cannot move from {status} to {target}')


class PlanExecutingError(PlannerError):
    def __init__(self, plan_id: str, action: str = "modify"):
        self.plan_id = plan_id
        self.action = action
        super().__init__(f'Cannot {action} executing plan "{plan_id}"')


class PlanFinishedError(PlannerError):
    def __init__(self, plan_id: str, status: str, action: str = "modify"):
        self.plan_id = plan_id
        self.status = status
        self.action = action
        super().__init__(f'Cannot {action} plan "{plan_id}": it already {status}')


class PlanRejectedError(PlannerError):
    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f'Plan "{plan_id}" was rejected and cannot be executed')


# =============================================================================
# COMMAND DISPATCH
# =============================================================================

class CommandNotFoundError(PlannerError):
    def __init__(self, command_id: str):
        self.command_id = command_id
        super().__init__(f'Command "{command_id}" not found')


class CommandAlreadyRegisteredError(PlannerError):
    def __init__(self, command_id: str):
        self.command_id = command_id
        super().__init__(f'Command with id "{command_id}" already registered')
