from agentkai.goals import Goal

CONTINUE_NUDGE = (
    "Continue from the tool results above. Call another tool if you still "
    "need one; otherwise give the user your final answer."
)

ROUND_LIMIT_NOTICE = (
    "Stopped after {rounds} rounds: the round limit was reached before a "
    "final answer was produced."
)


def format_goal(goal: Goal) -> str:
    return f"- [{goal.priority}] {goal.description} (progress: {goal.progress * 100:.0f}%)"


def build_system_prompt(
    base_prompt: str,
    memories: list[str] | None = None,
    goals: list[Goal] | None = None,
    memory_limit: int = 5,
) -> str:
    """Compose the per-call system prompt.

    Active goals and relevant memories are only included when a
    collaborator supplied them (``None`` leaves the section out).
    """
    sections = [base_prompt.strip()]
    if goals is not None:
        lines = [format_goal(g) for g in goals] or ["No active goals."]
        sections.append("Active goals:\n" + "\n".join(lines))
    if memories is not None:
        lines = [f"- {m}" for m in memories[:memory_limit]] or ["No relevant memories."]
        sections.append("Relevant memories:\n" + "\n".join(lines))
    return "\n\n".join(sections)
