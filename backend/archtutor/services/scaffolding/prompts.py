"""
Policy Compiler

Converts the scaffolding context (support level, reduction level) and the
route (query type, teaching approach) into clear, minimal LLM instructions
for consistent tutoring behavior.
"""

from archtutor.models.route import Complexity, InScope, ScaffoldType
from archtutor.models.scaffolding import ReductionLevel, ScaffoldingContext, SupportLevel
from archtutor.models.session import LearningProgress
from archtutor.services.scaffolding.templates import concept_introduction, topic_label


def get_support_instruction(level: SupportLevel) -> str:
    """Get instruction based on how much support the learner needs."""
    if level == SupportLevel.HIGH:
        return (
            "The student is new to this or struggling. Break the idea into small steps, "
            "use a concrete analogy, and end with one simple guiding question."
        )
    elif level == SupportLevel.LOW:
        return (
            "The student is doing well. Give brief hints only and ask a challenging "
            "question that makes them connect ideas on their own."
        )
    else:  # MEDIUM
        return "Give structured hints with a worked direction, then ask the student to take the next step."


def get_reduction_instruction(level: ReductionLevel) -> str:
    """Get instruction based on how much reference material was withheld."""
    if level == ReductionLevel.HIGH:
        return "Only the key points of the reference material are included. Expect the student to fill in details."
    elif level == ReductionLevel.MEDIUM:
        return "Part of the reference material was withheld. Point to what is missing rather than supplying it."
    elif level == ReductionLevel.LOW:
        return "Most of the reference material is included. Use it selectively."
    else:  # NONE
        return "The full reference material is included. Use it to ground every hint."


def get_scaffold_instruction(scaffold_type: ScaffoldType) -> str:
    if scaffold_type == ScaffoldType.PROCEDURAL:
        return "Use a procedural scaffold: outline the steps of the method without doing the calculation."
    elif scaffold_type == ScaffoldType.STRATEGIC:
        return "Use a strategic scaffold: help the student decide which approach or option fits and why."
    else:  # CONCEPTUAL
        return "Use a conceptual scaffold: build understanding of what the concept is and how its parts relate."


def get_complexity_instruction(complexity: Complexity) -> str:
    if complexity == Complexity.ADVANCED:
        return "The question is advanced; you may use precise technical terminology."
    elif complexity == Complexity.BASIC:
        return "The question is introductory; avoid jargon that has not been explained."
    return ""


def format_progress(progress: LearningProgress | None) -> str:
    """Learner progress block for the system prompt; empty before any guided turn."""
    if progress is None or not progress.recent_focus:
        return ""
    return (
        "\n\nLearner Progress:\n"
        f"- Current level: {progress.current_level}\n"
        f"- Understood: {', '.join(progress.mastered) or 'nothing confirmed yet'}\n"
        f"- Needs work: {', '.join(progress.needs_work) or 'nothing flagged'}\n"
        f"- Recent focus: {', '.join(progress.recent_focus)}\n"
        "Build on what is understood and revisit what needs work when it is relevant."
    )


def compile_policy(
    context: ScaffoldingContext,
    route: InScope,
    progress: LearningProgress | None = None,
) -> str:
    """
    Compile the scaffolding state into the LLM system prompt.

    Args:
        context: Topic plus current support and reduction levels
        route: The in-scope classification of the query
        progress: Recent learner progress, if the session has any

    Returns:
        System prompt string for the LLM
    """
    support_instruction = get_support_instruction(context.support_level)
    reduction_instruction = get_reduction_instruction(context.reduction_level)
    scaffold_instruction = get_scaffold_instruction(route.approach.scaffold_type)
    complexity_instruction = get_complexity_instruction(route.approach.complexity)

    related = ", ".join(route.related_concepts) or "none"

    policy = f"""You are a Computer Architecture tutor focused ONLY on teaching computer organization and architecture concepts using a scaffolding approach.

CORE PRINCIPLES:
- NEVER provide direct answers
- ONLY address Computer Architecture topics
- For non-Computer Architecture questions, politely redirect users to ask about computer hardware, processors, memory systems, or related topics

Current Topic: {topic_label(context.topic)}
Question Type: {route.query_type.value.replace("_", " ")}
Related Concepts: {related}

Support Level:
{support_instruction}

Reference Material:
{reduction_instruction}

Teaching Approach:
{scaffold_instruction}
{complexity_instruction}{format_progress(progress)}

RESPONSE STRUCTURE:
1. First: Assess current understanding
2. Then: Provide appropriate scaffolding
3. Finally: Guide towards self-discovery

Remember: Your role is to support learning through structured guidance, not to provide direct answers."""

    return policy.strip()


def compile_user_prompt(query: str, reference: list[str], context: ScaffoldingContext) -> str:
    """
    Compile the user prompt for one (sub-)question.

    Args:
        query: The learner's question
        reference: Reduced passage texts, best first
        context: The scaffolding context for this request

    Returns:
        User prompt string
    """
    if reference:
        material = "\n\n---\n\n".join(reference)
    else:
        material = concept_introduction(context.topic)

    return f"""Student Question: {query}

Reference Material:
{material}

Scaffolding Context:
- topic: {context.topic}
- support_level: {context.support_level.value}
- reduction_level: {context.reduction_level.value}"""
