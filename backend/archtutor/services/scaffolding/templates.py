"""
Response Templates

Fixed wording for the replies that never reach the LLM (redirects,
clarification prompts, the error fallback) and the learning objectives and
follow-up questions appended to guided replies.
"""

import random

from archtutor.models.route import QueryType
from archtutor.models.scaffolding import SupportLevel
from archtutor.services.router.vocabulary import SUGGESTED_TOPICS, TOPIC_ADJACENCY, TOPIC_NAMES, TOPICS

FALLBACK_MESSAGE = (
    "I apologize, but I encountered an error while processing your request. "
    "Could you please rephrase your question or try asking about a different topic?"
)

REDIRECT_MESSAGE = (
    "I'm a computer architecture tutor, so I can only help with topics like "
    "processors, memory systems, caches and instruction sets. "
    "Here are some areas we could explore together:"
)

# Equally good ways to ask for more detail; one is picked per reply
CLARIFICATION_PHRASINGS = [
    "Could you tell me a bit more about what you'd like to understand{about}?",
    "I want to make sure I point you in the right direction. Which part{about} is confusing you?",
    "Can you rephrase your question or give an example of what you're working on{about}?",
]

CONCEPT_INTRODUCTIONS = {
    "cpu": "The CPU is the part of a computer that fetches, decodes and executes instructions.",
    "memory": "Memory systems store and retrieve data across the levels of the memory hierarchy.",
    "instruction_set": (
        "The instruction set architecture defines the instructions a CPU can execute, "
        "forming the interface between hardware and software."
    ),
    "cache": "Cache memory is a small, fast memory close to the CPU that holds frequently used data.",
    "pipelining": (
        "Pipelining increases instruction throughput by overlapping the execution of "
        "several instructions."
    ),
}

LEARNING_OBJECTIVES = {
    QueryType.CONCEPT_EXPLANATION: "Build a mental model of how {topic} works and why it exists.",
    QueryType.PROBLEM_SOLVING: "Practise a step-by-step method for solving {topic} problems.",
    QueryType.COMPARISON: "Identify the trade-offs that separate the alternatives in {topic}.",
    QueryType.APPLICATION: "Connect {topic} to how real processors and systems use it.",
    QueryType.VERIFICATION: "Check your own reasoning about {topic} against first principles.",
}

NEXT_STEP_QUESTIONS = {
    QueryType.CONCEPT_EXPLANATION: [
        "Can you describe {topic} in your own words?",
        "What problem do you think {topic} was designed to solve?",
    ],
    QueryType.PROBLEM_SOLVING: [
        "Which values in the problem do you already know, and which one are you solving for?",
        "What formula or relationship connects the quantities in this problem?",
    ],
    QueryType.COMPARISON: [
        "Which design goal matters most in the scenario you have in mind?",
        "Under what workload would each option perform better?",
    ],
    QueryType.APPLICATION: [
        "Where have you seen {topic} in a processor you know?",
        "How would a system behave differently without {topic}?",
    ],
    QueryType.VERIFICATION: [
        "Which step of your reasoning are you least sure about?",
        "How could you test your answer with a small example?",
    ],
}


def topic_label(topic: str | None) -> str:
    if not topic:
        return "computer architecture"
    return TOPIC_NAMES.get(topic, topic.replace("_", " "))


def redirect_message(suggested_topics: list[str] | None = None) -> str:
    topics = suggested_topics or SUGGESTED_TOPICS
    bullets = "\n".join(f"- {topic}" for topic in topics)
    return f"{REDIRECT_MESSAGE}\n{bullets}"


def clarification_message(topic: str | None = None, rng: random.Random | None = None) -> str:
    """Clarification prompt; the phrasing is chosen at random among equals."""
    about = f" about {topic_label(topic).lower()}" if topic else ""
    phrasing = (rng or random).choice(CLARIFICATION_PHRASINGS)
    return phrasing.format(about=about)


def concept_introduction(topic: str | None) -> str:
    return CONCEPT_INTRODUCTIONS.get(topic or "", "This is an important concept in computer architecture.")


def next_steps(query_type: QueryType, topic: str | None, support_level: SupportLevel) -> list[str]:
    """
    Learning objective plus follow-up questions.

    High support gets both follow-up questions, lower levels only the first.
    """
    label = topic_label(topic).lower()
    steps = [LEARNING_OBJECTIVES[query_type].format(topic=label)]
    questions = [question.format(topic=label) for question in NEXT_STEP_QUESTIONS[query_type]]
    if support_level == SupportLevel.HIGH:
        steps.extend(questions)
    else:
        steps.append(questions[0])
    return steps


def _owning_topic(concept: str) -> str | None:
    """Topic whose own or subtopic vocabulary names ``concept``."""
    for key, entry in TOPICS.items():
        if concept in entry["terms"] or concept.replace(" ", "_") == key:
            return key
        if any(concept in terms for terms in entry["subtopics"].values()):
            return key
    return None


def adjacent_topics(topic: str | None) -> list[str]:
    """
    Other topic keys linked to ``topic`` through the adjacency table.

    Topics owning one of this topic's adjacent concepts come first, then
    topics that list one of this topic's concepts as adjacent to them.
    """
    found: list[str] = []
    for concept in TOPIC_ADJACENCY.get(topic or "", []):
        owner = _owning_topic(concept)
        if owner and owner != topic and owner not in found:
            found.append(owner)
    for other, concepts in TOPIC_ADJACENCY.items():
        if other == topic or other in found:
            continue
        if any(_owning_topic(concept) == topic for concept in concepts):
            found.append(other)
    return found


def suggested_topics(topic: str | None, limit: int = 3) -> list[str]:
    """Neighbouring topics to explore after this one, by readable name."""
    neighbours = adjacent_topics(topic) if topic else []
    if not neighbours:
        return SUGGESTED_TOPICS[:limit]
    return [topic_label(key) for key in neighbours[:limit]]
