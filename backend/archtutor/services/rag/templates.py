"""
Query Phrasing Templates

Each topic lists alternative phrasings used to widen retrieval. ``{query}``
is replaced with the learner's question. Topics without templates use the
``general`` set.
"""

GENERAL_TOPIC = "general"

QUERY_TEMPLATES: dict[str, list[str]] = {
    "cpu": [
        "What is {query} in CPU architecture",
        "How does {query} relate to CPU performance",
        "Describe the function of {query} in processor design",
    ],
    "memory": [
        "What is {query} in computer memory systems",
        "How does {query} affect memory performance",
        "Explain the concept of {query} in the memory hierarchy",
    ],
    "cache": [
        "What is {query} in cache memory systems",
        "How does {query} improve cache performance",
        "Explain the role of {query} in the cache hierarchy",
    ],
    "pipelining": [
        "What is {query} in CPU pipelining",
        "How does {query} affect pipeline performance",
        "Explain the concept of {query} in modern pipeline designs",
    ],
    "instruction_set": [
        "What is {query} in instruction set architecture",
        "How does {query} impact CPU design",
        "Explain the importance of {query} in an ISA",
    ],
    "io": [
        "How does {query} work in computer input/output",
        "Explain how {query} moves data between devices and memory",
        "What role do interrupts and buses play in {query}",
    ],
    "parallelism": [
        "What is {query} in a parallel context",
        "How does {query} scale across multiple cores",
        "Explain synchronization constraints introduced by {query}",
    ],
    "performance": [
        "How is {query} measured in computer performance analysis",
        "How does {query} relate to CPI and clock rate",
        "Explain how Amdahl's law applies to {query}",
    ],
    "number_representation": [
        "How is {query} represented in binary",
        "Explain the bit-level encoding of {query}",
    ],
    "digital_logic": [
        "How is {query} built from logic gates",
        "Explain the circuit design behind {query}",
    ],
    GENERAL_TOPIC: [
        "Explain {query} in computer architecture",
        "What are the key concepts behind {query} in computer organization",
    ],
}


def templates_for(topic: str | None) -> list[str]:
    """Templates for ``topic``, falling back to the general set."""
    return QUERY_TEMPLATES.get(topic or GENERAL_TOPIC) or QUERY_TEMPLATES[GENERAL_TOPIC]
