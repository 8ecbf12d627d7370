"""
Domain Vocabulary

Static tables the query router matches against. Every entry is lowercase;
matching is done on word boundaries.

TOPICS maps a topic key to:
  - terms:     phrases that name the topic itself (scored 0.6)
  - subtopics: subtopic key -> phrases naming it (scored 0.8)
"""

TOPICS: dict[str, dict] = {
    "cpu": {
        "terms": ["cpu", "cpus", "processor", "processors", "central processing unit", "microprocessor"],
        "subtopics": {
            "alu": ["alu", "arithmetic logic unit"],
            "control_unit": ["control unit", "microcode", "microprogram"],
            "registers": ["register", "registers", "register file", "program counter", "accumulator"],
            "datapath": ["datapath", "data path"],
            "instruction_cycle": ["fetch decode execute", "instruction cycle", "fetch cycle", "fetch-execute"],
            "clock": ["clock speed", "clock rate", "clock cycle", "clock cycles", "clock frequency"],
        },
    },
    "memory": {
        "terms": ["memory", "ram", "rom", "main memory"],
        "subtopics": {
            "dram": ["dram", "sdram", "ddr"],
            "sram": ["sram"],
            "memory_hierarchy": ["memory hierarchy"],
            "virtual_memory": ["virtual memory", "page table", "page tables", "paging", "page fault", "tlb",
                               "translation lookaside buffer", "address translation"],
            "memory_access_time": ["memory access time", "access time", "memory latency", "memory bandwidth"],
            "addressing": ["address space", "memory address", "byte addressable", "endianness", "endian"],
        },
    },
    "cache": {
        "terms": ["cache", "caches", "caching", "cache memory"],
        "subtopics": {
            "hit_ratio": ["hit ratio", "hit rate", "miss rate", "miss ratio", "cache hit", "cache miss",
                          "cache misses", "miss penalty"],
            "mapping": ["direct mapped", "direct-mapped", "set associative", "set-associative",
                        "fully associative", "associativity"],
            "cache_lines": ["cache line", "cache lines", "cache block", "block size", "tag bits", "offset bits"],
            "write_policy": ["write back", "write-back", "write through", "write-through", "write allocate"],
            "replacement": ["replacement policy", "lru", "least recently used", "fifo replacement"],
            "coherence": ["cache coherence", "coherence protocol", "mesi", "snooping", "directory protocol"],
            "cache_levels": ["l1", "l2", "l3", "cache levels", "multilevel cache", "multi-level cache"],
        },
    },
    "pipelining": {
        "terms": ["pipeline", "pipelines", "pipelining", "pipelined"],
        "subtopics": {
            "hazards": ["hazard", "hazards", "data hazard", "control hazard", "structural hazard",
                        "pipeline hazard", "raw hazard"],
            "forwarding": ["forwarding", "bypassing", "operand forwarding"],
            "stalls": ["stall", "stalls", "bubble", "bubbles", "pipeline flush"],
            "branch_prediction": ["branch prediction", "branch predictor", "branch target buffer",
                                  "misprediction", "speculative execution"],
            "pipeline_stages": ["pipeline stages", "five stage", "5-stage", "five-stage", "if id ex mem wb"],
            "superscalar": ["superscalar", "out-of-order", "out of order execution", "tomasulo",
                            "reorder buffer"],
        },
    },
    "instruction_set": {
        "terms": ["instruction set", "instruction sets", "isa", "instruction set architecture"],
        "subtopics": {
            "risc_cisc": ["risc", "cisc"],
            "addressing_modes": ["addressing mode", "addressing modes", "immediate addressing",
                                 "indirect addressing", "displacement addressing"],
            "instruction_formats": ["instruction format", "instruction formats", "opcode", "opcodes",
                                    "r-type", "i-type", "j-type"],
            "assembly": ["assembly", "assembly language", "mips", "risc-v", "x86", "arm"],
        },
    },
    "io": {
        "terms": ["input output", "input/output", "i/o", "peripheral", "peripherals"],
        "subtopics": {
            "interrupts": ["interrupt", "interrupts", "interrupt handler", "interrupt vector"],
            "dma": ["dma", "direct memory access"],
            "buses": ["bus", "buses", "system bus", "bus arbitration", "pcie"],
            "polling": ["polling", "memory-mapped i/o", "memory mapped io"],
        },
    },
    "parallelism": {
        "terms": ["parallelism", "parallel processing", "parallel computing"],
        "subtopics": {
            "multicore": ["multicore", "multi-core", "multiprocessor", "multiprocessors", "smp"],
            "multithreading": ["multithreading", "hyperthreading", "simultaneous multithreading", "smt"],
            "simd": ["simd", "vector processor", "vector instructions", "sse", "avx"],
            "gpu": ["gpu", "gpus", "cuda", "warp", "warps"],
            "ilp": ["instruction level parallelism", "instruction-level parallelism", "ilp", "vliw"],
        },
    },
    "performance": {
        "terms": ["cpu performance", "processor performance", "execution time"],
        "subtopics": {
            "cpi": ["cpi", "cycles per instruction", "ipc", "instructions per cycle"],
            "amdahl": ["amdahl", "amdahl's law", "speedup"],
            "benchmarks": ["benchmark", "benchmarks", "spec benchmark", "mips rating", "flops"],
            "throughput_latency": ["throughput", "latency"],
        },
    },
    "number_representation": {
        "terms": ["binary", "number representation", "data representation"],
        "subtopics": {
            "twos_complement": ["two's complement", "twos complement", "2's complement", "signed integer"],
            "floating_point": ["floating point", "floating-point", "ieee 754", "mantissa", "exponent bias"],
            "hexadecimal": ["hexadecimal", "hex", "octal"],
        },
    },
    "digital_logic": {
        "terms": ["digital logic", "logic gate", "logic gates", "boolean logic"],
        "subtopics": {
            "combinational": ["multiplexer", "mux", "decoder", "adder", "full adder", "half adder",
                              "carry lookahead", "combinational circuit"],
            "sequential": ["flip-flop", "flip flop", "latch", "latches", "sequential circuit",
                           "finite state machine"],
        },
    },
}

# Readable names for topic keys
TOPIC_NAMES: dict[str, str] = {
    "cpu": "CPU architecture and organization",
    "memory": "Memory systems",
    "cache": "Cache memory",
    "pipelining": "Pipelining",
    "instruction_set": "Instruction set architecture (ISA)",
    "io": "Input/output and buses",
    "parallelism": "Parallel processing",
    "performance": "Performance analysis",
    "number_representation": "Number representation",
    "digital_logic": "Digital logic",
}

# Concepts adjacent to each topic, most closely related first
TOPIC_ADJACENCY: dict[str, list[str]] = {
    "cpu": ["registers", "alu", "control unit", "instruction set", "pipelining"],
    "memory": ["memory hierarchy", "cache", "virtual memory", "dram"],
    "cache": ["memory hierarchy", "locality of reference", "cache mapping", "write policies"],
    "pipelining": ["pipeline hazards", "forwarding", "branch prediction", "superscalar execution"],
    "instruction_set": ["addressing modes", "instruction formats", "risc vs cisc", "assembly language"],
    "io": ["interrupts", "dma", "system buses", "polling"],
    "parallelism": ["multicore processors", "multithreading", "cache coherence", "simd"],
    "performance": ["cpi", "amdahl's law", "clock rate", "benchmarks"],
    "number_representation": ["two's complement", "floating point", "binary arithmetic"],
    "digital_logic": ["combinational circuits", "sequential circuits", "alu"],
}

# Topics suggested when a query is redirected
SUGGESTED_TOPICS: list[str] = [
    "CPU architecture and organization",
    "Memory hierarchy and cache systems",
    "Instruction set architecture (ISA)",
    "Pipelining and performance optimization",
    "Computer system organization",
]

# Off-domain subjects rejected outright
OFF_DOMAIN_TERMS: list[str] = [
    "pizza", "topping", "toppings", "recipe", "recipes", "cooking", "restaurant", "food",
    "football", "soccer", "basketball", "baseball", "sports", "movie", "movies", "film",
    "tv show", "celebrity", "celebrities", "song", "songs", "music", "singer", "weather",
    "politics", "election", "president", "horoscope", "astrology", "dating", "girlfriend",
    "vacation", "holiday", "stock market", "stocks", "crypto", "bitcoin", "fashion",
    "favorite color", "your favorite", "video game", "pet", "pets", "dog", "cat",
]

# Generic words that only count as domain context inside a supporting phrase
CONTEXT_KEYWORDS: list[str] = [
    "computer", "computers", "hardware", "architecture", "organization", "system", "systems",
    "instruction", "instructions", "data", "bits", "bit", "bytes", "byte", "word", "address",
    "addresses", "cycle", "cycles", "speed", "performance", "chip", "design", "execute", "execution",
]

# Phrase patterns that validate context keywords as being about the domain
CONTEXT_PATTERNS: list[str] = [
    r"\bcomputer (architecture|organi[sz]ation|systems?|hardware|design)\b",
    r"\bhow (do|does|is|are) (a |an |the )?(computers?|hardware|chips?|machines?) (work|execute|run|process|store)",
    r"\b(hardware|chip|processor|system) (design|architecture|organi[sz]ation|performance)\b",
    r"\b\d+(\.\d+)?\s*(-\s*)?(bits?|bytes?|kb|mb|gb|kib|mib|ghz|mhz|ns|cycles?)\b",
    r"\b(machine|assembly) (code|instructions?|language)\b",
    r"\b(execute|executes|executing|execution of) (an |the )?instructions?\b",
    r"\b(store|stores|stored|storing) (data|bits|bytes|words)\b",
    r"\b(memory|instruction|data) (addresses|address)\b",
]

# Words that mark a query as comparative
COMPARATIVE_PATTERN = (
    r"\b(vs\.?|versus|compared?|comparison|faster|slower|better|worse|more than|less than|"
    r"difference|differences|differ|trade-?offs?)\b"
)

# Intent cues per query type, in tie-break order
INTENT_PATTERNS: dict[str, list[str]] = {
    "concept_explanation": [
        r"\bwhat (is|are)\b", r"\bexplain\b", r"\bdescribe\b", r"\bdefine\b", r"\bdefinition\b",
        r"\bhow (does|do)\b", r"\btell me about\b", r"\bmeaning of\b", r"\bwhat does\b",
    ],
    "problem_solving": [
        r"\bsolve\b", r"\bcalculate\b", r"\bcompute\b", r"\bdetermine\b", r"\bfind the\b",
        r"\bhow many\b", r"\bwhat is the (result|value|average|total)\b", r"\bwork out\b",
    ],
    "comparison": [
        r"\bcompare\b", r"\bdifference between\b", r"\bversus\b", r"\bvs\.?\b", r"\bbetter\b",
        r"\badvantages?\b", r"\bdisadvantages?\b", r"\bpros and cons\b",
    ],
    "application": [
        r"\bexamples?\b", r"\buse cases?\b", r"\bapplications?\b", r"\bwhen (to|should i) use\b",
        r"\breal[- ]world\b", r"\bin practice\b", r"\bused (in|for)\b",
    ],
    "verification": [
        r"\bis (it|this|that) (correct|right)\b", r"\bam i right\b", r"\bcheck my\b", r"\bverify\b",
        r"\bvalidate\b", r"\bdid i get\b", r"\bis my (answer|solution|reasoning)\b",
    ],
}
