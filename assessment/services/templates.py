"""
Built-in question bank used when no remote generator is configured or the
remote provider returns nothing. Keyed by category, then difficulty.

Coding items define ``solution``; test inputs are argument literals and
outputs are the expected return value as a Python literal.
"""
from typing import Dict, List

TF = ["True", "False"]


def _mcq(text: str, options: List[str], answer: str, explanation: str) -> Dict:
    return {"question_type": "MCQ", "question_text": text, "options": options,
            "correct_answer": answer, "explanation": explanation}


def _tf(text: str, answer: bool, explanation: str) -> Dict:
    return {"question_type": "TrueFalse", "question_text": text, "options": TF,
            "correct_answer": str(answer), "explanation": explanation}


def _code(text: str, starter: str, cases: List[tuple], explanation: str) -> Dict:
    first = cases[0]
    return {
        "question_type": "Coding",
        "question_text": text,
        "starter_code": starter,
        "sample_input": f"solution({first[0]})",
        "sample_output": first[1],
        "test_cases": [{"input": i, "output": o, "hidden": h} for i, o, h in cases],
        "explanation": explanation,
    }


TEMPLATES: Dict[str, Dict[str, List[Dict]]] = {
    "Python": {
        "easy": [
            _mcq("Which of these is an immutable built-in type?",
                 ["A) list", "B) dict", "C) tuple", "D) set"], "C) tuple",
                 "Tuples cannot be modified after creation."),
            _mcq("What does len('hello') return?",
                 ["A) 4", "B) 5", "C) 6", "D) An error"], "B) 5",
                 "len() counts the characters in the string."),
            _tf("In Python, indentation is part of the syntax.", True,
                "Blocks are delimited by indentation rather than braces."),
            _code("Write a function `solution(s)` that returns the string `s` reversed.",
                  "def solution(s):\n    # your code here\n    pass\n",
                  [('"hello"', "'olleh'", False), ('"Python"', "'nohtyP'", False), ('""', "''", True)],
                  "Slicing with a step of -1 reverses a sequence: s[::-1]."),
            _code("Write a function `solution(nums)` that returns the sum of a list of numbers.",
                  "def solution(nums):\n    # your code here\n    pass\n",
                  [("[1, 2, 3, 4, 5]", "15", False), ("[]", "0", False), ("[10, -5, 3]", "8", True)],
                  "The built-in sum() adds up an iterable."),
        ],
        "medium": [
            _mcq("What is the output of [x * 2 for x in range(3)]?",
                 ["A) [0, 2, 4]", "B) [2, 4, 6]", "C) [0, 1, 2]", "D) (0, 2, 4)"], "A) [0, 2, 4]",
                 "range(3) yields 0, 1, 2 and each value is doubled."),
            _mcq("Which statement about generators is correct?",
                 ["A) They build the whole result in memory", "B) They produce values lazily",
                  "C) They can only be iterated with while", "D) They cannot take arguments"],
                 "B) They produce values lazily",
                 "A generator yields one value at a time on demand."),
            _tf("A default argument value is evaluated each time the function is called.", False,
                "Defaults are evaluated once, when the def statement runs."),
            _code("Write a function `solution(items)` that removes duplicates from a list while keeping first-seen order.",
                  "def solution(items):\n    # your code here\n    pass\n",
                  [("[1, 2, 2, 3, 4, 4, 5]", "[1, 2, 3, 4, 5]", False), ("[1, 1, 1]", "[1]", False),
                   ("[]", "[]", True)],
                  "Track seen values in a set, or use dict.fromkeys(items)."),
            _code("Write a function `solution(s)` that returns True if `s` is a palindrome, ignoring case.",
                  "def solution(s):\n    # your code here\n    pass\n",
                  [('"Racecar"', "True", False), ('"hello"', "False", False), ('"A"', "True", True)],
                  "Normalise the case then compare the string to its reverse."),
        ],
        "hard": [
            _mcq("What does the GIL prevent in CPython?",
                 ["A) Running more than one process", "B) Multiple threads executing bytecode at once",
                  "C) Use of asyncio", "D) Importing C extensions"],
                 "B) Multiple threads executing bytecode at once",
                 "The global interpreter lock lets only one thread execute Python bytecode at a time."),
            _mcq("Which method resolution order does Python use for multiple inheritance?",
                 ["A) Depth-first", "B) Breadth-first", "C) C3 linearization", "D) Random"],
                 "C) C3 linearization",
                 "The MRO is computed with the C3 linearization algorithm."),
            _code("Write a function `solution(words)` that groups anagrams and returns the number of groups.",
                  "def solution(words):\n    # your code here\n    pass\n",
                  [('["eat", "tea", "tan", "ate", "nat", "bat"]', "3", False), ("[]", "0", False),
                   ('["a"]', "1", True)],
                  "Use the sorted letters of each word as a dictionary key."),
        ],
    },
    "DSA": {
        "easy": [
            _mcq("What is the time complexity of looking up a key in a hash map on average?",
                 ["A) O(1)", "B) O(log n)", "C) O(n)", "D) O(n log n)"], "A) O(1)",
                 "Hashing gives constant-time lookups on average."),
            _tf("A stack is a last-in, first-out structure.", True,
                "The most recently pushed element is popped first."),
            _code("Write a function `solution(nums)` that returns the largest number in a non-empty list.",
                  "def solution(nums):\n    # your code here\n    pass\n",
                  [("[1, 5, 3, 9, 2]", "9", False), ("[-1, -5, -3]", "-1", False), ("[42]", "42", True)],
                  "Scan the list keeping the best value so far, or use max()."),
        ],
        "medium": [
            _mcq("Which traversal of a binary search tree yields keys in sorted order?",
                 ["A) Pre-order", "B) In-order", "C) Post-order", "D) Level-order"], "B) In-order",
                 "In-order visits left subtree, node, then right subtree."),
            _mcq("What is the worst-case time complexity of quicksort?",
                 ["A) O(n)", "B) O(n log n)", "C) O(n^2)", "D) O(log n)"], "C) O(n^2)",
                 "Consistently poor pivots degrade quicksort to quadratic time."),
            _code("Write a function `solution(nums, target)` that returns the indices of the two numbers adding up to `target`, as a list.",
                  "def solution(nums, target):\n    # your code here\n    pass\n",
                  [("[2, 7, 11, 15], 9", "[0, 1]", False), ("[3, 2, 4], 6", "[1, 2]", False),
                   ("[3, 3], 6", "[0, 1]", True)],
                  "Store each value's index in a dict and look up target - value."),
        ],
        "hard": [
            _mcq("Which algorithm finds shortest paths from one source when edge weights may be negative?",
                 ["A) Dijkstra", "B) Bellman-Ford", "C) Prim", "D) Kruskal"], "B) Bellman-Ford",
                 "Bellman-Ford relaxes all edges repeatedly and detects negative cycles."),
            _code("Write a function `solution(nums)` that returns the length of the longest strictly increasing subsequence.",
                  "def solution(nums):\n    # your code here\n    pass\n",
                  [("[10, 9, 2, 5, 3, 7, 101, 18]", "4", False), ("[0, 1, 0, 3, 2, 3]", "4", False),
                   ("[7, 7, 7]", "1", True)],
                  "Patience sorting with bisect gives an O(n log n) solution."),
            _code("Write a function `solution(s)` that returns True if the brackets in `s` are balanced.",
                  "def solution(s):\n    # your code here\n    pass\n",
                  [('"([]{})"', "True", False), ('"(]"', "False", False), ('""', "True", True)],
                  "Push opening brackets on a stack and match each closing bracket."),
        ],
    },
    "Database": {
        "easy": [
            _mcq("Which SQL clause filters rows before grouping?",
                 ["A) HAVING", "B) WHERE", "C) ORDER BY", "D) LIMIT"], "B) WHERE",
                 "WHERE filters rows; HAVING filters groups."),
            _tf("A primary key column may contain NULL values.", False,
                "Primary keys must be unique and non-null."),
        ],
        "medium": [
            _mcq("What does an index usually trade for faster reads?",
                 ["A) Slower writes and extra storage", "B) Less durability", "C) Weaker isolation",
                  "D) Nothing"], "A) Slower writes and extra storage",
                 "Every write must also maintain the index."),
            _tf("SELECT ... FOR UPDATE locks the selected rows until the transaction ends.", True,
                "Row locks are held until commit or rollback."),
        ],
        "hard": [
            _mcq("Which anomaly does the SERIALIZABLE isolation level prevent that REPEATABLE READ may allow?",
                 ["A) Dirty reads", "B) Lost updates only", "C) Phantom reads", "D) None"], "C) Phantom reads",
                 "Serializable execution rules out phantoms."),
        ],
    },
    "System Design": {
        "easy": [
            _mcq("What does a load balancer do?",
                 ["A) Stores data", "B) Distributes requests across servers", "C) Compiles code",
                  "D) Encrypts disks"], "B) Distributes requests across servers",
                 "It spreads incoming traffic over a pool of backends."),
        ],
        "medium": [
            _mcq("What is the main purpose of a cache in front of a database?",
                 ["A) Durability", "B) Reducing read latency and load", "C) Schema validation",
                  "D) Access control"], "B) Reducing read latency and load",
                 "Hot data is served from memory instead of the database."),
            _tf("Horizontal scaling means adding more machines rather than bigger ones.", True,
                "Scaling out adds nodes; scaling up adds resources to one node."),
        ],
        "hard": [
            _mcq("According to the CAP theorem, during a network partition a system must choose between:",
                 ["A) Consistency and availability", "B) Latency and throughput", "C) Cost and speed",
                  "D) Reads and writes"], "A) Consistency and availability",
                 "A partitioned system cannot be both fully consistent and fully available."),
        ],
    },
    "JavaScript": {
        "easy": [
            _mcq("What does the '===' operator compare in JavaScript?",
                 ["A) Value only", "B) Type only", "C) Both value and type", "D) References only"],
                 "C) Both value and type",
                 "Strict equality performs no type coercion."),
            _tf("In JavaScript, arrays can hold values of different types.", True,
                "JavaScript arrays are dynamically typed."),
        ],
        "medium": [
            _mcq("What is a closure?",
                 ["A) A loop construct", "B) A function that keeps access to its outer scope",
                  "C) A way to end a program", "D) A kind of error"],
                 "B) A function that keeps access to its outer scope",
                 "Closures retain the variables of the scope they were created in."),
        ],
        "hard": [
            _mcq("What does the event loop do?",
                 ["A) Runs loops faster", "B) Schedules queued callbacks when the call stack is empty",
                  "C) Handles DOM events only", "D) Compiles code"],
                 "B) Schedules queued callbacks when the call stack is empty",
                 "It lets single-threaded JavaScript run asynchronous work."),
        ],
    },
    "React": {
        "easy": [
            _mcq("What does JSX compile to?",
                 ["A) HTML files", "B) React.createElement calls", "C) CSS", "D) JSON"],
                 "B) React.createElement calls",
                 "JSX is syntactic sugar for element creation calls."),
        ],
        "medium": [
            _mcq("When does a useEffect with an empty dependency array run?",
                 ["A) On every render", "B) Only after the first render", "C) Never", "D) Before render"],
                 "B) Only after the first render",
                 "An empty dependency list means the effect runs once after mount."),
            _tf("Keys help React identify which list items changed.", True,
                "Stable keys let the reconciler match elements across renders."),
        ],
        "hard": [
            _mcq("What does React.memo do?",
                 ["A) Caches API responses", "B) Skips re-rendering when props are unchanged",
                  "C) Stores state in localStorage", "D) Memoizes hooks"],
                 "B) Skips re-rendering when props are unchanged",
                 "It shallowly compares props and reuses the last render."),
        ],
    },
    "General": {
        "easy": [
            _mcq("What does HTTP status code 404 mean?",
                 ["A) Server error", "B) Not found", "C) Unauthorized", "D) Redirect"], "B) Not found",
                 "The requested resource does not exist."),
            _tf("Git is a distributed version control system.", True,
                "Every clone holds the full repository history."),
        ],
        "medium": [
            _mcq("Which HTTP method is idempotent?",
                 ["A) POST", "B) PUT", "C) PATCH", "D) CONNECT"], "B) PUT",
                 "Repeating a PUT leaves the resource in the same state."),
        ],
        "hard": [
            _mcq("What does a race condition depend on?",
                 ["A) Compiler flags", "B) The relative timing of concurrent operations",
                  "C) Network bandwidth only", "D) Memory size"],
                 "B) The relative timing of concurrent operations",
                 "The outcome changes with the interleaving of concurrent work."),
        ],
    },
}

CATEGORIES = list(TEMPLATES)
