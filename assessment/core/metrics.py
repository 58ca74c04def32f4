from prometheus_client import Counter, Histogram

SANDBOX_EXECUTIONS = Counter(
    "sandbox_executions_total",
    "Sandboxed code executions by outcome",
    ["status"],
)
SANDBOX_DURATION = Histogram(
    "sandbox_execution_seconds",
    "Wall-clock duration of sandboxed executions",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)
GRADED_SUBMISSIONS = Counter(
    "graded_submissions_total",
    "Submissions graded by verdict",
    ["verdict"],
)
HISTORY_COMMIT_FAILURES = Counter(
    "history_commit_failures_total",
    "Learner history batches that failed to commit",
)
GENERATED_QUESTIONS = Counter(
    "generated_questions_total",
    "Questions produced on demand to cover selection shortfalls",
    ["source"],
)
