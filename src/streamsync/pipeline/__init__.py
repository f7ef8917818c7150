"""
Sync pipeline building blocks.

Writers upsert rows on natural keys, the reconciler applies container
hierarchies, batching isolates chunk failures, the task runner bounds
concurrency and the retry policy decides what happens to a failed batch.
"""
