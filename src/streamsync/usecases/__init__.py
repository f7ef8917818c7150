"""Use cases invoked by the CLI and the job workers."""
