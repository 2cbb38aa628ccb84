"""featgen: concise test-set generation from buggy implementations."""
