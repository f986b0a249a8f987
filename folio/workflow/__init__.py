"""Content workflow: states, access guards, the transition engine and the scheduler."""
