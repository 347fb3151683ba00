"""Workflow definitions module.

- submission_orchestrator: the order submission state machine (plain async)
- order_workflow: Temporal workflows wrapping it

Nothing is imported here so the Temporal sandbox only loads what a
workflow module imports itself.
"""
