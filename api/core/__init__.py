"""
Shared, cross-cutting code for the feedback workflow service.

`core/` holds small building blocks that multiple features use
(settings, logging, DB wiring, the inference client). Keep workflow and
feedback-specific logic in their own packages (e.g. `feedback/`).
"""
