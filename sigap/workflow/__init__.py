"""Pure ticket workflow model: records, status vocabularies, transition and gating rules.

Import from the submodules (sigap.workflow.tickets, sigap.workflow.work_orders, ...).
Nothing is re-exported here; sigap.utils.fsm imports sigap.workflow.results directly.
"""
