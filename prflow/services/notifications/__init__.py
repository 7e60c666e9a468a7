"""
Transition dispatch and notification logging.

Import from the submodules (events, registry, service); this package keeps
no re-exports so approval_workflow can depend on events alone.
"""
