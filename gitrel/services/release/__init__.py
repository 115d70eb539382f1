"""Release workflow: version policy, plan, transaction and hooks."""
