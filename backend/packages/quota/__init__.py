"""
Quota package - per-user daily operation budgets.

Decides whether a metered operation is allowed under the user's plan,
counts completed operations per UTC day, and sends warnings as usage nears
the limit. Plan changes arrive from billing through PlanChangeListener.
"""
