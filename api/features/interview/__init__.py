"""Interview feature package: stages, completeness gates, sessions and turns.

Guides a sender through a fixed sequence of career-interview topics, one reply
at a time, persisting conversations, messages, per-conversation stage state and
the stage transition log in PostgreSQL.
"""
