"""
Services Layer

Bracket engine business logic:
- Pure generators and calculators work on plain lists of Match objects
- Session-level operations load one (tournament, category) scope, mutate it, commit
- Do NOT depend on HTTP request/response objects
"""
