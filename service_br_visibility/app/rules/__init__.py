"""
Rules engine package.

Defines the policy model and the classification/apply engine. A run
reverts every touched marker to its canonical state, then classifies
each marker in each scope and hides the ones the active policy rejects,
recording which rule made the decision.

Modules of interest:
- models: PolicySet, decisions and run records.
- classifier: Per-scope classification (layered rules or neighbours).
- engine: Guarded, failure-isolating application run over scopes.
"""
